"""
Markdown parser - builds a hierarchy graph from markdown text.

Tokenizes with markdown-it-py (CommonMark) and turns block tokens into nodes:
- ATX/setext headings -> HeaderNode (level = heading depth)
- List items -> TextNode (level = list nesting depth, max 5)
- Fenced/indented code -> CodeNode
- Paragraphs made of a single image -> ImageNode
- Thematic breaks -> start a new group

Hierarchy comes from two (level, node_id) stacks, one for headings and one
for list items, threaded through the pass as an immutable value. A child
always attaches to the nearest ancestor with a strictly smaller level, so
skipped or irregular levels still produce a forest.

Malformed input degrades instead of failing: unterminated fences run to the
end of the document, elements with no usable text are skipped, and stray
paragraphs are ignored.
"""

import logging
import re
from typing import Callable, NamedTuple, Optional

from markdown_it import MarkdownIt
from markdown_it.token import Token

from .block_escape import normalize_content, unescape_block_starts
from .errors import Err, Ok, ParseError, ParseErrorKind, Result
from .factories import (
    create_code_node,
    create_edge,
    create_header_node,
    create_image_node,
    create_text_node,
)
from .models import MAX_TEXT_LEVEL, BaseNode, Edge, Graph, LayoutMode
from .style_tokens import extract_style_tokens

logger = logging.getLogger(__name__)

# First non-blank line: <!-- mindsync-layout: horizontal -->, <!-- radial -->, ...
LAYOUT_DIRECTIVE_PATTERN = re.compile(r"^\s*<!--(?P<body>.*?)-->\s*$")
LAYOUT_MODE_PATTERN = re.compile(r"\b(radial|horizontal)\b", re.IGNORECASE)

# A whole paragraph that is exactly one image
IMAGE_PATTERN = re.compile(r"^!\[(?P<alt>[^\]]*)\]\((?P<url>[^()\s]+)\)$")

_markdown = MarkdownIt("commonmark")


class HierarchyStacks(NamedTuple):
    """
    Open ancestors while walking the document.

    Levels strictly increase from bottom to top of each stack. `last_id` is
    the most recent heading or list item (the parent for code and images).
    """
    headers: tuple[tuple[int, str], ...] = ()
    items: tuple[tuple[int, str], ...] = ()
    last_id: Optional[str] = None

    def push_header(self, level: int, node_id: str) -> tuple["HierarchyStacks", Optional[str]]:
        """Open a heading; returns the new stacks and the heading's parent."""
        headers = tuple(entry for entry in self.headers if entry[0] < level)
        parent = headers[-1][1] if headers else None
        return HierarchyStacks(headers + ((level, node_id),), (), node_id), parent

    def push_item(self, level: int, node_id: str) -> tuple["HierarchyStacks", Optional[str]]:
        """Open a list item; falls back to the enclosing heading as parent."""
        items = tuple(entry for entry in self.items if entry[0] < level)
        if items:
            parent: Optional[str] = items[-1][1]
        elif self.headers:
            parent = self.headers[-1][1]
        else:
            parent = None
        return HierarchyStacks(self.headers, items + ((level, node_id),), node_id), parent


def extract_layout_directive(lines: list[str]) -> tuple[LayoutMode, Optional[int]]:
    """
    Find a layout directive on the first non-blank line.

    Returns:
        (layout mode, index of the directive line or None)
    """
    for index, line in enumerate(lines):
        if not line.strip():
            continue
        match = LAYOUT_DIRECTIVE_PATTERN.match(line)
        if match:
            mode = LAYOUT_MODE_PATTERN.search(match.group("body"))
            if mode:
                return LayoutMode(mode.group(1).lower()), index
        break
    return LayoutMode.RADIAL, None


def _line_of(token: Token) -> Optional[int]:
    return token.map[0] + 1 if token.map else None


def _styled_node(
    factory: Callable,
    raw: str,
    level: int,
    line: Optional[int],
) -> Optional[BaseNode]:
    """Build a heading/list node from raw inline text, degrading to literal text."""
    raw = raw.strip()
    content, tokens = extract_style_tokens(raw)
    content = unescape_block_starts(normalize_content(content))
    result = factory(content, level, " ".join(tokens))
    if not result.ok and tokens:
        # Nothing but a style block: keep the braces as literal content
        logger.debug("Line %s: style block without content, keeping %r literally", line, raw)
        result = factory(raw, level, "")
    if not result.ok:
        logger.debug("Line %s: skipping element: %s", line, result.error.message)
        return None
    return result.value


def _code_node(token: Token) -> Optional[BaseNode]:
    info = token.info.strip() if token.type == "fence" else ""
    info, tokens = extract_style_tokens(info)
    words = info.split()
    language = words[0].replace("`", "") if words else ""

    code = token.content
    if code.endswith("\n"):
        code = code[:-1]

    result = create_code_node(code, language, " ".join(tokens))
    if not result.ok:
        logger.debug("Line %s: skipping code block: %s", _line_of(token), result.error.message)
        return None
    return result.value


def _image_node(inline: Token) -> Optional[BaseNode]:
    content, tokens = extract_style_tokens(inline.content.strip())
    match = IMAGE_PATTERN.match(content)
    if not match:
        logger.debug("Line %s: ignoring paragraph", _line_of(inline))
        return None

    result = create_image_node(match.group("alt"), match.group("url"), " ".join(tokens))
    if not result.ok:
        logger.debug("Line %s: skipping image: %s", _line_of(inline), result.error.message)
        return None
    return result.value


def _build_graph(tokens: list[Token], layout_mode: LayoutMode) -> Graph:
    nodes: list[BaseNode] = []
    edges: list[Edge] = []
    stacks = HierarchyStacks()
    group_id: Optional[int] = None
    list_depth = 0

    def add(node: BaseNode, parent_id: Optional[str]) -> None:
        nodes.append(node.model_copy(update={"group_id": group_id}))
        if parent_id is not None:
            edge = create_edge(parent_id, node.id)
            if edge.ok:
                edges.append(edge.value)

    for i, token in enumerate(tokens):
        if token.type in ("bullet_list_open", "ordered_list_open"):
            list_depth += 1

        elif token.type in ("bullet_list_close", "ordered_list_close"):
            list_depth -= 1

        elif token.type == "heading_open":
            level = int(token.tag[1:])
            node = _styled_node(create_header_node, tokens[i + 1].content, level, _line_of(token))
            if node is not None:
                stacks, parent = stacks.push_header(level, node.id)
                add(node, parent)

        elif token.type == "list_item_open":
            # The item's text is its first paragraph; items that open
            # straight into a nested list have no text of their own.
            if tokens[i + 1].type != "paragraph_open":
                logger.debug("Line %s: skipping list item without text", _line_of(token))
                continue
            level = min(list_depth, MAX_TEXT_LEVEL)
            node = _styled_node(create_text_node, tokens[i + 2].content, level, _line_of(token))
            if node is not None:
                stacks, parent = stacks.push_item(level, node.id)
                add(node, parent)

        elif token.type in ("fence", "code_block"):
            node = _code_node(token)
            if node is not None:
                add(node, stacks.last_id)

        elif token.type == "paragraph_open":
            if i > 0 and tokens[i - 1].type == "list_item_open":
                continue
            node = _image_node(tokens[i + 1])
            if node is not None:
                add(node, stacks.last_id)

        elif token.type == "hr":
            group_id = (group_id or 0) + 1

    return Graph(nodes=nodes, edges=edges, layout_mode=layout_mode)


def parse(text: str) -> Result[Graph, ParseError]:
    """
    Parse markdown text into a graph.

    Args:
        text: Raw markdown text

    Returns:
        Ok(Graph) with nodes in document order, or Err(ParseError) if the
        tokenizer itself fails
    """
    lines = text.splitlines()
    layout_mode, directive_index = extract_layout_directive(lines)
    if directive_index is not None:
        lines[directive_index] = ""  # keep line numbers stable

    source = "\n".join(lines)
    if not source.strip():
        return Ok(Graph(layout_mode=layout_mode))

    try:
        tokens = _markdown.parse(source)
    except Exception as e:
        logger.warning("Tokenizer failed: %s", e)
        return Err(ParseError(kind=ParseErrorKind.SYNTAX_ERROR, message=f"Tokenizer failed: {e}"))

    try:
        graph = _build_graph(tokens, layout_mode)
    except (IndexError, AttributeError, ValueError) as e:
        logger.warning("Unexpected token stream: %s", e)
        return Err(ParseError(
            kind=ParseErrorKind.TOKEN_EXTRACTION_ERROR,
            message=f"Unexpected token stream: {e}",
        ))

    return Ok(graph)
