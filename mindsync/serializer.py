"""
Markdown serializer - the inverse of the parser.

Writes the layout directive, then walks the hierarchy depth-first from the
roots and renders each node as markdown:
- HeaderNode -> `#` * level (setext underline when the content spans lines)
- TextNode -> `- ` list item, indented two spaces per list ancestor
- CodeNode -> backtick fence with the language as info string
- ImageNode -> `![alt](url)` paragraph

Roots are emitted group by group. Siblings are emitted code/image first, then
list items, then headings, each in node order. That is the only order in
which the parser would rebuild the same parent links, and for parser output
it is exactly document order. Edges the parser could never rebuild are
rejected: children of code or images, headings under list items, and
children in an earlier group than their parent. Content lines that look
like block markup are escaped.

Output is byte-stable: serialize(parse(serialize(g))) == serialize(g).
"""

import logging
import re
from typing import Optional

from .analysis import build_children_map, find_cycle, find_roots
from .block_escape import escape_block_starts, normalize_content
from .config import Settings, get_settings
from .errors import Err, Ok, Result, SerializeError, SerializeErrorKind
from .models import MAX_TEXT_LEVEL, BaseNode, Edge, Graph, LayoutMode, NodeKind
from .style_tokens import restore_style_tokens

logger = logging.getLogger(__name__)

THEMATIC_BREAK = "---"
MIN_FENCE_LENGTH = 3

# Emission rank among siblings
SIBLING_RANK = {
    NodeKind.CODE: 0,
    NodeKind.IMAGE: 0,
    NodeKind.TEXT: 1,
    NodeKind.HEADER: 2,
}

LEADING_BACKTICKS = re.compile(r"^\s*(`*)")


def layout_directive(mode: LayoutMode, settings: Optional[Settings] = None) -> str:
    """The first line of every serialized document."""
    settings = settings or get_settings()
    return f"<!-- {settings.layout_directive_name}: {LayoutMode(mode).value} -->"


def _edge_problem(parent: BaseNode, child: BaseNode) -> Optional[str]:
    """Why the parser could not rebuild `parent -> child`, or None."""
    if parent.kind in (NodeKind.CODE, NodeKind.IMAGE):
        return f"{parent.kind.value} node {parent.id} cannot have children"
    if (child.group_id or 0) < (parent.group_id or 0):
        return f"node {child.id} is in an earlier group than its parent"
    if child.kind == NodeKind.HEADER:
        if parent.kind != NodeKind.HEADER:
            return f"heading {child.id} cannot be nested under a list item"
        if child.level <= parent.level:
            return f"heading {child.id} must be deeper than its parent heading"
    return None


def _check_edges(nodes: list[BaseNode], edges: list[Edge]) -> Optional[SerializeError]:
    index = {node.id: node for node in nodes}
    parent_of: dict[str, str] = {}
    for edge in edges:
        for endpoint in (edge.source_id, edge.target_id):
            if endpoint not in index:
                return SerializeError(
                    kind=SerializeErrorKind.INVALID_EDGE,
                    message=f"Edge {edge.id} references missing node {endpoint}",
                    edge_id=edge.id,
                    node_id=endpoint,
                )
        if edge.source_id == edge.target_id:
            return SerializeError(
                kind=SerializeErrorKind.INVALID_EDGE,
                message=f"Edge {edge.id} connects node {edge.source_id} to itself",
                edge_id=edge.id,
            )
        if edge.target_id in parent_of:
            return SerializeError(
                kind=SerializeErrorKind.INVALID_EDGE,
                message=f"Node {edge.target_id} has more than one parent",
                edge_id=edge.id,
                node_id=edge.target_id,
            )
        problem = _edge_problem(index[edge.source_id], index[edge.target_id])
        if problem:
            return SerializeError(
                kind=SerializeErrorKind.INVALID_EDGE,
                message=f"Edge {edge.id}: {problem}",
                edge_id=edge.id,
                node_id=edge.target_id,
            )
        parent_of[edge.target_id] = edge.source_id

    cycle = find_cycle(edges)
    if cycle:
        return SerializeError(
            kind=SerializeErrorKind.INVALID_EDGE,
            message=f"Cycle in hierarchy: {' -> '.join(cycle)}",
            node_id=cycle[0],
        )
    return None


def _check_node(node: BaseNode) -> Optional[str]:
    """Why `node` cannot be written as markdown, or None."""
    if node.kind in (NodeKind.TEXT, NodeKind.HEADER) and not node.content.strip():
        return "content is empty"
    if node.kind in (NodeKind.TEXT, NodeKind.HEADER) and "\n\n" in normalize_content(node.content):
        return "content cannot contain blank lines"
    if node.kind == NodeKind.HEADER and "\n" in node.content and node.level > 2:
        return "multi-line heading content needs level 1 or 2"
    if node.kind == NodeKind.IMAGE:
        if any(ch in node.alt_text for ch in "[]\n"):
            return "alt text cannot contain brackets or newlines"
        if not node.image_url or any(ch in node.image_url for ch in "() \t\n"):
            return "image URL cannot contain parentheses or whitespace"
    return None


def _check_nodes(nodes: list[BaseNode]) -> Optional[SerializeError]:
    seen: set[str] = set()
    for node in nodes:
        if node.id in seen:
            return SerializeError(
                kind=SerializeErrorKind.INVALID_NODE,
                message=f"Duplicate node id: {node.id}",
                node_id=node.id,
            )
        seen.add(node.id)
        problem = _check_node(node)
        if problem:
            return SerializeError(
                kind=SerializeErrorKind.INVALID_NODE,
                message=f"Node {node.id}: {problem}",
                node_id=node.id,
            )
    return None


def document_order(nodes: list[BaseNode], edges: list[Edge]) -> list[tuple[BaseNode, int]]:
    """
    Depth-first emission order.

    Returns:
        (node, list depth) pairs. List depth counts the consecutive list-item
        ancestors directly above the node; it sets the indentation.
    """
    index = {node.id: node for node in nodes}
    position = {node.id: i for i, node in enumerate(nodes)}
    children = build_children_map(edges)

    def ranked(ids: list[str]) -> list[str]:
        return sorted(ids, key=lambda i: (SIBLING_RANK[index[i].kind], position[i]))

    # Roots go group by group; children always share their parent's group
    roots = sorted(ranked(find_roots(nodes, edges)), key=lambda i: index[i].group_id or 0)

    order: list[tuple[BaseNode, int]] = []
    stack = [(root, 0) for root in reversed(roots)]
    while stack:
        node_id, depth = stack.pop()
        node = index[node_id]
        order.append((node, depth))

        if node.kind == NodeKind.TEXT:
            child_depth = depth + 1
        elif node.kind == NodeKind.HEADER:
            child_depth = 0
        else:
            child_depth = depth
        for child_id in reversed(ranked(children.get(node_id, []))):
            stack.append((child_id, child_depth))
    return order


def _indent_lines(lines: list[str], indent: str) -> list[str]:
    return [f"{indent}{line}" if line else line for line in lines]


def render_header(node: BaseNode) -> str:
    text = restore_style_tokens(escape_block_starts(node.content), node.tokens)
    if "\n" in node.content:
        underline = "=" if node.level == 1 else "-"
        return f"{text}\n{underline * 3}"
    return f"{'#' * node.level} {text}"


def render_text(node: BaseNode, depth: int) -> str:
    indent = "  " * depth
    first, *rest = restore_style_tokens(escape_block_starts(node.content), node.tokens).split("\n")
    lines = [f"{indent}- {first}"] + _indent_lines(rest, indent + "  ")
    return "\n".join(lines)


def fence_length(code: str) -> int:
    """Backticks needed so no content line can close the fence."""
    longest = max((len(LEADING_BACKTICKS.match(line).group(1)) for line in code.split("\n")), default=0)
    return max(MIN_FENCE_LENGTH, longest + 1)


def render_code(node: BaseNode, depth: int) -> str:
    fence = "`" * fence_length(node.content)
    info = restore_style_tokens(node.language, node.tokens)
    body = node.content.split("\n") if node.content else []
    return "\n".join(_indent_lines([fence + info, *body, fence], "  " * depth))


def render_image(node: BaseNode, depth: int) -> str:
    image = restore_style_tokens(f"![{node.alt_text}]({node.image_url})", node.tokens)
    return "  " * depth + image


def render_node(node: BaseNode, depth: int) -> str:
    """Markdown block for a single node."""
    if node.kind == NodeKind.HEADER:
        return render_header(node)
    if node.kind == NodeKind.TEXT:
        return render_text(node, depth)
    if node.kind == NodeKind.CODE:
        return render_code(node, depth)
    if node.kind == NodeKind.IMAGE:
        return render_image(node, depth)
    raise ValueError(f"Unknown node kind: {node.kind}")


def serialize_nodes(
    nodes: list[BaseNode],
    edges: list[Edge],
    layout_mode: LayoutMode = LayoutMode.RADIAL,
    settings: Optional[Settings] = None,
) -> Result[str, SerializeError]:
    """
    Serialize nodes and edges to markdown.

    Args:
        nodes: Nodes in insertion order
        edges: Parent -> child edges
        layout_mode: Mode written into the directive line
        settings: Optional settings (directive name)

    Returns:
        Ok(markdown text, without trailing newline) or Err(SerializeError)
    """
    error = _check_edges(nodes, edges) or _check_nodes(nodes)
    if error:
        logger.warning("Cannot serialize graph: %s", error.message)
        return Err(error)

    out = layout_directive(layout_mode, settings)
    previous: Optional[BaseNode] = None
    group = 0

    for node, depth in document_order(nodes, edges):
        if node.kind == NodeKind.TEXT and depth >= MAX_TEXT_LEVEL:
            logger.warning("Cannot serialize graph: list item %s nested too deep", node.id)
            return Err(SerializeError(
                kind=SerializeErrorKind.INVALID_NODE,
                message=f"Node {node.id}: list items nest at most {MAX_TEXT_LEVEL} deep",
                node_id=node.id,
            ))

        node_group = node.group_id or 0
        if node_group > group:
            out += f"\n\n{THEMATIC_BREAK}" * (node_group - group)
            group = node_group
            previous = None

        tight = (
            node.kind == NodeKind.TEXT
            and previous is not None
            and previous.kind in (NodeKind.HEADER, NodeKind.TEXT)
        )
        out += ("\n" if tight else "\n\n") + render_node(node, depth)
        previous = node

    return Ok(out)


def serialize(graph: Graph, settings: Optional[Settings] = None) -> Result[str, SerializeError]:
    """Serialize a graph snapshot to markdown."""
    return serialize_nodes(graph.nodes, graph.edges, graph.layout_mode, settings)


def document_graph(graph: Graph) -> Graph:
    """
    The graph as its serialized text describes it.

    Nodes are put in emission order and the fields the text derives are
    recomputed: list item levels from list depth, image content from alt
    text and group 0 as no group. Expects a graph that serializes.
    """
    nodes = []
    for node, depth in document_order(graph.nodes, graph.edges):
        update: dict = {"group_id": node.group_id or None}
        if node.kind == NodeKind.TEXT:
            update["level"] = depth + 1
        elif node.kind == NodeKind.IMAGE:
            update["content"] = node.alt_text
        nodes.append(node.model_copy(update=update))
    return graph.model_copy(update={"nodes": nodes})
