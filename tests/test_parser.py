"""
Tests for the markdown parser: node extraction, hierarchy, groups,
layout directives and degradation on malformed input.
"""

import pytest
from markdown_it.token import Token

import mindsync.parser as parser_module
from mindsync.errors import ParseErrorKind
from mindsync.models import LayoutMode, NodeKind
from mindsync.parser import extract_layout_directive, parse


def _graph(text):
    result = parse(text)
    assert result.ok, result
    return result.value


def _node(graph, content):
    matches = [n for n in graph.nodes if n.content == content]
    assert len(matches) == 1, f"expected one node with content {content!r}"
    return matches[0]


def _parent_of(graph, node):
    for edge in graph.edges:
        if edge.target_id == node.id:
            return graph.get_node(edge.source_id)
    return None


# ============================================================================
# Basic extraction
# ============================================================================

def test_heading_and_list_item_with_styles():
    graph = _graph("# Title {.color-blue .h1}\n- child {.color-red}")

    assert graph.layout_mode == LayoutMode.RADIAL
    assert len(graph.nodes) == 2
    title, child = graph.nodes
    assert title.kind == NodeKind.HEADER
    assert title.content == "Title"
    assert title.level == 1
    assert title.style == "color-blue h1"
    assert child.kind == NodeKind.TEXT
    assert child.content == "child"
    assert child.level == 1
    assert child.style == "color-red"

    assert len(graph.edges) == 1
    assert graph.edges[0].source_id == title.id
    assert graph.edges[0].target_id == child.id


def test_heading_hierarchy():
    graph = _graph("# A\n## B\n### C\n## D")
    a, b, c, d = (_node(graph, x) for x in "ABCD")
    assert _parent_of(graph, a) is None
    assert _parent_of(graph, b) == a
    assert _parent_of(graph, c) == b
    assert _parent_of(graph, d) == a


def test_skipped_heading_levels_attach_to_nearest_shallower():
    graph = _graph("# A\n### C")
    c = _node(graph, "C")
    assert c.level == 3
    assert _parent_of(graph, c) == _node(graph, "A")


def test_list_nesting_levels():
    graph = _graph("- a\n  - b\n    - c")
    a, b, c = (_node(graph, x) for x in "abc")
    assert [a.level, b.level, c.level] == [1, 2, 3]
    assert _parent_of(graph, a) is None
    assert _parent_of(graph, b) == a
    assert _parent_of(graph, c) == b


def test_list_items_attach_to_enclosing_heading():
    graph = _graph("# A\n- x\n- y\n## B\n- z")
    a, b = _node(graph, "A"), _node(graph, "B")
    assert _parent_of(graph, _node(graph, "x")) == a
    assert _parent_of(graph, _node(graph, "y")) == a
    assert _parent_of(graph, _node(graph, "z")) == b


def test_deep_nesting_is_clamped():
    text = "\n".join([
        "- a",
        "  - b",
        "    - c",
        "      - d",
        "        - e",
        "          - f",
    ])
    graph = _graph(text)
    e, f = _node(graph, "e"), _node(graph, "f")
    assert e.level == 5
    assert f.level == 5
    assert _parent_of(graph, f) == _node(graph, "d")


def test_ordered_lists_are_text_nodes():
    graph = _graph("1. one\n2. two")
    assert [n.kind for n in graph.nodes] == [NodeKind.TEXT, NodeKind.TEXT]
    assert [n.content for n in graph.nodes] == ["one", "two"]
    assert graph.edges == []


def test_setext_headings():
    graph = _graph("Title\n=====\n\nSub\n---")
    title, sub = _node(graph, "Title"), _node(graph, "Sub")
    assert (title.level, sub.level) == (1, 2)
    assert _parent_of(graph, sub) == title


# ============================================================================
# Code and images
# ============================================================================

def test_code_block_without_context_is_root():
    graph = _graph("```python\nprint(1)\n```")
    [code] = graph.nodes
    assert code.kind == NodeKind.CODE
    assert code.language == "python"
    assert code.content == "print(1)"
    assert graph.edges == []


def test_code_attaches_to_heading():
    graph = _graph("# A\n\n```\nx = 1\n```")
    code = _node(graph, "x = 1")
    assert code.language == ""
    assert _parent_of(graph, code) == _node(graph, "A")


def test_code_after_list_attaches_to_last_item():
    graph = _graph("# A\n- first\n- second\n\n```\nx\n```")
    assert _parent_of(graph, _node(graph, "x")) == _node(graph, "second")


def test_code_inside_list_item():
    graph = _graph("- item\n\n  ```sh\n  ls\n  ```")
    code = _node(graph, "ls")
    assert code.language == "sh"
    assert _parent_of(graph, code) == _node(graph, "item")


def test_indented_code_block():
    graph = _graph("# A\n\n    code here")
    code = _node(graph, "code here")
    assert code.kind == NodeKind.CODE
    assert code.language == ""
    assert _parent_of(graph, code) == _node(graph, "A")


def test_fence_info_style_tokens():
    graph = _graph("```python {.color-red}\nx = 1\n```")
    [code] = graph.nodes
    assert code.language == "python"
    assert code.style == "color-red"


def test_unterminated_fence_runs_to_end():
    graph = _graph("```\nprint(1)")
    [code] = graph.nodes
    assert code.content == "print(1)"


def test_image_with_style():
    graph = _graph("# A\n\n![diagram](img/a.png) {.shape-circle}")
    image = _node(graph, "diagram")
    assert image.kind == NodeKind.IMAGE
    assert image.alt_text == "diagram"
    assert image.image_url == "img/a.png"
    assert image.style == "shape-circle"
    assert _parent_of(graph, image) == _node(graph, "A")


def test_image_with_unsafe_url_is_skipped():
    graph = _graph("# A\n\n![x](javascript:alert)")
    assert [n.content for n in graph.nodes] == ["A"]


def test_prose_paragraphs_are_ignored():
    graph = _graph("# A\n\nSome prose here.\n\n- item")
    assert [n.content for n in graph.nodes] == ["A", "item"]


# ============================================================================
# Groups and directives
# ============================================================================

def test_thematic_breaks_number_groups():
    graph = _graph("# A\n\n---\n\n# B\n\n---\n\n# C")
    assert [n.group_id for n in graph.nodes] == [None, 1, 2]
    assert graph.edges == []


def test_thematic_break_keeps_open_ancestors():
    graph = _graph("# A\n- x\n\n---\n\n- y")
    y = _node(graph, "y")
    assert y.group_id == 1
    assert _parent_of(graph, y).content == "A"


def test_escaped_block_markers_are_content():
    graph = _graph("# \\# Title\n- \\1. first\n  \\- second line\n- \\\\# kept")
    assert [n.kind for n in graph.nodes] == [NodeKind.HEADER, NodeKind.TEXT, NodeKind.TEXT]
    assert [n.content for n in graph.nodes] == ["# Title", "1. first\n- second line", "\\# kept"]


@pytest.mark.parametrize("text,expected", [
    ("<!-- mindsync-layout: horizontal -->\n# A", LayoutMode.HORIZONTAL),
    ("<!-- mindsync-layout: radial -->\n# A", LayoutMode.RADIAL),
    ("\n\n  <!-- HORIZONTAL -->\n# A", LayoutMode.HORIZONTAL),
    ("# A\n<!-- mindsync-layout: horizontal -->", LayoutMode.RADIAL),
    ("<!-- just a comment -->\n# A", LayoutMode.RADIAL),
    ("# A", LayoutMode.RADIAL),
])
def test_layout_directive(text, expected):
    graph = _graph(text)
    assert graph.layout_mode == expected
    assert _node(graph, "A").kind == NodeKind.HEADER


def test_extract_layout_directive_returns_line_index():
    mode, index = extract_layout_directive(["", "<!-- mindsync-layout: horizontal -->", "# A"])
    assert mode == LayoutMode.HORIZONTAL
    assert index == 1
    assert extract_layout_directive(["# A"]) == (LayoutMode.RADIAL, None)


def test_directive_only_document():
    graph = _graph("<!-- mindsync-layout: horizontal -->")
    assert graph.nodes == []
    assert graph.layout_mode == LayoutMode.HORIZONTAL


# ============================================================================
# Degradation and failures
# ============================================================================

@pytest.mark.parametrize("text", ["", "   \n\n"])
def test_empty_document(text):
    graph = _graph(text)
    assert graph.nodes == []
    assert graph.edges == []


def test_style_only_heading_kept_literally():
    graph = _graph("# {.x}")
    [node] = graph.nodes
    assert node.content == "{.x}"
    assert node.style == ""


def test_empty_heading_is_skipped():
    graph = _graph("#\n- item")
    assert [n.content for n in graph.nodes] == ["item"]
    assert graph.edges == []


def test_braces_in_content_are_literal():
    graph = _graph("- use {braces} here")
    assert graph.nodes[0].content == "use {braces} here"
    assert graph.nodes[0].style == ""


def test_tokenizer_failure(monkeypatch):
    class BrokenMarkdown:
        def parse(self, src):
            raise RuntimeError("boom")

    monkeypatch.setattr(parser_module, "_markdown", BrokenMarkdown())
    result = parse("# A")
    assert not result.ok
    assert result.error.kind == ParseErrorKind.SYNTAX_ERROR
    assert result.error.category == "parse"


def test_truncated_token_stream(monkeypatch):
    class TruncatedMarkdown:
        def parse(self, src):
            return [Token("heading_open", "h1", 1)]

    monkeypatch.setattr(parser_module, "_markdown", TruncatedMarkdown())
    result = parse("# A")
    assert not result.ok
    assert result.error.kind == ParseErrorKind.TOKEN_EXTRACTION_ERROR


def test_parse_is_deterministic_in_structure():
    text = "# A {.h1}\n- b\n  - c\n\n```js\nx\n```"
    assert _graph(text).structure() == _graph(text).structure()
