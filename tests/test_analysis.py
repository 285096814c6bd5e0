"""
Tests for hierarchy traversal helpers and graph summaries.
"""

from mindsync.analysis import (
    build_children_map,
    build_parent_map,
    compute_levels,
    find_children,
    find_cycle,
    find_parent,
    find_roots,
    find_unreachable,
    is_ancestor,
    summarize_graph,
)
from mindsync.factories import create_text_node
from mindsync.models import Edge
from mindsync.parser import parse


def _nodes(*names):
    return [create_text_node(name, 1).unwrap() for name in names]


def _link(parent, child):
    return Edge(source_id=parent.id, target_id=child.id)


# ============================================================================
# Traversal
# ============================================================================

def test_maps_and_lookups():
    a, b, c = _nodes("a", "b", "c")
    edges = [_link(a, b), _link(a, c)]

    assert build_children_map(edges)[a.id] == [b.id, c.id]
    assert build_parent_map(edges) == {b.id: a.id, c.id: a.id}
    assert find_roots([a, b, c], edges) == [a.id]
    assert find_children(a.id, edges) == [b.id, c.id]
    assert find_parent(c.id, edges) == a.id
    assert find_parent(a.id, edges) is None


def test_compute_levels():
    a, b, c, d = _nodes("a", "b", "c", "d")
    edges = [_link(a, b), _link(b, c)]
    assert compute_levels([a, b, c, d], edges) == {a.id: 0, b.id: 1, c.id: 2, d.id: 0}


def test_compute_levels_defaults_unreachable_to_zero():
    a, b = _nodes("a", "b")
    levels = compute_levels([a, b], [_link(a, b), _link(b, a)])
    assert levels == {a.id: 0, b.id: 0}


def test_find_cycle():
    a, b, c = _nodes("a", "b", "c")
    assert find_cycle([_link(a, b), _link(b, c)]) is None

    cycle = find_cycle([_link(a, b), _link(b, c), _link(c, b)])
    assert cycle == [b.id, c.id, b.id]


def test_find_unreachable():
    a, b, c = _nodes("a", "b", "c")
    assert find_unreachable([a, b, c], [_link(a, b)]) == []
    assert find_unreachable([a, b, c], [_link(a, b), _link(b, c), _link(c, b)]) == []
    assert find_unreachable([a, b], [_link(a, b), _link(b, a)]) == [a.id, b.id]


def test_is_ancestor():
    a, b, c = _nodes("a", "b", "c")
    edges = [_link(a, b), _link(b, c)]
    assert is_ancestor(a.id, c.id, edges)
    assert is_ancestor(c.id, c.id, edges)
    assert not is_ancestor(c.id, a.id, edges)


# ============================================================================
# Summary
# ============================================================================

def test_summarize_graph():
    graph = parse("# A\n- x\n  - y\n\n```py\ncode\n```\n\n---\n\n# B").unwrap()
    summary = summarize_graph(graph).to_dict()
    assert summary == {
        "total_nodes": 5,
        "total_edges": 3,
        "nodes_by_kind": {"header": 2, "text": 2, "code": 1},
        "root_count": 2,
        "max_depth": 3,
        "group_count": 2,
        "layout_mode": "radial",
    }
