"""
Graph analysis - hierarchy traversal and summarization utilities.

Provides the traversal helpers shared by the serializer, layout engine and
sync controller (roots, children, parents, BFS levels, cycle detection),
plus a structural summary for API consumers.
"""

from collections import defaultdict, deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Optional

if TYPE_CHECKING:
    from .models import BaseNode, Edge, Graph


def build_children_map(edges: Iterable["Edge"]) -> dict[str, list[str]]:
    """Map parent id -> child ids, in edge order."""
    children: dict[str, list[str]] = defaultdict(list)
    for edge in edges:
        children[edge.source_id].append(edge.target_id)
    return children


def build_parent_map(edges: Iterable["Edge"]) -> dict[str, str]:
    """Map child id -> parent id. The first edge wins for a multi-parent child."""
    parents: dict[str, str] = {}
    for edge in edges:
        parents.setdefault(edge.target_id, edge.source_id)
    return parents


def find_roots(nodes: list["BaseNode"], edges: list["Edge"]) -> list[str]:
    """Ids of nodes with no incoming edge, in node order."""
    targets = {e.target_id for e in edges}
    return [n.id for n in nodes if n.id not in targets]


def find_children(node_id: str, edges: list["Edge"]) -> list[str]:
    """Ids of a node's children, in edge order."""
    return [e.target_id for e in edges if e.source_id == node_id]


def find_parent(node_id: str, edges: list["Edge"]) -> Optional[str]:
    """Id of a node's parent, or None for a root."""
    for edge in edges:
        if edge.target_id == node_id:
            return edge.source_id
    return None


def compute_levels(nodes: list["BaseNode"], edges: list["Edge"]) -> dict[str, int]:
    """
    Assign hierarchy levels with a breadth-first walk from every root.

    Roots get level 0, children of a level-n node get n + 1. Nodes that no
    root reaches (only possible through a cycle) default to level 0.

    Args:
        nodes: Nodes of the graph
        edges: Parent -> child edges

    Returns:
        Dict of node_id -> level
    """
    node_ids = {n.id for n in nodes}
    children = build_children_map(e for e in edges if e.source_id in node_ids and e.target_id in node_ids)

    levels: dict[str, int] = {}
    queue = deque((root, 0) for root in find_roots(nodes, edges))

    while queue:
        node_id, level = queue.popleft()
        if node_id in levels:
            continue
        levels[node_id] = level
        for child in children.get(node_id, []):
            if child not in levels:
                queue.append((child, level + 1))

    for node in nodes:
        levels.setdefault(node.id, 0)

    return levels


def find_unreachable(nodes: list["BaseNode"], edges: list["Edge"]) -> list[str]:
    """Ids of nodes no root reaches by following edges."""
    children = build_children_map(edges)
    seen: set[str] = set()
    stack = list(find_roots(nodes, edges))
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        stack.extend(children.get(current, []))
    return [n.id for n in nodes if n.id not in seen]


def find_cycle(edges: list["Edge"]) -> Optional[list[str]]:
    """
    Find one directed cycle using an iterative three-colour DFS.

    Returns:
        The cycle as a list of node ids (first id repeated at the end),
        or None if the edges are acyclic.
    """
    children = build_children_map(edges)
    WHITE, GREY, BLACK = 0, 1, 2
    colour: dict[str, int] = defaultdict(int)

    for start in list(children):
        if colour[start] != WHITE:
            continue
        path: list[str] = [start]
        iters = [iter(children.get(start, []))]
        colour[start] = GREY
        while iters:
            child = next(iters[-1], None)
            if child is None:
                colour[path.pop()] = BLACK
                iters.pop()
                continue
            if colour[child] == GREY:
                return path[path.index(child):] + [child]
            if colour[child] == WHITE:
                colour[child] = GREY
                path.append(child)
                iters.append(iter(children.get(child, [])))
    return None


def is_ancestor(candidate_id: str, node_id: str, edges: list["Edge"]) -> bool:
    """True if `candidate_id` is `node_id` or one of its ancestors."""
    parents = build_parent_map(edges)
    current: Optional[str] = node_id
    seen: set[str] = set()
    while current is not None and current not in seen:
        if current == candidate_id:
            return True
        seen.add(current)
        current = parents.get(current)
    return False


@dataclass
class GraphSummary:
    """Structural summary of a graph."""
    total_nodes: int
    total_edges: int
    nodes_by_kind: dict[str, int]
    root_count: int
    max_depth: int
    group_count: int
    layout_mode: str

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "total_nodes": self.total_nodes,
            "total_edges": self.total_edges,
            "nodes_by_kind": self.nodes_by_kind,
            "root_count": self.root_count,
            "max_depth": self.max_depth,
            "group_count": self.group_count,
            "layout_mode": self.layout_mode,
        }


def summarize_graph(graph: "Graph") -> GraphSummary:
    """
    Generate a summary of a graph.

    Args:
        graph: The graph to summarize

    Returns:
        GraphSummary with node counts by kind, depth and grouping
    """
    kind_counts: dict[str, int] = defaultdict(int)
    for node in graph.nodes:
        kind_counts[node.type] += 1

    levels = compute_levels(graph.nodes, graph.edges)
    groups = {node.group_id for node in graph.nodes}

    return GraphSummary(
        total_nodes=len(graph.nodes),
        total_edges=len(graph.edges),
        nodes_by_kind=dict(kind_counts),
        root_count=len(find_roots(graph.nodes, graph.edges)),
        max_depth=max(levels.values(), default=0),
        group_count=len(groups),
        layout_mode=graph.layout_mode.value,
    )
