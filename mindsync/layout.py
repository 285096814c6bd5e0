"""
Layout algorithms for graph nodes.

Two strategies, both driven by BFS levels of the hierarchy:
- Radial: roots at the canvas origin, level L on a ring around it
- Horizontal: level L in column L, subtrees stacked top to bottom

Positions are node centers. Every node must carry a `measured_size` from the
renderer; the engine never measures anything itself.

Siblings never overlap. On a ring the chord between neighbours is at least
the largest extent on that ring plus padding; in columns every subtree owns
a vertical band at least as tall as its own contents.

Layout functions are pure: they return positioned copies and leave their
inputs untouched.
"""

import logging
import math
from collections import defaultdict, deque
from typing import Optional

from .analysis import build_children_map, compute_levels, find_roots, find_unreachable
from .config import Settings, get_settings
from .errors import Err, LayoutError, LayoutErrorKind, Ok, Result
from .models import BaseNode, Edge, LayoutMode, Position

logger = logging.getLogger(__name__)


def _extent(node: BaseNode) -> float:
    size = node.measured_size
    return max(size.width, size.height)


def _group_by_level(nodes: list[BaseNode], levels: dict[str, int]) -> dict[int, list[BaseNode]]:
    """Nodes per level, each list in node order."""
    by_level: dict[int, list[BaseNode]] = defaultdict(list)
    for node in nodes:
        by_level[levels[node.id]].append(node)
    return by_level


def radial_layout(
    nodes: list[BaseNode],
    edges: list[Edge],
    settings: Optional[Settings] = None,
) -> dict[str, Position]:
    """
    Place each level on a ring around the origin.

    A lone root sits on the origin; several roots share ring 0. The ring
    radius is the larger of
    - previous radius + previous level's max extent + level padding
    - (max extent + node padding) / (2 * sin(pi / n)), the radius at which
      neighbouring nodes cannot touch

    The node at index i of n on a ring sits at angle -pi/2 + 2*pi*i/n (the
    first one straight above the origin).

    Args:
        nodes: Nodes with measured sizes
        edges: Parent -> child edges
        settings: Optional settings (origin and paddings)

    Returns:
        Dict of node_id -> center position
    """
    settings = settings or get_settings()
    cx, cy = settings.radial_center_x, settings.radial_center_y
    levels = compute_levels(nodes, edges)

    positions: dict[str, Position] = {}
    prev_radius = 0.0
    prev_extent = 0.0

    for level, ring in sorted(_group_by_level(nodes, levels).items()):
        count = len(ring)
        max_extent = max(_extent(n) for n in ring)

        radius = 0.0 if level == 0 else prev_radius + prev_extent + settings.radial_level_padding
        if count > 1:
            packing = (max_extent + settings.radial_node_padding) / (2 * math.sin(math.pi / count))
            radius = max(radius, packing)

        for i, node in enumerate(ring):
            angle = -math.pi / 2 + 2 * math.pi * i / count
            positions[node.id] = Position(
                x=cx + radius * math.cos(angle),
                y=cy + radius * math.sin(angle),
            )

        prev_radius, prev_extent = radius, max_extent

    return positions


def horizontal_layout(
    nodes: list[BaseNode],
    edges: list[Edge],
    settings: Optional[Settings] = None,
) -> dict[str, Position]:
    """
    Arrange levels as left-aligned columns and stack subtrees vertically.

    Column L starts after the widest node of every earlier column plus the
    level padding. Each subtree gets a band as tall as the larger of its
    node's height and its children's bands (plus padding between them);
    the node is centered in its band and its children centered under it.

    Args:
        nodes: Nodes with measured sizes
        edges: Parent -> child edges
        settings: Optional settings (origin and paddings)

    Returns:
        Dict of node_id -> center position
    """
    settings = settings or get_settings()
    pad = settings.horizontal_node_padding
    levels = compute_levels(nodes, edges)
    by_level = _group_by_level(nodes, levels)

    # Column left edges
    column_left: dict[int, float] = {}
    x = settings.horizontal_start_x
    for level in sorted(by_level):
        column_left[level] = x
        x += max(n.measured_size.width for n in by_level[level]) + settings.horizontal_level_padding

    # Spanning tree from BFS: a node belongs to whichever parent reaches it first
    index = {n.id: n for n in nodes}
    rank = {n.id: i for i, n in enumerate(nodes)}
    adjacency = build_children_map(edges)
    roots = find_roots(nodes, edges)

    children: dict[str, list[str]] = defaultdict(list)
    seen = set(roots)
    order: list[str] = []
    queue = deque(roots)
    while queue:
        node_id = queue.popleft()
        order.append(node_id)
        for child in sorted(adjacency.get(node_id, []), key=rank.__getitem__):
            if child not in seen:
                seen.add(child)
                children[node_id].append(child)
                queue.append(child)

    # Subtree spans, children before parents
    span: dict[str, float] = {}
    for node_id in reversed(order):
        kids = children.get(node_id, [])
        stacked = sum(span[k] for k in kids) + pad * max(len(kids) - 1, 0)
        span[node_id] = max(index[node_id].measured_size.height, stacked)

    # Band tops, parents before children
    top: dict[str, float] = {}
    y = settings.horizontal_start_y
    for root in roots:
        top[root] = y
        y += span[root] + pad

    positions: dict[str, Position] = {}
    for node_id in order:
        node = index[node_id]
        positions[node_id] = Position(
            x=column_left[levels[node_id]] + node.measured_size.width / 2,
            y=top[node_id] + span[node_id] / 2,
        )
        kids = children.get(node_id, [])
        stacked = sum(span[k] for k in kids) + pad * max(len(kids) - 1, 0)
        child_top = top[node_id] + (span[node_id] - stacked) / 2
        for kid in kids:
            top[kid] = child_top
            child_top += span[kid] + pad

    return positions


LAYOUTS = {
    LayoutMode.RADIAL: radial_layout,
    LayoutMode.HORIZONTAL: horizontal_layout,
}


def layout(
    nodes: list[BaseNode],
    edges: list[Edge],
    mode: LayoutMode,
    settings: Optional[Settings] = None,
) -> Result[list[BaseNode], LayoutError]:
    """
    Position nodes with the given layout mode.

    Args:
        nodes: Nodes to position; every node needs a measured size
        edges: Parent -> child edges (edges to unknown nodes are ignored)
        mode: Layout mode
        settings: Optional settings (origins and paddings)

    Returns:
        Ok(positioned copies in the same order) or Err(LayoutError), in
        which case no position changes
    """
    missing = [n.id for n in nodes if n.measured_size is None]
    if missing:
        logger.warning("Layout needs measured sizes; %d node(s) missing", len(missing))
        return Err(LayoutError(
            kind=LayoutErrorKind.MISSING_MEASURED_SIZE,
            message=f"{len(missing)} node(s) have no measured size: {', '.join(missing)}",
            node_id=missing[0],
        ))

    node_ids = {n.id for n in nodes}
    edges = [e for e in edges if e.source_id in node_ids and e.target_id in node_ids]

    unreachable = find_unreachable(nodes, edges)
    if unreachable:
        logger.warning("Layout found a cycle through %s", unreachable[0])
        return Err(LayoutError(
            kind=LayoutErrorKind.CIRCULAR_DEPENDENCY,
            message=f"Nodes unreachable from any root (cycle): {', '.join(unreachable)}",
            node_id=unreachable[0],
        ))

    positions = LAYOUTS[LayoutMode(mode)](nodes, edges, settings)
    return Ok([node.model_copy(update={"position": positions[node.id]}) for node in nodes])
