"""
Sync Controller - keeps the markdown text and the graph in step.

This module implements:
- The current document snapshot: (text, graph), replaced atomically
- A single-writer state machine (Idle / TextSource / GraphSource) that
  swallows the echo of each update exactly once
- Debounced text -> graph parsing
- Immediate graph -> text serialization for every canvas mutation
- Snapshot-based undo/redo history
- Change callbacks for the editor, the canvas and the backend

Flow:
- Text edits restart the debounce timer. When it fires, the text is parsed
  and the new graph replaces the old one while the state is TextSource, so a
  canvas that pushes the graph straight back is ignored.
- Graph mutations cancel any pending parse, serialize at once, and replace
  the text while the state is GraphSource, so the editor's echo of that
  text is consumed without parsing.
- Errors leave the last good snapshot in place and go to `on_error`
  callbacks.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union

from .analysis import find_children, find_parent, is_ancestor
from .block_escape import normalize_content
from .config import Settings, get_settings
from .errors import (
    EngineError,
    Err,
    Ok,
    Result,
    SerializeError,
    SerializeErrorKind,
    ValidationError,
    ValidationErrorKind,
)
from .factories import build_node, create_edge as build_edge
from .layout import layout
from .models import (
    MAX_HEADER_LEVEL,
    MAX_TEXT_LEVEL,
    NODE_MODELS,
    BaseNode,
    Edge,
    Graph,
    LayoutMode,
    NodeKind,
    Size,
)
from .parser import parse
from .serializer import document_graph, serialize

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    """Which representation is currently writing."""
    IDLE = "idle"
    TEXT_SOURCE = "text_source"    # Applying a parsed text; graph echoes are dropped
    GRAPH_SOURCE = "graph_source"  # Applying a graph mutation; the text echo is consumed


@dataclass(frozen=True)
class DocumentSnapshot:
    """Text and graph that describe the same document."""
    text: str
    graph: Graph


def _unknown(what: str, ident: str, **locator: Any) -> ValidationError:
    return ValidationError(
        kind=ValidationErrorKind.INVALID_FIELD,
        message=f"Unknown {what}: {ident}",
        **locator,
    )


def _childless(node: BaseNode, field: str) -> ValidationError:
    return ValidationError(
        kind=ValidationErrorKind.INVALID_FIELD,
        message=f"{node.kind.value.capitalize()} node {node.id} cannot have children",
        node_id=node.id,
        field=field,
    )


def _round_trip_error(text: str, graph: Graph) -> Optional[SerializeError]:
    """A SerializeError if `text` does not parse back into `graph`."""
    reparsed = parse(text)
    if not reparsed.ok:
        return SerializeError(kind=SerializeErrorKind.INVALID_NODE, message=reparsed.error.message)

    expected, actual = graph.structure(), reparsed.value.structure()
    if expected == actual:
        return None
    mismatches = (i for i, (want, got) in enumerate(zip(expected, actual)) if want != got)
    index = next(mismatches, min(len(expected), len(actual)))
    node_id = graph.nodes[index].id if index < len(graph.nodes) else None
    return SerializeError(
        kind=SerializeErrorKind.INVALID_NODE,
        message=f"Node {node_id} would read back differently from markdown",
        node_id=node_id,
    )


class SyncController:
    """
    Owns the current document and routes every change through one writer.

    Only the controller replaces the snapshot. Editor and canvas report
    changes through `on_text_changed` and the mutation commands, and
    subscribe to results through `on_text_change`, `on_graph_change` and
    `on_error`.

    Text changes need a running asyncio loop for the debounce timer.
    """

    def __init__(
        self,
        text: str = "",
        settings: Optional[Settings] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self._settings = settings or get_settings()
        self._loop = loop
        self._state = SyncState.IDLE

        result = parse(text)
        graph = result.value if result.ok else Graph()
        self._snapshot = DocumentSnapshot(text, graph)

        self._pending_text: Optional[str] = None
        self._debounce: Optional[asyncio.TimerHandle] = None

        self._history: list[Graph] = []  # Past graphs
        self._future: list[Graph] = []   # Undone graphs (for redo)
        self._max_history = self._settings.max_history

        self._on_text_callbacks: list[Callable[[str], Any]] = []
        self._on_graph_callbacks: list[Callable[[Graph], Any]] = []
        self._on_error_callbacks: list[Callable[[EngineError], Any]] = []

    # --- Properties ---

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def snapshot(self) -> DocumentSnapshot:
        return self._snapshot

    @property
    def text(self) -> str:
        return self._snapshot.text

    @property
    def graph(self) -> Graph:
        return self._snapshot.graph

    @property
    def has_pending_parse(self) -> bool:
        """Check if a debounced parse is waiting to run."""
        return self._debounce is not None

    @property
    def can_undo(self) -> bool:
        return len(self._history) > 0

    @property
    def can_redo(self) -> bool:
        return len(self._future) > 0

    # --- Callbacks ---

    def on_text_change(self, callback: Callable[[str], Any]):
        """Register a callback receiving the new text after a graph mutation."""
        self._on_text_callbacks.append(callback)

    def on_graph_change(self, callback: Callable[[Graph], Any]):
        """Register a callback receiving every new graph."""
        self._on_graph_callbacks.append(callback)

    def on_error(self, callback: Callable[[EngineError], Any]):
        """Register a callback receiving parse, serialize and layout errors."""
        self._on_error_callbacks.append(callback)

    def _notify_text(self):
        for callback in self._on_text_callbacks:
            callback(self._snapshot.text)

    def _notify_graph(self):
        for callback in self._on_graph_callbacks:
            callback(self._snapshot.graph)

    def _notify_error(self, error: EngineError):
        logger.warning("Sync error (%s): %s", error.kind.value, error.message)
        for callback in self._on_error_callbacks:
            callback(error)

    def _set_state(self, state: SyncState):
        if state != self._state:
            logger.debug("Sync state %s -> %s", self._state.value, state.value)
        self._state = state

    # --- History ---

    def _save_to_history(self):
        """Save the current graph before it is replaced."""
        if self._max_history <= 0:
            return
        self._future.clear()
        self._history.append(self._snapshot.graph)
        if len(self._history) > self._max_history:
            self._history.pop(0)

    # --- Text -> Graph ---

    def on_text_changed(self, text: str):
        """
        Report the editor's current text.

        While a graph mutation is being applied this is the echo of the
        text just written, and it is consumed without parsing. Otherwise
        the debounce timer restarts.
        """
        if self._state == SyncState.GRAPH_SOURCE:
            logger.debug("Consumed text echo")
            self._set_state(SyncState.IDLE)
            return

        if text == self._snapshot.text:
            self._cancel_debounce()
            return

        self._cancel_debounce()
        self._pending_text = text
        loop = self._loop or asyncio.get_running_loop()
        self._debounce = loop.call_later(self._settings.debounce_seconds, self._run_pending_parse)

    def _cancel_debounce(self) -> bool:
        if self._debounce is None:
            return False
        self._debounce.cancel()
        self._debounce = None
        self._pending_text = None
        return True

    def flush(self) -> bool:
        """
        Run a pending debounced parse now.

        Returns:
            True if a parse was pending
        """
        if self._debounce is None:
            return False
        self._debounce.cancel()
        self._run_pending_parse()
        return True

    def _run_pending_parse(self):
        self._debounce = None
        text, self._pending_text = self._pending_text, None
        if text is None:
            return

        result = parse(text)
        if not result.ok:
            self._notify_error(result.error)
            return

        self._save_to_history()
        self._set_state(SyncState.TEXT_SOURCE)
        try:
            self._snapshot = DocumentSnapshot(text, result.value)
            self._notify_graph()
        finally:
            self._set_state(SyncState.IDLE)

    # --- Graph -> Text ---

    def _commit(self, graph: Graph, action: str, record: bool = True) -> Result[Graph, EngineError]:
        """
        Serialize and install a new graph. Every graph mutation ends here.

        The installed graph is normalized to what the new text reads back
        as, and a graph whose text would read back differently is refused.
        """
        if self._state != SyncState.IDLE:
            logger.debug("Dropped graph echo (%s) while %s", action, self._state.value)
            return Ok(self._snapshot.graph)

        if self._cancel_debounce():
            logger.debug("Discarded pending text parse (%s)", action)

        result = serialize(graph, self._settings)
        if not result.ok:
            self._notify_error(result.error)
            return result

        graph = document_graph(graph)
        error = _round_trip_error(result.value, graph)
        if error:
            self._notify_error(error)
            return Err(error)

        if record:
            self._save_to_history()

        previous_text = self._snapshot.text
        self._set_state(SyncState.GRAPH_SOURCE)
        try:
            self._snapshot = DocumentSnapshot(result.value, graph)
            self._notify_graph()
            if result.value != previous_text:
                self._notify_text()
        finally:
            self._set_state(SyncState.IDLE)
        return Ok(graph)

    def replace_graph(self, graph: Graph) -> Result[Graph, EngineError]:
        """Install a whole graph from the canvas."""
        return self._commit(graph, "replace_graph")

    # --- Node Operations ---

    def create_node(
        self,
        kind: Union[NodeKind, str],
        parent_id: Optional[str] = None,
        **fields: Any,
    ) -> Result[BaseNode, EngineError]:
        """
        Create a node, optionally as the last child of `parent_id`.

        The node joins its parent's group. A root heading joins the last
        group; other roots join the first node's group and are written above
        every heading. Text and header levels default to one below the parent.
        """
        kind = NodeKind(kind)
        graph = self.graph

        parent = None
        if parent_id is not None:
            parent = graph.get_node(parent_id)
            if parent is None:
                return Err(_unknown("parent node", parent_id, field="parent_id"))

        if parent is not None:
            if parent.kind in (NodeKind.CODE, NodeKind.IMAGE):
                return Err(_childless(parent, "parent_id"))
            fields.setdefault("group_id", parent.group_id)
        elif graph.nodes:
            # A root heading goes last; any other root must precede every heading
            anchor = graph.nodes[-1] if kind == NodeKind.HEADER else graph.nodes[0]
            fields.setdefault("group_id", anchor.group_id)

        if kind in (NodeKind.TEXT, NodeKind.HEADER):
            if "content" in fields:
                fields["content"] = normalize_content(str(fields["content"]))
            if parent is not None and parent.kind == kind:
                limit = MAX_TEXT_LEVEL if kind == NodeKind.TEXT else MAX_HEADER_LEVEL
                fields.setdefault("level", min(parent.level + 1, limit))
        elif kind == NodeKind.IMAGE:
            fields.setdefault("content", fields.get("alt_text", ""))

        node_result = build_node(NODE_MODELS[kind], **fields)
        if not node_result.ok:
            return node_result
        node = node_result.value

        edges = list(graph.edges)
        if parent is not None:
            edges.append(build_edge(parent.id, node.id).unwrap())

        committed = self._commit(
            graph.model_copy(update={"nodes": [*graph.nodes, node], "edges": edges}),
            "create_node",
        )
        return Ok(committed.value.get_node(node.id) or node) if committed.ok else committed

    def update_node(self, node_id: str, **changes: Any) -> Result[BaseNode, EngineError]:
        """Change node fields; the result is validated like a new node."""
        graph = self.graph
        node = graph.get_node(node_id)
        if node is None:
            return Err(_unknown("node", node_id, node_id=node_id))

        changes.pop("id", None)
        changes.pop("type", None)
        if node.kind == NodeKind.IMAGE and "alt_text" in changes and "content" not in changes:
            changes["content"] = changes["alt_text"]
        if node.kind in (NodeKind.TEXT, NodeKind.HEADER) and "content" in changes:
            changes["content"] = normalize_content(str(changes["content"]))

        data = node.model_dump()
        data.update(changes)
        node_result = build_node(type(node), **data)
        if not node_result.ok:
            return node_result
        updated = node_result.value

        nodes = [updated if n.id == node_id else n for n in graph.nodes]
        committed = self._commit(graph.model_copy(update={"nodes": nodes}), "update_node")
        return Ok(committed.value.get_node(node_id) or updated) if committed.ok else committed

    def delete_node(self, node_id: str) -> Result[Graph, EngineError]:
        """Delete a node and every edge touching it. Its children become roots."""
        graph = self.graph
        if graph.get_node(node_id) is None:
            return Err(_unknown("node", node_id, node_id=node_id))

        promoted = find_children(node_id, graph.edges)
        if promoted:
            logger.debug("Deleting %s promotes %d children to roots", node_id, len(promoted))

        nodes = [n for n in graph.nodes if n.id != node_id]
        edges = [e for e in graph.edges if node_id not in (e.source_id, e.target_id)]
        return self._commit(graph.model_copy(update={"nodes": nodes, "edges": edges}), "delete_node")

    # --- Edge Operations ---

    def create_edge(self, source_id: str, target_id: str) -> Result[Edge, EngineError]:
        """Link `target_id` under `source_id`, keeping the hierarchy a forest."""
        graph = self.graph
        for field, node_id in (("source_id", source_id), ("target_id", target_id)):
            if graph.get_node(node_id) is None:
                return Err(_unknown("node", node_id, node_id=node_id, field=field))

        source = graph.get_node(source_id)
        if source.kind in (NodeKind.CODE, NodeKind.IMAGE):
            return Err(_childless(source, "source_id"))

        edge_result = build_edge(source_id, target_id)
        if not edge_result.ok:
            return edge_result

        existing = find_parent(target_id, graph.edges)
        if existing is not None:
            return Err(ValidationError(
                kind=ValidationErrorKind.INVALID_FIELD,
                message=f"Node {target_id} already has parent {existing}",
                node_id=target_id,
                field="target_id",
            ))
        if is_ancestor(target_id, source_id, graph.edges):
            return Err(ValidationError(
                kind=ValidationErrorKind.INVALID_FIELD,
                message=f"Edge {source_id} -> {target_id} would create a cycle",
                node_id=target_id,
                field="target_id",
            ))

        edge = edge_result.value
        committed = self._commit(graph.model_copy(update={"edges": [*graph.edges, edge]}), "create_edge")
        return Ok(edge) if committed.ok else committed

    def delete_edge(self, edge_id: str) -> Result[Graph, EngineError]:
        """Delete an edge; its target becomes a root."""
        graph = self.graph
        if graph.get_edge(edge_id) is None:
            return Err(_unknown("edge", edge_id, edge_id=edge_id))

        edges = [e for e in graph.edges if e.id != edge_id]
        return self._commit(graph.model_copy(update={"edges": edges}), "delete_edge")

    # --- Layout Operations ---

    def set_layout_mode(self, mode: Union[LayoutMode, str]) -> Result[Graph, EngineError]:
        """Switch the layout mode (rewrites the directive line)."""
        graph = self.graph.model_copy(update={"layout_mode": LayoutMode(mode)})
        return self._commit(graph, "set_layout_mode")

    def set_measured_sizes(self, sizes: dict[str, Union[Size, dict]]) -> Result[Graph, EngineError]:
        """Record renderer-measured sizes. Not kept in undo history."""
        graph = self.graph
        index = graph.node_index()
        for node_id in sizes:
            if node_id not in index:
                return Err(_unknown("node", node_id, node_id=node_id))

        nodes = [
            n.model_copy(update={"measured_size": Size.model_validate(sizes[n.id])}) if n.id in sizes else n
            for n in graph.nodes
        ]
        return self._commit(graph.model_copy(update={"nodes": nodes}), "set_measured_sizes", record=False)

    def apply_layout(self) -> Result[Graph, EngineError]:
        """Position the current graph with its layout mode."""
        graph = self.graph
        result = layout(graph.nodes, graph.edges, graph.layout_mode, self._settings)
        if not result.ok:
            self._notify_error(result.error)
            return result
        return self._commit(graph.model_copy(update={"nodes": result.value}), "apply_layout")

    # --- Undo/Redo ---

    def undo(self) -> Optional[Graph]:
        """Undo the last change. Returns the restored graph, or None."""
        if not self.can_undo or self._state != SyncState.IDLE:
            return None

        current = self.graph
        previous = self._history.pop()
        result = self._commit(previous, "undo", record=False)
        if not result.ok:
            self._history.append(previous)
            return None
        self._future.append(current)
        return result.value

    def redo(self) -> Optional[Graph]:
        """Redo the last undone change. Returns the restored graph, or None."""
        if not self.can_redo or self._state != SyncState.IDLE:
            return None

        current = self.graph
        following = self._future.pop()
        result = self._commit(following, "redo", record=False)
        if not result.ok:
            self._future.append(following)
            return None
        self._history.append(current)
        return result.value
