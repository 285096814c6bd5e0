"""
Mindsync Backend - FastAPI Application

Serves one live document to the editor and canvas collaborators:
- REST API for text updates, node/edge mutations, layout, and undo/redo
- Stateless parse/serialize/layout endpoints
- WebSocket endpoint broadcasting graph_updated, text_updated and
  sync_error events
- CORS configuration for local frontend development
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, NoReturn, Optional

from fastapi import Depends, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from ..analysis import summarize_graph
from ..config import Settings, get_settings
from ..errors import EngineError
from ..layout import layout
from ..models import (
    BaseNode,
    CreateEdgeRequest,
    CreateNodeRequest,
    Graph,
    LayoutModeRequest,
    LayoutRequest,
    MeasuredSizesRequest,
    ParseRequest,
    TextUpdateRequest,
    UpdateNodeRequest,
)
from ..parser import parse
from ..serializer import serialize
from ..sync import SyncController
from ..validation import validate_graph, validation_summary
from .websocket_manager import ws_manager

logger = logging.getLogger(__name__)

# HTTP status per error category
ERROR_STATUS = {
    "validation": 400,
    "parse": 400,
    "serialize": 400,
    "layout": 409,
}


# --- Async change notification ---
# Bridge between sync controller callbacks and async WebSocket broadcasts

_event_queue: Optional[asyncio.Queue] = None


def _enqueue(event_type: str, payload: Any):
    """Controller callback target - queues an event for the broadcaster."""
    if _event_queue is not None:
        _event_queue.put_nowait((event_type, payload))


async def change_broadcaster(queue: asyncio.Queue):
    """Background task that broadcasts document events to WebSocket clients."""
    while True:
        event_type, payload = await queue.get()
        if event_type == "graph_updated":
            await ws_manager.notify_graph_updated(payload)
        elif event_type == "text_updated":
            await ws_manager.notify_text_updated(payload)
        elif event_type == "sync_error":
            await ws_manager.notify_sync_error(payload)


# --- Document session ---

def create_controller(text: str = "", settings: Optional[Settings] = None) -> SyncController:
    """Create a controller whose changes are broadcast over the WebSocket."""
    controller = SyncController(text, settings=settings)
    controller.on_graph_change(lambda graph: _enqueue("graph_updated", graph.to_json_dict()))
    controller.on_text_change(lambda new_text: _enqueue("text_updated", new_text))
    controller.on_error(lambda error: _enqueue("sync_error", error.to_dict()))
    return controller


_controller: Optional[SyncController] = None


def load_document(text: str) -> SyncController:
    """Replace the served document (used by `mindsync serve FILE`)."""
    global _controller
    _controller = create_controller(text)
    return _controller


def get_controller() -> SyncController:
    """Dependency returning the served document's controller."""
    global _controller
    if _controller is None:
        _controller = create_controller()
    return _controller


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup/shutdown tasks."""
    global _event_queue
    _event_queue = asyncio.Queue()

    broadcaster_task = asyncio.create_task(change_broadcaster(_event_queue))

    yield

    broadcaster_task.cancel()
    try:
        await broadcaster_task
    except asyncio.CancelledError:
        pass
    _event_queue = None


# --- FastAPI App ---

app = FastAPI(
    title="Mindsync API",
    description="Markdown <-> graph synchronization backend",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Helpers ---

def _raise_error(error: EngineError) -> NoReturn:
    raise HTTPException(status_code=ERROR_STATUS.get(error.category, 400), detail=error.to_dict())


def _node_json(node: BaseNode) -> dict:
    return node.model_dump(mode="json", by_alias=True)


def _document_state(controller: SyncController) -> dict:
    return {
        "text": controller.text,
        "graph": controller.graph.to_json_dict(),
        "state": controller.state.value,
        "pending_parse": controller.has_pending_parse,
        "can_undo": controller.can_undo,
        "can_redo": controller.can_redo,
    }


def _require_node(controller: SyncController, node_id: str):
    if controller.graph.get_node(node_id) is None:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")


# --- Health Check ---

@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "connections": ws_manager.connection_count}


# --- Document State ---

@app.get("/api/document")
async def get_document(controller: SyncController = Depends(get_controller)):
    """Get the current text, graph and sync state."""
    return _document_state(controller)


@app.put("/api/document/text")
async def update_text(request: TextUpdateRequest, controller: SyncController = Depends(get_controller)):
    """Report the editor's text. Parsed after the debounce unless `flush` is set."""
    controller.on_text_changed(request.text)
    if request.flush:
        controller.flush()
    return {"success": True, "document": _document_state(controller)}


@app.post("/api/document/flush")
async def flush_text(controller: SyncController = Depends(get_controller)):
    """Parse pending text now instead of waiting for the debounce."""
    parsed = controller.flush()
    return {"success": True, "parsed": parsed, "document": _document_state(controller)}


@app.get("/api/document/validate")
async def validate_document(controller: SyncController = Depends(get_controller)):
    """Validate the current graph and return any issues."""
    issues = validate_graph(controller.graph)
    return {
        "issues": [issue.to_dict() for issue in issues],
        "summary": validation_summary(issues)
    }


@app.get("/api/document/summary")
async def document_summary(controller: SyncController = Depends(get_controller)):
    """Get a structural summary of the current graph."""
    return summarize_graph(controller.graph).to_dict()


# --- Undo/Redo ---

@app.post("/api/undo")
async def undo(controller: SyncController = Depends(get_controller)):
    """Undo the last change."""
    graph = controller.undo()
    if graph is not None:
        return {"success": True, "document": _document_state(controller)}
    return {"success": False, "message": "Nothing to undo"}


@app.post("/api/redo")
async def redo(controller: SyncController = Depends(get_controller)):
    """Redo the last undone change."""
    graph = controller.redo()
    if graph is not None:
        return {"success": True, "document": _document_state(controller)}
    return {"success": False, "message": "Nothing to redo"}


# --- Node Operations ---

@app.post("/api/nodes")
async def create_node(request: CreateNodeRequest, controller: SyncController = Depends(get_controller)):
    """Create a node, optionally as a child of `parentId`."""
    result = controller.create_node(request.type, request.parent_id, **request.node_fields())
    if not result.ok:
        _raise_error(result.error)
    return {"success": True, "node": _node_json(result.value), "text": controller.text}


# Fixed path MUST be before the parameterized routes
@app.put("/api/nodes/measured-sizes")
async def set_measured_sizes(request: MeasuredSizesRequest, controller: SyncController = Depends(get_controller)):
    """Record node sizes measured by the renderer."""
    result = controller.set_measured_sizes(request.sizes)
    if not result.ok:
        _raise_error(result.error)
    return {"success": True, "updated": len(request.sizes)}


@app.patch("/api/nodes/{node_id}")
async def update_node(node_id: str, request: UpdateNodeRequest, controller: SyncController = Depends(get_controller)):
    """Update an existing node."""
    _require_node(controller, node_id)
    result = controller.update_node(node_id, **request.changes())
    if not result.ok:
        _raise_error(result.error)
    return {"success": True, "node": _node_json(result.value), "text": controller.text}


@app.delete("/api/nodes/{node_id}")
async def delete_node(node_id: str, controller: SyncController = Depends(get_controller)):
    """Delete a node; its children become roots."""
    _require_node(controller, node_id)
    result = controller.delete_node(node_id)
    if not result.ok:
        _raise_error(result.error)
    return {"success": True, "text": controller.text}


# --- Edge Operations ---

@app.post("/api/edges")
async def create_edge(request: CreateEdgeRequest, controller: SyncController = Depends(get_controller)):
    """Link a child node under a parent node."""
    result = controller.create_edge(request.source_id, request.target_id)
    if not result.ok:
        _raise_error(result.error)
    return {"success": True, "edge": result.value.model_dump(by_alias=True), "text": controller.text}


@app.delete("/api/edges/{edge_id}")
async def delete_edge(edge_id: str, controller: SyncController = Depends(get_controller)):
    """Delete an edge; its target becomes a root."""
    if controller.graph.get_edge(edge_id) is None:
        raise HTTPException(status_code=404, detail=f"Edge not found: {edge_id}")
    result = controller.delete_edge(edge_id)
    if not result.ok:
        _raise_error(result.error)
    return {"success": True, "text": controller.text}


# --- Layout Operations ---

@app.put("/api/layout/mode")
async def set_layout_mode(request: LayoutModeRequest, controller: SyncController = Depends(get_controller)):
    """Switch between radial and horizontal layout."""
    result = controller.set_layout_mode(request.mode)
    if not result.ok:
        _raise_error(result.error)
    return {"success": True, "mode": request.mode.value, "text": controller.text}


@app.post("/api/layout/apply")
async def apply_layout(controller: SyncController = Depends(get_controller)):
    """Position the current graph (needs measured sizes)."""
    result = controller.apply_layout()
    if not result.ok:
        _raise_error(result.error)
    return {"success": True, "nodes": [_node_json(n) for n in controller.graph.nodes]}


# --- Stateless Engine ---

@app.post("/api/parse")
async def parse_text(request: ParseRequest):
    """Parse markdown into a graph without touching the document."""
    result = parse(request.text)
    if not result.ok:
        _raise_error(result.error)
    return {"success": True, "graph": result.value.to_json_dict()}


@app.post("/api/serialize")
async def serialize_graph(graph: Graph):
    """Serialize a graph to markdown without touching the document."""
    result = serialize(graph)
    if not result.ok:
        _raise_error(result.error)
    return {"success": True, "text": result.value}


@app.post("/api/layout")
async def layout_nodes(request: LayoutRequest):
    """Position an arbitrary node set without touching the document."""
    result = layout(request.nodes, request.edges, request.mode)
    if not result.ok:
        _raise_error(result.error)
    return {"success": True, "nodes": [_node_json(n) for n in result.value]}


# --- WebSocket ---

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time updates.

    Clients connect here to receive graph_updated, text_updated and
    sync_error events.
    """
    await ws_manager.connect(websocket)

    try:
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text('{"type": "pong"}')
    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)
    except Exception as e:
        logger.warning("WebSocket error: %s", e)
        await ws_manager.disconnect(websocket)
