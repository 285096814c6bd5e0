"""
WebSocket Manager - Handles real-time connections and broadcasts.

This module manages WebSocket connections and broadcasts document updates
(new graph, new text, sync errors) to every connected editor or canvas.
"""
import asyncio
import json
import logging
from typing import Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class WebSocketManager:
    """
    Manages WebSocket connections and broadcasts.

    All connected clients receive graph_updated, text_updated and
    sync_error events when the document changes.
    """

    def __init__(self):
        self._connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket):
        """Accept and register a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self._connections.add(websocket)
        logger.info("WebSocket connected. Total connections: %d", len(self._connections))

    async def disconnect(self, websocket: WebSocket):
        """Remove a WebSocket connection."""
        async with self._lock:
            self._connections.discard(websocket)
        logger.info("WebSocket disconnected. Total connections: %d", len(self._connections))

    async def broadcast(self, message: dict):
        """
        Broadcast a message to all connected clients.

        Failed sends (disconnected clients) drop the connection.
        """
        if not self._connections:
            return

        # Serialize once for all clients
        message_text = json.dumps(message)

        failed: Set[WebSocket] = set()

        async with self._lock:
            for websocket in self._connections:
                try:
                    await websocket.send_text(message_text)
                except Exception as e:
                    logger.debug("Dropping WebSocket after failed send: %s", e)
                    failed.add(websocket)

            self._connections -= failed

    async def notify_graph_updated(self, graph: dict):
        """Send the new graph (camelCase JSON) to all clients."""
        await self.broadcast({
            "type": "graph_updated",
            "graph": graph,
        })

    async def notify_text_updated(self, text: str):
        """Send the new markdown text to all clients."""
        await self.broadcast({
            "type": "text_updated",
            "text": text,
        })

    async def notify_sync_error(self, error: dict):
        """Tell all clients a parse/serialize/layout step failed."""
        await self.broadcast({
            "type": "sync_error",
            "error": error,
        })

    @property
    def connection_count(self) -> int:
        """Get the number of active connections."""
        return len(self._connections)


# Global instance
ws_manager = WebSocketManager()
