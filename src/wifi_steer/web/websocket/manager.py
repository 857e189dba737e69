"""WebSocket connection manager."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from fastapi import WebSocket

from .events import WebSocketEvent

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages WebSocket connections and broadcasts events."""

    def __init__(self) -> None:
        """Initialize connection manager."""
        self.active_connections: List[WebSocket] = []
        self._lock = asyncio.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Remember the event loop that serves the connections.

        Events published from other threads are scheduled on this loop.

        Args:
            loop: The server's running event loop
        """
        self._loop = loop

    async def connect(self, websocket: WebSocket) -> None:
        """Accept and register a new WebSocket connection.

        Args:
            websocket: WebSocket connection to register
        """
        await websocket.accept()
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        async with self._lock:
            self.active_connections.append(websocket)
        logger.info(
            "WebSocket client connected. Total connections: %d", len(self.active_connections)
        )

    async def disconnect(self, websocket: WebSocket) -> None:
        """Remove a WebSocket connection.

        Args:
            websocket: WebSocket connection to remove
        """
        async with self._lock:
            if websocket in self.active_connections:
                self.active_connections.remove(websocket)
        logger.info(
            "WebSocket client disconnected. Total connections: %d", len(self.active_connections)
        )

    async def broadcast(self, event: WebSocketEvent) -> None:
        """Broadcast an event to all connected clients.

        Args:
            event: Event to broadcast
        """
        if not self.active_connections:
            return

        message = event.model_dump_json()
        logger.debug(
            "Broadcasting event: %s to %d clients", event.type, len(self.active_connections)
        )

        async with self._lock:
            connections = self.active_connections.copy()

        disconnected = []
        for connection in connections:
            try:
                await connection.send_text(message)
            except Exception as e:
                logger.warning("Failed to send to WebSocket client: %s", e)
                disconnected.append(connection)

        if disconnected:
            async with self._lock:
                for connection in disconnected:
                    if connection in self.active_connections:
                        self.active_connections.remove(connection)
            logger.info("Removed %d disconnected clients", len(disconnected))

    def broadcast_sync(self, event: WebSocketEvent) -> None:
        """Broadcast an event from a non-async thread.

        The broadcast is scheduled on the attached event loop and this call
        returns without waiting for it. Events are dropped when no loop is
        attached or it has stopped.

        Args:
            event: Event to broadcast
        """
        loop = self._loop
        if loop is None or loop.is_closed() or not loop.is_running():
            logger.debug("Dropping %s event: no running event loop", event.type.value)
            return

        try:
            asyncio.run_coroutine_threadsafe(self.broadcast(event), loop)
        except RuntimeError as e:
            # Loop shut down between the check and the call
            logger.warning("Cannot broadcast event: %s", e)

    @property
    def connection_count(self) -> int:
        """Get the number of active connections.

        Returns:
            Number of active WebSocket connections
        """
        return len(self.active_connections)
