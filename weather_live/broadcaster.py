"""
Real-time broadcast module for Weather Live Poller.

Fans out events to every connected WebSocket client. The poller runs in a
scheduler thread, so it hands events over with publish(), which schedules
the send on the server's event loop.
"""

import asyncio
import logging
from typing import Any, List, Optional

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)

WEATHER_UPDATE_EVENT = "weather_update"


class ConnectionManager:
    """Tracks connected WebSocket clients and sends events to all of them."""

    def __init__(self) -> None:
        self._connections: List[WebSocket] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def active_count(self) -> int:
        return len(self._connections)

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Bind the event loop that owns the WebSocket connections."""
        self._loop = loop

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections.append(websocket)
        logger.info(f"Client connected ({self.active_count} active)")

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self._connections:
            self._connections.remove(websocket)
            logger.info(f"Client disconnected ({self.active_count} active)")

    async def send(self, websocket: WebSocket, event: str, data: Any) -> None:
        """Send one event to a single client."""
        await websocket.send_json({"event": event, "data": jsonable_encoder(data)})

    async def broadcast(self, event: str, data: Any) -> int:
        """
        Send an event to all connected clients.

        Clients whose send fails are dropped.

        Returns:
            Number of clients the event was delivered to.
        """
        message = {"event": event, "data": jsonable_encoder(data)}
        delivered = 0
        stale = []

        for websocket in list(self._connections):
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping client after send error: {e}")
                stale.append(websocket)

        for websocket in stale:
            self.disconnect(websocket)

        return delivered

    def publish(self, event: str, data: Any) -> bool:
        """
        Schedule a broadcast from any thread without waiting for it.

        Returns:
            True if the broadcast was scheduled.
        """
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.warning(f"No event loop bound, dropping '{event}' event")
            return False

        future = asyncio.run_coroutine_threadsafe(self.broadcast(event, data), loop)
        future.add_done_callback(self._log_result)
        return True

    @staticmethod
    def _log_result(future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Broadcast failed: {error}")
        else:
            logger.debug(f"Broadcast delivered to {future.result()} clients")
