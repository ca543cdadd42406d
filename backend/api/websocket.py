"""Push channel from the scan service to connected frontends."""

import asyncio
import json
import logging
from typing import Callable

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Fans controller and prompt notifications out to every open WebSocket.

    A client joining mid-session first gets a ``scan_status`` event built by
    ``status`` so it does not have to poll ``GET /api/scan`` to catch up.
    """

    def __init__(self, status: Callable[[], dict] | None = None) -> None:
        self._clients: set[WebSocket] = set()
        self._status = status
        self._send_lock = asyncio.Lock()  # one notification on the wire at a time

    @property
    def connection_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._send_lock:
            if self._status is not None:
                await websocket.send_text(_encode("scan_status", self._status()))
            self._clients.add(websocket)
        logger.info(f"Frontend attached ({len(self._clients)} open)")

    async def disconnect(self, websocket: WebSocket) -> None:
        self._clients.discard(websocket)
        logger.info(f"Frontend detached ({len(self._clients)} open)")

    async def handle_event(self, event: str, data: dict) -> None:
        """on_event callback for DiscoveryController and PromptBroker."""
        message = _encode(event, data)
        async with self._send_lock:
            clients = list(self._clients)
            results = await asyncio.gather(
                *(ws.send_text(message) for ws in clients), return_exceptions=True
            )
        gone = [ws for ws, result in zip(clients, results) if isinstance(result, Exception)]
        for ws in gone:
            self._clients.discard(ws)
        if gone:
            logger.debug(f"Dropped {len(gone)} frontend(s) while sending {event}")


def _encode(event: str, data: dict) -> str:
    return json.dumps({"event": event, "data": data})
