"""WebSocket connection manager for live room updates.

This module tracks subscribed sockets per room and broadcasts lifecycle
messages (``round_resolved``, ``game_over``) to connected clients.
Resolutions happen on worker threads, so ``LoopNotifier`` hands broadcasts
over to the event loop the sockets live on.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """In-memory fan-out manager keyed by room id."""

    def __init__(self) -> None:
        self._connections: dict[int, list[WebSocket]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def connect(self, room_id: int, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections[room_id].append(websocket)

    async def disconnect(self, room_id: int, websocket: WebSocket) -> None:
        async with self._lock:
            if room_id in self._connections and websocket in self._connections[room_id]:
                self._connections[room_id].remove(websocket)

    async def broadcast(self, room_id: int, payload: dict[str, Any]) -> None:
        async with self._lock:
            targets = list(self._connections.get(room_id, []))
        for ws in targets:
            try:
                await ws.send_json(payload)
            except (RuntimeError, OSError) as exc:
                logger.info("dropping socket room=%s reason=%s", room_id, type(exc).__name__)
                await self.disconnect(room_id, ws)


class LoopNotifier:
    """Callable notifier usable from any thread; no-op until bound to a loop."""

    def __init__(self, manager: ConnectionManager) -> None:
        self._manager = manager
        self._loop: asyncio.AbstractEventLoop | None = None

    def bind(self, loop: asyncio.AbstractEventLoop | None) -> None:
        self._loop = loop

    def __call__(self, room_id: int, payload: dict[str, Any]) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        asyncio.run_coroutine_threadsafe(self._manager.broadcast(room_id, payload), loop)
