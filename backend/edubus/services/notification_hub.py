from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class NotificationHub:
    """Fan-out of notification payloads to websockets grouped by audience role."""

    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, audience: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections[audience].add(websocket)

    async def disconnect(self, audience: str, websocket: WebSocket) -> None:
        async with self._lock:
            sockets = self._connections.get(audience)
            if not sockets:
                return
            sockets.discard(websocket)
            if not sockets:
                self._connections.pop(audience, None)

    def connection_count(self, audience: str) -> int:
        return len(self._connections.get(audience, ()))

    async def publish(self, audience: str, payload: dict) -> None:
        async with self._lock:
            sockets = list(self._connections.get(audience, set()))

        if not sockets:
            return

        stale: list[WebSocket] = []
        for websocket in sockets:
            try:
                await websocket.send_json(payload)
            except Exception:  # pragma: no cover - network/runtime dependent
                stale.append(websocket)

        if stale:
            async with self._lock:
                active = self._connections.get(audience, set())
                for socket in stale:
                    active.discard(socket)
                if not active:
                    self._connections.pop(audience, None)
            logger.debug("Removed %d stale notification websocket(s) for %s", len(stale), audience)


notification_hub = NotificationHub()
