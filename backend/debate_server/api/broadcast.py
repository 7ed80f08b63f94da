from __future__ import annotations

import asyncio
import json
import logging
from typing import Protocol

from starlette.websockets import WebSocketState

from debate_server.api.events import OutboundEvent

logger = logging.getLogger("debate_server.api.broadcast")


class DebateSocket(Protocol):
    client_state: WebSocketState

    async def send_text(self, data: str) -> None:
        ...


class BroadcastHub:
    """
    Fan-out over the single debate room. Every registered connection gets
    every published event; sends to one socket are serialized by its own
    lock so concurrent publishes never interleave frames.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._connections: dict[str, DebateSocket] = {}
        self._send_locks: dict[str, asyncio.Lock] = {}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def register(self, connection_id: str, websocket: DebateSocket) -> None:
        async with self._lock:
            self._connections[connection_id] = websocket
            self._send_locks.setdefault(connection_id, asyncio.Lock())

    async def unregister(self, connection_id: str) -> None:
        async with self._lock:
            self._connections.pop(connection_id, None)
            self._send_locks.pop(connection_id, None)

    async def _send(self, connection_id: str, websocket: DebateSocket, encoded: str) -> bool:
        if websocket.client_state != WebSocketState.CONNECTED:
            return False
        async with self._lock:
            send_lock = self._send_locks.get(connection_id)
        if send_lock is None:
            return False
        try:
            async with send_lock:
                await websocket.send_text(encoded)
        except Exception as exc:
            logger.warning("Broadcast send failed | connection_id=%s err=%s", connection_id, exc)
            return False
        return True

    async def send_to(self, connection_id: str, event: OutboundEvent) -> bool:
        async with self._lock:
            websocket = self._connections.get(connection_id)
        if websocket is None:
            return False
        return await self._send(connection_id, websocket, json.dumps(event.to_payload()))

    async def publish(self, event: OutboundEvent) -> int:
        encoded = json.dumps(event.to_payload())
        async with self._lock:
            targets = list(self._connections.items())

        delivered = 0
        for connection_id, websocket in targets:
            if await self._send(connection_id, websocket, encoded):
                delivered += 1
        return delivered
