"""Room-scoped fan-out of server messages.

Recipients always come from ``SessionRegistry.members_of``; there is no
"send to every socket" path.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Set, Union

from fastapi import WebSocket
from pydantic import BaseModel

from .config import settings
from .sessions import SessionRegistry

logger = logging.getLogger(__name__)

Payload = Union[BaseModel, Dict[str, Any]]


def encode(message_type: str, payload: Payload) -> str:
    if isinstance(payload, BaseModel):
        body = payload.model_dump(mode="json", by_alias=True)
    else:
        body = payload
    return json.dumps({"type": message_type, "payload": body})


class Broadcaster:
    def __init__(self, registry: SessionRegistry, send_timeout: float = settings.send_timeout) -> None:
        self.registry = registry
        self.send_timeout = send_timeout
        self._tasks: Set[asyncio.Task] = set()
        # Connections with a tick frame still in flight.
        self._busy: Set[WebSocket] = set()

    async def send(self, connection: WebSocket, message_type: str, payload: Payload) -> bool:
        """Send one message to a single connection."""
        return await self._safe_send(connection, encode(message_type, payload))

    async def send_to_room(self, room_id: int, message_type: str, payload: Payload) -> int:
        """Deliver to every member of *room_id*; returns how many sends succeeded."""
        text = encode(message_type, payload)
        targets = self.registry.members_of(room_id)
        if not targets:
            return 0
        results = await asyncio.gather(*(self._safe_send(ws, text) for ws in targets))
        return sum(1 for ok in results if ok)

    def publish(self, room_id: int, message_type: str, payload: Payload) -> int:
        """Schedule delivery without waiting for it.

        A connection that has not finished receiving the previous frame
        skips this one; every frame is a full snapshot so nothing is lost
        but latency.
        """
        text = encode(message_type, payload)
        scheduled = 0
        for ws in self.registry.members_of(room_id):
            if ws in self._busy:
                continue
            self._busy.add(ws)
            task = asyncio.create_task(self._send_frame(ws, text))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            scheduled += 1
        return scheduled

    async def drain(self) -> None:
        """Wait for every scheduled frame (used on shutdown and in tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _send_frame(self, ws: WebSocket, text: str) -> None:
        try:
            await self._safe_send(ws, text)
        finally:
            self._busy.discard(ws)

    async def _safe_send(self, ws: WebSocket, text: str) -> bool:
        try:
            await asyncio.wait_for(ws.send_text(text), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning("Send timed out after %.2fs; frame dropped", self.send_timeout)
        except Exception as exc:
            # Client went away between lookup and send.
            logger.info("Send failed: %r", exc)
        return False


__all__ = ["Broadcaster", "encode"]
