"""Client message handling (single public entry point: ``handle_raw``).

Parses one websocket text frame, validates it against the schema for its
``type`` and routes it to the lobby or, for ``input``, to the running
game's input queue.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Dict

from fastapi import WebSocket
from pydantic import ValidationError

from .broadcast import Broadcaster
from .errors import LobbyError
from .lobby import LobbyService
from .schemas import ClientMessage, ErrorPayload, InputPayload, JoinPayload, ReadyPayload, SelectRolePayload
from .sessions import SessionRegistry
from .supervisor import RoomSupervisor

logger = logging.getLogger(__name__)

Handler = Callable[[WebSocket, Dict[str, Any]], Awaitable[None]]


class MessageDispatcher:
    def __init__(
        self,
        lobby: LobbyService,
        supervisor: RoomSupervisor,
        registry: SessionRegistry,
        broadcaster: Broadcaster,
    ) -> None:
        self.lobby = lobby
        self.supervisor = supervisor
        self.registry = registry
        self.broadcaster = broadcaster
        self._handlers: Dict[str, Handler] = {
            "join": self._on_join,
            "select_role": self._on_select_role,
            "ready": self._on_ready,
            "start_game": self._on_start_game,
            "input": self._on_input,
        }

    async def handle_raw(self, ws: WebSocket, raw: str) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Dropping unparseable message: %.80s", raw)
            return
        try:
            message = ClientMessage.model_validate(data)
        except ValidationError:
            logger.warning("Dropping message without a valid envelope: %.80s", raw)
            return
        handler = self._handlers.get(message.type)
        if handler is None:
            logger.warning("Dropping message of unknown type %r", message.type)
            return
        try:
            await handler(ws, message.payload)
        except ValidationError as exc:
            logger.warning("Malformed %s payload dropped: %s", message.type, exc.errors(include_url=False))
        except LobbyError as exc:
            logger.info("Rejected %s: %s", message.type, exc)
            await self.broadcaster.send(ws, "error", ErrorPayload(message=str(exc)))
        except Exception:
            logger.exception("Unhandled error while handling %s", message.type)

    async def _on_join(self, ws: WebSocket, payload: Dict[str, Any]) -> None:
        join = JoinPayload.model_validate(payload)
        await self.lobby.join(ws, join.code, join.name, join.session_id)

    async def _on_select_role(self, ws: WebSocket, payload: Dict[str, Any]) -> None:
        await self.lobby.select_role(ws, SelectRolePayload.model_validate(payload).role)

    async def _on_ready(self, ws: WebSocket, payload: Dict[str, Any]) -> None:
        await self.lobby.set_ready(ws, ReadyPayload.model_validate(payload).is_ready)

    async def _on_start_game(self, ws: WebSocket, payload: Dict[str, Any]) -> None:
        await self.lobby.start_game(ws)

    async def _on_input(self, ws: WebSocket, payload: Dict[str, Any]) -> None:
        move = InputPayload.model_validate(payload)
        binding = self.registry.binding_for(ws)
        if binding is None:
            logger.debug("Input from an unbound connection dropped")
            return
        self.supervisor.submit_input(binding.room_id, binding.session_id, move.x, move.y, move.attack)


__all__ = ["MessageDispatcher"]
