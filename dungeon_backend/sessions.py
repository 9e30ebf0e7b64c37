"""Live connection ↔ (room, session) bindings.

Everything here is a plain dictionary update that never awaits, so a
bind in one room can never stall a broadcast read for another room.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Set

from fastapi import WebSocket


@dataclass(frozen=True)
class SessionBinding:
    room_id: int
    session_id: str


class SessionRegistry:
    def __init__(self) -> None:
        self._bindings: Dict[WebSocket, SessionBinding] = {}
        self._members: Dict[int, Set[WebSocket]] = {}
        self._by_session: Dict[str, WebSocket] = {}

    def bind(self, connection: WebSocket, room_id: int, session_id: str) -> SessionBinding:
        """Bind *connection*, replacing whatever it was bound to before."""
        self._drop(connection)
        binding = SessionBinding(room_id=room_id, session_id=session_id)
        self._bindings[connection] = binding
        self._members.setdefault(room_id, set()).add(connection)
        self._by_session[session_id] = connection
        return binding

    def unbind(self, connection: WebSocket) -> Optional[SessionBinding]:
        """Remove and return the binding of *connection*, or ``None`` if it had none."""
        return self._drop(connection)

    def members_of(self, room_id: int) -> FrozenSet[WebSocket]:
        return frozenset(self._members.get(room_id, ()))

    def binding_for(self, connection: WebSocket) -> Optional[SessionBinding]:
        return self._bindings.get(connection)

    def connection_for(self, session_id: str) -> Optional[WebSocket]:
        return self._by_session.get(session_id)

    def _drop(self, connection: WebSocket) -> Optional[SessionBinding]:
        binding = self._bindings.pop(connection, None)
        if binding is None:
            return None
        members = self._members.get(binding.room_id)
        if members is not None:
            members.discard(connection)
            if not members:
                self._members.pop(binding.room_id, None)
        if self._by_session.get(binding.session_id) is connection:
            self._by_session.pop(binding.session_id, None)
        return binding


__all__ = ["SessionBinding", "SessionRegistry"]
