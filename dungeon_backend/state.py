"""Centralised in-memory runtime state.

This keeps the singletons that are shared across the whole application so
routers can simply import them without worrying about circular imports.
"""
from __future__ import annotations

from .broadcast import Broadcaster
from .dispatch import MessageDispatcher
from .lobby import LobbyService
from .repository import RoomRepository
from .sessions import SessionRegistry
from .supervisor import RoomSupervisor

repository = RoomRepository()
registry = SessionRegistry()
broadcaster = Broadcaster(registry)
supervisor = RoomSupervisor(broadcaster)
lobby = LobbyService(repository, registry, broadcaster, supervisor)
dispatcher = MessageDispatcher(lobby, supervisor, registry, broadcaster)

__all__ = ["repository", "registry", "broadcaster", "supervisor", "lobby", "dispatcher"]
