"""Pre-game room lifecycle: joining, role selection, ready-up and start.

Every mutation for a room runs under that room's own ``asyncio.Lock`` so
two players racing for the same role are serialized, while other rooms
proceed untouched. Rule violations raise ``LobbyError``; the websocket
layer reports them to the requesting connection only.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from fastapi import WebSocket

from .broadcast import Broadcaster
from .constants import MAX_PLAYERS, GameStatus, Role, RoomStatus
from .errors import LobbyError, RoomNotFound
from .models import Player, Room
from .repository import RoomRepository
from .schemas import JoinedPayload, PlayerDraft, PlayerOut, RoomOut, RoomUpdate
from .sessions import SessionBinding, SessionRegistry
from .supervisor import RoomSupervisor

logger = logging.getLogger(__name__)


def can_start(players: Sequence[Player]) -> bool:
    """At least one player, everyone ready, everyone with a role, no role twice."""
    if not players:
        return False
    if not all(p.is_ready for p in players):
        return False
    roles = [p.role for p in players]
    if any(role is None for role in roles):
        return False
    return len(set(roles)) == len(roles)


class LobbyService:
    def __init__(
        self,
        repository: RoomRepository,
        registry: SessionRegistry,
        broadcaster: Broadcaster,
        supervisor: RoomSupervisor,
    ) -> None:
        self.repository = repository
        self.registry = registry
        self.broadcaster = broadcaster
        self.supervisor = supervisor
        self._locks: Dict[int, asyncio.Lock] = {}
        supervisor.on_round_end = self.handle_round_end

    def _lock(self, room_id: int) -> asyncio.Lock:
        return self._locks.setdefault(room_id, asyncio.Lock())

    # ---------------------------------------------------------------------
    # Joining
    # ---------------------------------------------------------------------

    async def join(
        self,
        connection: Optional[WebSocket],
        code: str,
        name: str,
        session_id: Optional[str] = None,
    ) -> Player:
        """Find or create the player for *name*/*session_id* in room *code*.

        With a *connection* the socket is bound to the player and receives a
        ``joined`` message, and whatever player it was bound to before leaves
        its room. Without one (HTTP join) a new player is always created and
        only the roster changes.
        """
        room = await self.repository.get_room_by_code(code)
        if room is None:
            raise RoomNotFound("Room not found")
        if room.status == RoomStatus.FINISHED:
            raise LobbyError("Room is closed")

        stale: Optional[WebSocket] = None
        departed: Optional[SessionBinding] = None
        async with self._lock(room.id):
            room = await self.repository.get_room(room.id)
            if room is None or room.status == RoomStatus.FINISHED:
                raise LobbyError("Room is closed")
            players = await self.repository.get_players_in_room(room.id)
            player = None
            if connection is not None:
                player = await self._find_existing(room, players, name, session_id)
            if player is None:
                if room.status != RoomStatus.WAITING:
                    raise LobbyError("Game already in progress")
                if len(players) >= MAX_PLAYERS:
                    raise LobbyError("Room is full")
                player = await self.repository.add_player(
                    PlayerDraft(
                        room_id=room.id,
                        session_id=str(uuid4()),
                        name=name,
                        is_host=not players,
                    )
                )
                logger.info("Room %s: %s joined (host=%s)", room.id, player.name, player.is_host)
            else:
                logger.info("Room %s: %s reconnected", room.id, player.name)

            if connection is not None:
                previous = self.registry.connection_for(player.session_id)
                if previous is not None and previous is not connection:
                    self.registry.unbind(previous)
                    stale = previous
                prior = self.registry.binding_for(connection)
                if prior is not None and prior != SessionBinding(room.id, player.session_id):
                    departed = prior
                self.registry.bind(connection, room.id, player.session_id)

        if departed is not None:
            await self._leave(departed)
        if stale is not None:
            await self._kick(stale)
        if connection is not None:
            await self.broadcaster.send(
                connection,
                "joined",
                JoinedPayload(session_id=player.session_id, player_id=player.id, room_id=room.id),
            )
        await self.broadcast_roster(room.id)
        return player

    async def _find_existing(
        self, room: Room, players: List[Player], name: str, session_id: Optional[str]
    ) -> Optional[Player]:
        if session_id:
            known = await self.repository.get_player_by_session_id(session_id)
            if known is not None and known.room_id == room.id:
                return known
        for player in players:
            if player.name == name:
                return player
        return None

    async def _kick(self, connection: WebSocket) -> None:
        await self.broadcaster.send(connection, "error", {"message": "Logged in elsewhere"})
        try:
            await connection.close(code=4003)
        except Exception as exc:
            logger.debug("Closing replaced connection failed: %r", exc)

    # ---------------------------------------------------------------------
    # Role / ready / start
    # ---------------------------------------------------------------------

    async def select_role(self, connection: WebSocket, raw_role: str) -> Player:
        try:
            role = Role(raw_role)
        except ValueError as exc:
            raise LobbyError("Unknown role") from exc
        binding = self._require_binding(connection)
        async with self._lock(binding.room_id):
            room, player = await self._load(binding)
            self._require_waiting(room)
            if player.is_ready:
                raise LobbyError("Unready before changing role")
            if player.role != role:
                players = await self.repository.get_players_in_room(room.id)
                if any(p.id != player.id and p.role == role for p in players):
                    raise LobbyError("Role taken")
                player = await self.repository.update_player_role(player.id, role)
        await self.broadcast_roster(binding.room_id)
        return player

    async def set_ready(self, connection: WebSocket, is_ready: bool) -> Player:
        binding = self._require_binding(connection)
        async with self._lock(binding.room_id):
            room, player = await self._load(binding)
            self._require_waiting(room)
            if is_ready and player.role is None:
                raise LobbyError("Choose a role first")
            player = await self.repository.update_player_ready(player.id, is_ready)
            players = await self.repository.get_players_in_room(room.id)
            if can_start(players):
                await self._begin_game(room, players)
        await self.broadcast_roster(binding.room_id)
        return player

    async def start_game(self, connection: WebSocket) -> None:
        binding = self._require_binding(connection)
        async with self._lock(binding.room_id):
            room, player = await self._load(binding)
            self._require_waiting(room)
            if not player.is_host:
                raise LobbyError("Only the host can start the game")
            players = await self.repository.get_players_in_room(room.id)
            if not can_start(players):
                raise LobbyError("All players must be ready with distinct roles")
            await self._begin_game(room, players)
        await self.broadcast_roster(binding.room_id)

    async def _begin_game(self, room: Room, players: List[Player]) -> None:
        await self.repository.update_room_status(room.id, RoomStatus.PLAYING)
        self.supervisor.start(room.id, players)
        logger.info("Room %s: game begins (%s)", room.id, ", ".join(str(p.role.value) for p in players if p.role))

    # ---------------------------------------------------------------------
    # Leaving / round end
    # ---------------------------------------------------------------------

    async def disconnect(self, connection: WebSocket) -> None:
        binding = self.registry.unbind(connection)
        if binding is not None:
            await self._leave(binding)

    async def _leave(self, binding: SessionBinding) -> None:
        """Drop *binding*'s player from its room once no connection holds it."""
        room_id = binding.room_id
        notify = False
        finished = False
        async with self._lock(room_id):
            room = await self.repository.get_room(room_id)
            if room is None or room.status == RoomStatus.FINISHED:
                finished = True
            elif room.status == RoomStatus.PLAYING:
                self.supervisor.mark_disconnected(room_id, binding.session_id)
                if not self.registry.members_of(room_id):
                    await self.repository.update_room_status(room_id, RoomStatus.FINISHED)
                    self.supervisor.stop(room_id)
                    finished = True
                    logger.info("Room %s: last connection left mid-game, room finished", room_id)
                notify = bool(self.registry.members_of(room_id))
            elif room.status == RoomStatus.WAITING:
                leaving = await self.repository.get_player_by_session_id(binding.session_id)
                await self.repository.remove_player(binding.session_id)
                remaining = await self.repository.get_players_in_room(room_id)
                if not remaining:
                    await self.repository.update_room_status(room_id, RoomStatus.FINISHED)
                    finished = True
                    logger.info("Room %s: empty, room finished", room_id)
                else:
                    if leaving is not None and leaving.is_host and not any(p.is_host for p in remaining):
                        successor = remaining[0]
                        await self.repository.update_player_host(successor.id, True)
                        logger.info("Room %s: host passed to %s", room_id, successor.name)
                    notify = True
        if finished:
            self._locks.pop(room_id, None)
        if notify:
            await self.broadcast_roster(room_id)

    async def handle_round_end(self, room_id: int, status: GameStatus) -> None:
        async with self._lock(room_id):
            room = await self.repository.get_room(room_id)
            if room is None or room.status != RoomStatus.PLAYING:
                return
            await self.repository.update_room_status(room_id, RoomStatus.FINISHED)
            self.supervisor.stop(room_id)
        self._locks.pop(room_id, None)
        logger.info("Room %s: round ended with %s", room_id, status.value)
        await self.broadcast_roster(room_id)

    # ---------------------------------------------------------------------
    # Broadcasting helpers
    # ---------------------------------------------------------------------

    async def roster(self, room_id: int) -> Optional[RoomUpdate]:
        room = await self.repository.get_room(room_id)
        if room is None:
            return None
        players = await self.repository.get_players_in_room(room_id)
        return RoomUpdate(
            players=[PlayerOut.model_validate(p) for p in players],
            room=RoomOut.model_validate(room),
        )

    async def broadcast_roster(self, room_id: int) -> None:
        update = await self.roster(room_id)
        if update is not None:
            await self.broadcaster.send_to_room(room_id, "room_update", update)

    # ---------------------------------------------------------------------
    # Guards
    # ---------------------------------------------------------------------

    def _require_binding(self, connection: WebSocket) -> SessionBinding:
        binding = self.registry.binding_for(connection)
        if binding is None:
            raise LobbyError("Join a room first")
        return binding

    async def _load(self, binding: SessionBinding) -> Tuple[Room, Player]:
        room = await self.repository.get_room(binding.room_id)
        if room is None:
            raise RoomNotFound("Room not found")
        player = await self.repository.get_player_by_session_id(binding.session_id)
        if player is None or player.room_id != room.id:
            raise LobbyError("You are not in this room")
        return room, player

    @staticmethod
    def _require_waiting(room: Room) -> None:
        if room.status != RoomStatus.WAITING:
            raise LobbyError("Game already started")


__all__ = ["LobbyService", "can_start"]
