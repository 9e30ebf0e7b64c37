"""Room and player persistence on top of the Tortoise models.

Only plain CRUD lives here; every lobby rule is enforced by
``dungeon_backend.lobby``.
"""
from __future__ import annotations

import logging
import secrets
import string
from typing import List, Optional

from .constants import ROOM_CODE_LENGTH, Role, RoomStatus
from .models import Player, Room
from .schemas import PlayerDraft

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_room_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


class RoomRepository:
    async def create_room(self) -> Room:
        while True:
            code = generate_room_code()
            if not await Room.filter(code=code).exists():
                break
        room = await Room.create(code=code, status=RoomStatus.WAITING)
        logger.info("Room %s created with code %s", room.id, room.code)
        return room

    async def get_room_by_code(self, code: str) -> Optional[Room]:
        return await Room.get_or_none(code=code.strip().upper())

    async def get_room(self, room_id: int) -> Optional[Room]:
        return await Room.get_or_none(id=room_id)

    async def update_room_status(self, room_id: int, status: RoomStatus) -> Room:
        room = await Room.get(id=room_id)
        room.status = status
        await room.save(update_fields=["status"])
        return room

    async def add_player(self, draft: PlayerDraft) -> Player:
        return await Player.create(
            room_id=draft.room_id,
            session_id=draft.session_id,
            name=draft.name,
            role=draft.role,
            is_host=draft.is_host,
            is_ready=draft.is_ready,
        )

    async def get_player(self, player_id: int) -> Optional[Player]:
        return await Player.get_or_none(id=player_id)

    async def get_players_in_room(self, room_id: int) -> List[Player]:
        return await Player.filter(room_id=room_id).order_by("id")

    async def update_player_role(self, player_id: int, role: Optional[Role]) -> Player:
        player = await Player.get(id=player_id)
        player.role = role
        await player.save(update_fields=["role"])
        return player

    async def update_player_ready(self, player_id: int, is_ready: bool) -> Player:
        player = await Player.get(id=player_id)
        player.is_ready = is_ready
        await player.save(update_fields=["is_ready"])
        return player

    async def update_player_host(self, player_id: int, is_host: bool) -> Player:
        player = await Player.get(id=player_id)
        player.is_host = is_host
        await player.save(update_fields=["is_host"])
        return player

    async def remove_player(self, session_id: str) -> None:
        await Player.filter(session_id=session_id).delete()

    async def get_player_by_session_id(self, session_id: str) -> Optional[Player]:
        return await Player.get_or_none(session_id=session_id)


__all__ = ["RoomRepository", "generate_room_code"]
