"""Pydantic data schemas used across the backend service.

Runtime simulation state, inbound/outbound websocket payloads and the REST
request/response bodies all live here. Every model that reaches the wire
is dumped with camelCase aliases (``sessionId``, ``isReady`` ...).
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .constants import (
    MAX_NAME_LENGTH,
    PLAYER_MAX_HEALTH,
    ROOM_HEIGHT,
    ROOM_WIDTH,
    EnemyType,
    GameStatus,
    Phase,
    Role,
    RoomStatus,
)


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _clean_name(value: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        raise ValueError("Name is required")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValueError(f"Name must be at most {MAX_NAME_LENGTH} characters")
    return cleaned


# -----------------------------
# Simulation state
# -----------------------------

class Vec2(WireModel):
    x: float
    y: float


class RuntimePlayerState(WireModel):
    """One player's avatar inside a running game."""

    id: int
    session_id: str
    name: str
    role: Optional[Role] = None
    position: Vec2
    health: float = PLAYER_MAX_HEALTH
    max_health: float = PLAYER_MAX_HEALTH
    # Dead players stay in the game so wave and loss accounting keep working.
    is_dead: bool = False
    facing: Literal["left", "right"] = "right"
    is_attacking: bool = False

    # Deadlines (engine clock) that never leave the server.
    attack_ready_at: float = Field(default=0.0, exclude=True)
    attacking_until: float = Field(default=0.0, exclude=True)


class Enemy(WireModel):
    id: str
    type: EnemyType
    position: Vec2
    health: float
    max_health: float


class GameRoomState(BaseModel):
    """Authoritative state of one room's game; mutated only by its tick task."""

    room_id: int
    players: Dict[str, RuntimePlayerState] = Field(default_factory=dict)
    enemies: List[Enemy] = Field(default_factory=list)
    width: float = ROOM_WIDTH
    height: float = ROOM_HEIGHT
    status: GameStatus = GameStatus.PLAYING
    wave: int = 0
    phase: Phase = Phase.COURTYARD
    phase_started_at: float = 0.0
    tick: int = 0

    def alive_players(self) -> List[RuntimePlayerState]:
        return [p for p in self.players.values() if not p.is_dead]


# -----------------------------
# Client -> server
# -----------------------------

class ClientMessage(BaseModel):
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class JoinPayload(WireModel):
    code: str
    name: str
    session_id: Optional[str] = None

    @field_validator("code")
    @classmethod
    def code_valid(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("Room code is required")
        return v

    @field_validator("name")
    @classmethod
    def name_valid(cls, v: str) -> str:
        return _clean_name(v)


class SelectRolePayload(WireModel):
    role: str


class ReadyPayload(WireModel):
    is_ready: bool


class InputPayload(WireModel):
    x: float = Field(default=0.0, allow_inf_nan=False)
    y: float = Field(default=0.0, allow_inf_nan=False)
    attack: bool = False


# -----------------------------
# Server -> client
# -----------------------------

class PlayerOut(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    room_id: int
    session_id: str
    name: str
    role: Optional[Role] = None
    is_host: bool = False
    is_ready: bool = False


class RoomOut(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    code: str
    status: RoomStatus
    created_at: Optional[datetime] = None


class RoomUpdate(WireModel):
    players: List[PlayerOut]
    room: RoomOut


class GameStatePayload(WireModel):
    players: List[RuntimePlayerState]
    enemies: List[Enemy]
    # Projectiles are not simulated; kept so clients can rely on the key.
    projectiles: List[Dict[str, Any]] = Field(default_factory=list)
    status: GameStatus
    wave: int
    phase: Phase


class ErrorPayload(WireModel):
    message: str


class JoinedPayload(WireModel):
    session_id: str
    player_id: int
    room_id: int


# -----------------------------
# Persistence / REST
# -----------------------------

class PlayerDraft(BaseModel):
    room_id: int
    session_id: str
    name: str
    role: Optional[Role] = None
    is_host: bool = False
    is_ready: bool = False


class CreateRoomResponse(WireModel):
    code: str
    room_id: int


class JoinRoomRequest(WireModel):
    code: str
    name: str

    @field_validator("name")
    @classmethod
    def name_valid(cls, v: str) -> str:
        return _clean_name(v)


class JoinRoomResponse(WireModel):
    room_id: int
    session_id: str
    player_id: int


class HealthResponse(WireModel):
    status: str
    active_games: int


__all__ = [
    # runtime
    "WireModel",
    "Vec2",
    "RuntimePlayerState",
    "Enemy",
    "GameRoomState",
    # inbound
    "ClientMessage",
    "JoinPayload",
    "SelectRolePayload",
    "ReadyPayload",
    "InputPayload",
    # outbound
    "PlayerOut",
    "RoomOut",
    "RoomUpdate",
    "GameStatePayload",
    "ErrorPayload",
    "JoinedPayload",
    # persistence / REST
    "PlayerDraft",
    "CreateRoomResponse",
    "JoinRoomRequest",
    "JoinRoomResponse",
    "HealthResponse",
]
