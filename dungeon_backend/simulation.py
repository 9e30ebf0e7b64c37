"""Authoritative game simulation.

This module is framework-agnostic: it only reads and writes
``GameRoomState`` objects. The ``RoomSupervisor`` decides *when* a tick
runs; ``Simulation.step`` decides *what* a tick does.
"""
from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple
from uuid import uuid4

from . import constants as c
from .constants import EnemyType, GameStatus, Phase
from .schemas import Enemy, GameRoomState, GameStatePayload, RuntimePlayerState, Vec2

logger = logging.getLogger(__name__)


@dataclass
class GameConfig:
    width: float = c.ROOM_WIDTH
    height: float = c.ROOM_HEIGHT
    margin: float = c.BOUNDS_MARGIN
    spawn_x: float = c.SPAWN_X
    player_health: float = c.PLAYER_MAX_HEALTH
    player_speed: float = c.PLAYER_SPEED
    attack_cooldown: float = c.ATTACK_COOLDOWN
    attack_window: float = c.ATTACK_WINDOW
    melee_radius: float = c.MELEE_RADIUS
    melee_damage: float = c.MELEE_DAMAGE
    door_radius: float = c.DOOR_RADIUS
    courtyard_timeout: float = c.COURTYARD_TIMEOUT
    contact_radius: float = c.CONTACT_RADIUS
    boss_wave: int = c.BOSS_WAVE
    enemy_stats: Dict[EnemyType, Tuple[float, float, float, float]] = field(
        default_factory=lambda: dict(c.ENEMY_STATS)
    )
    waves: Dict[int, Tuple[EnemyType, int]] = field(default_factory=lambda: dict(c.DUNGEON_WAVES))

    @property
    def door(self) -> Vec2:
        return Vec2(x=self.width - 40, y=self.height / 2)


@dataclass
class PlayerInput:
    """Movement intent and attack request collected between two ticks."""

    x: float = 0.0
    y: float = 0.0
    attack: bool = False
    disconnect: bool = False

    def merge(self, newer: "PlayerInput") -> "PlayerInput":
        # Latest movement wins; an attack or disconnect anywhere in the window sticks.
        return PlayerInput(
            x=newer.x,
            y=newer.y,
            attack=self.attack or newer.attack,
            disconnect=self.disconnect or newer.disconnect,
        )


def distance(a: Vec2, b: Vec2) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


class Simulation:
    def __init__(self, config: Optional[GameConfig] = None, rng: Optional[random.Random] = None) -> None:
        self.config = config or GameConfig()
        self.rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def create_game(self, room_id: int, players: Iterable, now: float) -> GameRoomState:
        """Build a fresh courtyard state with one avatar per persisted player.

        *players* only needs ``id``, ``session_id``, ``name`` and ``role``
        attributes, so both ORM rows and ``PlayerOut`` models work.
        """
        cfg = self.config
        roster = list(players)
        state = GameRoomState(
            room_id=room_id,
            width=cfg.width,
            height=cfg.height,
            status=GameStatus.PLAYING,
            wave=0,
            phase=Phase.COURTYARD,
            phase_started_at=now,
        )
        for index, player in enumerate(roster):
            y = cfg.height * (index + 1) / (len(roster) + 1)
            state.players[player.session_id] = RuntimePlayerState(
                id=player.id,
                session_id=player.session_id,
                name=player.name,
                role=player.role,
                position=Vec2(x=cfg.spawn_x, y=y),
                health=cfg.player_health,
                max_health=cfg.player_health,
                facing="right",
            )
        return state

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def step(self, state: GameRoomState, inputs: Dict[str, PlayerInput], now: float) -> None:
        if state.status != GameStatus.PLAYING:
            return
        state.tick += 1
        for session_id, player_input in inputs.items():
            self.apply_input(state, session_id, player_input, now)
        self.advance_phase(state, now)
        self.move_enemies(state)
        self.resolve_outcome(state)
        for player in state.players.values():
            player.is_attacking = now < player.attacking_until

    def apply_input(self, state: GameRoomState, session_id: str, player_input: PlayerInput, now: float) -> None:
        player = state.players.get(session_id)
        if player is None:
            logger.debug("Room %s: input for unknown session %s ignored", state.room_id, session_id)
            return
        if player_input.disconnect:
            self.kill(player)
            return
        if player.is_dead:
            return
        self.move_player(state, player, player_input.x, player_input.y)
        if player_input.attack:
            self.try_attack(state, player, now)

    def move_player(self, state: GameRoomState, player: RuntimePlayerState, x: float, y: float) -> None:
        length = math.hypot(x, y)
        if length == 0 or not math.isfinite(length):
            return
        dx, dy = x / length, y / length
        cfg = self.config
        player.position.x = self._clamp(player.position.x + dx * cfg.player_speed, cfg.margin, state.width - cfg.margin)
        player.position.y = self._clamp(player.position.y + dy * cfg.player_speed, cfg.margin, state.height - cfg.margin)
        if dx > 0:
            player.facing = "right"
        elif dx < 0:
            player.facing = "left"

    def try_attack(self, state: GameRoomState, player: RuntimePlayerState, now: float) -> bool:
        """Resolve a melee swing; returns ``False`` while the cooldown runs."""
        if now < player.attack_ready_at:
            return False
        cfg = self.config
        player.attack_ready_at = now + cfg.attack_cooldown
        player.attacking_until = now + cfg.attack_window
        player.is_attacking = True
        for enemy in state.enemies:
            if distance(enemy.position, player.position) <= cfg.melee_radius:
                vulnerability = cfg.enemy_stats[enemy.type][3]
                enemy.health -= cfg.melee_damage * vulnerability
        return True

    def advance_phase(self, state: GameRoomState, now: float) -> None:
        """Move at most one step along courtyard → dungeon → boss → cleared."""
        cfg = self.config
        if state.phase == Phase.COURTYARD:
            door = cfg.door
            at_door = any(distance(p.position, door) <= cfg.door_radius for p in state.alive_players())
            if at_door or now - state.phase_started_at >= cfg.courtyard_timeout:
                self._enter_phase(state, Phase.DUNGEON, now)
                state.wave = 1
                self._spawn_wave(state, 1)
        elif state.phase == Phase.DUNGEON:
            if state.enemies:
                return
            next_wave = state.wave + 1
            if next_wave in cfg.waves:
                state.wave = next_wave
                self._spawn_wave(state, next_wave)
            else:
                self._enter_phase(state, Phase.BOSS, now)
                state.wave = cfg.boss_wave
                self._spawn_boss(state)
        elif state.phase == Phase.BOSS:
            if not state.enemies:
                self._enter_phase(state, Phase.CLEARED, now)
                state.status = GameStatus.WON
                logger.info("Room %s: boss defeated, round won", state.room_id)

    def move_enemies(self, state: GameRoomState) -> None:
        cfg = self.config
        living = state.alive_players()
        if not living:
            return
        for enemy in state.enemies:
            target = min(living, key=lambda p: distance(p.position, enemy.position))
            speed, contact_damage, _, _ = cfg.enemy_stats[enemy.type]
            gap = distance(target.position, enemy.position)
            if gap > 0:
                step = min(speed, gap)
                enemy.position.x += (target.position.x - enemy.position.x) / gap * step
                enemy.position.y += (target.position.y - enemy.position.y) / gap * step
            if distance(target.position, enemy.position) <= cfg.contact_radius:
                target.health -= contact_damage

    def resolve_outcome(self, state: GameRoomState) -> None:
        for player in state.players.values():
            if player.health <= 0:
                self.kill(player)
        state.enemies = [e for e in state.enemies if e.health > 0]
        if state.status != GameStatus.PLAYING:
            return
        if state.players and not state.alive_players():
            state.status = GameStatus.LOST
            logger.info("Room %s: every player is down, round lost", state.room_id)

    @staticmethod
    def kill(player: RuntimePlayerState) -> None:
        player.health = 0.0
        player.is_dead = True
        player.is_attacking = False

    # ------------------------------------------------------------------
    # Spawning
    # ------------------------------------------------------------------

    def _enter_phase(self, state: GameRoomState, phase: Phase, now: float) -> None:
        logger.info("Room %s: phase %s -> %s", state.room_id, state.phase.value, phase.value)
        state.phase = phase
        state.phase_started_at = now

    def _spawn_wave(self, state: GameRoomState, wave: int) -> None:
        enemy_type, count = self.config.waves[wave]
        for _ in range(count):
            x = self.rng.uniform(state.width * 0.6, state.width - 40)
            y = self.rng.uniform(40, state.height - 40)
            state.enemies.append(self._make_enemy(enemy_type, x, y))

    def _spawn_boss(self, state: GameRoomState) -> None:
        state.enemies.append(self._make_enemy(EnemyType.BOSS, state.width - 100, state.height / 2))

    def _make_enemy(self, enemy_type: EnemyType, x: float, y: float) -> Enemy:
        health = self.config.enemy_stats[enemy_type][2]
        return Enemy(
            id=str(uuid4()),
            type=enemy_type,
            position=Vec2(x=x, y=y),
            health=health,
            max_health=health,
        )

    @staticmethod
    def _clamp(value: float, low: float, high: float) -> float:
        return max(low, min(high, value))


def snapshot(state: GameRoomState) -> GameStatePayload:
    """Copy the parts of *state* that clients see."""
    return GameStatePayload(
        players=[p.model_copy(deep=True) for p in state.players.values()],
        enemies=[e.model_copy(deep=True) for e in state.enemies],
        status=state.status,
        wave=state.wave,
        phase=state.phase,
    )


__all__ = ["GameConfig", "PlayerInput", "Simulation", "snapshot", "distance"]
