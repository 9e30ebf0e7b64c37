"""Owner of every running tick loop.

The supervisor is the only place where per-room simulation tasks are
started, and the only holder of the live ``GameRoomState`` objects.
Handlers talk to a game exclusively through ``submit_input`` /
``mark_disconnected``; the queued input is applied at the start of the
next tick so the tick task remains the single writer of its state.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Iterable, Optional

from .broadcast import Broadcaster
from .config import settings
from .constants import GameStatus
from .schemas import GameRoomState
from .simulation import PlayerInput, Simulation, snapshot

logger = logging.getLogger(__name__)

RoundEndCallback = Callable[[int, GameStatus], Awaitable[None]]
SimulationFactory = Callable[[], Simulation]


class RoomSupervisor:
    def __init__(
        self,
        broadcaster: Broadcaster,
        tick_rate: int = settings.tick_rate,
        simulation_factory: SimulationFactory = Simulation,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.broadcaster = broadcaster
        self.tick_interval = 1.0 / tick_rate
        self.simulation_factory = simulation_factory
        self.clock = clock
        self.on_round_end: Optional[RoundEndCallback] = None
        self._games: Dict[int, GameRoomState] = {}
        self._tasks: Dict[int, asyncio.Task] = {}
        self._inputs: Dict[int, Dict[str, PlayerInput]] = {}

    # -------------------- lifecycle -------------------- #

    def start(self, room_id: int, players: Iterable) -> GameRoomState:
        """Create the room's game state and schedule its tick loop."""
        if room_id in self._games:
            logger.warning("Room %s already has a running game", room_id)
            return self._games[room_id]
        simulation = self.simulation_factory()
        state = simulation.create_game(room_id, players, now=self.clock())
        self._games[room_id] = state
        self._inputs[room_id] = {}
        self._tasks[room_id] = asyncio.create_task(self._run(room_id, state, simulation))
        logger.info("Room %s: game started with %d players", room_id, len(state.players))
        return state

    def stop(self, room_id: int) -> None:
        """Retire the room; its loop notices on the next iteration and exits."""
        if self._games.pop(room_id, None) is not None:
            logger.info("Room %s: game retired", room_id)
        self._inputs.pop(room_id, None)

    def is_active(self, room_id: int) -> bool:
        return room_id in self._games

    def game(self, room_id: int) -> Optional[GameRoomState]:
        return self._games.get(room_id)

    def active_count(self) -> int:
        return len(self._games)

    def task_for(self, room_id: int) -> Optional[asyncio.Task]:
        return self._tasks.get(room_id)

    async def shutdown(self) -> None:
        for room_id in list(self._games):
            self.stop(room_id)
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # -------------------- input -------------------- #

    def submit_input(self, room_id: int, session_id: str, x: float, y: float, attack: bool) -> bool:
        return self._queue(room_id, session_id, PlayerInput(x=x, y=y, attack=attack))

    def mark_disconnected(self, room_id: int, session_id: str) -> bool:
        return self._queue(room_id, session_id, PlayerInput(disconnect=True))

    def _queue(self, room_id: int, session_id: str, player_input: PlayerInput) -> bool:
        pending = self._inputs.get(room_id)
        if pending is None:
            logger.debug("Room %s: no running game, input from %s dropped", room_id, session_id)
            return False
        previous = pending.get(session_id)
        pending[session_id] = previous.merge(player_input) if previous else player_input
        return True

    # -------------------- loop -------------------- #

    def _is_live(self, room_id: int, state: GameRoomState) -> bool:
        return self._games.get(room_id) is state and state.status == GameStatus.PLAYING

    async def _run(self, room_id: int, state: GameRoomState, simulation: Simulation) -> None:
        try:
            while self._is_live(room_id, state):
                started = self.clock()
                inputs = self._inputs.get(room_id) or {}
                self._inputs[room_id] = {}
                try:
                    simulation.step(state, inputs, now=started)
                except Exception:
                    logger.exception("Room %s: tick %s failed", room_id, state.tick)
                if self._games.get(room_id) is not state:
                    break
                self.broadcaster.publish(room_id, "game_state", snapshot(state))
                if state.status != GameStatus.PLAYING:
                    break
                elapsed = self.clock() - started
                await asyncio.sleep(max(0.0, self.tick_interval - elapsed))
        finally:
            await self._finish(room_id, state)

    async def _finish(self, room_id: int, state: GameRoomState) -> None:
        if self._games.get(room_id) is state:
            self._games.pop(room_id, None)
            self._inputs.pop(room_id, None)
        if self._tasks.get(room_id) is asyncio.current_task():
            self._tasks.pop(room_id, None)
        if state.status == GameStatus.PLAYING:
            return
        logger.info("Room %s: round over (%s) after %d ticks", room_id, state.status.value, state.tick)
        if self.on_round_end is not None:
            try:
                await self.on_round_end(room_id, state.status)
            except Exception:
                logger.exception("Room %s: round-end handler failed", room_id)


__all__ = ["RoomSupervisor"]
