import asyncio
import random
from types import SimpleNamespace

import pytest

from dungeon_backend.broadcast import Broadcaster
from dungeon_backend.constants import GameStatus, Role
from dungeon_backend.sessions import SessionRegistry
from dungeon_backend.simulation import Simulation
from dungeon_backend.supervisor import RoomSupervisor


def roster(*session_ids):
    return [
        SimpleNamespace(id=i + 1, session_id=sid, name=sid.upper(), role=list(Role)[i])
        for i, sid in enumerate(session_ids)
    ]


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def supervisor(registry):
    broadcaster = Broadcaster(registry, send_timeout=0.5)
    return RoomSupervisor(broadcaster, tick_rate=100, simulation_factory=lambda: Simulation(rng=random.Random(5)))


async def wait_for(predicate, timeout=1.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


async def test_every_tick_publishes_one_frame(supervisor, registry, ws_factory):
    ws = ws_factory()
    registry.bind(ws, 1, "a")
    state = supervisor.start(1, roster("a"))

    await wait_for(lambda: state.tick >= 5)
    supervisor.stop(1)
    await supervisor.shutdown()
    await supervisor.broadcaster.drain()

    frames = ws.of_type("game_state")
    assert len(frames) == state.tick
    assert all(f["status"] == "playing" for f in frames)


async def test_frames_only_reach_room_members(supervisor, registry, ws_factory):
    inside, outside = ws_factory("in"), ws_factory("out")
    registry.bind(inside, 1, "a")
    registry.bind(outside, 2, "b")
    state = supervisor.start(1, roster("a"))

    await wait_for(lambda: state.tick >= 3)
    await supervisor.shutdown()
    await supervisor.broadcaster.drain()

    assert inside.of_type("game_state")
    assert outside.sent == []


async def test_loop_stops_and_reports_loss(supervisor, registry, ws_factory):
    outcomes = []

    async def on_round_end(room_id, status):
        outcomes.append((room_id, status))

    supervisor.on_round_end = on_round_end
    ws = ws_factory()
    registry.bind(ws, 4, "a")
    state = supervisor.start(4, roster("a", "b"))

    supervisor.mark_disconnected(4, "a")
    supervisor.mark_disconnected(4, "b")
    task = supervisor.task_for(4)
    await asyncio.wait_for(task, timeout=1)

    assert state.status == GameStatus.LOST
    assert outcomes == [(4, GameStatus.LOST)]
    assert not supervisor.is_active(4)
    assert supervisor.game(4) is None
    await supervisor.broadcaster.drain()
    assert ws.last("game_state")["status"] == "lost"
    ticks = state.tick
    await asyncio.sleep(0.05)
    assert state.tick == ticks


async def test_stop_ends_loop_without_round_end(supervisor):
    outcomes = []

    async def on_round_end(room_id, status):
        outcomes.append(status)

    supervisor.on_round_end = on_round_end
    supervisor.start(2, roster("a"))
    task = supervisor.task_for(2)

    supervisor.stop(2)
    await asyncio.wait_for(task, timeout=1)

    assert outcomes == []
    assert supervisor.submit_input(2, "a", 1, 0, False) is False


async def test_failing_tick_does_not_kill_loop(registry):
    class Flaky(Simulation):
        calls = 0

        def step(self, state, inputs, now):
            Flaky.calls += 1
            if Flaky.calls == 1:
                raise RuntimeError("boom")
            super().step(state, inputs, now)

    supervisor = RoomSupervisor(Broadcaster(registry), tick_rate=100, simulation_factory=Flaky)
    state = supervisor.start(3, roster("a"))

    await wait_for(lambda: state.tick >= 2)
    assert supervisor.is_active(3)
    await supervisor.shutdown()


async def test_rooms_tick_independently(supervisor):
    first = supervisor.start(1, roster("a"))
    second = supervisor.start(2, roster("b"))

    supervisor.stop(1)
    await wait_for(lambda: second.tick >= 5)

    assert supervisor.is_active(2)
    assert not supervisor.is_active(1)
    frozen = first.tick
    await asyncio.sleep(0.03)
    assert first.tick == frozen
    await supervisor.shutdown()


async def test_start_twice_returns_existing_state(supervisor):
    state = supervisor.start(1, roster("a"))
    assert supervisor.start(1, roster("a", "b")) is state
    assert supervisor.active_count() == 1
    await supervisor.shutdown()
