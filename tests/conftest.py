import json
import random
from types import SimpleNamespace

import pytest
from tortoise import Tortoise

from dungeon_backend.broadcast import Broadcaster
from dungeon_backend.dispatch import MessageDispatcher
from dungeon_backend.lobby import LobbyService
from dungeon_backend.repository import RoomRepository
from dungeon_backend.sessions import SessionRegistry
from dungeon_backend.simulation import Simulation
from dungeon_backend.supervisor import RoomSupervisor


class FakeWebSocket:
    """Records every frame sent to it; optionally fails on send."""

    def __init__(self, name: str = "ws", fail: bool = False):
        self.name = name
        self.fail = fail
        self.sent = []
        self.closed_with = None

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("connection lost")
        self.sent.append(json.loads(text))

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code

    def of_type(self, message_type: str):
        return [m["payload"] for m in self.sent if m["type"] == message_type]

    def last(self, message_type: str):
        frames = self.of_type(message_type)
        return frames[-1] if frames else None

    def __repr__(self) -> str:
        return f"FakeWebSocket({self.name})"


@pytest.fixture
async def db():
    await Tortoise.init(db_url="sqlite://:memory:", modules={"models": ["dungeon_backend.models"]})
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


@pytest.fixture
async def services(db):
    registry = SessionRegistry()
    broadcaster = Broadcaster(registry, send_timeout=0.5)
    supervisor = RoomSupervisor(
        broadcaster,
        tick_rate=50,
        simulation_factory=lambda: Simulation(rng=random.Random(7)),
    )
    repository = RoomRepository()
    lobby = LobbyService(repository, registry, broadcaster, supervisor)
    dispatcher = MessageDispatcher(lobby, supervisor, registry, broadcaster)
    yield SimpleNamespace(
        registry=registry,
        broadcaster=broadcaster,
        supervisor=supervisor,
        repository=repository,
        lobby=lobby,
        dispatcher=dispatcher,
    )
    await supervisor.shutdown()
    await broadcaster.drain()


@pytest.fixture
def ws_factory():
    def make(name: str = "ws", fail: bool = False) -> FakeWebSocket:
        return FakeWebSocket(name, fail=fail)

    return make
