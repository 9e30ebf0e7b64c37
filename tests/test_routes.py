import httpx
import pytest

from dungeon_backend.app import app


@pytest.fixture
async def client(db):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


async def test_create_and_fetch_room(client):
    created = await client.post("/api/rooms")
    assert created.status_code == 201
    body = created.json()
    assert set(body) == {"code", "roomId"}

    fetched = await client.get(f"/api/rooms/{body['code']}")
    assert fetched.status_code == 200
    room = fetched.json()
    assert room["id"] == body["roomId"]
    assert room["status"] == "waiting"
    assert "createdAt" in room


async def test_fetch_unknown_room(client):
    response = await client.get("/api/rooms/NOPE")
    assert response.status_code == 404
    assert response.json() == {"detail": "Room not found"}


async def test_join_over_http(client):
    code = (await client.post("/api/rooms")).json()["code"]

    joined = await client.post("/api/rooms/join", json={"code": code, "name": "Ada"})

    assert joined.status_code == 200
    body = joined.json()
    assert set(body) == {"roomId", "sessionId", "playerId"}

    again = (await client.post("/api/rooms/join", json={"code": code, "name": "Ada"})).json()
    assert again["sessionId"] != body["sessionId"]
    assert again["playerId"] != body["playerId"]


async def test_join_guards_over_http(client):
    missing = await client.post("/api/rooms/join", json={"code": "NOPE", "name": "Ada"})
    assert missing.status_code == 404

    code = (await client.post("/api/rooms")).json()["code"]
    too_long = await client.post("/api/rooms/join", json={"code": code, "name": "x" * 13})
    assert too_long.status_code == 422

    for i in range(5):
        ok = await client.post("/api/rooms/join", json={"code": code, "name": f"P{i}"})
        assert ok.status_code == 200
    full = await client.post("/api/rooms/join", json={"code": code, "name": "Late"})
    assert full.status_code == 400
    assert full.json() == {"detail": "Room is full"}


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "activeGames": 0}
