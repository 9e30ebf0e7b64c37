import asyncio
import json


async def send(services, ws, message_type, payload=None):
    message = {"type": message_type}
    if payload is not None:
        message["payload"] = payload
    await services.dispatcher.handle_raw(ws, json.dumps(message))


async def test_unparseable_frames_are_dropped(services, ws_factory):
    ws = ws_factory()
    await services.dispatcher.handle_raw(ws, "{not json")
    await services.dispatcher.handle_raw(ws, json.dumps([1, 2, 3]))
    await send(services, ws, "teleport", {"x": 1})
    assert ws.sent == []


async def test_malformed_payload_is_dropped(services, ws_factory):
    room = await services.repository.create_room()
    ws = ws_factory()
    await send(services, ws, "join", {"code": room.code})
    await send(services, ws, "join", {"code": room.code, "name": "   "})
    assert ws.sent == []
    assert services.registry.binding_for(ws) is None


async def test_full_lobby_flow_over_messages(services, ws_factory):
    room = await services.repository.create_room()
    ws = ws_factory()

    await send(services, ws, "join", {"code": room.code, "name": "Ada"})
    await send(services, ws, "select_role", {"role": "healer"})
    await send(services, ws, "ready", {"isReady": True})

    assert ws.last("joined")["roomId"] == room.id
    assert ws.last("room_update")["room"]["status"] == "playing"
    assert ws.of_type("error") == []

    await asyncio.sleep(0.1)
    state = ws.last("game_state")
    assert state is not None
    assert state["phase"] == "courtyard"
    assert state["status"] == "playing"
    assert state["players"][0]["name"] == "Ada"


async def test_rejections_go_to_requester_only(services, ws_factory):
    room = await services.repository.create_room()
    a, b = ws_factory("a"), ws_factory("b")
    await send(services, a, "join", {"code": room.code, "name": "Ada"})
    await send(services, b, "join", {"code": room.code, "name": "Bo"})
    await send(services, a, "select_role", {"role": "archer"})
    updates_for_a = len(a.of_type("room_update"))

    await send(services, b, "select_role", {"role": "archer"})

    assert b.last("error") == {"message": "Role taken"}
    assert a.of_type("error") == []
    assert len(a.of_type("room_update")) == updates_for_a


async def test_unknown_room_code_reports_error(services, ws_factory):
    ws = ws_factory()
    await send(services, ws, "join", {"code": "NOPE", "name": "Ada"})
    assert ws.last("error") == {"message": "Room not found"}


async def test_start_game_without_join(services, ws_factory):
    ws = ws_factory()
    await send(services, ws, "start_game")
    assert ws.last("error") == {"message": "Join a room first"}


async def test_input_before_game_is_ignored(services, ws_factory):
    room = await services.repository.create_room()
    ws = ws_factory()
    await send(services, ws, "input", {"x": 1, "y": 0, "attack": True})
    await send(services, ws, "join", {"code": room.code, "name": "Ada"})
    frames = len(ws.sent)
    await send(services, ws, "input", {"x": 1, "y": 0, "attack": False})
    assert len(ws.sent) == frames


async def test_input_moves_player_on_next_tick(services, ws_factory):
    room = await services.repository.create_room()
    ws = ws_factory()
    await send(services, ws, "join", {"code": room.code, "name": "Ada"})
    session_id = ws.last("joined")["sessionId"]
    await send(services, ws, "select_role", {"role": "mage"})
    await send(services, ws, "ready", {"isReady": True})
    state = services.supervisor.game(room.id)
    start_x = state.players[session_id].position.x

    await send(services, ws, "input", {"x": 10, "y": 0, "attack": False})
    await asyncio.sleep(0.1)

    assert state.players[session_id].position.x == start_x + 5
    assert state.players[session_id].facing == "right"


async def test_non_finite_input_is_dropped(services, ws_factory):
    room = await services.repository.create_room()
    ws = ws_factory()
    await send(services, ws, "join", {"code": room.code, "name": "Ada"})
    await send(services, ws, "select_role", {"role": "mage"})
    await send(services, ws, "ready", {"isReady": True})

    await services.dispatcher.handle_raw(ws, '{"type": "input", "payload": {"x": Infinity, "y": 0}}')

    assert ws.of_type("error") == []
    assert services.supervisor.is_active(room.id)
