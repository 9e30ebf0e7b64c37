from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from ..errors import LobbyError, RoomNotFound
from ..schemas import CreateRoomResponse, JoinRoomRequest, JoinRoomResponse, RoomOut
from ..state import lobby, repository

router = APIRouter(prefix="/api/rooms", tags=["rooms"])


@router.post("", response_model=CreateRoomResponse, status_code=status.HTTP_201_CREATED, response_model_by_alias=True)
async def create_room():
    room = await repository.create_room()
    return CreateRoomResponse(code=room.code, room_id=room.id)


@router.post("/join", response_model=JoinRoomResponse, response_model_by_alias=True)
async def join_room(req: JoinRoomRequest):
    try:
        player = await lobby.join(None, req.code, req.name)
    except RoomNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except LobbyError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return JoinRoomResponse(room_id=player.room_id, session_id=player.session_id, player_id=player.id)


@router.get("/{code}", response_model=RoomOut, response_model_by_alias=True)
async def get_room(code: str):
    room = await repository.get_room_by_code(code)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return RoomOut.model_validate(room)
