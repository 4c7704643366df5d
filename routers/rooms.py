from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from schemas.rooms import CreateRoomRequest, CreateRoomResponse, CreateRoomConflict, RoomDetailsResponse
from backend import room_registry
from constants import REASON_ROOM_TAKEN
from errors import RoomAlreadyExists
from typing import Optional
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


def build_ws_url(request: Request, room_id: str) -> str:
    base_url = str(request.base_url).rstrip('/')
    # Replace http/https with ws/wss
    ws_base = base_url.replace("http://", "ws://").replace("https://", "wss://")
    return f"{ws_base}/?room={room_id}"


@rooms_router.post(
    "/",
    response_model=CreateRoomResponse,
    responses={409: {"model": CreateRoomConflict}},
)
async def create_room(request: Request, room: Optional[CreateRoomRequest] = None):
    # Body (optional): { "roomId": "my-room" }
    # Response 200: { "success": true, "roomId": "my-room", "ws_url": "ws://host/?room=my-room" }
    # Response 409: { "success": false, "error": "Room name already taken" }
    client_host = request.client.host if request.client else 'unknown'
    desired_id = room.room_id if room else None
    logger.info(f"Room creation request from {client_host}, desired id: {desired_id}")

    try:
        room_id = room_registry.create_room(desired_id)
    except RoomAlreadyExists as e:
        logger.warning(f"Room creation failed: {e.room_id} already taken")
        return JSONResponse(
            status_code=409,
            content=CreateRoomConflict(error=REASON_ROOM_TAKEN).model_dump(),
        )

    return CreateRoomResponse(room_id=room_id, ws_url=build_ws_url(request, room_id))


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str):
    """
    Get room details including the usernames currently online.

    Returns:
    - room_id: Room identifier
    - created_at: Room creation timestamp
    - online_users_count: Current number of members
    - online_users: Member usernames in join order
    """
    room = room_registry.get_room(room_id)
    if not room:
        logger.warning(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    usernames = room.list_usernames()
    logger.info(f"Room details retrieved for {room.id}: {len(usernames)} users online")

    return RoomDetailsResponse(
        room_id=room.id,
        created_at=room.created_at,
        online_users_count=len(usernames),
        online_users=usernames,
    )
