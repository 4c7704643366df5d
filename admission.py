from typing import Optional

from backend import RoomRegistry, normalize_room_id
from errors import AdmissionError, RoomNotFound, UsernameRequired
from logging_config import get_logger
from room import Participant, Room

logger = get_logger(__name__)


async def reject(connection, error: AdmissionError) -> None:
    try:
        await connection.close(code=error.close_code, reason=error.reason)
    except Exception as e:
        logger.debug(f"Error closing rejected connection: {e}")


async def admit(
    registry: RoomRegistry, room_id: Optional[str], username: Optional[str], connection
) -> tuple[Room, Participant]:
    """Validate a join attempt and attach ``connection`` to the room.

    On success the other members are told about the newcomer and the
    newcomer is sent the current user list. On failure the connection is
    closed with the rejection reason and the AdmissionError is re-raised.
    The room is never created here.
    """
    room_id = normalize_room_id(room_id)
    username = username or ""
    try:
        room = registry.get_room(room_id)
        if room is None:
            raise RoomNotFound(room_id, username)
        if not username.strip():
            raise UsernameRequired(room_id)
        participant = room.add_member(connection, username)
    except AdmissionError as e:
        logger.warning(f"Connection rejected for room {room_id!r}, username {username!r}: {e.reason}")
        await reject(connection, e)
        raise
    return room, participant
