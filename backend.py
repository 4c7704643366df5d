import threading
import uuid
from typing import Optional

from constants import ROOM_ID_LENGTH
from errors import RoomAlreadyExists
from logging_config import get_logger
from room import Room

logger = get_logger(__name__)


def normalize_room_id(room_id: Optional[str]) -> str:
    return (room_id or "").strip().lower()


class RoomRegistry:
    """Process-wide owner of every Room. The room map is never handed out."""

    def __init__(self, id_length: int = ROOM_ID_LENGTH):
        self.id_length = id_length
        self._rooms: dict[str, Room] = {}
        self._lock = threading.Lock()
        logger.info(f"Initializing RoomRegistry (generated id length {id_length})")

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: str) -> bool:
        return normalize_room_id(room_id) in self._rooms

    def _generate_room_id(self) -> str:
        return uuid.uuid4().hex[: self.id_length]

    def create_room(self, desired_id: Optional[str] = None) -> str:
        """Register an empty room and return its id.

        ``desired_id`` is lower-cased; when it is missing or empty a short
        random id is generated instead. Raises RoomAlreadyExists if the
        desired id is taken.
        """
        room_id = normalize_room_id(desired_id)
        with self._lock:
            if room_id:
                if room_id in self._rooms:
                    logger.info(f"Room creation rejected: {room_id} already exists")
                    raise RoomAlreadyExists(room_id)
            else:
                room_id = self._generate_room_id()
                while room_id in self._rooms:
                    logger.debug(f"Generated room id {room_id} collided, retrying")
                    room_id = self._generate_room_id()
            self._rooms[room_id] = Room(room_id)
        logger.info(f"Created room: {room_id}")
        return room_id

    def get_room(self, room_id: Optional[str]) -> Optional[Room]:
        room = self._rooms.get(normalize_room_id(room_id))
        if room is None:
            logger.debug(f"Room {room_id} not found")
        return room

    def list_rooms(self) -> list[str]:
        with self._lock:
            return list(self._rooms)

    def prune_empty_rooms(self, ttl: float, now: Optional[float] = None) -> list[str]:
        """Remove rooms that have been empty for at least ``ttl`` seconds."""
        pruned = []
        with self._lock:
            for room_id, room in list(self._rooms.items()):
                if room.retire_if_idle(ttl, now):
                    del self._rooms[room_id]
                    pruned.append(room_id)
        if pruned:
            logger.info(f"Pruned {len(pruned)} empty rooms: {', '.join(pruned)}")
        return pruned

    def clear(self) -> None:
        with self._lock:
            self._rooms.clear()
        logger.debug("Cleared all rooms")


room_registry = RoomRegistry()
