"""Per-room membership and broadcast.

Each member owns an outbound queue drained by its own writer task, so a
stalled peer only delays itself. Outboxes are bounded: a member whose
queue fills up is dropped and its connection closed. Every mutation and
every fan-out happens under the room lock without awaiting, which makes
the lock the single sequencing point for a room: all members see
messages in the order they were broadcast.
"""

import asyncio
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi.websockets import WebSocketState
from pydantic import BaseModel

from constants import CLOSE_POLICY_VIOLATION, OUTBOX_MAX_SIZE, REASON_SLOW_CONSUMER
from errors import DeliveryFailure, RoomNotFound, UsernameTaken
from logging_config import get_logger
from schemas.messages import encode_message, system_message

logger = get_logger(__name__)


def is_open(connection) -> bool:
    """True while both sides of the WebSocket are connected."""
    return (
        getattr(connection, "client_state", None) == WebSocketState.CONNECTED
        and getattr(connection, "application_state", None) == WebSocketState.CONNECTED
    )


@dataclass(eq=False)
class Participant:
    connection: Any
    username: str
    joined_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    outbox: asyncio.Queue = field(default_factory=asyncio.Queue)
    writer: Optional[asyncio.Task] = None
    dropped: bool = False
    closing: Optional[asyncio.Task] = None

    def enqueue(self, text: str) -> bool:
        """Queue ``text`` for this member. A full outbox drops the member."""
        if self.dropped:
            return False
        try:
            self.outbox.put_nowait(text)
        except asyncio.QueueFull:
            self.drop()
            return False
        return True

    def drop(self) -> None:
        logger.warning(f"Outbox full for {self.username} ({self.outbox.qsize()} queued), closing connection")
        self.dropped = True
        if self.writer is not None:
            self.writer.cancel()
        # The receive loop sees the close and removes the member
        self.closing = asyncio.ensure_future(self.close(CLOSE_POLICY_VIOLATION, REASON_SLOW_CONSUMER))

    async def close(self, code: int, reason: str) -> None:
        try:
            await self.connection.close(code=code, reason=reason)
        except Exception as e:
            logger.debug(f"Error closing connection for {self.username}: {e}")

    async def send(self, text: str) -> None:
        try:
            await self.connection.send_text(text)
        except Exception as e:
            raise DeliveryFailure(self.username, e) from e

    async def run_writer(self, room_id: str) -> None:
        while True:
            text = await self.outbox.get()
            try:
                if not is_open(self.connection):
                    logger.debug(f"Skipping closed connection for {self.username} in room {room_id}")
                    continue
                await self.send(text)
            except DeliveryFailure as e:
                logger.warning(f"Delivery failure in room {room_id}: {e}")
            finally:
                self.outbox.task_done()

    def start(self, room_id: str) -> None:
        self.writer = asyncio.create_task(self.run_writer(room_id), name=f"writer:{room_id}:{self.username}")

    async def stop(self) -> None:
        if self.writer is None or self.writer.done():
            return
        self.writer.cancel()
        try:
            await self.writer
        except asyncio.CancelledError:
            pass


class Room:
    def __init__(self, room_id: str, outbox_size: int = OUTBOX_MAX_SIZE):
        self.id = room_id
        self.outbox_size = outbox_size
        self.created_at = datetime.now(timezone.utc).isoformat()
        # Keyed by id(connection) so lookups never fall back to __eq__
        self.members: dict[int, Participant] = {}
        self.retired = False
        self._empty_since: Optional[float] = time.monotonic()
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"Room(id={self.id!r}, members={len(self.members)})"

    def __len__(self) -> int:
        return len(self.members)

    def _fan_out(self, text: str, exclude=None) -> int:
        delivered = 0
        for participant in self.members.values():
            if participant.connection is exclude or not is_open(participant.connection):
                continue
            if participant.enqueue(text):
                delivered += 1
        return delivered

    def broadcast(self, message: BaseModel, exclude=None) -> int:
        """Queue ``message`` for every open member except ``exclude``.

        Returns the number of recipients it was queued for.
        """
        text = encode_message(message)
        with self._lock:
            delivered = self._fan_out(text, exclude)
        logger.debug(f"Broadcast {message.type} to {delivered} members of room {self.id}")
        return delivered

    def add_member(self, connection, username: str) -> Participant:
        """Register ``connection`` under ``username`` and announce it.

        Raises UsernameTaken if another live member already uses the name
        and RoomNotFound if the room has been retired.
        """
        with self._lock:
            if self.retired:
                raise RoomNotFound(self.id, username)
            if any(p.username == username for p in self.members.values()):
                raise UsernameTaken(self.id, username)

            participant = Participant(
                connection=connection, username=username, outbox=asyncio.Queue(maxsize=self.outbox_size)
            )
            participant.start(self.id)
            self.members[id(connection)] = participant
            self._empty_since = None

            self._fan_out(encode_message(system_message(f"{username} has joined the chat")), exclude=connection)
            usernames = [p.username for p in self.members.values()]
            participant.enqueue(
                encode_message(system_message(f"Users in room: {', '.join(usernames)}", users=usernames))
            )
        logger.info(f"{username} joined room: {self.id} (Total: {len(self.members)})")
        return participant

    def remove_member(self, connection) -> Optional[Participant]:
        """Drop ``connection`` and announce the departure. No-op if it is not a member."""
        with self._lock:
            participant = self.members.pop(id(connection), None)
            if participant is None:
                return None
            if not self.members:
                self._empty_since = time.monotonic()
            self._fan_out(encode_message(system_message(f"{participant.username} has left the chat")))
        logger.info(f"{participant.username} left room: {self.id} (Total: {len(self.members)})")
        return participant

    def list_usernames(self) -> list[str]:
        with self._lock:
            return [p.username for p in self.members.values()]

    def get_participant(self, connection) -> Optional[Participant]:
        with self._lock:
            return self.members.get(id(connection))

    def retire_if_idle(self, ttl: float, now: Optional[float] = None) -> bool:
        """Mark the room retired if it has been empty for at least ``ttl`` seconds."""
        now = time.monotonic() if now is None else now
        with self._lock:
            if self.members or self._empty_since is None:
                return False
            if now - self._empty_since < ttl:
                return False
            self.retired = True
            return True

    async def drain(self) -> None:
        """Wait until every queued message has been handed to its connection."""
        with self._lock:
            participants = [p for p in self.members.values() if not p.dropped]
        await asyncio.gather(*(p.outbox.join() for p in participants))
