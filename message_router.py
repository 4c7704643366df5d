import enum

from logging_config import get_logger
from room import Participant, Room
from schemas.messages import ChatMessage, RawMessage, chat_message, decode_message, utc_timestamp

logger = get_logger(__name__)


class RouterState(enum.Enum):
    ADMITTED = "admitted"
    ROUTING = "routing"
    CLOSED = "closed"


class MessageRouter:
    """Annotates and broadcasts one admitted connection's inbound payloads."""

    def __init__(self, room: Room, participant: Participant):
        self.room = room
        self.participant = participant
        self.state = RouterState.ADMITTED
        self.routed = 0

    @property
    def username(self) -> str:
        return self.participant.username

    @property
    def closed(self) -> bool:
        return self.state is RouterState.CLOSED

    def start(self) -> None:
        if not self.closed:
            self.state = RouterState.ROUTING

    def route(self, payload: str):
        """Broadcast ``payload`` to the rest of the room and return what was sent."""
        if self.closed:
            raise RuntimeError(f"Router for {self.username} in room {self.room.id} is closed")
        self.state = RouterState.ROUTING

        message = decode_message(payload)
        if isinstance(message, RawMessage):
            logger.debug(f"Wrapping raw payload from {self.username} in room {self.room.id}")
            message = chat_message(message.text, self.username)
        elif isinstance(message, ChatMessage):
            # Never trust the client-supplied sender
            message.username = self.username
            if message.timestamp is None:
                message.timestamp = utc_timestamp()

        self.routed += 1
        self.room.broadcast(message, exclude=self.participant.connection)
        logger.debug(f"Routed message #{self.routed} ({message.type}) from {self.username} in room {self.room.id}")
        return message

    async def close(self) -> None:
        """Leave the room. Safe to call again from overlapping close/error paths."""
        if self.closed:
            return
        self.state = RouterState.CLOSED
        removed = self.room.remove_member(self.participant.connection)
        if removed is not None:
            await removed.stop()
