from constants import (
    CLOSE_POLICY_VIOLATION,
    REASON_ROOM_NOT_FOUND,
    REASON_ROOM_TAKEN,
    REASON_USERNAME_REQUIRED,
    REASON_USERNAME_TAKEN,
)


class RelayError(Exception):
    """Base class for relay errors."""


class RoomAlreadyExists(RelayError):
    def __init__(self, room_id: str):
        super().__init__(f"{REASON_ROOM_TAKEN}: {room_id}")
        self.room_id = room_id


class AdmissionError(RelayError):
    """A join attempt was refused. Only the rejected party sees the reason."""

    close_code = CLOSE_POLICY_VIOLATION
    reason = "Admission refused"

    def __init__(self, room_id: str, username: str = ""):
        super().__init__(self.reason)
        self.room_id = room_id
        self.username = username


class RoomNotFound(AdmissionError):
    reason = REASON_ROOM_NOT_FOUND


class UsernameRequired(AdmissionError):
    reason = REASON_USERNAME_REQUIRED


class UsernameTaken(AdmissionError):
    reason = REASON_USERNAME_TAKEN


class MalformedPayload(RelayError):
    """Inbound text is not a recognized tagged message."""


class DeliveryFailure(RelayError):
    def __init__(self, username: str, cause: BaseException):
        super().__init__(f"Could not deliver to {username}: {cause}")
        self.username = username
        self.cause = cause
