import json
from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from errors import MalformedPayload


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ChatMessage(BaseModel):
    # Unknown client fields travel with the message unchanged
    model_config = ConfigDict(extra="allow")

    type: Literal["chat"] = "chat"
    content: str
    username: Optional[str] = None
    timestamp: Optional[str] = None


class SystemMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["system"] = "system"
    content: str
    timestamp: Optional[str] = None
    users: Optional[list[str]] = None


class RawMessage(BaseModel):
    """Inbound text that did not decode as chat or system."""

    type: Literal["raw"] = "raw"
    text: str


TaggedMessage = Annotated[Union[ChatMessage, SystemMessage], Field(discriminator="type")]
_tagged_adapter = TypeAdapter(TaggedMessage)


def parse_tagged(payload: Union[str, bytes]) -> Union[ChatMessage, SystemMessage]:
    """Strictly decode a chat or system message, raising MalformedPayload otherwise."""
    try:
        return _tagged_adapter.validate_json(payload)
    except ValidationError as e:
        raise MalformedPayload(str(e)) from e


def decode_message(payload: str) -> Union[ChatMessage, SystemMessage, RawMessage]:
    try:
        return parse_tagged(payload)
    except MalformedPayload:
        return RawMessage(text=payload)


def encode_message(message: BaseModel) -> str:
    """JSON text of ``message`` with the fields it was built or decoded with.

    Optional fields nobody set are left out. Fields a client explicitly sent,
    nulls and unknown extras included, go out unchanged.
    """
    return json.dumps({"type": message.type, **message.model_dump(mode="json", exclude_unset=True)})


def system_message(content: str, **extra) -> SystemMessage:
    return SystemMessage(content=content, timestamp=utc_timestamp(), **extra)


def chat_message(content: str, username: str) -> ChatMessage:
    return ChatMessage(content=content, username=username, timestamp=utc_timestamp())
