import asyncio
import json

from fastapi.websockets import WebSocketState


class FakeConnection:
    """In-memory stand-in for a server-side WebSocket."""

    def __init__(self, name: str = ""):
        self.name = name
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[str] = []
        self.closed_with = None

    def __repr__(self) -> str:
        return f"FakeConnection({self.name!r})"

    async def send_text(self, text: str) -> None:
        self.sent.append(text)

    async def close(self, code: int = 1000, reason=None) -> None:
        self.closed_with = (code, reason)
        self.application_state = WebSocketState.DISCONNECTED

    def disconnect(self) -> None:
        self.client_state = WebSocketState.DISCONNECTED

    def messages(self) -> list[dict]:
        return [json.loads(text) for text in self.sent]

    def contents(self) -> list[str]:
        return [m["content"] for m in self.messages()]


class StalledConnection(FakeConnection):
    """Never finishes a send until ``release`` is set."""

    def __init__(self, name: str = ""):
        super().__init__(name)
        self.release = asyncio.Event()

    async def send_text(self, text: str) -> None:
        await self.release.wait()
        self.sent.append(text)


class FailingConnection(FakeConnection):
    async def send_text(self, text: str) -> None:
        raise ConnectionResetError("peer went away")
