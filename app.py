from contextlib import asynccontextmanager
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from routers.rooms import rooms_router, create_room
from backend import room_registry
from admission import admit
from errors import AdmissionError
from message_router import MessageRouter
from constants import (
    CLOSE_INTERNAL_ERROR,
    CORS_ALLOW_ORIGINS,
    EMPTY_ROOM_TTL_SECONDS,
    LOG_FILE,
    LOG_LEVEL,
    REASON_INTERNAL_ERROR,
    ROOM_PRUNE_INTERVAL_SECONDS,
    SERVER_BANNER,
)
from typing import Optional
import asyncio
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


async def prune_empty_rooms_periodically(ttl: float, interval: float):
    """Background task that drops rooms nobody has been in for ``ttl`` seconds."""
    logger.info(f"Starting empty room pruner (ttl={ttl}s, interval={interval}s)")
    try:
        while True:
            await asyncio.sleep(interval)
            room_registry.prune_empty_rooms(ttl)
    except asyncio.CancelledError:
        logger.info("Empty room pruner cancelled")
        raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    pruner = None
    if EMPTY_ROOM_TTL_SECONDS > 0:
        pruner = asyncio.create_task(
            prune_empty_rooms_periodically(EMPTY_ROOM_TTL_SECONDS, ROOM_PRUNE_INTERVAL_SECONDS)
        )
    yield
    if pruner:
        pruner.cancel()
        try:
            await pruner
        except asyncio.CancelledError:
            pass


app = FastAPI(title="Terminal Talk", lifespan=lifespan)

# Configure CORS to allow all origins by default
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

app.include_router(rooms_router)
# Path used by the terminal client
app.post("/create", include_in_schema=False)(create_room)

logger.info("FastAPI application initialized")


@app.get("/", response_class=PlainTextResponse)
async def index():
    return SERVER_BANNER


async def receive_payload(websocket: WebSocket) -> str:
    """Next inbound frame as text. Binary frames are decoded as UTF-8."""
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(code=message.get("code", 1000), reason=message.get("reason"))
    if message.get("text") is not None:
        return message["text"]
    return (message.get("bytes") or b"").decode("utf-8", errors="replace")


async def relay_connection(websocket: WebSocket, room_id: Optional[str], username: Optional[str]):
    logger.info(f"WebSocket connection attempt for room: {room_id}, username: {username}")
    router = None
    try:
        # Accept first so a rejection can carry its reason in the close frame
        await websocket.accept()
        try:
            room, participant = await admit(room_registry, room_id, username, websocket)
        except AdmissionError:
            return

        router = MessageRouter(room, participant)
        router.start()
        while True:
            data = await receive_payload(websocket)
            router.route(data)

    except WebSocketDisconnect as e:
        if router:
            logger.info(f"WebSocket disconnected for {router.username} in room {router.room.id} (code {e.code})")
    except Exception as e:
        logger.error(f"WebSocket error in room {room_id}: {e}", exc_info=True)
        try:
            await websocket.close(code=CLOSE_INTERNAL_ERROR, reason=REASON_INTERNAL_ERROR)
        except Exception as close_error:
            logger.debug(f"Error closing WebSocket: {close_error}")
    finally:
        if router:
            await router.close()


@app.websocket("/")
async def websocket_endpoint(websocket: WebSocket, room: Optional[str] = None, username: Optional[str] = None):
    """WebSocket endpoint used by the terminal client.

    Query parameters:
    - room: Room id (case-insensitive)
    - username: Name shown to the other members, unique within the room
    """
    await relay_connection(websocket, room, username)


@app.websocket("/rooms/{room_id}/ws")
async def room_websocket_endpoint(websocket: WebSocket, room_id: str, username: Optional[str] = None):
    await relay_connection(websocket, room_id, username)
