import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3000))
RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

CORS_ALLOW_ORIGINS = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]

ROOM_ID_LENGTH = int(os.getenv("ROOM_ID_LENGTH", 8))
# 0 keeps empty rooms for the lifetime of the process
EMPTY_ROOM_TTL_SECONDS = float(os.getenv("EMPTY_ROOM_TTL_SECONDS", 0))
ROOM_PRUNE_INTERVAL_SECONDS = float(os.getenv("ROOM_PRUNE_INTERVAL_SECONDS", 60))
# Messages a member may have waiting before it is dropped as too slow
OUTBOX_MAX_SIZE = int(os.getenv("OUTBOX_MAX_SIZE", 1000))

# WebSocket close codes (RFC 6455)
CLOSE_POLICY_VIOLATION = 1008
CLOSE_INTERNAL_ERROR = 1011

REASON_ROOM_NOT_FOUND = "Room not found"
REASON_USERNAME_REQUIRED = "Username required"
REASON_USERNAME_TAKEN = "Username taken"
REASON_INTERNAL_ERROR = "Internal Server Error"
REASON_SLOW_CONSUMER = "Too slow"
REASON_ROOM_TAKEN = "Room name already taken"

SERVER_BANNER = "Terminal Talk Server Running"
