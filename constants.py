import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 5000))
RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

CLIENT_ID_PREFIX = os.getenv("CLIENT_ID_PREFIX", "user_")
CLIENT_ID_LENGTH = int(os.getenv("CLIENT_ID_LENGTH", 7))

# 0 means unbounded
OUTBOX_MAX_SIZE = int(os.getenv("OUTBOX_MAX_SIZE", 0))
WS_MAX_SIZE = int(os.getenv("WS_MAX_SIZE", 16 * 1024 * 1024))

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]
