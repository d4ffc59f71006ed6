from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from routers.rooms import rooms_router
from backend import connection_registry, room_directory
from message_router import message_router
from outbox import WebSocketOutbox
from schemas.rooms import HealthResponse
from constants import CORS_ORIGINS, LOG_LEVEL, LOG_FILE, OUTBOX_MAX_SIZE
from logging_config import get_logger, setup_logging
import asyncio

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(rooms_router)

logger.info("FastAPI application initialized")


@app.get("/", response_class=PlainTextResponse)
async def root():
    return "P2P Server Running - Group Calls Enabled"


@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok", connections=len(connection_registry), rooms=len(room_directory))


@app.websocket("/")
@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Relay socket. One connection per client; every frame is a JSON envelope."""
    await websocket.accept()

    outbox = WebSocketOutbox(websocket, max_size=OUTBOX_MAX_SIZE)
    connection_id = None
    writer = None

    message_count = 0
    try:
        connection_id = message_router.connect(outbox)
        outbox.label = connection_id
        writer = asyncio.create_task(outbox.run())

        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                logger.debug(f"Disconnect frame from {connection_id} (code {frame.get('code')})")
                break

            data = frame.get("text")
            if data is None and frame.get("bytes") is not None:
                data = frame["bytes"]
            if data is None:
                continue

            message_count += 1
            logger.debug(f"Received message #{message_count} from connection {connection_id}")
            message_router.handle_raw(connection_id, data)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected normally for connection {connection_id}")
    except Exception as e:
        logger.error(f"Error receiving message from connection {connection_id}: {e}", exc_info=True)
    finally:
        if connection_id:
            message_router.disconnect(connection_id)
        outbox.close()
        if writer is not None:
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass
        try:
            await websocket.close()
        except Exception as e:
            logger.debug(f"Error closing WebSocket: {e}")
