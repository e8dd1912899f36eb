from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from routers.health import health_router
from backend import chat_backend
from core.router import EventRouter
from core.transport import WebSocketPeer
import uuid
from logging_config import get_logger, setup_logging
from constants import ALLOWED_ORIGINS, ENVIRONMENT, LOG_FILE, LOG_LEVEL

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)

app = FastAPI()

if ALLOWED_ORIGINS:
    allowed_origins = [origin.strip() for origin in ALLOWED_ORIGINS.split(",") if origin.strip()]
else:
    allowed_origins = ["*"]
    if ENVIRONMENT == "production":
        logger.warning("ALLOWED_ORIGINS is not set in production. CORS is allowing all origins.")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(health_router)

event_router = EventRouter(chat_backend)

logger.info("FastAPI application initialized")


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Chat session. Frames are JSON text: {"event": ..., "data": ..., "ack": ...}.

    Frames from one connection are dispatched strictly in arrival order; the
    disconnect cascade runs however the loop ends. Binary frames are answered
    with an error and the session stays open.
    """
    await websocket.accept()
    connection_id = uuid.uuid4().hex
    peer = WebSocketPeer(connection_id, websocket)
    peer.start()

    peer.deliver({"event": "connected", "data": {"socketId": connection_id}})
    await chat_backend.connect(connection_id, peer)

    message_count = 0
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            message_count += 1
            logger.debug(f"Received message #{message_count} from connection {connection_id}")
            text = message.get("text")
            if text is None:
                await event_router.reject_frame(connection_id, "Malformed frame: expected a JSON text frame.")
                continue
            await event_router.handle_text(connection_id, text)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected normally for connection {connection_id}")
    except Exception as e:
        logger.error(f"Error receiving message from connection {connection_id}: {e}", exc_info=True)
    finally:
        await chat_backend.disconnect(connection_id)
        await peer.close()
        logger.debug(f"Connection {connection_id} closed after {message_count} messages")

        try:
            await websocket.close()
        except Exception as e:
            logger.debug(f"Error closing WebSocket: {e}")
