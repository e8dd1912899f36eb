from fastapi import APIRouter
from backend import chat_backend
from schemas.health import HealthResponse, StatsResponse
from logging_config import get_logger

logger = get_logger(__name__)

health_router = APIRouter(tags=["health"])


@health_router.get("/", response_model=HealthResponse)
async def root():
    logger.debug("Health check hit at /")
    return HealthResponse(status="ok", message="Chat server is running")


@health_router.get("/health", response_model=HealthResponse)
async def health():
    logger.debug("Health check hit at /health")
    return HealthResponse(status="ok", message="Chat server is running")


@health_router.get("/stats", response_model=StatsResponse)
async def stats():
    """
    Current in-memory state sizes.

    Returns:
    - clients: Registered connections
    - groups: Live groups
    - messages: Message records kept for reactions
    """
    async with chat_backend.lock:
        counts = chat_backend.stats()
    return StatsResponse(**counts)
