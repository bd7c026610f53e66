"""Health check endpoint."""
import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from quizduel.config import get_settings
from quizduel.database import engine
from quizduel.utils import queue_client, rate_limiter
from quizduel.version import APP_VERSION

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "detail": "Database connection failed"},
        )

    settings = get_settings()
    return {
        "status": "ok",
        "version": APP_VERSION,
        "environment": settings.environment,
        "database": "connected",
        "queue": queue_client.backend,
        "evaluation_queue_length": queue_client.length(settings.evaluation_queue_name),
        "rate_limiter": rate_limiter.backend,
    }
