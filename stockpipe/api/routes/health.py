"""Health check endpoints."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter
from sqlalchemy import text

from stockpipe.core.config import settings
from stockpipe.core.logging import get_logger
from stockpipe.database.connection import get_session
from stockpipe.jobs.scheduler import get_scheduler
from stockpipe.schemas.common import HealthResponse


router = APIRouter(prefix="/health")

logger = get_logger("health")


async def db_healthcheck() -> bool:
    """Check the canonical store answers."""
    try:
        async with get_session() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database healthcheck failed: {e}")
        return False


@router.get(
    "",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health status of the service and its dependencies.",
)
async def health_check() -> HealthResponse:
    scheduler = get_scheduler()
    checks = {
        "database": await db_healthcheck(),
        "scheduler": bool(scheduler and scheduler.running) or not settings.scheduler_enabled,
    }
    return HealthResponse(
        status="healthy" if checks["database"] else "unhealthy",
        version=settings.app_version,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/live", summary="Liveness probe")
async def liveness() -> dict:
    return {"status": "alive"}
