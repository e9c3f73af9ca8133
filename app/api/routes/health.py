"""Health check endpoints for monitoring application status."""

import time

from fastapi import APIRouter, Depends, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_cleanup_service
from app.core.config import settings
from app.core.redis import redis_manager
from app.db.resilience import check_database
from app.db.session import get_db
from app.scheduler import scheduler_service
from app.services.cleanup import CleanupService
from app.services.exceptions import ExpiredURLCleanupError

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    status_code=status.HTTP_200_OK,
    summary="Liveness status",
    response_description="Process liveness, independent of the store and cache"
)
async def health_check():
    """Report that the process is serving requests."""
    return {
        "status": "ok",
        "timestamp": time.time()
    }


@router.get(
    "/health/ready",
    status_code=status.HTTP_200_OK,
    summary="Readiness probe",
    response_description="Application readiness status"
)
async def readiness_probe(
    db: AsyncSession = Depends(get_db),
    cleanup_service: CleanupService = Depends(get_cleanup_service)
):
    """Check if application is ready to handle requests.

    Only the database is required; the cache is reported but optional. The
    maintenance block shows the sweep jobs and how much work is pending.
    """
    database = await check_database()

    cache = {"enabled": redis_manager.is_enabled, "available": False}
    if redis_manager.is_enabled:
        start_time = time.time()
        cache["available"] = await redis_manager.ping()
        cache["latency_ms"] = round((time.time() - start_time) * 1000, 2)

    maintenance = {"scheduler": scheduler_service.get_status(), "backlog": None}
    if database["status"] == "healthy":
        try:
            maintenance["backlog"] = await cleanup_service.get_cleanup_stats(db)
        except ExpiredURLCleanupError as e:
            logger.warning(f"Cleanup backlog unavailable: {e}")

    return {
        "ready": database["status"] == "healthy",
        "version": settings.APP_VERSION,
        "components": {
            "database": database,
            "cache": cache,
            "maintenance": maintenance
        }
    }
