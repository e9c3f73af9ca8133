"""Database connection resilience.

Startup probing of the durable store with exponential backoff, and the
single-shot probe behind the readiness endpoint. The store is the source of
truth, so failing to reach it at startup is fatal for the process.
"""

import asyncio
import logging
import random
import time
from typing import Any, Dict

from sqlalchemy.sql import text

from app.core.config import settings
from app.db.base import get_session

logger = logging.getLogger(__name__)


async def ping_database() -> None:
    """Run ``SELECT 1`` on a fresh session; raises on any connection failure."""
    async with get_session() as session:
        await session.execute(text("SELECT 1"))


async def check_database() -> Dict[str, Any]:
    """Probe the store once and report status and latency."""
    start_time = time.perf_counter()
    try:
        await ping_database()
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {"status": "unhealthy", "latency_ms": 0, "error": str(e)}

    return {
        "status": "healthy",
        "latency_ms": int((time.perf_counter() - start_time) * 1000),
        "error": None,
    }


def backoff_delay(attempt: int) -> float:
    """Delay before retry ``attempt`` (1-based), capped and jittered."""
    delay = min(
        settings.DB_CONNECT_RETRY_INITIAL_DELAY * (2 ** (attempt - 1)),
        settings.DB_CONNECT_RETRY_MAX_DELAY,
    )
    jitter = delay * settings.DB_CONNECT_RETRY_JITTER
    return max(0.0, delay + random.uniform(-jitter, jitter)) if jitter > 0 else delay


async def initialize_database_connection() -> bool:
    """Initialize database connection with retry and exponential backoff.

    Returns:
        bool: True if connection was successful, False otherwise
    """
    max_attempts = settings.DB_CONNECT_RETRY_ATTEMPTS

    logger.info(f"Initializing database connection (max attempts: {max_attempts})")

    for attempt in range(1, max_attempts + 1):
        try:
            await ping_database()

            logger.info(f"Database connection established on attempt {attempt}")
            return True

        except Exception as e:
            if attempt < max_attempts:
                wait = backoff_delay(attempt)
                logger.warning(
                    f"Database connection attempt {attempt}/{max_attempts} failed: {str(e)}. "
                    f"Retrying in {wait:.2f} seconds..."
                )
                await asyncio.sleep(wait)
            else:
                logger.error(
                    f"Failed to connect to database after {max_attempts} attempts. "
                    f"Last error: {str(e)}"
                )
    return False
