"""Scheduler implementation for the URL shortener application.

This module provides a scheduler service that runs the expiration sweep and
the retention purge in the background using APScheduler.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.cache import URLCache
from app.core.config import settings
from app.core.redis import redis_manager
from app.db.session import SessionManager
from app.repositories.url_repository import URLRepository
from app.services.cleanup import CleanupService

logger = logging.getLogger(__name__)


def _cleanup_service() -> CleanupService:
    return CleanupService(URLRepository(), URLCache(redis_manager))


def _job_error(job_name: str, error: Exception) -> Dict[str, Any]:
    logger.error(f"Error in scheduled {job_name} job: {error}", exc_info=True)
    return {
        "status": "error",
        "error": str(error),
        "timestamp": datetime.utcnow().isoformat()
    }


async def deactivate_expired_urls_job() -> Dict[str, Any]:
    """
    Job deactivating expired URLs.

    Creates its own session and service. Failures are logged and reported in
    the returned dict; the next tick tries again.
    """
    logger.info("Starting scheduled expiration sweep")
    try:
        async with SessionManager.transaction_context() as session:
            result = await _cleanup_service().deactivate_expired(db=session)
        logger.info(
            f"Scheduled sweep completed: Deactivated={result.get('deactivated', 0)}, "
            f"Evicted={result.get('evicted', 0)}"
        )
        return result
    except Exception as e:
        return _job_error("expiration sweep", e)


async def purge_retired_urls_job() -> Dict[str, Any]:
    """Job deleting inactive URLs past the retention period."""
    logger.info("Starting scheduled retention purge")
    try:
        async with SessionManager.transaction_context() as session:
            result = await _cleanup_service().purge_retired(db=session)
        logger.info(f"Scheduled purge completed: Purged={result.get('purged', 0)}")
        return result
    except Exception as e:
        return _job_error("retention purge", e)


class SchedulerService:
    """
    Scheduler service for managing background tasks.

    Wraps APScheduler's AsyncIOScheduler. Jobs are kept in memory unless
    SCHEDULER_JOBSTORE_URL points at a database.
    """

    def __init__(self):
        """Initialize the scheduler service."""
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.is_running = False
        self.jobs: List[Dict[str, Any]] = []

    def _jobstore(self):
        if settings.SCHEDULER_JOBSTORE_URL:
            return SQLAlchemyJobStore(url=settings.SCHEDULER_JOBSTORE_URL)
        return MemoryJobStore()

    def initialize(self) -> None:
        """
        Initialize the scheduler.

        This sets up the APScheduler with the job store and job defaults,
        but does not start it yet.
        """
        if self.scheduler:
            logger.warning("Scheduler already initialized")
            return

        self.scheduler = AsyncIOScheduler(
            jobstores={"default": self._jobstore()},
            job_defaults={
                "coalesce": settings.SCHEDULER_JOB_COALESCE,
                "max_instances": settings.SCHEDULER_JOB_MAX_INSTANCES,
                "misfire_grace_time": settings.SCHEDULER_MISFIRE_GRACE_TIME
            },
            timezone="UTC"
        )
        logger.info("Scheduler initialized")

    def _add_interval_job(self, func, job_id: str, name: str, **interval) -> None:
        self.scheduler.add_job(
            func,
            trigger=IntervalTrigger(timezone="UTC", **interval),
            id=job_id,
            name=name,
            replace_existing=True
        )
        unit, value = next(iter(interval.items()))
        self.jobs.append({
            "id": job_id,
            "name": name,
            "interval": f"{value} {unit}",
            "function": func.__name__
        })

    def start(self) -> None:
        """
        Start the scheduler and register the sweep and purge jobs.
        """
        if not self.scheduler:
            self.initialize()

        if self.is_running:
            logger.warning("Scheduler already running")
            return

        self.jobs = []
        self._add_interval_job(
            deactivate_expired_urls_job,
            "deactivate_expired_urls",
            "Deactivate Expired URLs",
            minutes=settings.SWEEP_INTERVAL_MINUTES
        )
        self._add_interval_job(
            purge_retired_urls_job,
            "purge_retired_urls",
            "Purge Retired URLs",
            hours=settings.RETENTION_PURGE_INTERVAL_HOURS
        )

        if settings.SWEEP_START_ON_STARTUP:
            logger.info("Running expiration sweep on startup")
            self.scheduler.add_job(
                deactivate_expired_urls_job,
                id="deactivate_expired_urls_startup",
                name="Startup Expiration Sweep",
                replace_existing=True
            )

        self.scheduler.start()
        self.is_running = True
        logger.info(f"Scheduler started with {len(self.jobs)} jobs")

    def shutdown(self) -> None:
        """
        Shutdown the scheduler, letting running jobs finish.
        """
        if not self.scheduler or not self.is_running:
            logger.warning("Scheduler not running, nothing to shut down")
            return

        self.scheduler.shutdown(wait=True)
        self.is_running = False
        self.scheduler = None
        logger.info("Scheduler shut down successfully")

    def get_status(self) -> Dict[str, Any]:
        """
        Get the current status of the scheduler.

        Returns:
            Dict with information about the scheduler status and jobs
        """
        job_details = []
        if self.scheduler and self.is_running:
            for job in self.scheduler.get_jobs():
                job_details.append({
                    "job_id": job.id,
                    "name": job.name,
                    "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None
                })

        return {
            "running": self.is_running,
            "jobs": self.jobs,
            "scheduler_jobs_status": job_details
        }


# Create global instance of the scheduler service
scheduler_service = SchedulerService()
