"""Scheduler module for the URL shortener application.

This module provides scheduled task functionality using APScheduler.
"""

from app.scheduler.scheduler import SchedulerService, scheduler_service

__all__ = ["SchedulerService", "scheduler_service"]
