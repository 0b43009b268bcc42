"""Scheduler module for periodic sync jobs."""

from callsync.infrastructure.scheduler.scheduler import (
    auto_sync_job,
    get_scheduler,
    get_scheduler_status,
    schedule_auto_sync,
    start_scheduler,
    stop_scheduler,
)

__all__ = [
    "auto_sync_job",
    "get_scheduler",
    "get_scheduler_status",
    "schedule_auto_sync",
    "start_scheduler",
    "stop_scheduler",
]
