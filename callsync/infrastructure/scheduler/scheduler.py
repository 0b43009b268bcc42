"""APScheduler integration for periodic call syncs."""

from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from callsync.config import get_settings
from callsync.core.logging import get_logger
from callsync.domain.entities.base import SyncKind

logger = get_logger(__name__)

AUTO_SYNC_JOB_ID = "auto_sync_calls"

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


def get_scheduler() -> AsyncIOScheduler:
    """Get the global scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,  # Combine multiple missed runs into one
                "max_instances": 1,  # Only one instance per job at a time
                "misfire_grace_time": 60,
            },
        )
    return _scheduler


async def auto_sync_job() -> dict[str, Any]:
    """Run an automatic sync for every tenant with an active connection.

    Tenants are processed one after another; a failure for one tenant is
    logged and the next tenant still runs.

    Returns:
        Counts of succeeded and failed tenants
    """
    from callsync.domain.services.sync_service import CallSyncService, SyncRequest
    from callsync.infrastructure.database.repositories import CredentialRepository

    settings = get_settings()
    tenant_ids = await CredentialRepository().list_active_tenant_ids()
    logger.info("Auto sync job triggered", tenants=len(tenant_ids))

    succeeded = 0
    failed = 0
    async with CallSyncService() as service:
        for tenant_id in tenant_ids:
            try:
                result = await service.sync_calls(
                    SyncRequest(
                        tenant_id=tenant_id,
                        kind=SyncKind.AUTO,
                        timezone=settings.sync_default_timezone,
                    )
                )
                succeeded += 1
                logger.info(
                    "Auto sync finished",
                    tenant_id=tenant_id,
                    run_id=result.run_id,
                    inserted=result.inserted,
                    updated=result.updated,
                    skipped=result.skipped,
                )
            except Exception as e:
                failed += 1
                logger.error(
                    "Auto sync failed",
                    tenant_id=tenant_id,
                    run_id=getattr(e, "details", {}).get("run_id"),
                    error=str(e),
                )

    return {"tenants": len(tenant_ids), "succeeded": succeeded, "failed": failed}


def schedule_auto_sync(interval_minutes: int | None = None) -> None:
    """Register (or replace) the auto sync interval job."""
    scheduler = get_scheduler()
    interval = interval_minutes or get_settings().auto_sync_interval_minutes

    scheduler.add_job(
        auto_sync_job,
        trigger=IntervalTrigger(minutes=interval),
        id=AUTO_SYNC_JOB_ID,
        name="Auto sync calls",
        replace_existing=True,
    )
    logger.info("Scheduled auto sync job", interval_minutes=interval, job_id=AUTO_SYNC_JOB_ID)


def start_scheduler() -> None:
    """Start the scheduler."""
    scheduler = get_scheduler()
    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started")


def stop_scheduler() -> None:
    """Stop the scheduler."""
    scheduler = get_scheduler()
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


def get_scheduler_status() -> dict[str, Any]:
    """Get current scheduler status.

    Returns:
        Status dictionary with job information
    """
    scheduler = get_scheduler()

    jobs = []
    for job in scheduler.get_jobs():
        next_run = job.next_run_time
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": next_run.isoformat() if next_run else None,
            "trigger": str(job.trigger),
        })

    return {
        "running": scheduler.running,
        "jobs": jobs,
        "job_count": len(jobs),
    }
