"""Opens and closes the durable sync run record."""

import uuid
from datetime import datetime
from typing import Optional

from callsync.core.exceptions import AppException
from callsync.core.logging import get_logger
from callsync.domain.entities.base import SyncKind, SyncRunStatus
from callsync.domain.entities.sync_run import SyncRunState
from callsync.infrastructure.database.repositories import SyncRunRepository

logger = get_logger(__name__)


class SyncRunLogger:
    """Run lifecycle: ``open`` before any upstream call, ``close`` on every exit path."""

    def __init__(self, runs: SyncRunRepository, sample_limit: int = 50):
        self._runs = runs
        self._sample_limit = sample_limit

    async def open(
        self,
        tenant_id: str,
        kind: SyncKind,
        requested_start: Optional[datetime],
        requested_end: Optional[datetime],
        tz_name: str,
        triggered_by: Optional[str] = None,
    ) -> SyncRunState:
        run = SyncRunState(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            sync_kind=kind,
            timezone=tz_name,
            requested_start=requested_start,
            requested_end=requested_end,
            triggered_by=triggered_by,
            sample_limit=self._sample_limit,
        )
        await self._runs.create(run)
        run.log(f"Sync run opened ({kind.value}) for tenant {tenant_id}")
        logger.info("Sync run opened", run_id=run.id, tenant_id=tenant_id, kind=kind.value)
        return run

    async def close(
        self,
        run: SyncRunState,
        status: SyncRunStatus,
        error: Optional[BaseException] = None,
        error_details: Optional[dict] = None,
    ) -> SyncRunState:
        """Finalize the run and persist it.

        A failure to write the final row is logged and swallowed so it
        cannot replace the error that ended the run.
        """
        message = None
        if error is not None:
            message = error.message if isinstance(error, AppException) else str(error)
            run.log(f"Run failed: {message}")
        else:
            run.log(
                f"Run completed: inserted={run.inserted_count} updated={run.updated_count} "
                f"skipped={run.skipped_count} total={run.total_fetched}"
            )

        run.finalize(status, error_message=message, error_details=error_details)

        try:
            await self._runs.finalize(run)
        except AppException as e:
            logger.error(
                "Failed to persist sync run result",
                run_id=run.id,
                status=status.value,
                error=str(e),
            )

        logger.info(
            "Sync run closed",
            run_id=run.id,
            tenant_id=run.tenant_id,
            status=status.value,
            inserted=run.inserted_count,
            updated=run.updated_count,
            skipped=run.skipped_count,
            total_fetched=run.total_fetched,
            total_time_ms=run.total_time_ms,
        )
        return run
