"""In-memory state of one sync run."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from callsync.core.exceptions import InvalidRunTransitionError
from callsync.domain.entities.base import SyncKind, SyncRunStatus
from callsync.domain.entities.call import SkippedCall


@dataclass(frozen=True)
class DateWindow:
    """Closed interval ``[start, end]`` fetched as one pagination unit."""

    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def __str__(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"


@dataclass(frozen=True)
class PageTrace:
    """One upstream request as recorded on the run."""

    window_start: datetime
    window_end: datetime
    page: int
    record_count: int
    latency_ms: int
    status_code: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "page": self.page,
            "record_count": self.record_count,
            "latency_ms": self.latency_ms,
            "status_code": self.status_code,
        }


@dataclass
class SyncRunState:
    """Mutable run record owned by a single invocation.

    The skip histogram lives here and nowhere else, so concurrent runs
    never share counters. ``finalize`` enforces the
    in_progress -> completed | failed state machine.
    """

    id: str
    tenant_id: str
    sync_kind: SyncKind
    timezone: str
    requested_start: Optional[datetime] = None
    requested_end: Optional[datetime] = None
    triggered_by: Optional[str] = None
    status: SyncRunStatus = SyncRunStatus.IN_PROGRESS
    effective_start: Optional[datetime] = None
    effective_end: Optional[datetime] = None
    bypassed_cutoff: Optional[datetime] = None
    sample_limit: int = 50

    page_trace: list[PageTrace] = field(default_factory=list)
    log_lines: list[str] = field(default_factory=list)
    skip_reasons: dict[str, int] = field(default_factory=dict)
    skipped_sample: list[dict[str, Any]] = field(default_factory=list)

    total_fetched: int = 0
    inserted_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    duplicates_dropped: int = 0
    enrichment_failures: int = 0
    ledger_errors: int = 0

    api_time_ms: int = 0
    total_time_ms: int = 0

    error_message: Optional[str] = None
    error_details: Optional[dict[str, Any]] = None

    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    def log(self, message: str) -> None:
        """Append a human-readable line to the run log."""
        stamp = datetime.now(timezone.utc).strftime("%H:%M:%S")
        self.log_lines.append(f"[{stamp}] {message}")

    def record_page(self, trace: PageTrace) -> None:
        self.page_trace.append(trace)
        self.api_time_ms += trace.latency_ms

    def record_skip(self, skipped: SkippedCall) -> None:
        """Count a skipped record and keep it in the bounded sample."""
        self.skip_reasons[skipped.reason] = self.skip_reasons.get(skipped.reason, 0) + 1
        self.skipped_count += 1
        if len(self.skipped_sample) < self.sample_limit:
            self.skipped_sample.append(
                {
                    "reason": skipped.reason,
                    "call_id": skipped.call_id,
                    "message": skipped.message,
                    "payload": skipped.payload,
                }
            )

    def finalize(
        self,
        status: SyncRunStatus,
        error_message: Optional[str] = None,
        error_details: Optional[dict[str, Any]] = None,
    ) -> None:
        """Move the run to a terminal status exactly once."""
        if self.status.is_terminal:
            raise InvalidRunTransitionError(
                f"Sync run {self.id} is already {self.status.value}",
                {"run_id": self.id, "status": self.status.value, "requested": status.value},
            )
        if not status.is_terminal:
            raise InvalidRunTransitionError(
                f"Sync run {self.id} can only be closed as completed or failed",
                {"run_id": self.id, "requested": status.value},
            )
        self.status = status
        self.error_message = error_message
        self.error_details = error_details
        self.completed_at = datetime.now(timezone.utc)
        self.total_time_ms = int(
            (self.completed_at - self.started_at).total_seconds() * 1000
        )

    @property
    def accounted(self) -> int:
        return self.inserted_count + self.updated_count + self.skipped_count

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to the call_sync_runs column mapping."""
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sync_kind": self.sync_kind.value,
            "status": self.status.value,
            "timezone": self.timezone,
            "triggered_by": self.triggered_by,
            "requested_start": self.requested_start,
            "requested_end": self.requested_end,
            "effective_start": self.effective_start,
            "effective_end": self.effective_end,
            "bypassed_cutoff": self.bypassed_cutoff,
            "page_trace": [trace.to_dict() for trace in self.page_trace],
            "log_lines": list(self.log_lines),
            "skip_reasons": dict(self.skip_reasons),
            "skipped_sample": list(self.skipped_sample),
            "total_fetched": self.total_fetched,
            "inserted_count": self.inserted_count,
            "updated_count": self.updated_count,
            "skipped_count": self.skipped_count,
            "duplicates_dropped": self.duplicates_dropped,
            "enrichment_failures": self.enrichment_failures,
            "ledger_errors": self.ledger_errors,
            "api_time_ms": self.api_time_ms,
            "total_time_ms": self.total_time_ms,
            "error_message": self.error_message,
            "error_details": self.error_details,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }
