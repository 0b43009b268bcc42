"""Date-range chunking and effective sync window policy."""

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from callsync.domain.entities.base import SyncKind
from callsync.domain.entities.sync_run import DateWindow

MAX_WINDOW = timedelta(hours=24)
INCREMENTAL_STEP = timedelta(seconds=1)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _next_local_midnight(instant: datetime, tz: ZoneInfo) -> datetime:
    """First local midnight in ``tz`` strictly after ``instant`` (as UTC)."""
    local_date = instant.astimezone(tz).date()
    midnight = datetime.combine(local_date + timedelta(days=1), time.min, tzinfo=tz)
    return midnight.astimezone(timezone.utc)


def chunk_date_range(
    start: datetime,
    end: datetime,
    tz_name: str = "America/New_York",
) -> list[DateWindow]:
    """Split ``[start, end]`` into day-aligned windows.

    Boundaries fall on local midnight of ``tz_name``. No window is longer
    than 24 hours, so a 25-hour DST day is split in two. Consecutive
    windows share their boundary instant; the fetcher dedupes records
    seen twice.

    Raises:
        ValueError: If ``start`` is after ``end``
    """
    start = as_utc(start)
    end = as_utc(end)
    if start > end:
        raise ValueError(f"start {start.isoformat()} is after end {end.isoformat()}")

    tz = ZoneInfo(tz_name)
    if start == end:
        return [DateWindow(start, end)]

    windows: list[DateWindow] = []
    cursor = start
    while cursor < end:
        window_end = min(_next_local_midnight(cursor, tz), cursor + MAX_WINDOW, end)
        windows.append(DateWindow(cursor, window_end))
        cursor = window_end
    return windows


@dataclass(frozen=True)
class WindowDecision:
    """Effective window after policy adjustments."""

    start: datetime
    end: datetime
    source: str
    bypassed_cutoff: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return self.start > self.end


def resolve_sync_window(
    kind: SyncKind,
    requested_start: Optional[datetime],
    requested_end: Optional[datetime],
    calls_reset_at: Optional[datetime],
    latest_call_started_at: Optional[datetime],
    now: Optional[datetime] = None,
    lookback_days: int = 7,
) -> WindowDecision:
    """Pick the effective start/end of a run.

    Admin backfills take the requested start verbatim and record the
    plan-reset cutoff they bypassed. Other runs start at the requested
    start, raised to the plan-reset cutoff when that is later. Without a
    requested start the cutoff is used directly, else one second after
    the latest stored call, else ``lookback_days`` before now.
    """
    now = as_utc(now or datetime.now(timezone.utc))
    end = as_utc(requested_end) if requested_end else now
    default_start = now - timedelta(days=lookback_days)
    cutoff = as_utc(calls_reset_at) if calls_reset_at else None

    if kind is SyncKind.ADMIN_BACKFILL:
        start = as_utc(requested_start) if requested_start else default_start
        return WindowDecision(start, end, "admin_backfill", bypassed_cutoff=cutoff)

    if requested_start:
        start, source = as_utc(requested_start), "requested"
        if cutoff and cutoff > start:
            start, source = cutoff, "reset_cutoff"
    elif cutoff:
        start, source = cutoff, "reset_cutoff"
    elif latest_call_started_at:
        start, source = as_utc(latest_call_started_at) + INCREMENTAL_STEP, "incremental"
    else:
        start, source = default_start, "default_lookback"

    return WindowDecision(start, end, source)
