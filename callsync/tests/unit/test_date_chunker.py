"""Unit tests for date-range chunking and the sync window policy."""

from datetime import datetime, timedelta, timezone

import pytest

from callsync.domain.entities.base import SyncKind
from callsync.domain.services.date_chunker import chunk_date_range, resolve_sync_window

UTC = timezone.utc


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


class TestChunkDateRange:
    """Test suite for chunk_date_range."""

    def test_range_within_one_local_day_is_single_window(self):
        """Test a range inside one local day yields one window."""
        start, end = utc(2024, 3, 5, 14), utc(2024, 3, 5, 20)

        windows = chunk_date_range(start, end, "America/New_York")

        assert len(windows) == 1
        assert windows[0].start == start
        assert windows[0].end == end

    def test_boundaries_fall_on_local_midnight(self):
        """Test windows split at New York midnight (05:00 UTC in winter)."""
        windows = chunk_date_range(utc(2024, 1, 1), utc(2024, 1, 3, 12), "America/New_York")

        assert [(w.start, w.end) for w in windows] == [
            (utc(2024, 1, 1), utc(2024, 1, 1, 5)),
            (utc(2024, 1, 1, 5), utc(2024, 1, 2, 5)),
            (utc(2024, 1, 2, 5), utc(2024, 1, 3, 5)),
            (utc(2024, 1, 3, 5), utc(2024, 1, 3, 12)),
        ]

    @pytest.mark.parametrize(
        "start,end,tz_name",
        [
            (utc(2024, 1, 1), utc(2024, 1, 31, 23, 59, 59), "America/New_York"),
            (utc(2024, 3, 8, 7, 30), utc(2024, 3, 12, 2, 15), "America/New_York"),
            (utc(2024, 10, 30), utc(2024, 11, 6), "America/New_York"),
            (utc(2024, 6, 1, 12), utc(2024, 6, 9, 12), "Asia/Kolkata"),
            (utc(2024, 2, 28), utc(2024, 3, 2), "UTC"),
        ],
    )
    def test_windows_cover_range_without_gaps(self, start, end, tz_name):
        """Test windows are contiguous, at most 24h, and end exactly at end."""
        windows = chunk_date_range(start, end, tz_name)

        assert windows[0].start == start
        assert windows[-1].end == end
        for previous, current in zip(windows, windows[1:]):
            assert previous.end == current.start
        assert all(w.duration <= timedelta(hours=24) for w in windows)
        assert all(w.duration > timedelta(0) for w in windows)

    def test_dst_fall_back_day_is_split(self):
        """Test the 25-hour local day on 2024-11-03 never yields a window over 24h."""
        start = utc(2024, 11, 3, 4)  # midnight EDT
        end = utc(2024, 11, 4, 5)  # midnight EST

        windows = chunk_date_range(start, end, "America/New_York")

        assert len(windows) == 2
        assert windows[0].duration == timedelta(hours=24)
        assert windows[1].duration == timedelta(hours=1)

    def test_dst_spring_forward_day_is_one_window(self):
        """Test the 23-hour local day on 2024-03-10 is one window."""
        windows = chunk_date_range(utc(2024, 3, 10, 5), utc(2024, 3, 11, 4), "America/New_York")

        assert len(windows) == 1
        assert windows[0].duration == timedelta(hours=23)

    def test_equal_start_and_end_yields_single_zero_window(self):
        """Test start == end produces one zero-length window."""
        instant = utc(2024, 5, 1, 10)

        windows = chunk_date_range(instant, instant)

        assert len(windows) == 1
        assert windows[0].start == windows[0].end == instant

    def test_start_after_end_raises(self):
        """Test an inverted range is rejected."""
        with pytest.raises(ValueError):
            chunk_date_range(utc(2024, 5, 2), utc(2024, 5, 1))

    def test_naive_datetimes_are_treated_as_utc(self):
        """Test naive inputs are interpreted as UTC."""
        windows = chunk_date_range(datetime(2024, 5, 1, 10), datetime(2024, 5, 1, 12), "UTC")

        assert windows[0].start == utc(2024, 5, 1, 10)
        assert windows[0].end.tzinfo is not None


class TestResolveSyncWindow:
    """Test suite for resolve_sync_window."""

    NOW = utc(2024, 6, 15, 12)

    def test_admin_backfill_uses_requested_start_and_records_cutoff(self):
        """Test admin backfills bypass the reset cutoff but record it."""
        cutoff = utc(2024, 6, 1)
        requested = utc(2024, 5, 1)

        decision = resolve_sync_window(
            SyncKind.ADMIN_BACKFILL, requested, None, cutoff, None, now=self.NOW
        )

        assert decision.start == requested
        assert decision.end == self.NOW
        assert decision.bypassed_cutoff == cutoff

    def test_reset_cutoff_overrides_earlier_requested_start(self):
        """Test a later plan-reset cutoff wins for regular syncs."""
        cutoff = utc(2024, 6, 1)

        decision = resolve_sync_window(
            SyncKind.MANUAL, utc(2024, 5, 1), utc(2024, 6, 10), cutoff, None, now=self.NOW
        )

        assert decision.start == cutoff
        assert decision.end == utc(2024, 6, 10)
        assert decision.source == "reset_cutoff"
        assert decision.bypassed_cutoff is None

    def test_requested_start_after_cutoff_is_kept(self):
        """Test a requested start later than the cutoff is used as-is."""
        decision = resolve_sync_window(
            SyncKind.MANUAL, utc(2024, 6, 5), None, utc(2024, 6, 1), None, now=self.NOW
        )

        assert decision.start == utc(2024, 6, 5)
        assert decision.source == "requested"

    def test_incremental_starts_one_second_after_latest_call(self):
        """Test incremental syncs resume right after the newest stored call."""
        latest = utc(2024, 6, 14, 9, 30)

        decision = resolve_sync_window(SyncKind.AUTO, None, None, None, latest, now=self.NOW)

        assert decision.start == latest + timedelta(seconds=1)
        assert decision.source == "incremental"

    def test_cutoff_later_than_latest_call_wins(self):
        """Test the reset cutoff is used when no start is requested."""
        cutoff = utc(2024, 6, 15)

        decision = resolve_sync_window(
            SyncKind.AUTO, None, None, cutoff, utc(2024, 6, 1), now=self.NOW
        )

        assert decision.start == cutoff
        assert decision.source == "reset_cutoff"

    def test_cutoff_takes_precedence_over_newer_latest_call(self):
        """Test calls after the cutoff are re-fetched even when already stored."""
        cutoff = utc(2024, 1, 1)

        decision = resolve_sync_window(
            SyncKind.MANUAL, None, None, cutoff, utc(2024, 3, 1), now=self.NOW
        )

        assert decision.start == cutoff
        assert decision.source == "reset_cutoff"

    def test_defaults_to_seven_day_lookback(self):
        """Test the fallback window is the last 7 days ending now."""
        decision = resolve_sync_window(SyncKind.MANUAL, None, None, None, None, now=self.NOW)

        assert decision.start == self.NOW - timedelta(days=7)
        assert decision.end == self.NOW
        assert decision.source == "default_lookback"

    def test_cutoff_after_end_gives_empty_window(self):
        """Test a cutoff past the requested end leaves nothing to fetch."""
        decision = resolve_sync_window(
            SyncKind.MANUAL,
            utc(2024, 5, 1),
            utc(2024, 5, 2),
            utc(2024, 6, 1),
            None,
            now=self.NOW,
        )

        assert decision.is_empty
