"""Paginated retrieval of call logs across date windows."""

import time
from dataclasses import dataclass, field
from typing import Any

from callsync.core.exceptions import HighLevelAuthError
from callsync.core.logging import get_logger
from callsync.domain.entities.call import extract_call_id
from callsync.domain.entities.sync_run import DateWindow, PageTrace, SyncRunState
from callsync.domain.services.token_manager import TokenManager
from callsync.infrastructure.highlevel.client import HighLevelClient

logger = get_logger(__name__)


@dataclass
class FetchResult:
    """Merged records of a run.

    ``calls`` is keyed by upstream call id in first-seen order;
    ``without_id`` holds records that carry no id at all.
    """

    calls: dict[str, dict[str, Any]] = field(default_factory=dict)
    without_id: list[dict[str, Any]] = field(default_factory=list)
    duplicates_dropped: int = 0

    @property
    def total(self) -> int:
        return len(self.calls) + len(self.without_id)

    def add(self, record: dict[str, Any]) -> None:
        call_id = extract_call_id(record)
        if call_id is None:
            self.without_id.append(record)
        elif call_id in self.calls:
            self.duplicates_dropped += 1
        else:
            self.calls[call_id] = record


class CallLogFetcher:
    """Walks pages of each window until a short page.

    Windows and pages are requested strictly in order. A 401 triggers the
    token manager's one-shot refresh and a single retry of the same page.
    """

    def __init__(
        self,
        client: HighLevelClient,
        token_manager: TokenManager,
        page_size: int = 50,
        max_pages: int = 200,
    ):
        self._client = client
        self._tokens = token_manager
        self._page_size = page_size
        self._max_pages = max_pages

    async def fetch(
        self,
        run: SyncRunState,
        windows: list[DateWindow],
        tz_name: str,
    ) -> FetchResult:
        result = FetchResult()
        for window in windows:
            await self._fetch_window(run, window, tz_name, result)

        run.total_fetched = result.total
        run.duplicates_dropped = result.duplicates_dropped
        run.log(
            f"Fetched {result.total} unique calls across {len(windows)} window(s), "
            f"{result.duplicates_dropped} duplicate(s) dropped"
        )
        return result

    async def _fetch_window(
        self,
        run: SyncRunState,
        window: DateWindow,
        tz_name: str,
        result: FetchResult,
    ) -> None:
        page = 1
        while True:
            records = await self._fetch_page(run, window, tz_name, page)
            for record in records:
                result.add(record)

            if len(records) < self._page_size:
                break
            if page >= self._max_pages:
                logger.warning(
                    "Page ceiling reached",
                    run_id=run.id,
                    window=str(window),
                    max_pages=self._max_pages,
                )
                run.log(
                    f"WARNING: page ceiling {self._max_pages} reached for window {window}; "
                    "remaining pages not fetched"
                )
                break
            page += 1

    async def _fetch_page(
        self,
        run: SyncRunState,
        window: DateWindow,
        tz_name: str,
        page: int,
    ) -> list[dict[str, Any]]:
        try:
            return await self._request(run, window, tz_name, page)
        except HighLevelAuthError:
            run.log(f"401 on page {page} of window {window}; refreshing token once")
            await self._tokens.refresh_on_auth_failure(run.tenant_id)
            return await self._request(run, window, tz_name, page)

    async def _request(
        self,
        run: SyncRunState,
        window: DateWindow,
        tz_name: str,
        page: int,
    ) -> list[dict[str, Any]]:
        credential = self._tokens.current
        started = time.perf_counter()
        status_code = 200
        records: list[dict[str, Any]] = []
        try:
            records = await self._client.list_call_logs(
                credential.access_token,
                credential.location_id,
                window.start,
                window.end,
                tz_name,
                page=page,
                page_size=self._page_size,
            )
            return records
        except Exception as e:
            status_code = getattr(e, "status_code", None)
            raise
        finally:
            latency_ms = int((time.perf_counter() - started) * 1000)
            run.record_page(
                PageTrace(
                    window_start=window.start,
                    window_end=window.end,
                    page=page,
                    record_count=len(records),
                    latency_ms=latency_ms,
                    status_code=status_code,
                )
            )
            logger.debug(
                "Fetched call log page",
                run_id=run.id,
                window=str(window),
                page=page,
                count=len(records),
                latency_ms=latency_ms,
            )
