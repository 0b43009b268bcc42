"""Call synchronization pipeline for one tenant."""

import traceback
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.exc import SQLAlchemyError

from callsync.config import Settings, get_settings
from callsync.core.exceptions import AppException, InvalidSyncRequestError, SyncError
from callsync.core.logging import get_logger
from callsync.domain.entities.base import SkipReason, SyncKind, SyncRunStatus
from callsync.domain.entities.billing import BillingPlan
from callsync.domain.entities.call import SkippedCall
from callsync.domain.entities.reference import AgentIndex, Credential
from callsync.domain.entities.sync_run import SyncRunState
from callsync.domain.services.call_enricher import CallDetailEnricher
from callsync.domain.services.call_fetcher import CallLogFetcher
from callsync.domain.services.call_normalizer import CallNormalizer
from callsync.domain.services.cost_engine import CostEngine
from callsync.domain.services.date_chunker import as_utc, chunk_date_range, resolve_sync_window
from callsync.domain.services.ledger_writer import CallLedgerWriter, PersistStatus
from callsync.domain.services.sync_run_logger import SyncRunLogger
from callsync.domain.services.token_manager import TokenManager
from callsync.infrastructure.database.repositories import (
    CallRepository,
    CredentialRepository,
    ReferenceRepository,
    SyncRunRepository,
    UsageLedgerRepository,
)
from callsync.infrastructure.highlevel.client import HighLevelClient

logger = get_logger(__name__)


@dataclass
class SyncRequest:
    """One sync invocation as received from a trigger."""

    tenant_id: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    kind: SyncKind = SyncKind.MANUAL
    timezone: str = "America/New_York"
    admin_override: bool = False
    admin_user_id: Optional[str] = None

    @property
    def effective_kind(self) -> SyncKind:
        if self.admin_override:
            return SyncKind.ADMIN_BACKFILL
        return self.kind


@dataclass
class SyncResult:
    """Aggregate outcome returned to the caller."""

    success: bool
    run_id: str
    status: str
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    total_fetched: int = 0
    duplicates_dropped: int = 0
    enrichment_failures: int = 0
    ledger_errors: int = 0
    skip_reasons: dict[str, int] = field(default_factory=dict)
    effective_start: Optional[datetime] = None
    effective_end: Optional[datetime] = None
    bypassed_cutoff: Optional[datetime] = None

    @classmethod
    def from_run(cls, run: SyncRunState) -> "SyncResult":
        return cls(
            success=run.status is SyncRunStatus.COMPLETED,
            run_id=run.id,
            status=run.status.value,
            inserted=run.inserted_count,
            updated=run.updated_count,
            skipped=run.skipped_count,
            total_fetched=run.total_fetched,
            duplicates_dropped=run.duplicates_dropped,
            enrichment_failures=run.enrichment_failures,
            ledger_errors=run.ledger_errors,
            skip_reasons=dict(run.skip_reasons),
            effective_start=run.effective_start,
            effective_end=run.effective_end,
            bypassed_cutoff=run.bypassed_cutoff,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "run_id": self.run_id,
            "status": self.status,
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "total_fetched": self.total_fetched,
            "duplicates_dropped": self.duplicates_dropped,
            "enrichment_failures": self.enrichment_failures,
            "ledger_errors": self.ledger_errors,
            "skip_reasons": dict(self.skip_reasons),
            "effective_start": self.effective_start,
            "effective_end": self.effective_end,
            "bypassed_cutoff": self.bypassed_cutoff,
        }


class CallSyncService:
    """Runs the call sync pipeline.

    Open run -> validate/refresh token -> resolve window and chunk ->
    fetch and merge -> normalize, enrich, persist each record -> close run.
    Everything is awaited in sequence; there is no fan-out within a run.
    """

    def __init__(
        self,
        client: HighLevelClient | None = None,
        credentials: CredentialRepository | None = None,
        references: ReferenceRepository | None = None,
        calls: CallRepository | None = None,
        usage: UsageLedgerRepository | None = None,
        runs: SyncRunRepository | None = None,
        settings: Settings | None = None,
    ):
        self._settings = settings or get_settings()
        self._owns_client = client is None
        self._client = client or HighLevelClient()
        self._credentials = credentials or CredentialRepository()
        self._references = references or ReferenceRepository()
        self._calls = calls or CallRepository()
        self._usage = usage or UsageLedgerRepository()
        self._runs = runs or SyncRunRepository()

        self._run_logger = SyncRunLogger(
            self._runs, sample_limit=self._settings.sync_skipped_sample_limit
        )
        self._normalizer = CallNormalizer(
            CostEngine(default_rate_cents=self._settings.billing_default_rate_cents)
        )
        self._enricher = CallDetailEnricher(
            self._client, enabled=self._settings.sync_enrich_missing_details
        )
        self._writer = CallLedgerWriter(self._calls, self._usage)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.close()

    async def __aenter__(self) -> "CallSyncService":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @staticmethod
    def validate(request: SyncRequest) -> None:
        """Reject caller errors before any run is opened.

        Raises:
            InvalidSyncRequestError: Missing tenant, inverted range,
                unknown timezone, or admin run without an admin user
        """
        if not request.tenant_id or not request.tenant_id.strip():
            raise InvalidSyncRequestError("tenant_id is required")
        if request.start and request.end and as_utc(request.start) > as_utc(request.end):
            raise InvalidSyncRequestError(
                "start_date must not be after end_date",
                {"start_date": request.start.isoformat(), "end_date": request.end.isoformat()},
            )
        if request.effective_kind is SyncKind.ADMIN_BACKFILL and not request.admin_user_id:
            raise InvalidSyncRequestError("admin_user_id is required for an admin backfill")
        try:
            ZoneInfo(request.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise InvalidSyncRequestError(
                f"Unknown timezone: {request.timezone}", {"timezone": request.timezone}
            ) from e

    async def sync_calls(self, request: SyncRequest) -> SyncResult:
        """Sync one tenant's calls and return the aggregate result.

        Raises:
            InvalidSyncRequestError: Before any run is opened
            AppException: Typed failures, with ``run_id`` in details
            SyncError: Unexpected failures, wrapped after the run is closed
        """
        self.validate(request)
        kind = request.effective_kind

        run = await self._run_logger.open(
            request.tenant_id,
            kind,
            request.start,
            request.end,
            request.timezone,
            triggered_by=request.admin_user_id,
        )

        try:
            await self._run_pipeline(run, request, kind)
        except AppException as e:
            e.details.setdefault("run_id", run.id)
            logger.error(
                "Call sync failed",
                run_id=run.id,
                tenant_id=request.tenant_id,
                error=e.message,
            )
            await self._run_logger.close(
                run,
                SyncRunStatus.FAILED,
                error=e,
                error_details={"error": type(e).__name__, **e.details},
            )
            raise
        except Exception as e:
            logger.exception("Unexpected call sync failure", run_id=run.id)
            await self._run_logger.close(
                run,
                SyncRunStatus.FAILED,
                error=e,
                error_details={"error": type(e).__name__, "traceback": traceback.format_exc()},
            )
            raise SyncError(f"Call sync failed: {e}", {"run_id": run.id}) from e

        if run.accounted != run.total_fetched:
            logger.warning(
                "Sync run counts do not add up",
                run_id=run.id,
                accounted=run.accounted,
                total_fetched=run.total_fetched,
            )
        await self._run_logger.close(run, SyncRunStatus.COMPLETED)
        return SyncResult.from_run(run)

    async def _run_pipeline(
        self,
        run: SyncRunState,
        request: SyncRequest,
        kind: SyncKind,
    ) -> None:
        tenant_id = request.tenant_id
        tokens = TokenManager(
            self._credentials,
            self._client,
            expiry_skew_seconds=self._settings.token_expiry_skew_seconds,
        )
        await tokens.ensure_valid_token(tenant_id)

        plan = await self._references.get_billing_plan(tenant_id)
        if plan is None:
            run.log("No billing account found; default rate applies")

        latest = None
        if request.start is None and kind is not SyncKind.ADMIN_BACKFILL:
            latest = await self._calls.get_latest_started_at(tenant_id)

        decision = resolve_sync_window(
            kind,
            request.start,
            request.end,
            plan.calls_reset_at if plan else None,
            latest,
            lookback_days=self._settings.sync_default_lookback_days,
        )
        run.effective_start = decision.start
        run.effective_end = decision.end
        run.bypassed_cutoff = decision.bypassed_cutoff
        run.log(
            f"Effective window {decision.start.isoformat()} .. {decision.end.isoformat()} "
            f"({decision.source})"
        )
        if decision.bypassed_cutoff:
            run.log(
                f"Admin backfill bypassed calls reset cutoff {decision.bypassed_cutoff.isoformat()}"
            )

        if decision.is_empty:
            run.log("Effective start is after end; nothing to sync")
            return

        windows = chunk_date_range(decision.start, decision.end, request.timezone)
        run.log(f"Split into {len(windows)} window(s) in {request.timezone}")

        fetcher = CallLogFetcher(
            self._client,
            tokens,
            page_size=self._settings.sync_page_size,
            max_pages=self._settings.sync_max_pages_per_window,
        )
        fetched = await fetcher.fetch(run, windows, request.timezone)

        for payload in fetched.without_id:
            run.record_skip(
                SkippedCall(SkipReason.MISSING_CALL_ID, message="Call log has no id", payload=payload)
            )

        if not fetched.calls:
            return

        agents = await self._references.get_agent_index(tenant_id)
        deleted_ids = await self._references.get_deleted_call_ids(tenant_id)
        seen_agents: dict[int, Optional[str]] = {}

        for payload in fetched.calls.values():
            await self._process_call(
                run, payload, plan, agents, deleted_ids, kind, tokens.current, seen_agents
            )

        await self._mark_agents_seen(run, tenant_id, seen_agents)

    async def _process_call(
        self,
        run: SyncRunState,
        payload: dict[str, Any],
        plan: Optional[BillingPlan],
        agents: AgentIndex,
        deleted_ids: set[str],
        kind: SyncKind,
        credential: Credential,
        seen_agents: dict[int, Optional[str]],
    ) -> None:
        try:
            normalized = self._normalizer.normalize(
                payload, run.tenant_id, plan, agents, deleted_ids, kind
            )
        except (ValueError, TypeError, ArithmeticError) as e:
            run.record_skip(
                SkippedCall(SkipReason.NORMALIZATION_ERROR, message=str(e), payload=payload)
            )
            return

        if isinstance(normalized, SkippedCall):
            run.record_skip(normalized)
            return

        if normalized.agent_id is not None:
            seen_agents[normalized.agent_id] = normalized.agent_name

        call = await self._enricher.enrich(normalized, credential, run)
        outcome = await self._writer.persist(call)

        if outcome.status == PersistStatus.SKIPPED:
            run.record_skip(
                SkippedCall(
                    outcome.skip_reason,
                    call_id=call.upstream_call_id,
                    message=outcome.error,
                    payload=payload,
                )
            )
            run.log(f"{outcome.skip_reason} for call {call.upstream_call_id}: {outcome.error}")
            return

        if outcome.status == PersistStatus.INSERTED:
            run.inserted_count += 1
        else:
            run.updated_count += 1

        if outcome.ledger_error:
            run.ledger_errors += 1
            run.log(f"Usage ledger write failed for call {call.upstream_call_id}: {outcome.ledger_error}")

    async def _mark_agents_seen(
        self,
        run: SyncRunState,
        tenant_id: str,
        seen_agents: dict[int, Optional[str]],
    ) -> None:
        if not seen_agents:
            return
        try:
            await self._references.mark_agents_seen(tenant_id, seen_agents)
        except (SQLAlchemyError, AppException) as e:
            logger.warning("Failed to update agent activity", run_id=run.id, error=str(e))
            run.log(f"Agent activity update failed: {e}")
