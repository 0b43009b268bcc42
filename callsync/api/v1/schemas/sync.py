"""Pydantic schemas for sync endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from callsync.domain.entities.base import SyncKind


class CallSyncRequest(BaseModel):
    """Request to sync one tenant's calls."""

    tenant_id: str = Field(..., description="Tenant to sync")
    start_date: Optional[datetime] = Field(None, description="Window start; policy default when absent")
    end_date: Optional[datetime] = Field(None, description="Window end; now when absent")
    sync_type: SyncKind = Field(SyncKind.MANUAL, description="manual, auto or admin_backfill")
    timezone: str = Field("America/New_York", description="IANA timezone for day boundaries")
    admin_override: bool = Field(False, description="Run as admin backfill")
    admin_user_id: Optional[str] = Field(None, description="Admin performing the override")

    @model_validator(mode="after")
    def _check_admin_override(self) -> "CallSyncRequest":
        if self.admin_override:
            self.sync_type = SyncKind.ADMIN_BACKFILL
        return self


class CallSyncResponse(BaseModel):
    """Aggregate outcome of a sync run."""

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
    skip_reasons: dict[str, int] = Field(default_factory=dict)
    effective_start: Optional[datetime] = None
    effective_end: Optional[datetime] = None
    bypassed_cutoff: Optional[datetime] = None


class SyncRunSummary(BaseModel):
    """Sync run row as listed for support."""

    id: str
    tenant_id: str
    sync_kind: str
    status: str
    triggered_by: Optional[str] = None
    timezone: Optional[str] = None
    requested_start: Optional[datetime] = None
    requested_end: Optional[datetime] = None
    effective_start: Optional[datetime] = None
    effective_end: Optional[datetime] = None
    bypassed_cutoff: Optional[datetime] = None
    total_fetched: int = 0
    inserted_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    duplicates_dropped: int = 0
    enrichment_failures: int = 0
    ledger_errors: int = 0
    skip_reasons: Optional[dict[str, int]] = None
    api_time_ms: int = 0
    total_time_ms: int = 0
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class SyncRunDetail(SyncRunSummary):
    """Sync run with traces, log lines and the skipped sample."""

    page_trace: Optional[list[dict[str, Any]]] = None
    log_lines: Optional[list[str]] = None
    skipped_sample: Optional[list[dict[str, Any]]] = None
    error_details: Optional[dict[str, Any]] = None


class SyncRunListResponse(BaseModel):
    runs: list[SyncRunSummary]
    total: int
