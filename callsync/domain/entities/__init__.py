"""Domain entities for the call sync pipeline."""

from callsync.domain.entities.base import CallDirection, SkipReason, SyncKind, SyncRunStatus
from callsync.domain.entities.billing import INCLUDED_DISPLAY_COST, BillingPlan, CostResult
from callsync.domain.entities.call import NormalizedCall, RawCall, SkippedCall, extract_call_id
from callsync.domain.entities.reference import (
    AgentIndex,
    AgentRef,
    Credential,
    PhoneRef,
    normalize_phone,
)
from callsync.domain.entities.sync_run import DateWindow, PageTrace, SyncRunState

__all__ = [
    "CallDirection",
    "SkipReason",
    "SyncKind",
    "SyncRunStatus",
    "INCLUDED_DISPLAY_COST",
    "BillingPlan",
    "CostResult",
    "NormalizedCall",
    "RawCall",
    "SkippedCall",
    "extract_call_id",
    "AgentIndex",
    "AgentRef",
    "Credential",
    "PhoneRef",
    "normalize_phone",
    "DateWindow",
    "PageTrace",
    "SyncRunState",
]
