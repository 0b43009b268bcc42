"""API v1 schemas."""

from callsync.api.v1.schemas.common import ErrorResponse, HealthResponse
from callsync.api.v1.schemas.sync import (
    CallSyncRequest,
    CallSyncResponse,
    SyncRunDetail,
    SyncRunListResponse,
    SyncRunSummary,
)

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "CallSyncRequest",
    "CallSyncResponse",
    "SyncRunDetail",
    "SyncRunListResponse",
    "SyncRunSummary",
]
