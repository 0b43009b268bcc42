"""Call sync endpoints."""

from typing import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, Query

from callsync.api.v1.schemas.common import ErrorResponse
from callsync.api.v1.schemas.sync import (
    CallSyncRequest,
    CallSyncResponse,
    SyncRunDetail,
    SyncRunListResponse,
    SyncRunSummary,
)
from callsync.core.exceptions import AppException
from callsync.core.logging import get_logger
from callsync.domain.services.sync_service import CallSyncService, SyncRequest
from callsync.infrastructure.database.repositories import SyncRunRepository

logger = get_logger(__name__)

router = APIRouter()


async def get_sync_service() -> AsyncGenerator[CallSyncService, None]:
    """Dependency providing a sync service with its own HighLevel client."""
    async with CallSyncService() as service:
        yield service


def get_run_repository() -> SyncRunRepository:
    return SyncRunRepository()


def _error_detail(e: AppException) -> dict:
    return ErrorResponse(
        error=type(e).__name__,
        message=e.message,
        run_id=e.details.get("run_id"),
        details=e.details,
    ).model_dump(mode="json")


@router.post("/calls", response_model=CallSyncResponse)
async def sync_calls(
    request: CallSyncRequest,
    service: CallSyncService = Depends(get_sync_service),
) -> CallSyncResponse:
    """Sync a tenant's HighLevel calls for a date range."""
    logger.info(
        "Call sync requested",
        tenant_id=request.tenant_id,
        sync_type=request.sync_type.value,
        admin_override=request.admin_override,
    )
    try:
        result = await service.sync_calls(
            SyncRequest(
                tenant_id=request.tenant_id,
                start=request.start_date,
                end=request.end_date,
                kind=request.sync_type,
                timezone=request.timezone,
                admin_override=request.admin_override,
                admin_user_id=request.admin_user_id,
            )
        )
    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=_error_detail(e)) from e

    return CallSyncResponse(**result.to_dict())


@router.get("/runs", response_model=SyncRunListResponse)
async def list_sync_runs(
    tenant_id: str = Query(..., min_length=1),
    limit: int = Query(20, ge=1, le=100),
    runs: SyncRunRepository = Depends(get_run_repository),
) -> SyncRunListResponse:
    """Recent sync runs of a tenant, newest first."""
    rows = await runs.list_for_tenant(tenant_id, limit)
    items = [SyncRunSummary(**row) for row in rows]
    return SyncRunListResponse(runs=items, total=len(items))


@router.get("/runs/{run_id}", response_model=SyncRunDetail)
async def get_sync_run(
    run_id: str,
    runs: SyncRunRepository = Depends(get_run_repository),
) -> SyncRunDetail:
    """One sync run with page trace, log lines and skipped sample."""
    row = await runs.get(run_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"Sync run not found: {run_id}")
    return SyncRunDetail(**row)
