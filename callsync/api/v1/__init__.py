"""API v1 router."""

from fastapi import APIRouter

from callsync.api.v1.endpoints import sync

router = APIRouter()

router.include_router(sync.router, prefix="/sync", tags=["sync"])
