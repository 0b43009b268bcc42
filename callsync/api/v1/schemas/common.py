"""Common Pydantic schemas."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="healthy or unhealthy")
    version: str
    scheduler: Optional[dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    run_id: Optional[str] = Field(None, description="Sync run to quote to support")
    details: Optional[dict[str, Any]] = None
