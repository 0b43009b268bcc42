"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from callsync.api.v1 import router as api_v1_router
from callsync.api.v1.schemas.common import HealthResponse
from callsync.config import get_settings
from callsync.core.logging import configure_logging, get_logger
from callsync.infrastructure.database.connection import close_db, init_db
from callsync.infrastructure.scheduler import (
    get_scheduler_status,
    schedule_auto_sync,
    start_scheduler,
    stop_scheduler,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()

    # Startup
    logger.info("Starting application", version=settings.app_version)
    await init_db()

    start_scheduler()
    if settings.auto_sync_enabled:
        schedule_auto_sync(settings.auto_sync_interval_minutes)

    yield

    # Shutdown
    logger.info("Shutting down application")
    stop_scheduler()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()
    configure_logging(
        settings.log_level,
        json_output=settings.environment != "development",
    )

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routers
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        scheduler_status = get_scheduler_status()
        return HealthResponse(
            status="healthy",
            version=settings.app_version,
            scheduler={
                "running": scheduler_status["running"],
                "jobs_count": scheduler_status["job_count"],
            },
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "callsync.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
