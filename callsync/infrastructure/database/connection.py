"""Database connection management."""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from callsync.config import get_settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


# Engine (initialized on startup)
_engine: AsyncEngine | None = None
_dialect: str = "postgresql"


async def init_db() -> None:
    """Initialize the database engine."""
    global _engine, _dialect

    settings = get_settings()
    _dialect = settings.db_dialect

    _engine = create_async_engine(
        settings.async_database_url,
        echo=settings.database_echo,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


async def close_db() -> None:
    """Close database connections."""
    global _engine

    if _engine:
        await _engine.dispose()
        _engine = None


def get_engine() -> AsyncEngine:
    """Get the database engine instance."""
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _engine


def get_dialect() -> str:
    """Get current database dialect ('postgresql' or 'mysql')."""
    return _dialect
