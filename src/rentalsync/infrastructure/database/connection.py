"""Database connection and session management."""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from rentalsync.config import Settings, get_settings

# Engine and session factory (lazy initialized)
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    """Get or create the async database engine."""
    global _engine
    if _engine is None:
        if settings is None:
            settings = get_settings()
        options: dict[str, Any] = {"echo": settings.app_debug}
        # SQLite (tests, local tooling) has no connection pool to size
        if not settings.database_url.startswith("sqlite"):
            options["pool_size"] = settings.database_pool_size
            options["max_overflow"] = settings.database_max_overflow
            options["pool_pre_ping"] = True
        _engine = create_async_engine(str(settings.database_url), **options)
    assert _engine is not None
    return _engine


def get_session_factory(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory."""
    global _async_session_factory
    if _async_session_factory is None:
        engine = get_engine(settings)
        _async_session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )
    assert _async_session_factory is not None
    return _async_session_factory


async def check_database() -> bool:
    """Run a trivial query; used by the readiness probe."""
    async with get_engine().connect() as conn:
        await conn.execute(text("SELECT 1"))
    return True


async def dispose_engine() -> None:
    """Close pooled connections and forget the engine."""
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _async_session_factory = None
