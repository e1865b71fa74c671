"""Async database engine and session management.

This module provides the core database infrastructure:
- Async SQLAlchemy engine with connection pooling
- Async session factory for request-scoped sessions
- Database lifecycle management (init/close)

Sessions live for one request. The engine is shared and built by
``build_engine``, which also serves the test fixtures.

Usage:
    from rsywx.core.database import init_db, close_db, get_async_session

    await init_db(settings)

    async for session in get_async_session():
        ...

    await close_db()
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from rsywx.config import Settings
from rsywx.core.logging import get_logger

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Get the database engine.

    Raises:
        RuntimeError: If database is not initialized
    """
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the session factory.

    Raises:
        RuntimeError: If database is not initialized
    """
    if _async_session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _async_session_factory


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session, rolled back on error."""
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


def build_engine(settings: Settings) -> AsyncEngine:
    """Create an async engine with pool settings suited to the backend.

    Args:
        settings: Application settings containing database configuration
    """
    engine_kwargs: dict[str, Any] = {
        "echo": settings.debug,
    }

    if settings.database_url.startswith("sqlite"):
        engine_kwargs["poolclass"] = NullPool
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        engine_kwargs["pool_size"] = settings.database_pool_min
        engine_kwargs["max_overflow"] = (
            settings.database_pool_max - settings.database_pool_min
        )
        engine_kwargs["pool_pre_ping"] = True
        # MySQL drops idle connections after wait_timeout (8h by default)
        engine_kwargs["pool_recycle"] = 3600

    return create_async_engine(settings.database_url, **engine_kwargs)


async def init_db(settings: Settings) -> None:
    """Initialize the database engine and session factory.

    This should be called once at application startup.
    """
    global _engine, _async_session_factory

    logger.info(
        "database_initializing",
        database_url=_mask_password(settings.database_url),
    )

    _engine = build_engine(settings)
    _async_session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info("database_initialized", dialect=_engine.dialect.name)


async def close_db() -> None:
    """Close the database engine and all connections."""
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("database_closed")


async def check_db_connection() -> bool:
    """Check if the database connection is working.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        return False


def _mask_password(url: str) -> str:
    """Mask the password in a database URL for logging."""
    if "://" in url and "@" in url:
        prefix, rest = url.split("://", 1)
        creds, host = rest.split("@", 1)
        if ":" in creds:
            user = creds.split(":", 1)[0]
            return f"{prefix}://{user}:****@{host}"
    return url
