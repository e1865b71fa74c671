"""FastAPI dependency injection container.

This module provides dependency injection functions for use with FastAPI's
Depends() pattern. Dependencies are organized by functionality and can be
easily overridden in tests through ``app.dependency_overrides``.
"""

import secrets
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from rsywx.config import Settings, get_settings
from rsywx.core.exceptions import InvalidAPIKeyError
from rsywx.services.books import BookService
from rsywx.services.cache import CacheService, get_cache_service
from rsywx.services.library import LibraryService

# Type alias for common dependency patterns
SettingsDep = Annotated[Settings, Depends(get_settings)]


# ========================================
# Settings Dependencies
# ========================================
def get_settings_from_request(request: Request) -> Settings:
    """Get settings from request state (set during lifespan).

    Falls back to the global settings when the app was built without a
    lifespan run, as in tests that only override dependencies.

    Args:
        request: The current request

    Returns:
        Settings: Application settings
    """
    return getattr(request.app.state, "settings", None) or get_settings()


AppSettingsDep = Annotated[Settings, Depends(get_settings_from_request)]


# ========================================
# Database Dependencies
# ========================================
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session.

    Yields a database session that automatically handles
    commit on success and rollback on exception.

    Yields:
        AsyncSession: Database session
    """

    from rsywx.core.database import get_async_session

    async for session in get_async_session():
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


SessionDep = Annotated[AsyncSession, Depends(get_db_session)]
CacheDep = Annotated[CacheService, Depends(get_cache_service)]


# ========================================
# Service Dependencies
# ========================================
def get_book_service(
    session: SessionDep, cache: CacheDep, settings: AppSettingsDep
) -> BookService:
    """Get the book service for this request."""
    return BookService(session, cache, settings)


def get_library_service(
    session: SessionDep, cache: CacheDep, settings: AppSettingsDep
) -> LibraryService:
    """Get the library service for this request."""
    return LibraryService(session, cache, settings)


BookServiceDep = Annotated[BookService, Depends(get_book_service)]
LibraryServiceDep = Annotated[LibraryService, Depends(get_library_service)]


# ========================================
# Auth Dependencies
# ========================================
async def require_api_key(
    settings: AppSettingsDep,
    x_api_key: Annotated[str | None, Header()] = None,
    api_key: Annotated[str | None, Query(include_in_schema=False)] = None,
) -> None:
    """Check the API key from the X-API-Key header or api_key query parameter.

    Raises:
        InvalidAPIKeyError: If no key was sent or it does not match
    """
    supplied = x_api_key or api_key
    expected = settings.api_key.get_secret_value()
    if not supplied or not secrets.compare_digest(
        supplied.encode("utf-8"), expected.encode("utf-8")
    ):
        raise InvalidAPIKeyError()


def refresh_flag(
    refresh: Annotated[bool, Query(description="Bypass the cache")] = False,
) -> bool:
    """``?refresh=true`` forces a cache bypass."""
    return refresh


RefreshDep = Annotated[bool, Depends(refresh_flag)]
