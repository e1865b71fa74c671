"""Library-wide service: collection status, readings and daily picks.

These results carry no per-book visit data, so they are plain cached reads:
cache hit or database load, nothing recomputed on top.
"""

from collections.abc import Callable
from datetime import date
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from rsywx.config import Settings, get_settings
from rsywx.core.exceptions import NotFoundError
from rsywx.repositories.collection import CollectionRepository
from rsywx.repositories.daily import DailyRepository
from rsywx.repositories.review import ReviewRepository
from rsywx.schemas.book import cover_uri_for
from rsywx.services.cache import CacheService

logger = structlog.get_logger(__name__)


class LibraryService:
    """Cached aggregates and daily selections.

    Usage:
        ```python
        service = LibraryService(session, cache)
        status = await service.get_collection_status()
        ```
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: CacheService,
        settings: Settings | None = None,
        today: Callable[[], date] | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            session: Async database session
            cache: Cache service
            settings: Application settings (defaults to get_settings())
            today: Source of the current date (defaults to date.today)
        """
        settings = settings or get_settings()
        self.cache = cache
        self.cover_base = settings.cover_base_url
        self.max_list_count = settings.max_list_count
        self.today = today or date.today
        self.collection_repo = CollectionRepository(session)
        self.review_repo = ReviewRepository(session)
        self.daily_repo = DailyRepository(session)

    async def _cached(
        self, cache_key: str, ttl: int, loader: Callable[[], Any], force_refresh: bool
    ) -> dict[str, Any]:
        if not force_refresh:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                return {"data": cached, "from_cache": True}

        data = await loader()
        await self.cache.set(cache_key, data, ttl)
        return {"data": data, "from_cache": False}

    # -------------------------------------------------------------------------
    # Collection
    # -------------------------------------------------------------------------

    async def get_collection_status(self, force_refresh: bool = False) -> dict[str, Any]:
        """Totals of shelved books, pages, kwords and all visits."""
        return await self._cached(
            CacheService.status_key(),
            CacheService.TTL_STATUS,
            self.collection_repo.get_status,
            force_refresh,
        )

    async def clear_status_cache(self) -> bool:
        return await self.cache.invalidate(CacheService.status_key())

    # -------------------------------------------------------------------------
    # Readings
    # -------------------------------------------------------------------------

    async def get_reading_summary(self, force_refresh: bool = False) -> dict[str, Any]:
        """Books read, reviews written and the span of reading activity."""
        return await self._cached(
            CacheService.reading_summary_key(),
            CacheService.TTL_READING_SUMMARY,
            self.review_repo.get_reading_summary,
            force_refresh,
        )

    async def get_latest_readings(
        self, count: int = 1, force_refresh: bool = False
    ) -> dict[str, Any]:
        """Most recent published reviews, each with its book's cover."""
        count = max(1, min(self.max_list_count, int(count)))

        async def load() -> list[dict[str, Any]]:
            readings = await self.review_repo.get_latest_readings(count)
            return [
                {**reading, "cover_uri": cover_uri_for(reading["bookid"], self.cover_base)}
                for reading in readings
            ]

        return await self._cached(
            CacheService.latest_readings_key(count),
            CacheService.TTL_LATEST_READINGS,
            load,
            force_refresh,
        )

    async def clear_reading_cache(self) -> bool:
        """Drop the reading summary and every latest-readings page."""
        await self.cache.invalidate(CacheService.reading_summary_key())
        await self.cache.invalidate_prefix("latest_readings:")
        return True

    # -------------------------------------------------------------------------
    # Daily picks
    # -------------------------------------------------------------------------

    async def _daily(
        self,
        kind: str,
        cache_key: str,
        loader: Callable[[date], Any],
        day: date,
        force_refresh: bool,
    ) -> dict[str, Any]:
        async def load() -> dict[str, Any]:
            row = await loader(day)
            if row is None:
                logger.warning("daily_pick_unavailable", kind=kind, date=day.isoformat())
                raise NotFoundError(message=f"No {kind} available")
            return row

        result = await self._cached(cache_key, CacheService.TTL_DAILY, load, force_refresh)
        result["date"] = day.isoformat()
        result["day_of_year"] = day.timetuple().tm_yday
        return result

    async def get_quote_of_the_day(self, force_refresh: bool = False) -> dict[str, Any]:
        """Today's quote; the same for every request on a given date.

        Raises:
            NotFoundError: If the quote table is empty
        """
        day = self.today()
        return await self._daily(
            "quote",
            CacheService.qotd_key(day),
            self.daily_repo.get_quote_for_date,
            day,
            force_refresh,
        )

    async def get_word_of_the_day(self, force_refresh: bool = False) -> dict[str, Any]:
        """Today's word; the same for every request on a given date.

        Raises:
            NotFoundError: If the word table is empty
        """
        day = self.today()
        return await self._daily(
            "word",
            CacheService.wotd_key(day),
            self.daily_repo.get_word_for_date,
            day,
            force_refresh,
        )
