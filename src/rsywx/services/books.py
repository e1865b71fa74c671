"""Book service: cached book queries with live visit statistics.

Every read operation follows the same steps:

1. Derive a cache key from the operation and every result-shaping parameter
2. Unless ``force_refresh`` is set, try the cache
3. On a miss, run the base query; "not found" raises and caches nothing
4. Store the base record with the operation's TTL
5. Load visit statistics fresh, whatever the cache said
6. Merge them over the base record (visit data wins) and return
   ``{"data": ..., "from_cache": bool, ...extras}``

Book metadata is close to immutable while visit counters move on every page
view, so only the metadata is cached.
"""

import math
from collections.abc import Awaitable, Callable
from datetime import date, timedelta
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from rsywx.config import Settings, get_settings
from rsywx.core.exceptions import (
    BookNotFoundError,
    InvalidDateError,
    InvalidSearchTypeError,
    InvalidTagPayloadError,
)
from rsywx.models.activity import TAG_MAX_LENGTH
from rsywx.repositories.book_query import BookQueryBuilder
from rsywx.repositories.review import ReviewRepository
from rsywx.repositories.tag import TagRepository
from rsywx.repositories.visit import VisitRepository
from rsywx.schemas.book import BookResult, Review
from rsywx.services.cache import CacheService
from rsywx.services.discovery import DISCOVERY_POOL_SIZE, DiscoveryRanker

logger = structlog.get_logger(__name__)

SEARCH_TYPES = ("author", "title", "tags", "misc", "id")
WILDCARD = "-"


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, int(value)))


class BookService:
    """Book queries with cache-then-verify freshness.

    Usage:
        ```python
        service = BookService(session, cache)
        result = await service.get_book_detail("00666")
        result["data"]["total_visits"], result["from_cache"]
        ```
    """

    DEFAULT_PER_PAGE = 20
    MAX_PER_PAGE = 100
    DEFAULT_RELATED = 5
    MAX_RELATED = 20
    DEFAULT_HISTORY_DAYS = 30
    MAX_HISTORY_DAYS = 365

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
            cache: Cache service for base records
            settings: Application settings (defaults to get_settings())
            today: Source of the current date (defaults to date.today)
        """
        settings = settings or get_settings()
        self.session = session
        self.cache = cache
        self.cover_base = settings.cover_base_url
        self.max_list_count = settings.max_list_count
        self.today = today or date.today
        self.visits = VisitRepository(session)
        self.tags = TagRepository(session)
        self.reviews = ReviewRepository(session)
        self.ranker = DiscoveryRanker()

    def query(self) -> BookQueryBuilder:
        """A fresh query builder bound to this service's session."""
        return BookQueryBuilder(self.session, cover_base=self.cover_base, today=self.today())

    def normalize_count(self, count: int) -> int:
        """Clamp a list size into ``[1, max_list_count]``."""
        return clamp(count, 1, self.max_list_count)

    # -------------------------------------------------------------------------
    # Cache-then-verify plumbing
    # -------------------------------------------------------------------------

    async def _cached(
        self,
        cache_key: str,
        ttl: int,
        loader: Callable[[], Awaitable[Any]],
        force_refresh: bool,
    ) -> tuple[Any, bool]:
        """Return (base record, from_cache), loading and storing on a miss."""
        if not force_refresh:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                return cached, True

        value = await loader()
        await self.cache.set(cache_key, value, ttl)
        return value, False

    async def _overlay_one(self, book: dict[str, Any]) -> dict[str, Any]:
        stats = await self.visits.get_visit_stats(book["id"])
        return {**book, **stats}

    async def _overlay_many(self, books: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if not books:
            return []
        stats = await self.visits.get_visit_stats_many([book["id"] for book in books])
        return [{**book, **stats[book["id"]]} for book in books]

    async def _list(
        self,
        cache_key: str,
        ttl: int,
        build: Callable[[BookQueryBuilder], BookQueryBuilder],
        force_refresh: bool,
    ) -> dict[str, Any]:
        async def load() -> list[dict[str, Any]]:
            books = await build(self.query()).execute()
            return [book.to_dict() for book in books]

        books, from_cache = await self._cached(cache_key, ttl, load, force_refresh)
        return {"data": await self._overlay_many(books), "from_cache": from_cache}

    # -------------------------------------------------------------------------
    # Book detail
    # -------------------------------------------------------------------------

    async def get_book_detail(self, bookid: str, force_refresh: bool = False) -> dict[str, Any]:
        """Full record of one book with tags, reviews and live visit stats.

        Raises:
            BookNotFoundError: If no shelved book has this bookid
        """

        async def load() -> dict[str, Any]:
            book = await (
                self.query()
                .include_fields(["purchase", "catalog", "rich"])
                .by_book_id(bookid)
                .execute_one()
            )
            if book is None:
                logger.info("book_detail_not_found", bookid=bookid)
                raise BookNotFoundError(bookid=bookid)

            data = book.to_dict()
            data["tags"] = await self.tags.get_tags(data["id"])
            data["reviews"] = [
                Review.model_validate(row).model_dump()
                for row in await self.reviews.get_reviews_for_book(data["id"])
            ]
            return data

        data, from_cache = await self._cached(
            CacheService.book_detail_key(bookid),
            CacheService.TTL_BOOK_DETAIL,
            load,
            force_refresh,
        )
        return {"data": await self._overlay_one(data), "from_cache": from_cache}

    # -------------------------------------------------------------------------
    # Count-style lists
    # -------------------------------------------------------------------------

    async def get_latest(self, count: int = 1, force_refresh: bool = False) -> dict[str, Any]:
        """Most recently purchased books."""
        count = self.normalize_count(count)
        return await self._list(
            CacheService.latest_key(count),
            CacheService.TTL_LATEST,
            lambda q: q.include_fields(["purchase"]).latest(count),
            force_refresh,
        )

    async def get_random(self, count: int = 1, force_refresh: bool = False) -> dict[str, Any]:
        """Random books; a cached pick stays the same for up to an hour."""
        count = self.normalize_count(count)
        return await self._list(
            CacheService.random_key(count),
            CacheService.TTL_RANDOM,
            lambda q: q.include_fields(["purchase"]).random(count),
            force_refresh,
        )

    async def get_last_visited(
        self, count: int = 1, force_refresh: bool = False
    ) -> dict[str, Any]:
        """Books behind the most recent visits, newest first.

        Repeat visits to one book within the window collapse, so the list
        may hold fewer than ``count`` books.
        """
        count = self.normalize_count(count)
        return await self._list(
            CacheService.last_visited_key(count),
            CacheService.TTL_LAST_VISITED,
            lambda q: q.last_visited(count),
            force_refresh,
        )

    async def get_forgotten(self, count: int = 1, force_refresh: bool = False) -> dict[str, Any]:
        """Shelved books unvisited for the longest time, oldest first."""
        count = self.normalize_count(count)
        return await self._list(
            CacheService.forgotten_key(count),
            CacheService.TTL_FORGOTTEN,
            lambda q: q.include_fields(["computed"]).forgotten(count),
            force_refresh,
        )

    # -------------------------------------------------------------------------
    # Today in history
    # -------------------------------------------------------------------------

    async def get_today(
        self,
        month: int | None = None,
        day: int | None = None,
        force_refresh: bool = False,
    ) -> dict[str, Any]:
        """Books bought on this month/day in earlier years.

        Args:
            month: Month (defaults to today's)
            day: Day of month (defaults to today's)
            force_refresh: Bypass the cache

        Raises:
            InvalidDateError: If month/day is not a calendar date in a leap year
        """
        today = self.today()
        month = today.month if month is None else int(month)
        day = today.day if day is None else int(day)
        try:
            date(2000, month, day)
        except ValueError:
            raise InvalidDateError(month, day) from None

        result = await self._list(
            CacheService.today_key(today.year, month, day),
            CacheService.TTL_TODAY,
            lambda q: q.include_fields(["purchase"]).todays_books(month, day),
            force_refresh,
        )
        result["date_info"] = {
            "requested_date": f"{today.year:04d}-{month:02d}-{day:02d}",
            "month_day": f"{month:02d}-{day:02d}",
            "is_today": (month, day) == (today.month, today.day),
        }
        return result

    # -------------------------------------------------------------------------
    # Visit history
    # -------------------------------------------------------------------------

    async def get_visit_history(
        self, days: int = DEFAULT_HISTORY_DAYS, force_refresh: bool = False
    ) -> dict[str, Any]:
        """Visits per day for the window ending today, zero-filled."""
        days = clamp(days, 1, self.MAX_HISTORY_DAYS)
        end = self.today()
        start = end - timedelta(days=days - 1)

        async def load() -> list[dict[str, Any]]:
            counts = await self.visits.get_daily_counts(start, end)
            history = []
            for offset in range(days):
                current = (start + timedelta(days=offset)).isoformat()
                history.append({"date": current, "visits": counts.get(current, 0)})
            return history

        history, from_cache = await self._cached(
            CacheService.visit_history_key(days, end),
            CacheService.TTL_VISIT_HISTORY,
            load,
            force_refresh,
        )
        return {
            "data": history,
            "from_cache": from_cache,
            "period_info": {
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
                "total_days": days,
                "total_visits": sum(entry["visits"] for entry in history),
            },
        }

    # -------------------------------------------------------------------------
    # List / search
    # -------------------------------------------------------------------------

    async def list_books(
        self,
        search_type: str = "title",
        value: str | None = WILDCARD,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
        force_refresh: bool = False,
    ) -> dict[str, Any]:
        """One page of books matching a search.

        Args:
            search_type: One of author, title, tags, misc, id
            value: Search term; "-" or empty matches everything
            page: 1-indexed page (values below 1 become 1)
            per_page: Page size, clamped into [1, 100]
            force_refresh: Bypass the cache

        Raises:
            InvalidSearchTypeError: If search_type is unknown
        """
        if search_type not in SEARCH_TYPES:
            raise InvalidSearchTypeError(search_type, SEARCH_TYPES)

        term = (value or "").strip()
        if term == WILDCARD:
            term = ""
        page = max(1, int(page))
        per_page = clamp(per_page, 1, self.MAX_PER_PAGE)

        async def load() -> dict[str, Any]:
            builder = self.query().include_fields(["purchase"])
            if term:
                apply = {
                    "author": builder.search_by_author,
                    "title": builder.search_by_title,
                    "tags": builder.search_by_tag,
                    "misc": builder.search_misc,
                    "id": builder.search_by_book_id,
                }[search_type]
                apply(term)
            builder.order_by("b.purchdate DESC", "b.id DESC")

            total = await builder.count()
            books = await builder.paginate(page, per_page).execute()
            return {"books": [book.to_dict() for book in books], "total": total}

        result, from_cache = await self._cached(
            CacheService.list_key(search_type, term or WILDCARD, page, per_page),
            CacheService.TTL_SEARCH,
            load,
            force_refresh,
        )
        total = result["total"]
        return {
            "data": await self._overlay_many(result["books"]),
            "from_cache": from_cache,
            "pagination": {
                "current_page": page,
                "total_pages": math.ceil(total / per_page) if total else 0,
                "total_results": total,
                "per_page": per_page,
            },
        }

    # -------------------------------------------------------------------------
    # Tags
    # -------------------------------------------------------------------------

    @staticmethod
    def validate_tags(tags: Any) -> list[str]:
        """Check a tag submission and return the stripped tags.

        Raises:
            InvalidTagPayloadError: For a non-list, an empty list, or any item
                that is not a non-blank string of at most 20 characters
        """
        if not isinstance(tags, list):
            raise InvalidTagPayloadError("Tags must be a list of strings")
        if not tags:
            raise InvalidTagPayloadError("At least one tag is required")

        cleaned: list[str] = []
        for tag in tags:
            if not isinstance(tag, str):
                raise InvalidTagPayloadError("Every tag must be a string")
            tag = tag.strip()
            if not tag:
                raise InvalidTagPayloadError("Tags cannot be blank")
            if len(tag) > TAG_MAX_LENGTH:
                raise InvalidTagPayloadError(
                    f"Tag '{tag}' is longer than {TAG_MAX_LENGTH} characters"
                )
            cleaned.append(tag)
        return cleaned

    async def add_tags(self, bookid: str, tags: Any) -> dict[str, Any]:
        """Attach tags to a book.

        Returns:
            {"bookid", "added": [...], "duplicates": [...]}

        Raises:
            InvalidTagPayloadError: If the payload is malformed
            BookNotFoundError: If the book does not exist
        """
        cleaned = self.validate_tags(tags)

        book = await self.query().by_book_id(bookid).execute_one()
        if book is None:
            raise BookNotFoundError(bookid=bookid)

        added, duplicates = await self.tags.add_tags(book.id, cleaned)
        if added:
            await self.clear_book_cache(bookid)
            await self.clear_related_cache(bookid)
            await self.clear_list_cache("tags")

        return {"bookid": bookid, "added": added, "duplicates": duplicates}

    # -------------------------------------------------------------------------
    # Related books
    # -------------------------------------------------------------------------

    async def get_related(
        self,
        bookid: str,
        count: int = DEFAULT_RELATED,
        force_refresh: bool = False,
    ) -> dict[str, Any]:
        """Related books picked by discovery ranking.

        Raises:
            BookNotFoundError: If the source book does not exist
        """
        count = clamp(count, 1, self.MAX_RELATED)

        async def load() -> dict[str, Any]:
            source = await (
                self.query()
                .include_fields(["purchase", "catalog"])
                .by_book_id(bookid)
                .execute_one()
            )
            if source is None:
                raise BookNotFoundError(bookid=bookid)

            pool: list[BookResult] = await (
                self.query()
                .include_fields(["purchase", "catalog"])
                .exclude_id(source.id)
                .latest(DISCOVERY_POOL_SIZE)
                .execute()
            )
            ids = [book.id for book in pool]
            tags = await self.tags.get_tags_many([source.id, *ids])
            visits = await self.visits.get_visit_stats_many(ids)

            source_data = {**source.to_dict(), "tags": tags.get(source.id, [])}
            candidates = [
                {
                    **book.to_dict(),
                    "tags": tags.get(book.id, []),
                    "total_visits": visits[book.id]["total_visits"],
                }
                for book in pool
            ]

            ranking = self.ranker.rank(source_data, candidates, count)
            books = []
            for candidate in ranking.selected:
                entry = dict(candidate.book)
                entry.pop("total_visits", None)
                entry["discovery"] = {
                    "category": candidate.category.value,
                    "total_score": round(candidate.total_score, 4),
                    "similarity_score": round(candidate.similarity_score, 4),
                    "discovery_score": round(candidate.discovery_score, 4),
                    "reasons": candidate.reasons,
                }
                books.append(entry)

            return {
                "books": books,
                "categories": ranking.category_counts(),
                "discovery_info": {
                    "source_bookid": source.bookid,
                    "source_title": source.title,
                    "candidate_pool_size": ranking.pool_size,
                    "candidates_passing": ranking.passing,
                    "distribution_tier": ranking.tier,
                    "requested": count,
                },
            }

        result, from_cache = await self._cached(
            CacheService.related_key(bookid, count),
            CacheService.TTL_RELATED,
            load,
            force_refresh,
        )
        return {
            "data": await self._overlay_many(result["books"]),
            "from_cache": from_cache,
            "categories": result["categories"],
            "discovery_info": result["discovery_info"],
        }

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    async def _clear(self, prefix: str, key: str | None) -> bool:
        if key is not None:
            return await self.cache.invalidate(key)
        await self.cache.invalidate_prefix(prefix)
        return True

    async def clear_book_cache(self, bookid: str) -> bool:
        return await self.cache.invalidate(CacheService.book_detail_key(bookid))

    async def clear_latest_cache(self, count: int | None = None) -> bool:
        key = None if count is None else CacheService.latest_key(count)
        return await self._clear("books_latest:", key)

    async def clear_random_cache(self, count: int | None = None) -> bool:
        key = None if count is None else CacheService.random_key(count)
        return await self._clear("books_random:", key)

    async def clear_last_visited_cache(self, count: int | None = None) -> bool:
        key = None if count is None else CacheService.last_visited_key(count)
        return await self._clear("books_last_visited:", key)

    async def clear_forgotten_cache(self, count: int | None = None) -> bool:
        key = None if count is None else CacheService.forgotten_key(count)
        return await self._clear("books_forgotten:", key)

    async def clear_list_cache(self, search_type: str | None = None) -> bool:
        await self.cache.invalidate_prefix(CacheService.list_prefix(search_type))
        return True

    async def clear_related_cache(self, bookid: str) -> bool:
        await self.cache.invalidate_prefix(CacheService.related_prefix(bookid))
        return True
