"""Fluent query builder for book listings.

One builder describes one query. It starts from the book table with the
core projection, gains optional field groups, gets exactly one *mode*
(latest, random, last visited, forgotten, today in history, by id) and any
number of filters, and is then executed once.

Field groups:
    purchase     purchdate, price, place_name, publisher_name (+2 LEFT JOINs)
    visit_stats  total_visits, last_visited from a per-book aggregate
    computed     visit_stats plus days_since_visit
    catalog      category, isbn, page, kword
    rich         marker only; tags and reviews load in a second pass

Usage:
    books = await (
        BookQueryBuilder(session)
        .include_fields(["purchase"])
        .latest(5)
        .execute()
    )
"""

from collections.abc import Iterable
from datetime import date
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from rsywx.core.exceptions import QueryModeConflictError
from rsywx.core.logging import get_logger
from rsywx.repositories.base import BaseRepository
from rsywx.repositories.sql import (
    Condition,
    QuerySpec,
    render_count,
    render_select,
    valid_location_condition,
)
from rsywx.schemas.book import DEFAULT_COVER_BASE, BookResult

logger = get_logger(__name__)

FIELD_GROUPS = frozenset({"purchase", "visit_stats", "computed", "catalog", "rich"})

CORE_PROJECTION: tuple[tuple[str, str], ...] = (
    ("b.id", "id"),
    ("b.bookid", "bookid"),
    ("b.title", "title"),
    ("b.author", "author"),
    ("b.translated", "translated"),
    ("b.copyrighter", "copyrighter"),
    ("b.region", "region"),
    ("b.location", "location"),
)

_PLACE_JOIN = "LEFT JOIN book_place p ON b.place = p.id"
_PUBLISHER_JOIN = "LEFT JOIN book_publisher pub ON b.publisher = pub.id"
_VISIT_STATS_JOIN = (
    "LEFT JOIN (SELECT bookid, COUNT(*) AS total_visits, "
    "MAX(visitwhen) AS last_visited FROM book_visit GROUP BY bookid) "
    "visit_stats ON b.id = visit_stats.bookid"
)
_TAG_JOIN = "INNER JOIN book_taglist t ON t.bid = b.id"


def _like(value: str) -> str:
    return f"%{value}%"


class BookQueryBuilder(BaseRepository):
    """Assemble, run and map one book query.

    Attributes:
        spec: The query being built
        mode: Name of the configured mode, or None
    """

    def __init__(
        self,
        session: AsyncSession,
        cover_base: str = DEFAULT_COVER_BASE,
        today: date | None = None,
    ) -> None:
        """Initialize the builder.

        Args:
            session: Async database session
            cover_base: Base URL for derived cover URIs
            today: Reference date for year arithmetic (defaults to today)
        """
        super().__init__(session)
        self.cover_base = cover_base
        self.today = today or date.today()
        self.mode: str | None = None
        self.spec = QuerySpec(base_table="book_book b")
        for expr, alias in CORE_PROJECTION:
            self.spec.add_field(expr, alias)

    # -------------------------------------------------------------------------
    # Field groups
    # -------------------------------------------------------------------------

    def include_fields(self, groups: Iterable[str]) -> "BookQueryBuilder":
        """Add optional field groups; repeating a group changes nothing.

        Raises:
            ValueError: If a group name is unknown
        """
        for group in groups:
            if group not in FIELD_GROUPS:
                raise ValueError(
                    f"Unknown field group '{group}'. "
                    f"Allowed: {', '.join(sorted(FIELD_GROUPS))}"
                )
            getattr(self, f"_include_{group}")()
        return self

    def _include_purchase(self) -> None:
        self.spec.add_field("b.purchdate", "purchdate")
        self.spec.add_field("b.price", "price")
        self.spec.add_field("p.name", "place_name")
        self.spec.add_field("pub.name", "publisher_name")
        self.spec.add_join(_PLACE_JOIN)
        self.spec.add_join(_PUBLISHER_JOIN)

    def _include_visit_stats(self) -> None:
        self.spec.add_join(_VISIT_STATS_JOIN)
        self.spec.add_field("COALESCE(visit_stats.total_visits, 0)", "total_visits")
        self.spec.add_field("visit_stats.last_visited", "last_visited")

    def _include_computed(self) -> None:
        self._include_visit_stats()
        self.spec.add_field(
            self.dialect.days_since("visit_stats.last_visited"), "days_since_visit"
        )

    def _include_catalog(self) -> None:
        self.spec.add_field("b.category", "category")
        self.spec.add_field("b.isbn", "isbn")
        self.spec.add_field("b.page", "page")
        self.spec.add_field("b.kword", "kword")

    def _include_rich(self) -> None:
        pass

    # -------------------------------------------------------------------------
    # Modes
    # -------------------------------------------------------------------------

    def _set_mode(self, mode: str) -> None:
        if self.mode is not None:
            raise QueryModeConflictError(current=self.mode, requested=mode)
        self.mode = mode

    def latest(self, count: int = 1) -> "BookQueryBuilder":
        """Most recently purchased books first."""
        self._set_mode("latest")
        self.spec.order_by.extend(["b.purchdate DESC", "b.id DESC"])
        self.spec.limit = int(count)
        return self

    def random(self, count: int = 1) -> "BookQueryBuilder":
        """Books in random order; not reproducible and not paginable."""
        self._set_mode("random")
        self.spec.order_by.append(self.dialect.random_order())
        self.spec.limit = int(count)
        return self

    def last_visited(self, count: int = 1) -> "BookQueryBuilder":
        """Books behind the ``count`` most recent visit events.

        Several of those visits may hit the same book; such repeats collapse
        on execution, so fewer than ``count`` books is a normal outcome.
        """
        self._set_mode("last_visited")
        self.spec.add_join(
            "INNER JOIN (SELECT v.bookid, v.visitwhen, v.country FROM book_visit v "
            f"ORDER BY v.visitwhen DESC LIMIT {int(count)}) recent_visits "
            "ON b.id = recent_visits.bookid"
        )
        self.spec.add_field("recent_visits.visitwhen", "last_visited", replace=True)
        self.spec.add_field("recent_visits.country", "visit_country", replace=True)
        self.spec.order_by.append("recent_visits.visitwhen DESC")
        return self

    def forgotten(self, count: int = 1) -> "BookQueryBuilder":
        """Shelved books whose latest visit is the oldest, oldest first."""
        self._set_mode("forgotten")
        self.spec.add_join(
            "INNER JOIN (SELECT v.bookid, MAX(v.visitwhen) AS last_visited "
            "FROM book_visit v INNER JOIN book_book b2 ON v.bookid = b2.id "
            f"WHERE {valid_location_condition('b2').predicate} "
            "GROUP BY v.bookid ORDER BY last_visited ASC "
            f"LIMIT {int(count)}) forgotten_visits "
            "ON b.id = forgotten_visits.bookid"
        )
        self.spec.add_field("forgotten_visits.last_visited", "last_visited", replace=True)
        self.spec.order_by.append("forgotten_visits.last_visited ASC")
        return self

    def todays_books(self, month: int, day: int) -> "BookQueryBuilder":
        """Books bought on this month/day in earlier years.

        Projects ``years_ago`` as the current year minus the purchase year.
        """
        self._set_mode("todays_books")
        current_year = self.today.year
        purchase_year = self.dialect.year("b.purchdate")
        self.spec.add_condition(
            Condition(
                f"{self.dialect.month_day('b.purchdate')} = ?",
                (f"{int(month):02d}-{int(day):02d}",),
            )
        )
        self.spec.add_condition(Condition(f"{purchase_year} < ?", (current_year,)))
        self.spec.add_field(f"({current_year} - {purchase_year})", "years_ago")
        self.spec.order_by.append("b.purchdate DESC")
        return self

    def by_id(self, book_id: int) -> "BookQueryBuilder":
        """Select one book by internal id."""
        self._set_mode("by_id")
        self.spec.add_condition(Condition("b.id = ?", (int(book_id),)))
        self.spec.limit = 1
        return self

    def by_book_id(self, bookid: str) -> "BookQueryBuilder":
        """Select one book by its public five digit identifier."""
        self._set_mode("by_book_id")
        self.spec.add_condition(Condition("b.bookid = ?", (bookid,)))
        self.spec.limit = 1
        return self

    # -------------------------------------------------------------------------
    # Filters
    # -------------------------------------------------------------------------

    def search_by_author(self, author: str) -> "BookQueryBuilder":
        self.spec.add_condition(Condition("b.author LIKE ?", (_like(author),)))
        return self

    def search_by_title(self, title: str) -> "BookQueryBuilder":
        self.spec.add_condition(Condition("b.title LIKE ?", (_like(title),)))
        return self

    def search_by_tag(self, tag: str) -> "BookQueryBuilder":
        """Books carrying a tag like ``tag``; one row per book."""
        self.spec.add_join(_TAG_JOIN)
        self.spec.add_condition(Condition("t.tag LIKE ?", (_like(tag),)))
        self.spec.distinct = True
        return self

    def search_misc(self, term: str) -> "BookQueryBuilder":
        """Title or author like ``term``."""
        self.spec.add_condition(
            Condition("(b.title LIKE ? OR b.author LIKE ?)", (_like(term), _like(term)))
        )
        return self

    def search_by_book_id(self, bookid: str) -> "BookQueryBuilder":
        self.spec.add_condition(Condition("b.bookid = ?", (bookid,)))
        return self

    def exclude_id(self, book_id: int) -> "BookQueryBuilder":
        self.spec.add_condition(Condition("b.id <> ?", (int(book_id),)))
        return self

    def order_by(self, *expressions: str) -> "BookQueryBuilder":
        self.spec.order_by.extend(expressions)
        return self

    def limit(self, count: int) -> "BookQueryBuilder":
        self.spec.limit = int(count)
        return self

    def paginate(self, page: int, per_page: int) -> "BookQueryBuilder":
        """Limit to one 1-indexed page of ``per_page`` rows."""
        page = max(1, int(page))
        self.spec.limit = int(per_page)
        self.spec.offset = (page - 1) * int(per_page)
        return self

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def sql(self) -> tuple[str, dict[str, Any]]:
        """Rendered SELECT and its bind parameters."""
        return render_select(self.spec)

    async def execute(self) -> list[BookResult]:
        """Run the query and map rows to results.

        Rows repeating an already seen book id are dropped, keeping the
        first occurrence.
        """
        sql, params = self.sql()
        rows = await self.fetch_all(sql, params)

        seen: set[Any] = set()
        books: list[BookResult] = []
        for row in rows:
            if row["id"] in seen:
                continue
            seen.add(row["id"])
            books.append(BookResult.from_row(row, cover_base=self.cover_base))

        logger.debug("books_query_mapped", mode=self.mode, rows=len(rows), books=len(books))
        return books

    async def execute_one(self) -> BookResult | None:
        if self.spec.limit is None:
            self.spec.limit = 1
        books = await self.execute()
        return books[0] if books else None

    async def count(self) -> int:
        """Number of distinct books matching the filters, ignoring LIMIT."""
        sql, params = render_count(self.spec)
        total = await self.fetch_scalar(sql, params)
        return int(total or 0)
