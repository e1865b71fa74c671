"""Integration tests for BookQueryBuilder against the seeded SQLite library.

Seeded shelf (purchase date, newest first):
    00674 2025-03-15, 00670 2025-03-01, 00666 2024-05-01, 00673 2024-02-29,
    00669 2023-03-15, 00667 2020-02-29, 00668 2016-02-29
Off the shelf: 00671 ("na"), 00672 ("--")
"""

from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from rsywx.core.exceptions import QueryModeConflictError
from rsywx.repositories.book_query import BookQueryBuilder

SHELVED_NEWEST_FIRST = ["00674", "00670", "00666", "00673", "00669", "00667", "00668"]


@pytest.fixture
def builder(db_session: AsyncSession, today: date) -> BookQueryBuilder:
    return BookQueryBuilder(db_session, cover_base="https://covers.test/covers", today=today)


def bookids(books) -> list[str]:
    return [book.bookid for book in books]


# =============================================================================
# Modes
# =============================================================================


class TestLatest:
    @pytest.mark.asyncio
    async def test_newest_purchases_first(self, builder: BookQueryBuilder) -> None:
        books = await builder.include_fields(["purchase"]).latest(3).execute()

        assert bookids(books) == SHELVED_NEWEST_FIRST[:3]
        assert books[0].purchdate == "2025-03-15"
        assert books[0].place_name == "上海书城"
        assert books[0].cover_uri == "https://covers.test/covers/00674.jpg"

    @pytest.mark.asyncio
    async def test_off_shelf_books_excluded(self, builder: BookQueryBuilder) -> None:
        books = await builder.latest(50).execute()
        assert bookids(books) == SHELVED_NEWEST_FIRST

    @pytest.mark.asyncio
    async def test_latest_leaves_visit_fields_out(self, builder: BookQueryBuilder) -> None:
        books = await builder.include_fields(["purchase"]).latest(1).execute()
        data = books[0].to_dict()
        assert "total_visits" not in data
        assert data["publisher_name"] == "人民文学出版社"


class TestRandom:
    @pytest.mark.asyncio
    async def test_returns_distinct_shelved_books(self, builder: BookQueryBuilder) -> None:
        books = await builder.random(4).execute()
        ids = bookids(books)
        assert len(ids) == len(set(ids)) == 4
        assert set(ids) <= set(SHELVED_NEWEST_FIRST)


class TestLastVisited:
    @pytest.mark.asyncio
    async def test_repeat_visits_collapse(self, builder: BookQueryBuilder) -> None:
        """The three newest visits hit only two books."""
        books = await builder.last_visited(3).execute()

        assert bookids(books) == ["00666", "00669"]
        assert books[0].last_visited.startswith("2025-03-15 12:00:00")
        assert books[0].visit_country == "中国"

    @pytest.mark.asyncio
    async def test_non_increasing_timestamps(self, builder: BookQueryBuilder) -> None:
        books = await builder.last_visited(20).execute()
        stamps = [book.last_visited for book in books]

        assert stamps == sorted(stamps, reverse=True)
        assert "00671" not in bookids(books)


class TestForgotten:
    @pytest.mark.asyncio
    async def test_oldest_visit_first(self, builder: BookQueryBuilder) -> None:
        books = await builder.include_fields(["computed"]).forgotten(3).execute()

        assert bookids(books) == ["00668", "00673", "00667"]
        assert books[0].last_visited.startswith("2024-06-01 08:00:00")
        assert books[0].days_since_visit is not None

    @pytest.mark.asyncio
    async def test_non_decreasing_timestamps(self, builder: BookQueryBuilder) -> None:
        """Off-shelf books with older visits never take a slot."""
        books = await builder.forgotten(10).execute()
        stamps = [book.last_visited for book in books]

        assert stamps == sorted(stamps)
        assert bookids(books) == ["00668", "00673", "00667", "00669", "00666"]


class TestTodaysBooks:
    @pytest.mark.asyncio
    async def test_leap_day(self, builder: BookQueryBuilder, today: date) -> None:
        """Only 02-29 purchases from earlier years, with their age in years."""
        books = await builder.include_fields(["purchase"]).todays_books(2, 29).execute()

        assert bookids(books) == ["00673", "00667", "00668"]
        for book in books:
            assert book.purchdate[5:] == "02-29"
            assert int(book.purchdate[:4]) < today.year
            assert book.years_ago == today.year - int(book.purchdate[:4])

    @pytest.mark.asyncio
    async def test_current_year_excluded(self, builder: BookQueryBuilder) -> None:
        """00674 was bought today and 00672 is off the shelf."""
        books = await builder.include_fields(["purchase"]).todays_books(3, 15).execute()

        assert bookids(books) == ["00669"]
        assert books[0].years_ago == 2


class TestLookups:
    @pytest.mark.asyncio
    async def test_by_book_id(self, builder: BookQueryBuilder) -> None:
        book = await builder.include_fields(["catalog"]).by_book_id("00666").execute_one()

        assert book is not None
        assert book.id == 1
        assert book.category == "I242.4"
        assert book.page == 1600

    @pytest.mark.asyncio
    async def test_by_id(self, builder: BookQueryBuilder) -> None:
        book = await builder.by_id(4).execute_one()
        assert book is not None
        assert book.bookid == "00669"
        assert book.translated is True
        assert book.copyrighter == "草婴"

    @pytest.mark.asyncio
    async def test_off_shelf_lookup_is_absent(self, builder: BookQueryBuilder) -> None:
        assert await builder.by_book_id("00671").execute_one() is None

    @pytest.mark.asyncio
    async def test_visit_stats_group(self, builder: BookQueryBuilder) -> None:
        book = await builder.include_fields(["visit_stats"]).by_book_id("00670").execute_one()

        assert book is not None
        data = book.to_dict()
        assert data["total_visits"] == 0
        assert data["last_visited"] is None


# =============================================================================
# Filters and counting
# =============================================================================


class TestSearchAndCount:
    @pytest.mark.asyncio
    async def test_author(self, builder: BookQueryBuilder) -> None:
        books = await builder.search_by_author("托尔斯泰").order_by("b.purchdate DESC").execute()
        assert bookids(books) == ["00670", "00669"]

    @pytest.mark.asyncio
    async def test_tag_one_row_per_book(self, builder: BookQueryBuilder) -> None:
        books = await (
            builder.include_fields(["purchase"])
            .search_by_tag("经典")
            .order_by("b.purchdate DESC", "b.id DESC")
            .execute()
        )
        assert bookids(books) == ["00666", "00669", "00667", "00668"]

    @pytest.mark.asyncio
    async def test_misc_matches_title_or_author(self, db_session, today) -> None:
        by_title = await BookQueryBuilder(db_session, today=today).search_misc("红楼").execute()
        by_author = await BookQueryBuilder(db_session, today=today).search_misc("钱钟书").execute()

        assert bookids(by_title) == ["00666"]
        assert bookids(by_author) == ["00674"]

    @pytest.mark.asyncio
    async def test_count_matches_unlimited_execute(self, db_session, today) -> None:
        filtered = BookQueryBuilder(db_session, today=today).search_by_tag("小说")
        total = await filtered.count()
        books = await filtered.execute()

        assert total == len(books) == 5

    @pytest.mark.asyncio
    async def test_count_ignores_limit(self, db_session, today) -> None:
        filtered = BookQueryBuilder(db_session, today=today).search_by_title("").paginate(1, 2)

        assert await filtered.count() == 7
        assert len(await filtered.execute()) == 2

    @pytest.mark.asyncio
    async def test_exclude_id(self, builder: BookQueryBuilder) -> None:
        books = await builder.exclude_id(1).latest(50).execute()
        assert "00666" not in bookids(books)
        assert len(books) == 6

    @pytest.mark.asyncio
    async def test_second_mode_rejected(self, builder: BookQueryBuilder) -> None:
        builder.latest(1)
        with pytest.raises(QueryModeConflictError):
            builder.forgotten(1)
