"""Tests for the query IR, the SQL renderer and BookQueryBuilder assembly.

These never touch a database; a mocked session reports the dialect.
"""

from datetime import date
from unittest.mock import MagicMock

import pytest

from rsywx.core.exceptions import QueryModeConflictError
from rsywx.repositories.book_query import BookQueryBuilder
from rsywx.repositories.sql import (
    Condition,
    PostgresDialect,
    QuerySpec,
    SqlDialect,
    SqliteDialect,
    get_dialect,
    render_count,
    render_select,
)

# =============================================================================
# Fixtures
# =============================================================================


def session_for(dialect_name: str) -> MagicMock:
    session = MagicMock()
    session.get_bind.return_value.dialect.name = dialect_name
    return session


@pytest.fixture
def mysql_builder() -> BookQueryBuilder:
    return BookQueryBuilder(session_for("mysql"))


@pytest.fixture
def spec() -> QuerySpec:
    spec = QuerySpec(base_table="book_book b")
    spec.add_field("b.id", "id")
    spec.add_field("b.title", "title")
    return spec


# =============================================================================
# IR Tests
# =============================================================================


class TestCondition:
    def test_marker_count_must_match_values(self) -> None:
        with pytest.raises(ValueError):
            Condition("b.title LIKE ?", ())
        with pytest.raises(ValueError):
            Condition("b.id = ?", (1, 2))

    def test_literal_predicate(self) -> None:
        assert Condition("b.instock = 1").values == ()


class TestQuerySpec:
    def test_duplicate_alias_ignored(self, spec: QuerySpec) -> None:
        spec.add_field("b.other_title", "title")
        assert spec.fields == [("b.id", "id"), ("b.title", "title")]

    def test_replace_keeps_position(self, spec: QuerySpec) -> None:
        spec.add_field("b.other_title", "title", replace=True)
        assert spec.fields == [("b.id", "id"), ("b.other_title", "title")]

    def test_join_added_once(self, spec: QuerySpec) -> None:
        spec.add_join("LEFT JOIN book_place p ON b.place = p.id")
        spec.add_join("LEFT JOIN book_place p ON b.place = p.id")
        assert len(spec.joins) == 1


# =============================================================================
# Renderer Tests
# =============================================================================


class TestRenderSelect:
    def test_binds_numbered_in_condition_order(self, spec: QuerySpec) -> None:
        spec.add_condition(Condition("(b.title LIKE ? OR b.author LIKE ?)", ("%a%", "%b%")))
        spec.add_condition(Condition("b.id <> ?", (7,)))

        sql, params = render_select(spec)

        assert "(b.title LIKE :p1 OR b.author LIKE :p2) AND b.id <> :p3" in sql
        assert params == {"p1": "%a%", "p2": "%b%", "p3": 7}

    def test_always_excludes_invalid_locations(self, spec: QuerySpec) -> None:
        sql, _ = render_select(spec)
        assert sql.endswith("WHERE b.location NOT IN ('na', '--')")

    def test_clause_order(self, spec: QuerySpec) -> None:
        spec.add_join("LEFT JOIN book_place p ON b.place = p.id")
        spec.order_by.append("b.purchdate DESC")
        spec.limit = 20
        spec.offset = 40

        sql, _ = render_select(spec)

        assert sql == (
            "SELECT b.id AS id, b.title AS title FROM book_book b "
            "LEFT JOIN book_place p ON b.place = p.id "
            "WHERE b.location NOT IN ('na', '--') "
            "ORDER BY b.purchdate DESC LIMIT 20 OFFSET 40"
        )

    def test_offset_needs_limit(self, spec: QuerySpec) -> None:
        spec.offset = 40
        sql, _ = render_select(spec)
        assert "OFFSET" not in sql

    def test_distinct(self, spec: QuerySpec) -> None:
        spec.distinct = True
        sql, _ = render_select(spec)
        assert sql.startswith("SELECT DISTINCT b.id AS id")

    def test_empty_projection_rejected(self) -> None:
        with pytest.raises(ValueError):
            render_select(QuerySpec(base_table="book_book b"))


class TestRenderCount:
    def test_count_drops_order_and_paging(self, spec: QuerySpec) -> None:
        spec.add_condition(Condition("b.author LIKE ?", ("%曹%",)))
        spec.order_by.append("b.purchdate DESC")
        spec.limit = 5
        spec.offset = 5

        sql, params = render_count(spec)

        assert sql == (
            "SELECT COUNT(DISTINCT b.id) AS total FROM book_book b "
            "WHERE b.author LIKE :p1 AND b.location NOT IN ('na', '--')"
        )
        assert params == {"p1": "%曹%"}


class TestDialects:
    def test_lookup(self) -> None:
        assert isinstance(get_dialect("sqlite"), SqliteDialect)
        assert isinstance(get_dialect("postgresql"), PostgresDialect)
        assert type(get_dialect("mysql")) is SqlDialect
        assert type(get_dialect("mariadb")) is SqlDialect

    def test_unknown_dialect(self) -> None:
        with pytest.raises(ValueError):
            get_dialect("oracle")

    def test_month_day_fragments(self) -> None:
        assert get_dialect("mysql").month_day("b.purchdate") == "DATE_FORMAT(b.purchdate, '%m-%d')"
        assert get_dialect("sqlite").month_day("b.purchdate") == "strftime('%m-%d', b.purchdate)"


# =============================================================================
# Builder Assembly Tests
# =============================================================================


class TestBuilderAssembly:
    def test_core_projection(self, mysql_builder: BookQueryBuilder) -> None:
        sql, params = mysql_builder.sql()
        assert sql.startswith(
            "SELECT b.id AS id, b.bookid AS bookid, b.title AS title, b.author AS author"
        )
        assert params == {}

    def test_purchase_group_adds_left_joins(self, mysql_builder: BookQueryBuilder) -> None:
        sql, _ = mysql_builder.include_fields(["purchase"]).sql()
        assert "p.name AS place_name" in sql
        assert "LEFT JOIN book_place p ON b.place = p.id" in sql
        assert "LEFT JOIN book_publisher pub ON b.publisher = pub.id" in sql

    def test_groups_are_idempotent(self, mysql_builder: BookQueryBuilder) -> None:
        once = BookQueryBuilder(session_for("mysql")).include_fields(["purchase"]).sql()
        twice = mysql_builder.include_fields(["purchase", "purchase"]).sql()
        assert once == twice

    def test_computed_uses_dialect(self) -> None:
        sql, _ = BookQueryBuilder(session_for("mysql")).include_fields(["computed"]).sql()
        assert "DATEDIFF(NOW(), visit_stats.last_visited) AS days_since_visit" in sql

        sql, _ = BookQueryBuilder(session_for("sqlite")).include_fields(["computed"]).sql()
        assert "julianday('now')" in sql

    def test_unknown_group(self, mysql_builder: BookQueryBuilder) -> None:
        with pytest.raises(ValueError):
            mysql_builder.include_fields(["everything"])

    def test_second_mode_rejected(self, mysql_builder: BookQueryBuilder) -> None:
        mysql_builder.latest(5)
        with pytest.raises(QueryModeConflictError):
            mysql_builder.random(5)

    def test_tag_search_is_distinct(self, mysql_builder: BookQueryBuilder) -> None:
        sql, params = mysql_builder.search_by_tag("经典").sql()
        assert sql.startswith("SELECT DISTINCT")
        assert "INNER JOIN book_taglist t ON t.bid = b.id" in sql
        assert params == {"p1": "%经典%"}

    def test_last_visited_overrides_visit_stats_field(
        self, mysql_builder: BookQueryBuilder
    ) -> None:
        """The mode's last_visited replaces the aggregate one, not duplicates it."""
        sql, _ = mysql_builder.include_fields(["visit_stats"]).last_visited(3).sql()
        assert "visit_stats.last_visited AS last_visited" not in sql
        assert "recent_visits.visitwhen AS last_visited" in sql
        assert "LIMIT 3) recent_visits" in sql

    def test_todays_books_binds_month_day_and_year(self) -> None:
        builder = BookQueryBuilder(session_for("mysql"), today=date(2025, 3, 15))
        sql, params = builder.todays_books(2, 29).sql()

        assert "DATE_FORMAT(b.purchdate, '%m-%d') = :p1" in sql
        assert "YEAR(b.purchdate) < :p2" in sql
        assert "(2025 - YEAR(b.purchdate)) AS years_ago" in sql
        assert params == {"p1": "02-29", "p2": 2025}

    def test_paginate(self, mysql_builder: BookQueryBuilder) -> None:
        sql, _ = mysql_builder.paginate(3, 20).sql()
        assert sql.endswith("LIMIT 20 OFFSET 40")

    def test_paginate_clamps_page(self, mysql_builder: BookQueryBuilder) -> None:
        sql, _ = mysql_builder.paginate(0, 20).sql()
        assert sql.endswith("LIMIT 20")
