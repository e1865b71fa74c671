"""Tests for BookResult construction and serialization."""

import pytest
from structlog.testing import capture_logs

from rsywx.schemas.book import (
    CORE_FIELDS,
    DEFAULT_COVER_BASE,
    BookResult,
    cover_uri_for,
)

# =============================================================================
# Cover URI
# =============================================================================


class TestCoverUri:
    """The cover URI is a pure function of bookid."""

    @pytest.mark.parametrize(
        "row",
        [
            {"bookid": "00666"},
            {"bookid": "00666", "title": "红楼梦", "total_visits": 3},
            {"bookid": "00666", "cover_uri": "https://elsewhere.test/x.png"},
        ],
    )
    def test_derived_from_bookid_only(self, row: dict) -> None:
        book = BookResult.from_row(row)
        assert book.cover_uri == f"{DEFAULT_COVER_BASE}/00666.jpg"

    def test_custom_base(self) -> None:
        book = BookResult.from_row({"bookid": "00001"}, cover_base="https://c.test/covers/")
        assert book.cover_uri == "https://c.test/covers/00001.jpg"

    def test_direct_construction_uses_default_base(self) -> None:
        assert BookResult(bookid="00666").cover_uri == cover_uri_for("00666")

    def test_no_bookid_no_cover(self) -> None:
        assert BookResult().cover_uri is None

    def test_row_without_bookid_is_logged(self) -> None:
        with capture_logs() as logs:
            book = BookResult.from_row({"id": 42, "title": "无名"})

        assert book.cover_uri is None
        assert logs == [
            {"event": "book_row_without_bookid", "book_id": 42, "log_level": "warning"}
        ]

    def test_row_with_bookid_logs_nothing(self) -> None:
        with capture_logs() as logs:
            BookResult.from_row({"id": 1, "bookid": "00666"})
        assert logs == []


# =============================================================================
# Serialization
# =============================================================================


class TestToDict:
    """Which fields appear in the serialized form."""

    def test_core_fields_always_present(self) -> None:
        """Even a bare result serializes all nine core fields."""
        data = BookResult().to_dict()
        assert tuple(data) == CORE_FIELDS
        assert len(data) == 9

    def test_unset_optional_fields_omitted(self) -> None:
        data = BookResult.from_row({"id": 1, "bookid": "00666", "title": "红楼梦"}).to_dict()
        assert "total_visits" not in data
        assert "purchdate" not in data

    def test_explicit_none_kept(self) -> None:
        """A field the query selected stays in the output even when NULL."""
        data = BookResult.from_row(
            {"id": 1, "bookid": "00666", "last_visited": None, "total_visits": 0}
        ).to_dict()
        assert data["last_visited"] is None
        assert data["total_visits"] == 0

    def test_unknown_columns_ignored(self) -> None:
        data = BookResult.from_row({"id": 1, "bookid": "00666", "rank_score": 9}).to_dict()
        assert "rank_score" not in data

    def test_output_order_groups_fields(self) -> None:
        book = BookResult.from_row(
            {
                "id": 1,
                "bookid": "00666",
                "kword": 1000,
                "total_visits": 3,
                "purchdate": "2024-05-01",
            }
        )
        keys = list(book.to_dict())
        assert keys.index("purchdate") < keys.index("total_visits") < keys.index("kword")

    def test_reviews_serialized_as_dicts(self) -> None:
        book = BookResult(
            bookid="00666",
            tags=["文学"],
            reviews=[{"id": 1, "title": "读红楼梦", "datein": "2024-06-10", "uri": "u"}],
        )
        data = book.to_dict()
        assert data["tags"] == ["文学"]
        assert data["reviews"] == [
            {"id": 1, "title": "读红楼梦", "datein": "2024-06-10", "uri": "u", "feature": None}
        ]

    def test_translated_coerced_from_int(self) -> None:
        """Database booleans arrive as 0/1."""
        assert BookResult.from_row({"bookid": "00669", "translated": 1}).translated is True
