"""Whole-collection aggregates."""

from sqlalchemy import func, select

from rsywx.models.activity import Visit
from rsywx.models.book import INVALID_LOCATIONS, Book
from rsywx.repositories.base import BaseRepository


class CollectionRepository(BaseRepository):
    """Aggregates over ``book_book`` and ``book_visit``."""

    async def get_status(self) -> dict[str, int]:
        """Book, page and kword totals for shelved books, plus all visits.

        Returns:
            {"total_books", "total_pages", "total_kwords", "total_visits"}
        """
        row = await self.fetch_one(
            select(
                func.count(Book.id).label("total_books"),
                func.coalesce(func.sum(Book.page), 0).label("total_pages"),
                func.coalesce(func.sum(Book.kword), 0).label("total_kwords"),
            ).where(Book.location.not_in(INVALID_LOCATIONS))
        )
        row = row or {}
        return {
            "total_books": int(row.get("total_books") or 0),
            "total_pages": int(row.get("total_pages") or 0),
            "total_kwords": int(row.get("total_kwords") or 0),
            "total_visits": await self.count(Visit),
        }
