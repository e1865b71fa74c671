"""Visit statistics.

Visit data is the volatile part of every book response: it changes on each
page view, so these queries are never cached and always run fresh.
"""

from datetime import date, datetime, time, timedelta
from typing import Any

from sqlalchemy import func, select

from rsywx.models.activity import Visit
from rsywx.repositories.base import BaseRepository


class VisitRepository(BaseRepository):
    """Read access to ``book_visit``."""

    async def get_visit_stats(self, book_id: int) -> dict[str, Any]:
        """Total visits and latest visit time for one book.

        Returns:
            {"total_visits": int, "last_visited": str | None}
        """
        row = await self.fetch_one(
            select(
                func.count(Visit.vid).label("total_visits"),
                func.max(Visit.visitwhen).label("last_visited"),
            ).where(Visit.bookid == book_id)
        )
        return {
            "total_visits": int(row["total_visits"] or 0) if row else 0,
            "last_visited": row["last_visited"] if row else None,
        }

    async def get_visit_stats_many(self, book_ids: list[int]) -> dict[int, dict[str, Any]]:
        """Visit stats for several books in one query.

        Books without visits are present with zero visits.
        """
        stats: dict[int, dict[str, Any]] = {
            book_id: {"total_visits": 0, "last_visited": None} for book_id in book_ids
        }
        if not book_ids:
            return stats

        rows = await self.fetch_all(
            select(
                Visit.bookid,
                func.count(Visit.vid).label("total_visits"),
                func.max(Visit.visitwhen).label("last_visited"),
            )
            .where(Visit.bookid.in_(list(stats)))
            .group_by(Visit.bookid)
        )
        for row in rows:
            stats[int(row["bookid"])] = {
                "total_visits": int(row["total_visits"]),
                "last_visited": row["last_visited"],
            }
        return stats

    async def get_daily_counts(self, start: date, end: date) -> dict[str, int]:
        """Visits per calendar day in ``[start, end]``.

        Days without visits are absent from the result.

        Returns:
            Mapping of ISO date to visit count
        """
        day = func.date(Visit.visitwhen)
        rows = await self.fetch_all(
            select(day.label("day"), func.count(Visit.vid).label("visits"))
            .where(
                Visit.visitwhen >= datetime.combine(start, time.min),
                Visit.visitwhen < datetime.combine(end + timedelta(days=1), time.min),
            )
            .group_by(day)
        )
        return {str(row["day"]): int(row["visits"]) for row in rows}
