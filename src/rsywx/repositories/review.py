"""Reading headlines and reviews.

Only headlines with ``display`` set are public; their reviews are what the
API reports as reviews and readings.
"""

from datetime import date
from typing import Any

from sqlalchemy import func, select

from rsywx.models.activity import Headline, Review
from rsywx.models.book import Book
from rsywx.repositories.base import BaseRepository

PUBLISHED = Headline.display.is_(True)


class ReviewRepository(BaseRepository):
    """Read access to ``book_headline`` and ``book_review``."""

    async def get_reviews_for_book(self, book_id: int) -> list[dict[str, Any]]:
        """Published reviews of one book, newest first."""
        return await self.fetch_all(
            select(Review.id, Review.title, Review.datein, Review.uri, Review.feature)
            .join(Headline, Review.hid == Headline.hid)
            .where(Headline.bid == book_id, PUBLISHED)
            .order_by(Review.datein.desc(), Review.id.desc())
        )

    async def get_latest_readings(self, count: int) -> list[dict[str, Any]]:
        """Most recent published reviews with the reviewed book's identity.

        Returns:
            Rows with title, datein, uri, feature, bookid and book_title
        """
        return await self.fetch_all(
            select(
                Review.title,
                Review.datein,
                Review.uri,
                Review.feature,
                Book.bookid,
                Book.title.label("book_title"),
            )
            .join(Headline, Review.hid == Headline.hid)
            .join(Book, Headline.bid == Book.id)
            .where(PUBLISHED)
            .order_by(Review.datein.desc(), Review.id.desc())
            .limit(int(count))
        )

    async def get_reading_summary(self) -> dict[str, Any]:
        """Counts and date range of published reading activity.

        Returns:
            {"books_read", "reviews_written", "reading_period": {
            "earliest_date", "latest_date", "total_days"}}
        """
        books_read = await self.count(Headline, PUBLISHED)
        reviews_written = await self.fetch_scalar(
            select(func.count(Review.id))
            .join(Headline, Review.hid == Headline.hid)
            .where(PUBLISHED)
        )
        period = await self.fetch_one(
            select(
                func.min(Headline.create_at).label("earliest_date"),
                func.max(Headline.create_at).label("latest_date"),
            ).where(PUBLISHED)
        )

        earliest = period["earliest_date"] if period else None
        latest = period["latest_date"] if period else None
        total_days = 0
        if earliest and latest:
            total_days = (
                date.fromisoformat(str(latest)[:10]) - date.fromisoformat(str(earliest)[:10])
            ).days

        return {
            "books_read": books_read,
            "reviews_written": int(reviews_written or 0),
            "reading_period": {
                "earliest_date": earliest,
                "latest_date": latest,
                "total_days": total_days,
            },
        }
