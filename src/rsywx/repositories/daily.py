"""Quote of the day and word of the day.

A date always selects the same row: the row at offset
``date.toordinal() % row_count`` in id order. Consecutive days walk through
the table and wrap around.
"""

from datetime import date
from typing import Any

from sqlalchemy import select

from rsywx.models.daily import Quote, Word
from rsywx.repositories.base import BaseRepository


class DailyRepository(BaseRepository):
    """Deterministic per-date picks from ``qotd`` and ``wotd``."""

    async def _pick(self, model: type[Quote] | type[Word], day: date) -> dict[str, Any] | None:
        total = await self.count(model)
        if total == 0:
            return None
        return await self.fetch_one(
            select(*model.__table__.columns)
            .order_by(model.id)
            .limit(1)
            .offset(day.toordinal() % total)
        )

    async def get_quote_for_date(self, day: date) -> dict[str, Any] | None:
        """The quote for ``day``, or None if there are no quotes."""
        return await self._pick(Quote, day)

    async def get_word_for_date(self, day: date) -> dict[str, Any] | None:
        """The word for ``day``, or None if there are no words."""
        return await self._pick(Word, day)
