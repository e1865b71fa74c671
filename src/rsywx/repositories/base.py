"""Base repository for reads against the library database.

Repositories wrap an ``AsyncSession`` and run SQLAlchemy 2.0 ``select()``
statements over the mapped models. The book query builder, whose SQL is
assembled at runtime, passes rendered ``text()`` instead. Either way rows
come back as plain dicts whose values are already JSON-safe so they can go
straight into the cache:

- ``date`` / ``datetime`` become ISO strings ("2024-01-15",
  "2024-01-15 08:30:00")
- ``Decimal`` becomes ``float``

Usage:
    from sqlalchemy import select

    from rsywx.models.activity import Tag
    from rsywx.repositories.base import BaseRepository

    class TagRepository(BaseRepository):
        async def get_tags(self, book_id: int) -> list[str]:
            rows = await self.fetch_all(
                select(Tag.tag).where(Tag.bid == book_id).order_by(Tag.tag)
            )
            return [row["tag"] for row in rows]
"""

from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import ColumnElement, Executable, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from rsywx.core.logging import get_logger
from rsywx.models.base import Base
from rsywx.repositories.sql import SqlDialect, get_dialect

logger = get_logger(__name__)

Statement = str | Executable


def normalize_value(value: Any) -> Any:
    """Convert a driver value into something ``json.dumps`` accepts."""
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def normalize_row(row: Mapping[str, Any]) -> dict[str, Any]:
    return {key: normalize_value(value) for key, value in row.items()}


class BaseRepository:
    """Repository providing query helpers over an async session.

    Attributes:
        session: The async database session
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository with a database session.

        Args:
            session: Async database session
        """
        self.session = session
        self._dialect: SqlDialect | None = None

    @property
    def dialect(self) -> SqlDialect:
        """SQL dialect of the database the session is bound to."""
        if self._dialect is None:
            self._dialect = get_dialect(self.session.get_bind().dialect.name)
        return self._dialect

    async def _execute(self, statement: Statement, params: Mapping[str, Any] | None) -> Any:
        if isinstance(statement, str):
            statement = text(statement)
        logger.debug("query_executed", sql=str(statement), params=dict(params or {}))
        if params:
            return await self.session.execute(statement, dict(params))
        return await self.session.execute(statement)

    async def fetch_all(
        self, statement: Statement, params: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Run a SELECT and return every row as a normalized dict.

        Args:
            statement: A ``select()``, a prepared ``text()`` clause, or a SQL
                string with ``:name`` bind parameters
            params: Bind values for ``text()`` statements

        Returns:
            List of rows keyed by column label
        """
        result = await self._execute(statement, params)
        return [normalize_row(row) for row in result.mappings().all()]

    async def fetch_one(
        self, statement: Statement, params: Mapping[str, Any] | None = None
    ) -> dict[str, Any] | None:
        """Run a SELECT and return the first row, or None."""
        rows = await self.fetch_all(statement, params)
        return rows[0] if rows else None

    async def fetch_scalar(
        self, statement: Statement, params: Mapping[str, Any] | None = None
    ) -> Any:
        """Run a SELECT and return the first column of the first row."""
        result = await self._execute(statement, params)
        return normalize_value(result.scalar())

    async def count(self, model: type[Base], *criteria: ColumnElement[bool]) -> int:
        """Count rows of ``model`` matching every criterion.

        Args:
            model: Mapped model class
            criteria: Optional WHERE clauses

        Returns:
            Row count
        """
        query = select(func.count()).select_from(model)
        if criteria:
            query = query.where(*criteria)
        return int(await self.fetch_scalar(query) or 0)
