"""Intermediate representation and renderer for hand-assembled book queries.

The book queries are too dynamic for a fixed statement and too reliant on
derived tables for the ORM expression language to read well, so they are
described as a ``QuerySpec`` and rendered once into a ``text()``-ready
string plus a dict of named bind parameters.

Predicates are written with ``?`` markers, one per bound value. The renderer
rewrites them to ``:p1, :p2 ...`` in the order conditions were added, so a
condition may carry zero, one or several values.

Usage:
    spec = QuerySpec(base_table="book_book b")
    spec.add_field("b.id", "id")
    spec.add_condition(Condition("b.bookid = ?", ("00666",)))
    sql, params = render_select(spec)
"""

from dataclasses import dataclass, field
from typing import Any

from rsywx.models.book import INVALID_LOCATIONS

BIND_MARKER = "?"


@dataclass(frozen=True)
class Condition:
    """A WHERE predicate and the values bound to its ``?`` markers."""

    predicate: str
    values: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        markers = self.predicate.count(BIND_MARKER)
        if markers != len(self.values):
            raise ValueError(
                f"Predicate {self.predicate!r} has {markers} bind markers "
                f"but {len(self.values)} values"
            )


@dataclass
class QuerySpec:
    """Mutable description of one SELECT over the book table.

    Attributes:
        base_table: Table expression after FROM, including its alias
        fields: Ordered (expression, alias) projections, unique by alias
        joins: Ordered join clauses, each appearing once
        conditions: Predicates combined with AND
        order_by: ORDER BY expressions
        limit: Row limit, or None for all rows
        offset: Rows to skip, only rendered together with a limit
        distinct: Whether to render SELECT DISTINCT
    """

    base_table: str
    fields: list[tuple[str, str]] = field(default_factory=list)
    joins: list[str] = field(default_factory=list)
    conditions: list[Condition] = field(default_factory=list)
    order_by: list[str] = field(default_factory=list)
    limit: int | None = None
    offset: int | None = None
    distinct: bool = False

    def add_field(self, expr: str, alias: str, *, replace: bool = False) -> None:
        """Project ``expr AS alias``.

        A second field with an alias already projected is ignored unless
        ``replace`` is set, in which case it takes the original's position.
        """
        for index, (_, existing) in enumerate(self.fields):
            if existing == alias:
                if replace:
                    self.fields[index] = (expr, alias)
                return
        self.fields.append((expr, alias))

    def add_join(self, clause: str) -> None:
        if clause not in self.joins:
            self.joins.append(clause)

    def add_condition(self, condition: Condition) -> None:
        self.conditions.append(condition)

    def has_field(self, alias: str) -> bool:
        return any(existing == alias for _, existing in self.fields)


class SqlDialect:
    """SQL fragments that differ between database backends.

    The default implementation speaks MySQL, the library's home database.
    """

    name = "mysql"

    def month_day(self, column: str) -> str:
        """Zero-padded "MM-DD" of a date column."""
        return f"DATE_FORMAT({column}, '%m-%d')"

    def year(self, column: str) -> str:
        return f"YEAR({column})"

    def random_order(self) -> str:
        return "RAND()"

    def days_since(self, column: str) -> str:
        """Whole days between a timestamp column and now."""
        return f"DATEDIFF(NOW(), {column})"


class SqliteDialect(SqlDialect):
    name = "sqlite"

    def month_day(self, column: str) -> str:
        return f"strftime('%m-%d', {column})"

    def year(self, column: str) -> str:
        return f"CAST(strftime('%Y', {column}) AS INTEGER)"

    def random_order(self) -> str:
        return "RANDOM()"

    def days_since(self, column: str) -> str:
        return f"CAST(julianday('now') - julianday({column}) AS INTEGER)"


class PostgresDialect(SqlDialect):
    name = "postgresql"

    def month_day(self, column: str) -> str:
        return f"to_char({column}, 'MM-DD')"

    def year(self, column: str) -> str:
        return f"CAST(EXTRACT(YEAR FROM {column}) AS INTEGER)"

    def random_order(self) -> str:
        return "RANDOM()"

    def days_since(self, column: str) -> str:
        return f"(CURRENT_DATE - CAST({column} AS DATE))"


_DIALECTS: dict[str, SqlDialect] = {
    "mysql": SqlDialect(),
    "mariadb": SqlDialect(),
    "sqlite": SqliteDialect(),
    "postgresql": PostgresDialect(),
}


def get_dialect(name: str) -> SqlDialect:
    """Look up the SQL dialect for a SQLAlchemy dialect name.

    Raises:
        ValueError: If the backend is not supported
    """
    try:
        return _DIALECTS[name]
    except KeyError:
        raise ValueError(f"Unsupported database dialect: {name}") from None


def valid_location_condition(alias: str = "b") -> Condition:
    """Predicate excluding books that are not on the shelf."""
    locations = ", ".join(f"'{loc}'" for loc in INVALID_LOCATIONS)
    return Condition(f"{alias}.location NOT IN ({locations})")


def _bind(conditions: list[Condition]) -> tuple[str, dict[str, Any]]:
    """Render AND-ed predicates with ``?`` rewritten to numbered binds."""
    params: dict[str, Any] = {}
    rendered: list[str] = []

    for condition in conditions:
        pieces = condition.predicate.split(BIND_MARKER)
        out = [pieces[0]]
        for value, rest in zip(condition.values, pieces[1:], strict=True):
            name = f"p{len(params) + 1}"
            params[name] = value
            out.append(f":{name}")
            out.append(rest)
        rendered.append("".join(out))

    return " AND ".join(rendered), params


def _from_where(spec: QuerySpec) -> tuple[str, dict[str, Any]]:
    conditions = [*spec.conditions, valid_location_condition()]
    where, params = _bind(conditions)

    parts = [f"FROM {spec.base_table}"]
    parts.extend(spec.joins)
    parts.append(f"WHERE {where}")
    return " ".join(parts), params


def render_select(spec: QuerySpec) -> tuple[str, dict[str, Any]]:
    """Render the full SELECT for a query spec.

    Args:
        spec: Query description

    Returns:
        Tuple of (sql, params) ready for ``session.execute(text(sql), params)``

    Raises:
        ValueError: If the query projects no fields
    """
    if not spec.fields:
        raise ValueError("A query must project at least one field")

    select = "SELECT DISTINCT" if spec.distinct else "SELECT"
    projection = ", ".join(f"{expr} AS {alias}" for expr, alias in spec.fields)
    body, params = _from_where(spec)

    sql = f"{select} {projection} {body}"
    if spec.order_by:
        sql += " ORDER BY " + ", ".join(spec.order_by)
    if spec.limit is not None:
        sql += f" LIMIT {int(spec.limit)}"
        if spec.offset:
            sql += f" OFFSET {int(spec.offset)}"

    return sql, params


def render_count(spec: QuerySpec) -> tuple[str, dict[str, Any]]:
    """Render a distinct-book COUNT sharing the query's joins and conditions.

    Ordering and pagination are dropped so the count covers every match.
    """
    body, params = _from_where(spec)
    return f"SELECT COUNT(DISTINCT b.id) AS total {body}", params
