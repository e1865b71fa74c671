"""Book response entity and related schemas.

``BookResult`` is the shape every book-returning operation produces. Which
optional fields show up depends on the query that built it: a "latest"
listing never touches visit data, so ``total_visits`` is left out of its
output entirely, while a detail view that found zero visits still reports
``last_visited: null``.

The rule, applied by ``BookResult.to_dict``: a field is emitted when it is
a core field, was explicitly provided at construction, or holds a value.
"""

from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, model_validator

logger = structlog.get_logger(__name__)

DEFAULT_COVER_BASE = "https://api.rsywx.com/covers"

CORE_FIELDS: tuple[str, ...] = (
    "id",
    "bookid",
    "title",
    "author",
    "cover_uri",
    "translated",
    "copyrighter",
    "region",
    "location",
)

PURCHASE_FIELDS: tuple[str, ...] = ("purchdate", "price", "place_name", "publisher_name")
VISIT_FIELDS: tuple[str, ...] = ("total_visits", "last_visited", "visit_country")
COMPUTED_FIELDS: tuple[str, ...] = ("days_since_visit", "years_ago")
CATALOG_FIELDS: tuple[str, ...] = ("category", "isbn", "page", "kword")
RICH_FIELDS: tuple[str, ...] = ("tags", "reviews")

OUTPUT_ORDER: tuple[str, ...] = (
    CORE_FIELDS
    + PURCHASE_FIELDS
    + VISIT_FIELDS
    + COMPUTED_FIELDS
    + CATALOG_FIELDS
    + RICH_FIELDS
)


def cover_uri_for(bookid: str, cover_base: str = DEFAULT_COVER_BASE) -> str:
    """Cover image URI for a book, e.g. ".../covers/00666.jpg"."""
    return f"{cover_base.rstrip('/')}/{bookid}.jpg"


class Review(BaseModel):
    """A published review of a book.

    Attributes:
        id: Review id
        title: Review article title
        datein: Publication date (ISO string)
        uri: Link to the article
        feature: Feature image URI, if any
    """

    model_config = ConfigDict(extra="ignore")

    id: int
    title: str
    datein: str | None = None
    uri: str | None = None
    feature: str | None = None


class BookResult(BaseModel):
    """A book as returned by the API.

    Construct through ``from_row`` for database rows, or directly; either
    way ``model_fields_set`` records what the caller provided and
    ``cover_uri`` is always derived from ``bookid``.
    """

    model_config = ConfigDict(extra="ignore")

    # Core
    id: int | None = None
    bookid: str | None = None
    title: str | None = None
    author: str | None = None
    cover_uri: str | None = None
    translated: bool | None = None
    copyrighter: str | None = None
    region: str | None = None
    location: str | None = None

    # Purchase
    purchdate: str | None = None
    price: float | None = None
    place_name: str | None = None
    publisher_name: str | None = None

    # Visits
    total_visits: int | None = None
    last_visited: str | None = None
    visit_country: str | None = None

    # Computed
    days_since_visit: int | None = None
    years_ago: int | None = None

    # Catalog
    category: str | None = None
    isbn: str | None = None
    page: int | None = None
    kword: int | None = None

    # Rich content, loaded in a second pass
    tags: list[str] | None = None
    reviews: list[Review] | None = Field(default=None)

    @model_validator(mode="after")
    def derive_cover_uri(self, info: ValidationInfo) -> "BookResult":
        if self.bookid:
            cover_base = DEFAULT_COVER_BASE
            if info.context:
                cover_base = info.context.get("cover_base", DEFAULT_COVER_BASE)
            self.cover_uri = cover_uri_for(self.bookid, cover_base)
            self.model_fields_set.add("cover_uri")
        return self

    @classmethod
    def from_row(
        cls, row: dict[str, Any], cover_base: str = DEFAULT_COVER_BASE
    ) -> "BookResult":
        """Build a result from a database row keyed by column label.

        Columns that are not result fields are ignored; every known column
        present in the row counts as explicitly set, even when NULL.

        Args:
            row: Row mapping (values already JSON-normalized)
            cover_base: Base URL for the derived cover URI

        Returns:
            BookResult instance
        """
        data = {key: value for key, value in row.items() if key in cls.model_fields}
        if not data.get("bookid"):
            # cover_uri cannot be derived and serializes as null
            logger.warning("book_row_without_bookid", book_id=data.get("id"))
        return cls.model_validate(data, context={"cover_base": cover_base})

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-ready dict.

        Core fields are always present. Optional fields appear if they were
        explicitly set (even to None) or carry a value.
        """
        explicit = self.model_fields_set
        out: dict[str, Any] = {}
        for name in OUTPUT_ORDER:
            value = getattr(self, name)
            if name in CORE_FIELDS or name in explicit or value is not None:
                if name == "reviews" and value is not None:
                    value = [review.model_dump() for review in value]
                out[name] = value
        return out
