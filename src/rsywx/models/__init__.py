"""Models package for the library schema.

This module exports the Base class and all model classes so that
``Base.metadata`` knows every table once the package is imported.
"""

from rsywx.models.activity import TAG_MAX_LENGTH, Headline, Review, Tag, Visit
from rsywx.models.base import Base
from rsywx.models.book import INVALID_LOCATIONS, Book, Place, Publisher
from rsywx.models.daily import Quote, Word

__all__ = [
    "Base",
    # Books
    "Book",
    "Place",
    "Publisher",
    "INVALID_LOCATIONS",
    # Activity
    "Tag",
    "Headline",
    "Review",
    "Visit",
    "TAG_MAX_LENGTH",
    # Daily
    "Quote",
    "Word",
]
