"""Repository package for the library database.

This module exports the base repository, the book query builder and the
model-backed repositories used by the services.
"""

from rsywx.repositories.base import BaseRepository
from rsywx.repositories.book_query import BookQueryBuilder
from rsywx.repositories.collection import CollectionRepository
from rsywx.repositories.daily import DailyRepository
from rsywx.repositories.review import ReviewRepository
from rsywx.repositories.tag import TagRepository
from rsywx.repositories.visit import VisitRepository

__all__ = [
    # Base
    "BaseRepository",
    # Books
    "BookQueryBuilder",
    "TagRepository",
    "VisitRepository",
    "ReviewRepository",
    # Library-wide
    "CollectionRepository",
    "DailyRepository",
]
