"""Services package for the library API.

This module exports service classes for business logic.
"""

from rsywx.services.books import BookService
from rsywx.services.cache import (
    CacheService,
    FileCacheBackend,
    MemoryCacheBackend,
    build_cache_backend,
    get_cache_service,
    set_cache_backend,
)
from rsywx.services.discovery import DiscoveryCategory, DiscoveryRanker
from rsywx.services.library import LibraryService

__all__ = [
    # Books
    "BookService",
    "LibraryService",
    # Cache
    "CacheService",
    "FileCacheBackend",
    "MemoryCacheBackend",
    "build_cache_backend",
    "get_cache_service",
    "set_cache_backend",
    # Discovery
    "DiscoveryCategory",
    "DiscoveryRanker",
]
