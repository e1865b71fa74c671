"""CacheService - per-key TTL caching with pluggable backends.

Book metadata barely changes while visit counters move on every page view,
so services cache the slow-changing base record of each operation and
recompute visit data on every call. This module provides the storage half:

- ``MemoryCacheBackend``: bounded in-process TLRU cache, lost on restart
- ``FileCacheBackend``: one JSON file per key, survives restarts
- ``CacheService``: TTL policy table, key builders and fail-open wrappers

Cache Key Types:
    - book_detail:{bookid} - Book detail base record (24h TTL)
    - books_latest:{count} - Latest purchases (24h TTL)
    - books_random:{count} - Random picks (1h TTL)
    - books_last_visited:{count} - Recently viewed (2min TTL)
    - books_forgotten:{count} - Longest unvisited (1h TTL)
    - books_today:{YYYY-MM-DD} - Bought on this day in earlier years (24h TTL)
    - books_list:{type}:{hash}:{page}:{per_page} - Search pages (1h TTL)
    - books_related:{bookid}:{count} - Discovery results (1h TTL)
    - visit_history:{days}:{end_date} - Daily visit counts (1h TTL)
    - collection_status, reading_summary, latest_readings:{count}
    - qotd:{date}, wotd:{date} - Daily picks (24h TTL)

Every key starts with its operation name followed by ":", so all variants of
one operation can be dropped with ``invalidate_prefix``.
"""

import asyncio
import copy
import hashlib
import json
import math
import os
import re
import tempfile
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import date
from pathlib import Path
from typing import Any

import structlog
from cachetools import TLRUCache

from rsywx.config import CacheBackendType, Settings

logger = structlog.get_logger(__name__)

DEFAULT_TTL = 86400  # 24 hours
DEFAULT_MAX_ENTRIES = 10000

Clock = Callable[[], float]


@dataclass
class CacheEntry:
    """A stored value with its lifetime.

    Attributes:
        key: Logical cache key
        value: JSON-serializable payload
        created_at: Unix timestamp of the write
        expires_at: Unix timestamp after which the entry is absent
    """

    key: str
    value: Any
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


def _entry_expiry(key: str, entry: CacheEntry, now: float) -> float:
    # TLRUCache drops an item once now >= its time-to-use; the entry itself
    # stays readable through expires_at.
    return math.nextafter(entry.expires_at, math.inf)


class CacheBackend(ABC):
    """Key-value store with per-entry TTL.

    All backends share the same semantics: ``get`` evicts and misses on an
    expired entry, ``set`` overwrites, ``delete`` is idempotent.
    """

    name: str = "abstract"

    def __init__(self, default_ttl: int = DEFAULT_TTL, clock: Clock | None = None) -> None:
        """Initialize the backend.

        Args:
            default_ttl: TTL in seconds used when ``set`` is given none
            clock: Time source returning Unix seconds (defaults to time.time)
        """
        self.default_ttl = default_ttl
        self.clock = clock or time.time

    def _new_entry(self, key: str, value: Any, ttl: int | None) -> CacheEntry:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError(f"Cache TTL must be positive, got {ttl}")
        now = self.clock()
        return CacheEntry(key=key, value=value, created_at=now, expires_at=now + ttl)

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the cached value, or None if absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Store a value, replacing any existing entry."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove an entry; removing a missing key succeeds."""

    @abstractmethod
    async def clear(self) -> bool:
        """Remove every entry."""

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with ``prefix``.

        Returns:
            Number of entries removed
        """

    @abstractmethod
    async def stats(self) -> dict[str, Any]:
        """Diagnostic summary of the backend."""

    async def has(self, key: str) -> bool:
        return await self.get(key) is not None


class MemoryCacheBackend(CacheBackend):
    """In-process cache on a ``cachetools.TLRUCache``.

    Each stored ``CacheEntry`` carries its own expiry, which the cache reads
    back as the item's time-to-use. Expired entries are swept on every write
    and read, and the least recently used entry goes once ``max_entries`` is
    reached. Values are copied in and out so callers never share state with
    the stored entry.
    """

    name = "memory"

    def __init__(
        self,
        default_ttl: int = DEFAULT_TTL,
        clock: Clock | None = None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        super().__init__(default_ttl, clock)
        self.max_entries = max_entries
        self._entries: TLRUCache = TLRUCache(
            maxsize=max_entries, ttu=_entry_expiry, timer=self.clock
        )

    async def get(self, key: str) -> Any | None:
        self._entries.expire()
        entry = self._entries.get(key)
        if entry is None:
            return None
        return copy.deepcopy(entry.value)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        self._entries[key] = self._new_entry(key, copy.deepcopy(value), ttl)
        return True

    async def delete(self, key: str) -> bool:
        self._entries.pop(key, None)
        return True

    async def clear(self) -> bool:
        self._entries.clear()
        return True

    async def delete_prefix(self, prefix: str) -> int:
        self._entries.expire()
        doomed = [key for key in list(self._entries) if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    async def stats(self) -> dict[str, Any]:
        return {
            "backend": self.name,
            "total_entries": len(self._entries),
            "max_entries": self.max_entries,
        }


class FileCacheBackend(CacheBackend):
    """Cache storing one JSON file per key in a directory.

    File names are the key with unsafe characters replaced by "_", plus a
    short digest of the raw key so "a:b" and "a_b" never share a file.
    """

    name = "file"
    SUFFIX = ".cache"
    _UNSAFE = re.compile(r"[^a-zA-Z0-9_-]")

    def __init__(
        self,
        cache_dir: str | Path,
        default_ttl: int = DEFAULT_TTL,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the backend.

        Args:
            cache_dir: Directory holding cache files (created on first write)
            default_ttl: TTL in seconds used when ``set`` is given none
            clock: Time source returning Unix seconds
        """
        super().__init__(default_ttl, clock)
        self.cache_dir = Path(cache_dir)

    def path_for(self, key: str) -> Path:
        """File path for a logical key."""
        safe = self._UNSAFE.sub("_", key)
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:8]
        return self.cache_dir / f"{safe}-{digest}{self.SUFFIX}"

    def _read(self, path: Path) -> CacheEntry | None:
        if not path.exists():
            return None
        data = json.loads(path.read_text(encoding="utf-8"))
        return CacheEntry(
            key=data["key"],
            value=data["value"],
            created_at=data["created_at"],
            expires_at=data["expires_at"],
        )

    def _write(self, path: Path, entry: CacheEntry) -> None:
        payload = json.dumps(asdict(entry), ensure_ascii=False)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        # Each write gets its own temp file so concurrent writers of one key
        # never share it; the last replace wins.
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=self.cache_dir, suffix=".tmp", delete=False
        ) as tmp:
            tmp.write(payload)
        try:
            os.replace(tmp.name, path)
        except OSError:
            Path(tmp.name).unlink(missing_ok=True)
            raise

    def _files(self) -> list[Path]:
        if not self.cache_dir.is_dir():
            return []
        return list(self.cache_dir.glob(f"*{self.SUFFIX}"))

    async def get(self, key: str) -> Any | None:
        path = self.path_for(key)
        try:
            entry = await asyncio.to_thread(self._read, path)
        except (OSError, ValueError, KeyError) as e:
            logger.warning("cache_file_unreadable", cache_key=key, error=str(e))
            return None
        if entry is None:
            return None
        if entry.is_expired(self.clock()):
            await self.delete(key)
            return None
        return entry.value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        entry = self._new_entry(key, value, ttl)
        try:
            await asyncio.to_thread(self._write, self.path_for(key), entry)
        except (OSError, TypeError) as e:
            logger.warning("cache_file_write_failed", cache_key=key, error=str(e))
            return False
        return True

    async def delete(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self.path_for(key).unlink, missing_ok=True)
        except OSError as e:
            logger.warning("cache_file_delete_failed", cache_key=key, error=str(e))
            return False
        return True

    async def clear(self) -> bool:
        for path in await asyncio.to_thread(self._files):
            await asyncio.to_thread(path.unlink, missing_ok=True)
        return True

    async def delete_prefix(self, prefix: str) -> int:
        removed = 0
        for path in await asyncio.to_thread(self._files):
            try:
                entry = await asyncio.to_thread(self._read, path)
            except (OSError, ValueError, KeyError):
                continue
            if entry is not None and entry.key.startswith(prefix):
                await asyncio.to_thread(path.unlink, missing_ok=True)
                removed += 1
        return removed

    async def stats(self) -> dict[str, Any]:
        files = await asyncio.to_thread(self._files)
        total_size = sum(path.stat().st_size for path in files if path.exists())
        return {
            "backend": self.name,
            "cache_dir": str(self.cache_dir),
            "total_entries": len(files),
            "total_size": total_size,
        }


class CacheService:
    """TTL policy and fail-open access to a cache backend.

    Backend errors are logged and reported as misses or failed writes;
    they never reach callers.

    Usage with FastAPI:
        ```python
        from rsywx.services.cache import CacheService, get_cache_service

        @router.get("/books/latest")
        async def latest(cache: CacheService = Depends(get_cache_service)):
            ...
        ```
    """

    # TTL constants (in seconds)
    TTL_BOOK_DETAIL = 86400  # 24 hours
    TTL_LATEST = 86400  # 24 hours
    TTL_RANDOM = 3600  # 1 hour
    TTL_LAST_VISITED = 120  # 2 minutes
    TTL_FORGOTTEN = 3600  # 1 hour
    TTL_TODAY = 86400  # 24 hours
    TTL_STATUS = 86400  # 24 hours
    TTL_DAILY = 86400  # 24 hours
    TTL_RELATED = 3600  # 1 hour
    TTL_SEARCH = 3600  # 1 hour
    TTL_VISIT_HISTORY = 3600  # 1 hour
    TTL_READING_SUMMARY = 86400  # 24 hours
    TTL_LATEST_READINGS = 7200  # 2 hours

    def __init__(self, backend: CacheBackend) -> None:
        """Initialize the cache service.

        Args:
            backend: Storage backend
        """
        self.backend = backend

    async def get(self, cache_key: str) -> Any | None:
        """Get a cached value, treating any backend failure as a miss."""
        try:
            value = await self.backend.get(cache_key)
        except Exception as e:
            logger.warning("cache_get_failed", cache_key=cache_key, error=str(e))
            return None

        if value is None:
            logger.debug("cache_miss", cache_key=cache_key)
        else:
            logger.debug("cache_hit", cache_key=cache_key)
        return value

    async def set(self, cache_key: str, value: Any, ttl: int | None = None) -> bool:
        """Store a value.

        Args:
            cache_key: Cache key
            value: Data to cache (must be JSON-serializable)
            ttl: TTL in seconds (backend default if None)

        Returns:
            True if stored, False if the backend failed
        """
        try:
            stored = await self.backend.set(cache_key, value, ttl)
            logger.debug("cache_set", cache_key=cache_key, ttl=ttl)
            return stored
        except Exception as e:
            logger.warning("cache_set_failed", cache_key=cache_key, error=str(e))
            return False

    async def has(self, cache_key: str) -> bool:
        return await self.get(cache_key) is not None

    async def invalidate(self, cache_key: str) -> bool:
        """Delete a specific cache key."""
        try:
            deleted = await self.backend.delete(cache_key)
            logger.debug("cache_invalidated", cache_key=cache_key)
            return deleted
        except Exception as e:
            logger.warning("cache_invalidate_failed", cache_key=cache_key, error=str(e))
            return False

    async def invalidate_prefix(self, prefix: str) -> int:
        """Delete all keys starting with ``prefix``.

        Args:
            prefix: Key prefix (e.g., "books_latest:")

        Returns:
            Number of keys deleted
        """
        try:
            count = await self.backend.delete_prefix(prefix)
            logger.debug("cache_prefix_invalidated", prefix=prefix, count=count)
            return count
        except Exception as e:
            logger.warning("cache_prefix_invalidate_failed", prefix=prefix, error=str(e))
            return 0

    async def clear(self) -> bool:
        """Drop every cached entry."""
        try:
            cleared = await self.backend.clear()
            logger.info("cache_cleared", backend=self.backend.name)
            return cleared
        except Exception as e:
            logger.warning("cache_clear_failed", error=str(e))
            return False

    async def stats(self) -> dict[str, Any]:
        try:
            return await self.backend.stats()
        except Exception as e:
            logger.warning("cache_stats_failed", error=str(e))
            return {"backend": self.backend.name}

    # -------------------------------------------------------------------------
    # Cache Key Generators
    # -------------------------------------------------------------------------

    @staticmethod
    def book_detail_key(bookid: str) -> str:
        """Generate cache key for a book detail record.

        Returns:
            Cache key (e.g., "book_detail:00666")
        """
        return f"book_detail:{bookid}"

    @staticmethod
    def latest_key(count: int) -> str:
        return f"books_latest:{count}"

    @staticmethod
    def random_key(count: int) -> str:
        return f"books_random:{count}"

    @staticmethod
    def last_visited_key(count: int) -> str:
        return f"books_last_visited:{count}"

    @staticmethod
    def forgotten_key(count: int) -> str:
        return f"books_forgotten:{count}"

    @staticmethod
    def today_key(year: int, month: int, day: int) -> str:
        """Generate cache key for today-in-history.

        The year is part of the key because ``years_ago`` changes with it.
        Month and day are not checked against the year, so 02-29 is a valid
        key in any year.

        Returns:
            Cache key (e.g., "books_today:2025-02-29")
        """
        return f"books_today:{year:04d}-{month:02d}-{day:02d}"

    @staticmethod
    def list_key(search_type: str, value: str, page: int, per_page: int) -> str:
        """Generate a deterministic cache key for a list/search page.

        Same search = same key = cache hit. The value is normalized
        (lowercase, stripped) and hashed so arbitrary input is key-safe.

        Returns:
            Cache key (e.g., "books_list:title:a3f2b1c4d5e6f7a8:1:20")
        """
        normalized = value.lower().strip()
        hash_digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16]
        return f"books_list:{search_type}:{hash_digest}:{page}:{per_page}"

    @staticmethod
    def list_prefix(search_type: str | None = None) -> str:
        """Prefix of every list page, or of one search type's pages."""
        if search_type is None:
            return "books_list:"
        return f"books_list:{search_type}:"

    @staticmethod
    def related_key(bookid: str, count: int) -> str:
        return f"books_related:{bookid}:{count}"

    @staticmethod
    def related_prefix(bookid: str) -> str:
        return f"books_related:{bookid}:"

    @staticmethod
    def visit_history_key(days: int, end_date: date) -> str:
        return f"visit_history:{days}:{end_date.isoformat()}"

    @staticmethod
    def status_key() -> str:
        return "collection_status"

    @staticmethod
    def reading_summary_key() -> str:
        return "reading_summary"

    @staticmethod
    def latest_readings_key(count: int) -> str:
        return f"latest_readings:{count}"

    @staticmethod
    def qotd_key(day: date) -> str:
        return f"qotd:{day.isoformat()}"

    @staticmethod
    def wotd_key(day: date) -> str:
        return f"wotd:{day.isoformat()}"


def build_cache_backend(settings: Settings) -> CacheBackend:
    """Create the backend selected by ``settings.cache_backend``."""
    if settings.cache_backend == CacheBackendType.MEMORY:
        return MemoryCacheBackend(
            default_ttl=settings.cache_default_ttl,
            max_entries=settings.cache_max_entries,
        )
    return FileCacheBackend(settings.cache_dir, default_ttl=settings.cache_default_ttl)


# Global backend (set during app startup)
_cache_backend: CacheBackend | None = None


def set_cache_backend(backend: CacheBackend | None) -> None:
    """Set the global cache backend during app startup.

    Call this in the FastAPI lifespan:
        ```python
        @asynccontextmanager
        async def lifespan(app: FastAPI):
            set_cache_backend(build_cache_backend(settings))
            yield
            set_cache_backend(None)
        ```
    """
    global _cache_backend
    _cache_backend = backend


def get_cache_service() -> CacheService:
    """FastAPI dependency for CacheService."""
    if _cache_backend is None:
        raise RuntimeError(
            "Cache backend not initialized. Call set_cache_backend first."
        )
    return CacheService(_cache_backend)
