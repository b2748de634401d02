"""
Live-search result cache.

Results are keyed by ``(program, from, to, depart, seats)`` and expire a fixed
time after insertion. Expired entries are not swept; they are dropped the
next time the same key is read.

Storage is pluggable: an in-memory dict for a single process, or SQLite so
that several processes share one cache under the same key format.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .config import get_config
from .types import Clock
from .utils import to_date

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 30 * 60


def generate_cache_key(
    program: str,
    from_iata: str,
    to_iata: str,
    depart: Union[str, date, datetime],
    seats: int,
) -> str:
    """
    Build the cache key for one live-search lookup.

    Program and airport codes are upper-cased so callers share entries
    regardless of case.

    Examples:
        >>> generate_cache_key("as", "sea", "NRT", "2024-05-01", 2)
        'live-search:AS:SEA:NRT:2024-05-01:2'
    """
    depart_iso = to_date(depart).isoformat()
    return f"live-search:{program.upper()}:{from_iata.upper()}:{to_iata.upper()}:{depart_iso}:{seats}"


# ============================================================================
# Storage Backends
# ============================================================================

@dataclass(frozen=True)
class CacheEntry:
    """A cached value and the time it was stored."""
    data: Any
    timestamp: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.timestamp < self.ttl


class CacheStorageBackend(ABC):
    """Abstract base class for cache storage backends."""

    @abstractmethod
    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """Return the stored entry, expired or not."""
        pass

    @abstractmethod
    def set_entry(self, key: str, entry: CacheEntry) -> None:
        """Store an entry, replacing any existing one."""
        pass

    @abstractmethod
    def delete_entry(self, key: str) -> bool:
        """Delete an entry. Returns True if it existed."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry."""
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass


class InMemoryCacheStorage(CacheStorageBackend):
    """Process-local dict storage."""

    def __init__(self):
        self._store: Dict[str, CacheEntry] = {}

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        return self._store.get(key)

    def set_entry(self, key: str, entry: CacheEntry) -> None:
        self._store[key] = entry

    def delete_entry(self, key: str) -> bool:
        return self._store.pop(key, None) is not None

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


class SQLiteCacheStorage(CacheStorageBackend):
    """SQLite-based cache storage; values are stored as JSON."""

    def __init__(self, db_path: Union[str, Path] = "live_search_cache.db"):
        """
        Initialize SQLite storage.

        Args:
            db_path: Path to the SQLite database file.
                     Use ":memory:" for in-memory database.
        """
        self.db_path = str(db_path)
        self._local = threading.local()
        self._init_database()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "connection") or self._local.connection is None:
            self._local.connection = sqlite3.connect(self.db_path)
            self._local.connection.row_factory = sqlite3.Row
        return self._local.connection

    @contextmanager
    def _cursor(self):
        """Context manager for database cursor with auto-commit."""
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()

    def _init_database(self):
        with self._cursor() as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS live_search_cache (
                    cache_key TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    stored_at REAL NOT NULL,
                    ttl REAL NOT NULL
                )
            """)

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT data, stored_at, ttl FROM live_search_cache WHERE cache_key = ?",
                (key,),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return CacheEntry(data=json.loads(row["data"]), timestamp=row["stored_at"], ttl=row["ttl"])

    def set_entry(self, key: str, entry: CacheEntry) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT OR REPLACE INTO live_search_cache (cache_key, data, stored_at, ttl)
                VALUES (?, ?, ?, ?)
                """,
                (key, json.dumps(entry.data), entry.timestamp, entry.ttl),
            )

    def delete_entry(self, key: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM live_search_cache WHERE cache_key = ?", (key,))
            return cursor.rowcount > 0

    def clear(self) -> None:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM live_search_cache")

    def __len__(self) -> int:
        with self._cursor() as cursor:
            cursor.execute("SELECT COUNT(*) FROM live_search_cache")
            return cursor.fetchone()[0]

    def close(self) -> None:
        """Close the current thread's connection."""
        if getattr(self._local, "connection", None) is not None:
            self._local.connection.close()
            self._local.connection = None


# ============================================================================
# Cache Service
# ============================================================================

class LiveSearchCache:
    """
    TTL cache for live-search responses.

    Args:
        storage: Storage backend (default: in-memory)
        ttl_seconds: Entry lifetime (default: from config)
        clock: Time source in epoch seconds (default: time.time)
    """

    def __init__(
        self,
        storage: Optional[CacheStorageBackend] = None,
        ttl_seconds: Optional[float] = None,
        clock: Optional[Clock] = None,
    ):
        self.storage = storage if storage is not None else InMemoryCacheStorage()
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else get_config().cache_ttl_seconds
        self.clock = clock or time.time

    def get(self, key: str) -> Optional[Any]:
        entry = self.storage.get_entry(key)
        if entry is None:
            return None
        if entry.is_valid(self.clock()):
            logger.debug(f"Cache hit for: {key}")
            return entry.data
        logger.debug(f"Cache expired for: {key}")
        self.storage.delete_entry(key)
        return None

    def set(self, key: str, data: Any) -> None:
        self.storage.set_entry(key, CacheEntry(data=data, timestamp=self.clock(), ttl=self.ttl_seconds))
        logger.debug(f"Cached result for: {key}")

    def expire(self, key: str) -> bool:
        """Drop an entry now. Returns True if one was stored."""
        return self.storage.delete_entry(key)

    def clear(self) -> None:
        self.storage.clear()

    def __len__(self) -> int:
        return len(self.storage)


# Global cache instance
_cache: Optional[LiveSearchCache] = None
_cache_lock = threading.Lock()


def get_live_search_cache() -> LiveSearchCache:
    """
    Get the process-wide cache, creating it from configuration on first call.
    """
    global _cache

    if _cache is None:
        with _cache_lock:
            if _cache is None:
                config = get_config()
                if config.cache_backend == "sqlite":
                    storage: CacheStorageBackend = SQLiteCacheStorage(config.cache_db_path)
                else:
                    storage = InMemoryCacheStorage()
                _cache = LiveSearchCache(storage, ttl_seconds=config.cache_ttl_seconds)

    return _cache


def reset_live_search_cache() -> None:
    global _cache

    with _cache_lock:
        _cache = None


__all__ = [
    "CACHE_TTL_SECONDS",
    "generate_cache_key",
    "CacheEntry",
    "CacheStorageBackend",
    "InMemoryCacheStorage",
    "SQLiteCacheStorage",
    "LiveSearchCache",
    "get_live_search_cache",
    "reset_live_search_cache",
]
