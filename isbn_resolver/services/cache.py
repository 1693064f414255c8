import copy
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from isbn_resolver.models import LookupResult

logger = logging.getLogger("isbn_resolver.cache")


@dataclass
class _CacheEntry:
    result: LookupResult
    stored_at: float
    expires_at: Optional[float] = None


class LookupCache:
    """A bounded in-memory LRU cache of lookup outcomes.

    Designed to keep repeated ISBN lookups off the upstream API. Entries are
    evicted least-recently-used first once ``max_size`` is reached and may
    carry an optional expiry.
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialise the cache.

        Args:
            max_size: Maximum number of entries kept.
            default_ttl: Default time-to-live in seconds (None means no expiry).
            clock: Monotonic time source, injectable for tests.
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: "OrderedDict[str, _CacheEntry]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    def get(self, isbn: str) -> Optional[LookupResult]:
        """Retrieve a cached result.

        Returns None if the ISBN is not cached or its entry has expired.
        """
        with self._lock:
            entry = self._entries.get(isbn)
            if entry is not None and entry.expires_at is not None:
                if entry.expires_at <= self._clock():
                    del self._entries[isbn]
                    entry = None
            if entry is None:
                self._misses += 1
                logger.debug(f"Cache miss for ISBN {isbn}")
                return None
            self._entries.move_to_end(isbn)
            self._hits += 1
        logger.debug(f"Cache hit for ISBN {isbn}")
        return copy.deepcopy(entry.result)

    def put(self, isbn: str, result: LookupResult, ttl: Optional[float] = None):
        """Store a result, evicting the least-recently-used entry when full."""
        ttl = ttl if ttl is not None else self.default_ttl
        now = self._clock()
        entry = _CacheEntry(
            result=copy.deepcopy(result),
            stored_at=now,
            expires_at=now + ttl if ttl is not None else None,
        )
        with self._lock:
            if isbn in self._entries:
                self._entries.move_to_end(isbn)
            elif len(self._entries) >= self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted least recently used ISBN {evicted}")
            self._entries[isbn] = entry

    def cleanup(self) -> int:
        """Remove expired entries from the cache."""
        now = self._clock()
        with self._lock:
            expired = [
                k
                for k, e in self._entries.items()
                if e.expires_at is not None and e.expires_at <= now
            ]
            for key in expired:
                del self._entries[key]
        logger.info(f"Cleaned up {len(expired)} expired cache entries")
        return len(expired)

    def clear(self):
        """Empty the cache and reset hit/miss counters."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
        logger.info("Lookup cache cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, isbn: object) -> bool:
        with self._lock:
            return isbn in self._entries

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / lookups if lookups else 0.0,
            }


class NoOpCache:
    """A cache implementation that does nothing. Used when caching is disabled."""

    max_size = 0

    def get(self, isbn: str) -> Optional[LookupResult]:
        return None

    def put(self, isbn: str, result: LookupResult, ttl: Optional[float] = None):
        pass

    def cleanup(self) -> int:
        return 0

    def clear(self):
        pass

    def __len__(self) -> int:
        return 0

    def __contains__(self, isbn: object) -> bool:
        return False

    def stats(self) -> Dict[str, Any]:
        return {"size": 0, "max_size": 0, "hits": 0, "misses": 0, "hit_rate": 0.0}
