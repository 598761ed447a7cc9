"""
In-process LRU + TTL cache for verification records.
"""

import threading
import time
from collections import OrderedDict
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from shared.logging import get_logger
from ..models import CacheEntry, VerificationRecord, utcnow


class VolatileCache:
    """Bounded key -> record mapping with LRU eviction and absolute TTL.

    Entries expire ``ttl_seconds`` after insertion regardless of access, or
    earlier when the record's own ``expires_at`` comes first.
    Expired entries are never returned; they are dropped lazily on ``get``
    or in bulk by ``purge_expired``. Every operation runs under one lock and
    none of them perform I/O, so the cache can be shared by coroutines and
    threads alike.
    """

    def __init__(
        self,
        max_size: int = 5000,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = utcnow
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.logger = get_logger("verification.cache.volatile")
        self._clock = clock
        self._wall_clock = wall_clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def get(self, key: str) -> Optional[VerificationRecord]:
        """Return the live record for ``key`` and mark it recently used."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            now = self._clock()
            if self._is_expired(entry, now):
                del self._entries[key]
                self._expirations += 1
                self._misses += 1
                return None

            entry.last_accessed = now
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(self, key: str, value: VerificationRecord) -> None:
        """Insert or replace ``key``, evicting the LRU entry when full."""
        with self._lock:
            now = self._clock()
            if key in self._entries:
                self._entries.move_to_end(key)
            else:
                while len(self._entries) >= self.max_size:
                    evicted_key, _ = self._entries.popitem(last=False)
                    self._evictions += 1
                    self.logger.debug("Evicted LRU entry", key_prefix=evicted_key[:8])

            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                inserted_at=now,
                last_accessed=now,
                expires_at=self._deadline(value, now)
            )

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns whether it was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Drop all expired entries and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
            for key in expired:
                del self._entries[key]
            self._expirations += len(expired)
            return len(expired)

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl_seconds,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "expirations": self._expirations,
                "hit_ratio": self._hits / lookups if lookups else 0.0
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        # Does not count as use
        with self._lock:
            entry = self._entries.get(key)  # type: ignore[arg-type]
            return entry is not None and not self._is_expired(entry, self._clock())

    def _deadline(self, value: VerificationRecord, now: float) -> float:
        """Monotonic expiry: the cache TTL capped by the record's wall-clock expiry."""
        lifetime = self.ttl_seconds
        if value.expires_at is not None:
            remaining = (value.expires_at - self._wall_clock()).total_seconds()
            lifetime = min(lifetime, remaining)
        return now + lifetime

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now >= entry.expires_at
