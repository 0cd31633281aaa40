"""In-memory TTL cache shared by the search and suggestion paths.

An entry is valid while ``now - stored_at <= ttl``. ``get`` checks this on
every read and drops a stale entry on the spot, so correctness never depends
on ``sweep`` having run; ``sweep`` only reclaims memory held by entries
nobody asked for again.

Capacity is unbounded. The key space is bounded in practice by the TTL times
the query rate, and every rebuild empties the cache through
``invalidate_all``. A deployment with adversarial key churn should lower the
TTL rather than expect eviction.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable
from dataclasses import dataclass
import logging
import threading
import time
from typing import Generic, TypeVar


logger = logging.getLogger(__name__)

V = TypeVar("V")

_MISSING = object()


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    key: Hashable
    value: V
    stored_at: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.stored_at <= self.ttl


class TTLCache(Generic[V]):
    """Thread-safe expiring key-value store with an injectable clock."""

    def __init__(self, default_ttl: float = 300.0, *, clock: Callable[[], float] = time.monotonic) -> None:
        if default_ttl < 0:
            raise ValueError("default_ttl must be >= 0")
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry[V]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._expired = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    @property
    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "expired": self._expired,
            }

    def get(self, key: Hashable, default=None):
        """Return the cached value, or ``default`` when absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return default
            if not entry.is_valid(self._clock()):
                del self._entries[key]
                self._expired += 1
                self._misses += 1
                return default
            self._hits += 1
            return entry.value

    def set(self, key: Hashable, value: V, ttl: float | None = None) -> None:
        effective_ttl = self.default_ttl if ttl is None else ttl
        if effective_ttl < 0:
            raise ValueError("ttl must be >= 0")
        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._clock(), ttl=effective_ttl)

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_all(self) -> int:
        """Drop every entry. Returns how many were removed."""
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
        logger.info("Invalidated %d cache entries", removed)
        return removed

    def sweep(self) -> int:
        """Remove expired entries. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            stale = [key for key, entry in self._entries.items() if not entry.is_valid(now)]
            for key in stale:
                del self._entries[key]
            self._expired += len(stale)
        logger.debug("Swept %d expired cache entries", len(stale))
        return len(stale)
