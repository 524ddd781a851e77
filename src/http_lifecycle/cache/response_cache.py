"""Time-bounded response cache for read requests.

Entries are keyed by :class:`RequestIdentity`. The expiry check done on
every read is authoritative: an expired entry is never returned, whether
or not a sweep has physically removed it yet. Sweeping only reclaims
memory and runs lazily on access once the sweep interval has elapsed.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from ..models.request import RequestIdentity

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A cached payload with insertion time and lifetime."""

    identity: RequestIdentity
    value: Any
    inserted_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        """Check whether the entry is no longer visible at ``now``."""
        return now >= self.inserted_at + self.ttl


class ResponseCache:
    """In-memory response cache with TTL and lazy cleanup.

    When disabled, ``get`` always misses and ``set`` does nothing.
    """

    def __init__(
        self,
        ttl: float = 100.0,
        sweep_interval: float = 120.0,
        enabled: bool = True,
        max_entries: int = 1000,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._store: Dict[RequestIdentity, CacheEntry] = {}
        self._ttl = ttl
        self._sweep_interval = sweep_interval
        self._enabled = enabled
        self._max_entries = max_entries
        self._clock = clock or time.monotonic
        self._last_sweep = self._clock()
        self._hits = 0
        self._misses = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    def get(self, identity: RequestIdentity) -> Optional[Any]:
        """Return the cached value, or None when absent or expired."""
        if not self._enabled:
            return None

        now = self._clock()
        self._maybe_sweep(now)

        entry = self._store.get(identity)
        if entry is None:
            self._misses += 1
            return None

        if entry.is_expired(now):
            del self._store[identity]
            self._misses += 1
            logger.debug(f"Cache entry expired: {identity}")
            return None

        self._hits += 1
        logger.debug(f"Cache hit: {identity}")
        return entry.value

    def set(self, identity: RequestIdentity, value: Any) -> None:
        """Store a value under ``identity`` with the configured TTL."""
        if not self._enabled:
            return

        now = self._clock()
        self._maybe_sweep(now)

        if identity not in self._store and len(self._store) >= self._max_entries:
            oldest = min(self._store, key=lambda k: self._store[k].inserted_at)
            del self._store[oldest]
            logger.debug(f"Evicted oldest cache entry due to size limit: {oldest}")

        self._store[identity] = CacheEntry(
            identity=identity, value=value, inserted_at=now, ttl=self._ttl
        )
        logger.debug(f"Cached response: {identity}")

    def invalidate(self, identity: RequestIdentity) -> bool:
        """Remove a single entry. Returns whether one was present."""
        return self._store.pop(identity, None) is not None

    def clear(self) -> int:
        """Remove every entry and return how many were dropped."""
        count = len(self._store)
        self._store.clear()
        if count:
            logger.info(f"Cleared {count} cached responses")
        return count

    def sweep(self) -> int:
        """Physically remove expired entries and return how many were removed."""
        now = self._clock()
        self._last_sweep = now
        expired = [key for key, entry in self._store.items() if entry.is_expired(now)]
        for key in expired:
            del self._store[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired cache entries")
        return len(expired)

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep >= self._sweep_interval:
            self.sweep()

    def stats(self) -> Dict[str, Any]:
        """Return cache statistics."""
        return {
            "enabled": self._enabled,
            "size": len(self._store),
            "hits": self._hits,
            "misses": self._misses,
            "ttl": self._ttl,
            "sweep_interval": self._sweep_interval,
        }

    def __len__(self) -> int:
        return len(self._store)
