"""
Match Cache Module

Process-local TTL cache of MatchResult objects keyed by profile fingerprint.

Every method runs without awaiting, so on a single event loop each call is
atomic with respect to other requests. Eviction iterates over a snapshot of
the entries.

Example Usage:
    from unimatch.utils.match_cache import MatchCache

    cache = MatchCache(ttl_seconds=7 * 86400, max_size=10000)
    cache.set(key, result)
    hit = cache.get(key)   # None when absent or expired
"""

import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from unimatch.models.university import MatchResult
from unimatch.utils.logger import get_logger

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class CacheEntry:
    result: MatchResult
    timestamp: float


class MatchCache:
    """Fingerprint -> (MatchResult, timestamp) with TTL expiry and oldest-first eviction."""

    def __init__(
        self,
        ttl_seconds: float = 7 * SECONDS_PER_DAY,
        max_size: int = 10000,
        eviction_fraction: float = 0.1,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize MatchCache.

        Args:
            ttl_seconds: Entry lifetime
            max_size: Entry count that triggers eviction on insert
            eviction_fraction: Share of oldest entries removed when full
            clock: Time source in seconds (injectable for tests)
        """
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self.eviction_fraction = eviction_fraction
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self.logger: Any = get_logger(
            correlation_id="match-cache", phase="matching", component="match_cache"
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[MatchResult]:
        """Return the cached result, or None when absent or expired.

        Expired entries are removed on read.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp > self.ttl_seconds:
            self._entries.pop(key, None)
            self.logger.debug("Cache entry expired", cache_key=key)
            return None
        return entry.result

    def set(self, key: str, result: MatchResult) -> None:
        """Store a result, evicting the oldest entries first when at capacity."""
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_oldest()
        # Re-insert so dict order tracks write order for equal timestamps
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(result=result, timestamp=self._clock())

    def _evict_oldest(self) -> None:
        count = max(1, math.ceil(self.max_size * self.eviction_fraction))
        snapshot = sorted(self._entries.items(), key=lambda item: item[1].timestamp)
        for key, _ in snapshot[:count]:
            self._entries.pop(key, None)
        self.logger.info(
            "Cache eviction", evicted=min(count, len(snapshot)), remaining=len(self._entries)
        )

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict[str, Any]:
        """Current size, configured max size and TTL in days."""
        return {
            "size": len(self._entries),
            "maxSize": self.max_size,
            "ttlDays": self.ttl_seconds / SECONDS_PER_DAY,
        }
