"""
Report Cache Module

Process-wide in-memory cache for computed report bundles with:
- Per-period TTL classes
- Lazy expiry on read
- Bounded size with insertion-order eviction
- Injectable clock

Every operation is a single synchronous step, so interleaved report
requests on the event loop never observe a half-applied update.
"""

import time
from collections import OrderedDict
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import structlog

from stockpulse.config import Settings, get_settings
from stockpulse.models import CacheEntry

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ENTRIES = 15

DEFAULT_TTLS = {
    "today": 3 * 60,
    "daily": 10 * 60,
    "weekly": 2 * 60 * 60,
    "monthly": 4 * 60 * 60,
}


def build_cache_key(
    period: str,
    is_today: bool,
    anchor: datetime,
    include_all_locations: bool = False,
) -> str:
    """
    Key a report by period, today flag, date bucket and location scope.

    Intra-day reports are bucketed by hour since their data keeps changing.
    """
    bucket = anchor.strftime("%Y-%m-%d-%H") if is_today else anchor.strftime("%Y-%m-%d")
    key = f"{period}-{'today' if is_today else 'closed'}-{bucket}"
    if include_all_locations:
        key += "-all"
    return key


class ReportCache:
    """
    Bounded TTL cache.

    Eviction is by insertion order, not access order: reads never change
    which entry goes next.

    Example:
        cache = ReportCache(max_entries=15)
        cache.set("daily-closed-2025-01-01", bundle, ttl=600)
        bundle = cache.get("daily-closed-2025-01-01")
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttls: Optional[Dict[str, float]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.ttls = {**DEFAULT_TTLS, **(ttls or {})}
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **kwargs: Any) -> "ReportCache":
        settings = settings or get_settings()
        ttls = {
            "today": settings.cache.ttl_today_seconds,
            "daily": settings.cache.ttl_daily_seconds,
            "weekly": settings.cache.ttl_weekly_seconds,
            "monthly": settings.cache.ttl_monthly_seconds,
        }
        return cls(max_entries=settings.cache.max_entries, ttls=ttls, **kwargs)

    def ttl_for(self, period: str, is_today: bool = False) -> float:
        """TTL class for a report; unknown periods get the longest TTL"""
        if is_today:
            return self.ttls["today"]
        return self.ttls.get(period, self.ttls["monthly"])

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[Any]:
        """Return the payload, or None on miss or expiry"""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self.misses += 1
            logger.debug("Cache entry expired", key=key)
            return None

        entry.hits += 1
        self.hits += 1
        return entry.payload

    def age(self, key: str) -> Optional[float]:
        """Seconds since the entry was stored"""
        entry = self._entries.get(key)
        if entry is None:
            return None
        return self._clock() - entry.timestamp

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store a payload, evicting the oldest-inserted entry when full"""
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_entries:
            oldest, _ = self._entries.popitem(last=False)
            self.evictions += 1
            logger.debug("Cache entry evicted", key=oldest)

        self._entries[key] = CacheEntry(key=key, payload=value, timestamp=self._clock(), ttl=ttl)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def stats(self) -> Dict[str, Any]:
        return {
            "size": len(self._entries),
            "max_entries": self.max_entries,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "keys": list(self._entries.keys()),
        }
