"""Cache entries, metrics, keys and defaults."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any

# Bump to invalidate every stored entry on its next read
CACHE_VERSION = "2"

HOUR_MS = 60 * 60 * 1000
CACHE_TTL_MS = 48 * HOUR_MS            # refresh runs every 24h
STALE_THRESHOLD_MS = 24 * HOUR_MS
FETCH_TIME_WINDOW = 10


class CacheKeys:
    PARTNERADS = "partnerads-data"
    ADTRACTION = "adtraction-data"
    MERGED = "merged-data"


@dataclass(frozen=True)
class CacheEntry:
    """A stored value with its schema version and write time (unix ms)."""
    version: str
    data: Any
    timestamp: int
    expires_at: int

    def age(self, now: int) -> int:
        """Milliseconds since the entry was written."""
        return now - self.timestamp

    def is_version(self, version: str = CACHE_VERSION) -> bool:
        return self.version == version

    def is_expired(self, now: int) -> bool:
        """Past its TTL; only ``get_stale`` still returns it."""
        return now > self.expires_at

    def is_stale(self, now: int, threshold: int = STALE_THRESHOLD_MS) -> bool:
        """Past the staleness threshold; still servable while refreshing."""
        return self.age(now) > threshold


@dataclass
class CacheMetrics:
    # process-lifetime counters
    hits: int = 0
    misses: int = 0
    stale_hits: int = 0
    refreshes: int = 0
    errors: int = 0
    last_refresh: dict[str, int] = field(default_factory=dict)
    fetch_times: dict[str, deque] = field(default_factory=dict)

    def record_fetch_time(self, key: str, duration_ms: float) -> None:
        window = self.fetch_times.get(key)
        if window is None:
            window = deque(maxlen=FETCH_TIME_WINDOW)
            self.fetch_times[key] = window
        window.append(duration_ms)

    def copy(self) -> CacheMetrics:
        return CacheMetrics(
            hits=self.hits,
            misses=self.misses,
            stale_hits=self.stale_hits,
            refreshes=self.refreshes,
            errors=self.errors,
            last_refresh=dict(self.last_refresh),
            fetch_times={
                key: deque(values, maxlen=FETCH_TIME_WINDOW)
                for key, values in self.fetch_times.items()
            },
        )

    def to_dict(self) -> dict:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "stale_hits": self.stale_hits,
            "refreshes": self.refreshes,
            "errors": self.errors,
            "last_refresh": dict(self.last_refresh),
            "fetch_times": {key: list(values) for key, values in self.fetch_times.items()},
        }
