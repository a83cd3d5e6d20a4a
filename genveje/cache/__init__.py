"""Versioned catalog cache."""

from genveje.cache.core import CACHE_TTL_MS, CACHE_VERSION, STALE_THRESHOLD_MS, CacheEntry, CacheKeys, CacheMetrics
from genveje.cache.manager import CacheService
from genveje.cache.store import CacheStore

__all__ = [
    "CACHE_TTL_MS",
    "CACHE_VERSION",
    "STALE_THRESHOLD_MS",
    "CacheEntry",
    "CacheKeys",
    "CacheMetrics",
    "CacheService",
    "CacheStore",
]
