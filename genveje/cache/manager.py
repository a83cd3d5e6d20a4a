"""Cache service: versioned entries, request dedup and stale-while-revalidate."""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from genveje.utils.dates import now_ms

from .core import CACHE_TTL_MS, CACHE_VERSION, STALE_THRESHOLD_MS, CacheEntry, CacheMetrics
from .store import CacheStore

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Awaitable[Any]]


class CacheService:
    """One per process, shared by the scheduler and the request handlers.

    The store only holds JSON data; ``serializer``/``deserializer`` convert
    values on the way in and out.
    """

    def __init__(
        self,
        store: CacheStore,
        *,
        ttl_ms: int = CACHE_TTL_MS,
        stale_threshold_ms: int = STALE_THRESHOLD_MS,
        version: str = CACHE_VERSION,
        clock: Callable[[], int] = now_ms,
        serializer: Callable[[Any], Any] | None = None,
        deserializer: Callable[[Any], Any] | None = None,
        lock_poll_interval: float = 0.1,
    ):
        self.store = store
        self.ttl_ms = ttl_ms
        self.stale_threshold_ms = stale_threshold_ms
        self.version = version
        self.clock = clock
        self.lock_poll_interval = lock_poll_interval
        self._serializer = serializer
        self._deserializer = deserializer

        self._in_flight: dict[str, asyncio.Task] = {}
        self._refresh_locks: set[str] = set()
        self._background: set[asyncio.Task] = set()
        self._metrics = CacheMetrics()

    # -- plain reads and writes -------------------------------------------

    async def get(self, key: str) -> Any:
        """Return the cached value, or None when absent, outdated or expired."""
        entry = await self._read_quietly(key)
        if entry is None:
            return None
        if not entry.is_version(self.version):
            logger.info(
                "Version mismatch for %s (cached: %s, current: %s)",
                key, entry.version, self.version,
            )
            return None
        if entry.is_expired(self.clock()):
            logger.info("Expired entry for %s [age=%sms]", key, entry.age(self.clock()))
            return None
        return self._decode(key, entry.data)

    async def get_stale(self, key: str) -> Any:
        """Return whatever is stored for ``key``, ignoring version and TTL."""
        entry = await self._read_quietly(key)
        if entry is None:
            return None
        logger.info("Using stale cache for %s (version: %s)", key, entry.version)
        return self._decode(key, entry.data)

    async def get_entry(self, key: str) -> CacheEntry | None:
        return await self._read_quietly(key)

    async def set(self, key: str, data: Any, ttl_ms: int | None = None) -> None:
        now = self.clock()
        entry = CacheEntry(
            version=self.version,
            data=self._serializer(data) if self._serializer else data,
            timestamp=now,
            expires_at=now + (ttl_ms or self.ttl_ms),
        )
        await self._run(self.store.write, key, entry)
        logger.info("Set %s (version: %s)", key, self.version)

    async def clear(self, key: str) -> bool:
        removed = await self._run(self.store.delete, key)
        logger.info("Cleared %s", key)
        return removed

    async def clear_all(self) -> int:
        count = await self._run(self.store.clear)
        logger.info("Cleared %s cache entries", count)
        return count

    async def get_batch(self, keys: Iterable[str]) -> dict[str, Any]:
        keys = list(keys)
        values = await asyncio.gather(*(self.get(key) for key in keys))
        return dict(zip(keys, values))

    async def set_batch(self, entries: Mapping[str, Any], ttl_ms: int | None = None) -> None:
        await asyncio.gather(*(self.set(key, data, ttl_ms) for key, data in entries.items()))
        logger.info("Batch set completed for %s keys", len(entries))

    # -- fetching ---------------------------------------------------------

    async def get_cached_or_fetch(
        self,
        key: str,
        fetch_fn: FetchFn,
        ttl_ms: int | None = None,
    ) -> Any:
        """Concurrent callers for the same key share a single upstream fetch."""
        in_flight = self._in_flight.get(key)
        if in_flight is not None:
            logger.info("Deduplicating request for %s", key)
            return await asyncio.shield(in_flight)

        cached = await self.get(key)
        if cached is not None:
            self._metrics.hits += 1
            logger.debug("Hit for %s (total hits: %s)", key, self._metrics.hits)
            return cached

        self._metrics.misses += 1
        logger.info("Miss for %s - fetching (total misses: %s)", key, self._metrics.misses)
        return await asyncio.shield(self._start_fetch(key, fetch_fn, ttl_ms))

    async def get_cached_or_fetch_stale(
        self,
        key: str,
        fetch_fn: FetchFn,
        ttl_ms: int | None = None,
    ) -> Any:
        """Serve a stale but unexpired entry at once and refresh it in the background."""
        entry = await self._read_quietly(key)
        now = self.clock()
        if (
            entry is not None
            and entry.is_stale(now, self.stale_threshold_ms)
            and not entry.is_expired(now)
        ):
            value = self._decode(key, entry.data)
            if value is not None:
                self._metrics.stale_hits += 1
                logger.info(
                    "Serving stale data for %s (age: %smin), refreshing in background",
                    key, entry.age(self.clock()) // 60000,
                )
                self.refresh_in_background(key, fetch_fn, ttl_ms)
                return value
        return await self.get_cached_or_fetch(key, fetch_fn, ttl_ms)

    def refresh_in_background(
        self,
        key: str,
        fetch_fn: FetchFn,
        ttl_ms: int | None = None,
    ) -> asyncio.Task | None:
        """Spawn a refresh task unless one already holds the key's lock."""
        if key in self._refresh_locks:
            logger.debug("Refresh already in progress for %s, skipping", key)
            return None
        self._refresh_locks.add(key)
        task = asyncio.get_running_loop().create_task(
            self._background_refresh(key, fetch_fn, ttl_ms),
            name=f"cache-refresh:{key}",
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def force_refresh(self, key: str, fetch_fn: FetchFn) -> Any:
        """Fetch and store regardless of cache state, joining a running refresh."""
        while key in self._refresh_locks:
            logger.info("Refresh already in progress for %s, waiting", key)
            while key in self._refresh_locks:
                await asyncio.sleep(self.lock_poll_interval)
            cached = await self.get(key)
            if cached is not None:
                return cached

        self._refresh_locks.add(key)
        try:
            logger.info("Force refreshing %s", key)
            started = time.perf_counter()
            data = await asyncio.shield(self._start_fetch(key, fetch_fn, None))
            self._mark_refreshed(key)
            logger.info(
                "Force refresh completed for %s in %.0fms",
                key, (time.perf_counter() - started) * 1000,
            )
            return data
        finally:
            self._refresh_locks.discard(key)

    async def warmup(self, key: str, fetch_fn: FetchFn) -> Any:
        """Populate ``key`` at startup unless a valid entry already exists."""
        cached = await self.get(key)
        if cached is None:
            logger.info("Cache warmup for %s", key)
            return await self.force_refresh(key, fetch_fn)
        logger.info("Cache already warm for %s", key)
        return cached

    # -- introspection ----------------------------------------------------

    def metrics(self) -> CacheMetrics:
        return self._metrics.copy()

    def reset_metrics(self) -> None:
        self._metrics = CacheMetrics()

    def hit_rate(self) -> float:
        """Hits as a percentage of hits plus misses."""
        total = self._metrics.hits + self._metrics.misses
        if total == 0:
            return 0.0
        return self._metrics.hits / total * 100

    def average_fetch_time(self, key: str) -> float | None:
        times = self._metrics.fetch_times.get(key)
        if not times:
            return None
        return sum(times) / len(times)

    def is_refreshing(self, key: str) -> bool:
        return key in self._refresh_locks

    def get_stats(self) -> dict[str, Any]:
        return {
            **self._metrics.to_dict(),
            "hit_rate_percent": round(self.hit_rate(), 1),
            "refreshing": sorted(self._refresh_locks),
            "in_flight": sorted(self._in_flight),
            "background_tasks": len(self._background),
        }

    async def wait_for_background(self) -> None:
        """Wait until every spawned background refresh has finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel background refreshes and shared fetches that outlived their callers."""
        pending = [*self._background, *self._in_flight.values()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        await self.wait_for_background()

    # -- internals --------------------------------------------------------

    def _start_fetch(self, key: str, fetch_fn: FetchFn, ttl_ms: int | None) -> asyncio.Task:
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(
                self._fetch_and_store(key, fetch_fn, ttl_ms),
                name=f"cache-fetch:{key}",
            )
            task.add_done_callback(_retrieve_exception)
            self._in_flight[key] = task
        return task

    async def _fetch_and_store(self, key: str, fetch_fn: FetchFn, ttl_ms: int | None) -> Any:
        try:
            started = time.perf_counter()
            data = await fetch_fn()
            elapsed = (time.perf_counter() - started) * 1000
            self._metrics.record_fetch_time(key, elapsed)
            await self.set(key, data, ttl_ms)
            logger.info("Fetched %s in %.0fms", key, elapsed)
            return data
        except Exception as exc:
            self._metrics.errors += 1
            logger.error("Error fetching %s: %s", key, exc)
            raise
        finally:
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]

    async def _background_refresh(self, key: str, fetch_fn: FetchFn, ttl_ms: int | None) -> None:
        try:
            started = time.perf_counter()
            await asyncio.shield(self._start_fetch(key, fetch_fn, ttl_ms))
            self._mark_refreshed(key)
            logger.info(
                "Background refresh completed for %s in %.0fms",
                key, (time.perf_counter() - started) * 1000,
            )
        except Exception as exc:
            logger.error("Background refresh failed for %s: %s", key, exc)
        finally:
            self._refresh_locks.discard(key)

    def _mark_refreshed(self, key: str) -> None:
        self._metrics.refreshes += 1
        self._metrics.last_refresh[key] = self.clock()

    async def _read_quietly(self, key: str) -> CacheEntry | None:
        try:
            return await self._run(self.store.read, key)
        except SQLAlchemyError as exc:
            self._metrics.errors += 1
            logger.error("Cache read failed for %s: %s", key, exc)
            return None

    def _decode(self, key: str, data: Any) -> Any:
        if self._deserializer is None:
            return data
        try:
            return self._deserializer(data)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Undecodable cache entry for %s: %s", key, exc)
            return None

    @staticmethod
    async def _run(fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn, *args)


def _retrieve_exception(task: asyncio.Task) -> None:
    # waiters may all have gone away; keep the loop from logging "never retrieved"
    if not task.cancelled():
        task.exception()
