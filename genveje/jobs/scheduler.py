"""Daily catalog refresh with a delayed retry on failure."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from genveje.cache.core import CacheKeys
from genveje.cache.manager import CacheService
from genveje.ingest.models import Catalog
from genveje.logic.catalog import SourceBinding
from genveje.logic.merge import merge_catalogs
from genveje.utils.dates import timezone_name

logger = logging.getLogger(__name__)

RETRY_DELAY_SECONDS = 3 * 60 * 60
MAX_CONSECUTIVE_FAILURES = 5
DAILY_JOB_ID = "daily-catalog-refresh"


class RefreshScheduler:
    """Refreshes every source daily at ``refresh_hour:refresh_minute`` local time.

    A failed scheduled run gets one retry ``retry_delay`` seconds later. After
    ``max_consecutive_failures`` failures in a row no retry is scheduled and
    the next daily run starts with a clean count.
    """

    def __init__(
        self,
        cache: CacheService,
        sources: Sequence[SourceBinding],
        *,
        refresh_hour: int = 3,
        refresh_minute: int = 0,
        timezone: str | None = None,
        retry_delay: float = RETRY_DELAY_SECONDS,
        max_consecutive_failures: int = MAX_CONSECUTIVE_FAILURES,
    ) -> None:
        if len(sources) != 2:
            raise ValueError(f"Expected two sources, got {len(sources)}")
        self.cache = cache
        self.sources = tuple(sources)
        self.refresh_hour = refresh_hour
        self.refresh_minute = refresh_minute
        self.timezone = timezone or timezone_name()
        self.retry_delay = retry_delay
        self.max_consecutive_failures = max_consecutive_failures

        self._scheduler: AsyncIOScheduler | None = None
        self._scheduled_task: asyncio.Task | None = None
        self._retry_handle: asyncio.TimerHandle | None = None
        self._retry_task: asyncio.Task | None = None
        self._consecutive_failures = 0

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def retry_pending(self) -> bool:
        return self._retry_handle is not None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def next_run_time(self) -> datetime | None:
        if not self.running:
            return None
        job = self._scheduler.get_job(DAILY_JOB_ID)
        return job.next_run_time if job else None

    async def refresh_all(self) -> Catalog:
        """Force-refresh every source in parallel and cache the merged result."""
        first, second = await asyncio.gather(
            *(self.cache.force_refresh(binding.key, binding.fetch) for binding in self.sources)
        )
        logger.info("Refreshed %s", " and ".join(binding.name for binding in self.sources))
        merged = merge_catalogs(first, second)
        await self.cache.set(CacheKeys.MERGED, merged)
        logger.info("Merged data cached")
        return merged

    def start(self) -> None:
        if self.running:
            logger.info("Scheduler already running, skipping")
            return
        self._scheduler = AsyncIOScheduler(
            event_loop=asyncio.get_running_loop(), timezone=self.timezone
        )
        self._scheduler.add_job(
            self.run_scheduled,
            trigger=CronTrigger(
                hour=self.refresh_hour, minute=self.refresh_minute, timezone=self.timezone
            ),
            id=DAILY_JOB_ID,
            name="Daily catalog refresh",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.start()
        logger.info(
            "Refresh scheduled daily at %02d:%02d (%s)",
            self.refresh_hour,
            self.refresh_minute,
            self.timezone,
        )

    async def stop(self) -> None:
        self._cancel_retry()
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        tasks = [task for task in (self._scheduled_task, self._retry_task) if task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._scheduled_task = None
        self._retry_task = None
        logger.info("Scheduler stopped")

    async def run_scheduled(self) -> bool:
        """Body of the daily job; a failure schedules the delayed retry."""
        self._scheduled_task = asyncio.current_task()
        try:
            return await self._run_refresh("scheduled")
        finally:
            self._scheduled_task = None

    async def trigger_manual_refresh(self) -> Catalog:
        """Run a refresh now; failures propagate and schedule no retry."""
        logger.info("Manual refresh triggered")
        try:
            merged = await self.refresh_all()
        except Exception as exc:
            logger.error("Manual refresh failed: %s", exc)
            raise
        self._record_success()
        return merged

    async def _run_refresh(self, kind: str) -> bool:
        logger.info("Running %s refresh", kind)
        try:
            await self.refresh_all()
        except Exception as exc:
            logger.error("The %s refresh failed: %s", kind, exc)
            self._record_failure()
            return False
        self._record_success()
        return True

    def _record_success(self) -> None:
        self._cancel_retry()
        self._consecutive_failures = 0

    def _record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._consecutive_failures >= self.max_consecutive_failures:
            logger.error(
                "Refresh failed %s times in a row; waiting for the next daily run",
                self._consecutive_failures,
            )
            self._cancel_retry()
            self._consecutive_failures = 0
            return
        self._schedule_retry()

    def _schedule_retry(self) -> None:
        self._cancel_retry()
        loop = asyncio.get_running_loop()
        self._retry_handle = loop.call_later(self.retry_delay, self._fire_retry)
        logger.info(
            "Scheduling retry in %.0fs (failure %s of %s)",
            self.retry_delay,
            self._consecutive_failures,
            self.max_consecutive_failures,
        )

    def _fire_retry(self) -> None:
        self._retry_handle = None
        self._retry_task = asyncio.get_running_loop().create_task(
            self._run_refresh("retry"), name="refresh-retry"
        )

    def _cancel_retry(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

