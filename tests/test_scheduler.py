import asyncio

import pytest

from genveje.cache.core import CacheKeys
from genveje.ingest.models import Source
from genveje.jobs.scheduler import DAILY_JOB_ID, RefreshScheduler
from genveje.logic.catalog import SourceBinding


class ScriptedFetch:
    """Returns or raises the scripted outcomes in order, repeating the last."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture()
def catalogs(make_catalog):
    partnerads = make_catalog({"Mode": [("Zalando", "https://www.zalando.dk/")]}, source=Source.PARTNERADS)
    adtraction = make_catalog(
        {"Mode": [("Zalando DK", "https://zalando.dk"), ("H&M", "https://hm.com")]},
        source=Source.ADTRACTION,
    )
    return partnerads, adtraction


def _bindings(partnerads_fetch, adtraction_fetch):
    return (
        SourceBinding(CacheKeys.PARTNERADS, "partnerads", "Partner-ads", partnerads_fetch),
        SourceBinding(CacheKeys.ADTRACTION, "adtraction", "Adtraction", adtraction_fetch),
    )


@pytest.mark.asyncio
async def test_refresh_all_stores_merged_catalog(cache, catalogs):
    partnerads, adtraction = catalogs
    scheduler = RefreshScheduler(cache, _bindings(ScriptedFetch(partnerads), ScriptedFetch(adtraction)))

    merged = await scheduler.refresh_all()

    assert merged.merchant_count == 2
    assert await cache.get(CacheKeys.MERGED) == merged
    assert await cache.get(CacheKeys.PARTNERADS) == partnerads
    assert cache.metrics().refreshes == 2


@pytest.mark.asyncio
async def test_start_registers_daily_cron_job(cache, catalogs):
    partnerads, adtraction = catalogs
    scheduler = RefreshScheduler(
        cache,
        _bindings(ScriptedFetch(partnerads), ScriptedFetch(adtraction)),
        refresh_hour=4,
        refresh_minute=30,
        timezone="Europe/Copenhagen",
    )
    assert scheduler.next_run_time is None

    scheduler.start()
    scheduler.start()

    assert scheduler.running
    next_run = scheduler.next_run_time
    assert (next_run.hour, next_run.minute) == (4, 30)
    assert scheduler._scheduler.get_job(DAILY_JOB_ID).name == "Daily catalog refresh"

    await scheduler.stop()
    assert not scheduler.running
    assert scheduler.next_run_time is None


@pytest.mark.asyncio
async def test_failed_daily_run_schedules_one_retry(cache, catalogs):
    partnerads, adtraction = catalogs
    partnerads_fetch = ScriptedFetch(RuntimeError("down"), partnerads)
    scheduler = RefreshScheduler(
        cache,
        _bindings(partnerads_fetch, ScriptedFetch(adtraction)),
        retry_delay=0.05,
    )

    assert await scheduler.run_scheduled() is False
    assert scheduler.consecutive_failures == 1
    assert scheduler.retry_pending

    await asyncio.sleep(0.15)
    assert partnerads_fetch.calls == 2
    assert scheduler.consecutive_failures == 0
    assert not scheduler.retry_pending
    assert (await cache.get(CacheKeys.MERGED)).merchant_count == 2

    await scheduler.stop()


@pytest.mark.asyncio
async def test_failure_cap_stops_retrying(cache, catalogs):
    _, adtraction = catalogs
    partnerads_fetch = ScriptedFetch(RuntimeError("still down"))
    scheduler = RefreshScheduler(
        cache,
        _bindings(partnerads_fetch, ScriptedFetch(adtraction)),
        retry_delay=0.01,
        max_consecutive_failures=3,
    )

    await scheduler.run_scheduled()
    await asyncio.sleep(0.2)

    assert partnerads_fetch.calls == 3
    assert not scheduler.retry_pending
    assert scheduler.consecutive_failures == 0
    assert await cache.get(CacheKeys.MERGED) is None
    await scheduler.stop()


@pytest.mark.asyncio
async def test_manual_refresh_failure_raises_without_retry(cache, catalogs):
    _, adtraction = catalogs
    scheduler = RefreshScheduler(
        cache, _bindings(ScriptedFetch(RuntimeError("nope")), ScriptedFetch(adtraction))
    )

    with pytest.raises(RuntimeError, match="nope"):
        await scheduler.trigger_manual_refresh()

    assert not scheduler.retry_pending
    assert scheduler.consecutive_failures == 0


@pytest.mark.asyncio
async def test_manual_refresh_success_cancels_pending_retry(cache, catalogs):
    partnerads, adtraction = catalogs
    scheduler = RefreshScheduler(
        cache,
        _bindings(ScriptedFetch(RuntimeError("down"), partnerads), ScriptedFetch(adtraction)),
        retry_delay=3600,
    )
    await scheduler.run_scheduled()
    assert scheduler.retry_pending

    merged = await scheduler.trigger_manual_refresh()

    assert merged.merchant_count == 2
    assert not scheduler.retry_pending
    assert scheduler.consecutive_failures == 0
    await scheduler.stop()


@pytest.mark.asyncio
async def test_stop_cancels_pending_retry(cache, catalogs):
    _, adtraction = catalogs
    scheduler = RefreshScheduler(
        cache,
        _bindings(ScriptedFetch(RuntimeError("down")), ScriptedFetch(adtraction)),
        retry_delay=3600,
    )
    scheduler.start()
    await scheduler.run_scheduled()
    assert scheduler.retry_pending

    await scheduler.stop()

    assert not scheduler.retry_pending
    assert not scheduler.running


def test_scheduler_requires_two_sources(cache):
    with pytest.raises(ValueError):
        RefreshScheduler(cache, [])
