"""Process-wide wiring of store, cache, source clients and scheduler."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from sqlalchemy.engine import Engine

from genveje.cache.manager import CacheService
from genveje.cache.store import CacheStore
from genveje.config import Settings
from genveje.db.session import create_engine_from_env
from genveje.ingest import load_sources
from genveje.ingest.adtraction import AdtractionClient
from genveje.ingest.models import Catalog, Source
from genveje.ingest.partnerads import PartnerAdsClient
from genveje.jobs.scheduler import RefreshScheduler
from genveje.logic.catalog import SourceBinding

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    engine: Engine
    cache: CacheService
    partnerads: PartnerAdsClient
    adtraction: AdtractionClient
    sources: tuple[SourceBinding, SourceBinding]
    scheduler: RefreshScheduler

    async def aclose(self) -> None:
        await self.scheduler.stop()
        await self.cache.aclose()
        await self.partnerads.close()
        await self.adtraction.close()
        self.engine.dispose()


def build_services(settings: Settings | None = None, *, session: httpx.AsyncClient | None = None) -> Services:
    settings = settings or Settings.from_env()
    specs = load_sources()

    engine = create_engine_from_env(settings.database_url)
    store = CacheStore(engine)
    store.create_schema()
    cache = CacheService(
        store,
        ttl_ms=settings.cache_ttl_ms,
        stale_threshold_ms=settings.stale_threshold_ms,
        serializer=Catalog.to_dict,
        deserializer=Catalog.from_dict,
    )

    partnerads = PartnerAdsClient(
        settings.require("partner_ads_api_key"),
        endpoint=specs[Source.PARTNERADS].endpoint,
        session=session,
        timeout=settings.api_timeout,
        max_retries=settings.max_retries,
        retry_delay=settings.retry_base_delay,
    )
    adtraction = AdtractionClient(
        settings.require("adtraction_api_token"),
        market=settings.adtraction_market,
        endpoint=specs[Source.ADTRACTION].endpoint,
        session=session,
        timeout=settings.api_timeout,
        max_retries=settings.max_retries,
        retry_delay=settings.retry_base_delay,
    )

    # merge precedence follows this order
    sources = (
        _bind(specs[Source.PARTNERADS], partnerads.fetch_catalog),
        _bind(specs[Source.ADTRACTION], adtraction.fetch_catalog),
    )
    scheduler = RefreshScheduler(
        cache,
        sources,
        refresh_hour=settings.refresh_hour,
        refresh_minute=settings.refresh_minute,
        timezone=settings.timezone,
        retry_delay=settings.retry_delay_seconds,
        max_consecutive_failures=settings.max_consecutive_failures,
    )
    logger.info("Services ready (database: %s)", engine.url.render_as_string(hide_password=True))
    return Services(
        settings=settings,
        engine=engine,
        cache=cache,
        partnerads=partnerads,
        adtraction=adtraction,
        sources=sources,
        scheduler=scheduler,
    )


def _bind(spec, fetch) -> SourceBinding:
    return SourceBinding(key=spec.cache_key, slug=spec.slug.value, name=spec.name, fetch=fetch)
