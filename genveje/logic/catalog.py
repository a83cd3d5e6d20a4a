"""Request-path catalog loading with per-source fallbacks."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from genveje.cache.manager import CacheService
from genveje.ingest.models import Catalog
from genveje.logic.merge import merge_catalogs

logger = logging.getLogger(__name__)

BOTH_SOURCES = "both-apis"
CACHE_FALLBACK = "cache-fallback"


class CatalogUnavailableError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class SourceBinding:
    key: str
    slug: str
    name: str
    fetch: Callable[[], Awaitable[Catalog]]


@dataclass(slots=True)
class CatalogView:
    data: Catalog
    source: str
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"data": self.data.to_dict(), "source": self.source, "error": self.error}


@dataclass(slots=True)
class _SourceResult:
    binding: SourceBinding
    data: Catalog | None
    error: Exception | None


async def _load_source(cache: CacheService, binding: SourceBinding) -> _SourceResult:
    try:
        data = await cache.get_cached_or_fetch_stale(binding.key, binding.fetch)
        return _SourceResult(binding, data, None)
    except Exception as exc:
        logger.error("%s error: %s", binding.name, exc)
        stale = await cache.get_stale(binding.key)
        if stale is not None:
            logger.info("Using stale %s cache as fallback", binding.name)
            return _SourceResult(binding, stale, None)
        return _SourceResult(binding, None, exc)


async def load_catalog(cache: CacheService, sources: Sequence[SourceBinding]) -> CatalogView:
    """Load and merge both sources, degrading to whatever is cached.

    Raises CatalogUnavailableError when no source has ever produced data.
    """
    if len(sources) != 2:
        raise ValueError(f"Expected two sources, got {len(sources)}")

    first, second = await asyncio.gather(*(_load_source(cache, binding) for binding in sources))

    if first.data is not None or second.data is not None:
        if first.data is not None and second.data is not None:
            source = BOTH_SOURCES
        else:
            source = f"{(first if first.data is not None else second).binding.slug}-only"
        return CatalogView(
            data=merge_catalogs(first.data, second.data),
            source=source,
            error=_describe_errors(first, second),
        )

    logger.error("Both sources failed: %s / %s", first.error, second.error)
    stale_first, stale_second = await asyncio.gather(
        cache.get_stale(first.binding.key), cache.get_stale(second.binding.key)
    )
    if stale_first is None and stale_second is None:
        raise CatalogUnavailableError("Failed to load affiliate data from all sources")

    logger.info("Returning any available cached data as last resort")
    return CatalogView(
        data=merge_catalogs(stale_first, stale_second),
        source=CACHE_FALLBACK,
        error="Using cached data due to API errors",
    )


def _describe_errors(first: _SourceResult, second: _SourceResult) -> str | None:
    if first.error:
        return f"{first.binding.name} unavailable, showing {second.binding.name} data only"
    if second.error:
        return f"{second.binding.name} unavailable, showing {first.binding.name} data only"
    return None
