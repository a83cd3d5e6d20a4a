"""FastAPI application serving the merged merchant catalog."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from genveje.logic.catalog import CatalogUnavailableError, load_catalog
from genveje.services import Services, build_services
from genveje.utils.dates import format_ms
from genveje.utils.logger import setup_logging
from genveje.utils.tokens import verify_admin_token

logger = logging.getLogger(__name__)


async def warm_caches(services: Services) -> None:
    """Populate both source caches, bounded by the configured timeout."""
    timeout = services.settings.warmup_timeout
    try:
        results = await asyncio.wait_for(
            asyncio.gather(
                *(services.cache.warmup(binding.key, binding.fetch) for binding in services.sources),
                return_exceptions=True,
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning("Cache warmup timed out after %ss", timeout)
        return
    for binding, result in zip(services.sources, results):
        if isinstance(result, Exception):
            logger.warning("Cache warmup failed for %s: %s", binding.name, result)
        else:
            logger.info("Cache warmed for %s", binding.name)


def create_app(services: Services | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = services is None
        current = services or build_services()
        if owned:
            setup_logging(current.settings.log_level, current.settings.log_json, current.settings.timezone)
        app.state.services = current
        await warm_caches(current)
        if current.settings.enable_scheduler:
            current.scheduler.start()
        try:
            yield
        finally:
            if owned:
                await current.aclose()
            else:
                await current.scheduler.stop()
                await current.cache.aclose()

    app = FastAPI(title="Genveje Catalog API", lifespan=lifespan)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/catalog")
    async def catalog(services: Services = Depends(get_services)) -> JSONResponse:
        try:
            view = await load_catalog(services.cache, services.sources)
        except CatalogUnavailableError as exc:
            logger.error("Catalog unavailable: %s", exc)
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return JSONResponse(view.to_dict())

    @app.get("/cache/metrics")
    async def cache_metrics(services: Services = Depends(get_services)) -> dict[str, Any]:
        cache = services.cache
        scheduler = services.scheduler
        stats = cache.get_stats()
        stats["last_refresh"] = {
            key: format_ms(value, services.settings.timezone)
            for key, value in stats["last_refresh"].items()
        }
        stats["average_fetch_ms"] = {
            binding.key: cache.average_fetch_time(binding.key) for binding in services.sources
        }
        next_run = scheduler.next_run_time
        stats["scheduler"] = {
            "running": scheduler.running,
            "next_run": next_run.isoformat() if next_run else None,
            "retry_pending": scheduler.retry_pending,
            "consecutive_failures": scheduler.consecutive_failures,
        }
        return stats

    @app.post("/admin/refresh")
    async def admin_refresh(
        token: str = Query(...),
        services: Services = Depends(get_services),
    ) -> dict[str, Any]:
        if not verify_admin_token(token, services.settings.admin_secret or ""):
            raise HTTPException(status_code=403, detail="Invalid token")
        try:
            merged = await services.scheduler.trigger_manual_refresh()
        except Exception as exc:
            raise HTTPException(status_code=502, detail=f"Refresh failed: {exc}") from exc
        return {
            "status": "ok",
            "categories": len(merged.categories),
            "merchants": merged.merchant_count,
        }

    return app


def get_services(request: Request) -> Services:
    return request.app.state.services


app = create_app()
