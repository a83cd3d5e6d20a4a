"""One-off catalog refresh for workers and the command line."""

from __future__ import annotations

import asyncio
import logging

from genveje.config import Settings
from genveje.services import build_services
from genveje.utils.logger import setup_logging

logger = logging.getLogger(__name__)


async def run_refresh(settings: Settings | None = None) -> int:
    """Refresh both sources now and return the merged merchant count."""
    services = build_services(settings)
    try:
        merged = await services.scheduler.trigger_manual_refresh()
    finally:
        await services.aclose()
    logger.info(
        "Refresh finished: %s categories, %s merchants",
        len(merged.categories),
        merged.merchant_count,
    )
    return merged.merchant_count


if __name__ == "__main__":
    settings = Settings.from_env()
    setup_logging(settings.log_level, settings.log_json, settings.timezone)
    asyncio.run(run_refresh(settings))
