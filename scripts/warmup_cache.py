"""Populate both source caches and print what is stored."""

from __future__ import annotations

import asyncio

from genveje.api.main import warm_caches
from genveje.config import Settings
from genveje.services import build_services
from genveje.utils.dates import format_ms
from genveje.utils.logger import setup_logging


async def main() -> None:
    settings = Settings.from_env()
    setup_logging(settings.log_level, settings.log_json, settings.timezone)
    services = build_services(settings)
    try:
        await warm_caches(services)
        for binding in services.sources:
            entry = await services.cache.get_entry(binding.key)
            if entry is None:
                print(f"{binding.name}: empty")
                continue
            print(
                f"{binding.name}: version {entry.version}, "
                f"written {format_ms(entry.timestamp, settings.timezone)}, "
                f"expires {format_ms(entry.expires_at, settings.timezone)}"
            )
    finally:
        await services.aclose()


if __name__ == "__main__":
    asyncio.run(main())
