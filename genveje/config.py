"""Process configuration loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from genveje.utils.dates import DEFAULT_TZ

DEFAULT_DATABASE_URL = "sqlite:///./cache/cache.sqlite"


class ConfigurationError(RuntimeError):
    pass


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off", ""}


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    partner_ads_api_key: str | None = None
    adtraction_api_token: str | None = None
    adtraction_market: str = "DK"

    api_timeout: float = 10.0
    max_retries: int = 3
    retry_base_delay: float = 1.0

    cache_ttl_hours: float = 48
    stale_threshold_hours: float = 24

    refresh_hour: int = 3
    refresh_minute: int = 0
    retry_delay_hours: float = 3
    max_consecutive_failures: int = 5
    enable_scheduler: bool = True
    warmup_timeout: float = 30.0
    timezone: str = DEFAULT_TZ

    admin_secret: str | None = None
    redis_url: str = "redis://redis:6379/0"
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def cache_ttl_ms(self) -> int:
        return int(self.cache_ttl_hours * 60 * 60 * 1000)

    @property
    def stale_threshold_ms(self) -> int:
        return int(self.stale_threshold_hours * 60 * 60 * 1000)

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay_hours * 60 * 60

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        env = os.environ
        return cls(
            database_url=env.get("DATABASE_URL", DEFAULT_DATABASE_URL),
            partner_ads_api_key=env.get("PARTNER_ADS_API_KEY") or None,
            adtraction_api_token=env.get("ADTRACTION_API_TOKEN") or None,
            adtraction_market=env.get("ADTRACTION_MARKET", "DK"),
            api_timeout=float(env.get("API_TIMEOUT", 10.0)),
            max_retries=int(env.get("MAX_RETRIES", 3)),
            retry_base_delay=float(env.get("RETRY_BASE_DELAY", 1.0)),
            cache_ttl_hours=float(env.get("CACHE_TTL_HOURS", 48)),
            stale_threshold_hours=float(env.get("STALE_THRESHOLD_HOURS", 24)),
            refresh_hour=int(env.get("REFRESH_HOUR", 3)),
            refresh_minute=int(env.get("REFRESH_MINUTE", 0)),
            retry_delay_hours=float(env.get("RETRY_DELAY_HOURS", 3)),
            max_consecutive_failures=int(env.get("MAX_CONSECUTIVE_FAILURES", 5)),
            enable_scheduler=_env_bool("ENABLE_SCHEDULER", True),
            warmup_timeout=float(env.get("WARMUP_TIMEOUT", 30.0)),
            timezone=env.get("TIMEZONE", DEFAULT_TZ),
            admin_secret=env.get("ADMIN_SECRET") or None,
            redis_url=env.get("REDIS_URL", "redis://redis:6379/0"),
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_json=_env_bool("LOG_JSON", False),
        )

    def require(self, name: str) -> str:
        value = getattr(self, name)
        if not value:
            raise ConfigurationError(f"{name.upper()} environment variable is required")
        return value
