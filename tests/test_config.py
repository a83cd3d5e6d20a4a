import pytest

from genveje.config import ConfigurationError, Settings
from genveje.utils.tokens import generate_admin_token, verify_admin_token


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("PARTNER_ADS_API_KEY", "pa-key")
    monkeypatch.setenv("CACHE_TTL_HOURS", "12")
    monkeypatch.setenv("REFRESH_HOUR", "4")
    monkeypatch.setenv("ENABLE_SCHEDULER", "false")
    monkeypatch.delenv("ADTRACTION_API_TOKEN", raising=False)

    settings = Settings.from_env()

    assert settings.partner_ads_api_key == "pa-key"
    assert settings.cache_ttl_ms == 12 * 60 * 60 * 1000
    assert settings.refresh_hour == 4
    assert settings.enable_scheduler is False
    assert settings.require("partner_ads_api_key") == "pa-key"
    with pytest.raises(ConfigurationError, match="ADTRACTION_API_TOKEN"):
        settings.require("adtraction_api_token")


def test_settings_defaults():
    settings = Settings()
    assert settings.stale_threshold_ms == 24 * 60 * 60 * 1000
    assert settings.retry_delay_seconds == 3 * 60 * 60
    assert settings.max_consecutive_failures == 5
    assert settings.database_url == "sqlite:///./cache/cache.sqlite"


def test_admin_token_roundtrip():
    token = generate_admin_token("secret")
    assert verify_admin_token(token, "secret")
    assert not verify_admin_token(token, "other")
    assert not verify_admin_token(token, "")
    assert not verify_admin_token("", "secret")
