"""Datetime helpers."""

from __future__ import annotations

import os

import pendulum

DEFAULT_TZ = "Europe/Copenhagen"


def timezone_name() -> str:
    return os.environ.get("TIMEZONE", DEFAULT_TZ)


def now_ms() -> int:
    """Current time as unix milliseconds."""
    return int(pendulum.now("UTC").timestamp() * 1000)


def format_ms(value: int, tz: str | None = None) -> str:
    return pendulum.from_timestamp(value / 1000, tz=tz or timezone_name()).to_iso8601_string()
