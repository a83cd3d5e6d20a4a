"""Logging configuration for process entry points (API, worker, CLI)."""

from __future__ import annotations

import json
import logging
import logging.config

import pendulum

PLAIN_FORMAT = "%(asctime)s %(levelname)-7s %(name)s | %(message)s"

# request lines carry API keys in the query string
QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler.executors.default")


class CatalogJsonFormatter(logging.Formatter):
    """One JSON object per line, timestamps in the configured timezone."""

    def __init__(self, tz: str = "UTC") -> None:
        super().__init__()
        self.tz = tz

    def format(self, record: logging.LogRecord) -> str:
        line = {
            "ts": pendulum.from_timestamp(record.created, tz=self.tz).to_iso8601_string(),
            "level": record.levelname.lower(),
            "module": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            line["error"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", json_logs: bool = False, tz: str = "UTC") -> None:
    formatter = (
        {"()": CatalogJsonFormatter, "tz": tz}
        if json_logs
        else {"format": PLAIN_FORMAT, "datefmt": "%H:%M:%S"}
    )
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": formatter},
            "handlers": {
                "console": {"class": "logging.StreamHandler", "formatter": "default"},
            },
            "root": {"level": level.upper(), "handlers": ["console"]},
            "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        }
    )
