"""Celery configuration for on-demand jobs."""

from __future__ import annotations

import os

from celery import Celery

from genveje.utils.dates import timezone_name

broker_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")
backend_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")

# daily refreshes run in-process (genveje.jobs.scheduler); no beat schedule
celery_app = Celery("genveje", broker=broker_url, backend=backend_url, include=["genveje.jobs.refresh"])
celery_app.conf.timezone = timezone_name()


@celery_app.task(name="genveje.jobs.refresh.run_refresh")
def run_refresh_task() -> int:  # pragma: no cover - executed by worker
    import asyncio

    from genveje.jobs.refresh import run_refresh

    return asyncio.run(run_refresh())
