"""Retry helpers with exponential backoff."""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from genveje.utils.fetch import FetchError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRY_EXCEPTIONS: tuple[type[BaseException], ...] = (
    FetchError,
    httpx.HTTPError,
    OSError,
    asyncio.TimeoutError,
)


def backoff_delay(base_delay: float, attempt: int) -> float:
    """Delay before the attempt following ``attempt`` (1-based)."""
    return base_delay * (2 ** (attempt - 1))


async def fetch_with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
    label: str = "fetch",
    retry_on: tuple[type[BaseException], ...] = RETRY_EXCEPTIONS,
) -> T:
    """Run ``fn`` up to ``max_retries`` times.

    The error of the last attempt is re-raised unchanged once attempts are
    exhausted. Exceptions outside ``retry_on`` propagate immediately.
    """
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")
    for attempt in range(1, max_retries + 1):
        try:
            logger.debug("%s attempt %s/%s", label, attempt, max_retries)
            return await fn()
        except retry_on as exc:
            logger.warning("%s attempt %s failed: %s", label, attempt, exc)
            if attempt == max_retries:
                raise
            delay = backoff_delay(base_delay, attempt)
            logger.info("%s retrying in %.1fs", label, delay)
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover


def retry_async(
    func: Callable[..., Awaitable[T]] | None = None,
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
):
    """Decorator form of :func:`fetch_with_retry`."""

    def decorate(inner: Callable[..., Awaitable[T]]):
        @functools.wraps(inner)
        async def wrapper(*args, **kwargs):
            return await fetch_with_retry(
                lambda: inner(*args, **kwargs),
                max_retries=max_retries,
                base_delay=base_delay,
                label=getattr(inner, "__qualname__", "call"),
            )

        return wrapper

    if func is not None:
        return decorate(func)
    return decorate
