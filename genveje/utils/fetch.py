"""HTTP fetch helpers shared by the source clients."""

from __future__ import annotations

import asyncio
import logging

import httpx

logger = logging.getLogger(__name__)


class FetchError(RuntimeError):
    """Transient upstream failure; retried by :func:`fetch_with_retry`."""


class UpstreamStatusError(FetchError):
    def __init__(self, status_code: int, url: str) -> None:
        super().__init__(f"HTTP error! status: {status_code} ({url})")
        self.status_code = status_code
        self.url = url


class MalformedPayloadError(FetchError):
    pass


class FetchTimeoutError(FetchError):
    pass


async def fetch_with_timeout(
    session: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    timeout: float,
    **kwargs,
) -> httpx.Response:
    """Issue one request bounded by ``timeout`` seconds.

    Timeouts raise :class:`FetchTimeoutError`; non-2xx responses raise
    :class:`UpstreamStatusError`. Other transport errors propagate as
    ``httpx.HTTPError``.
    """
    try:
        response = await asyncio.wait_for(session.request(method, url, **kwargs), timeout=timeout)
    except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
        raise FetchTimeoutError(f"Request timeout after {int(timeout * 1000)}ms") from exc
    if not response.is_success:
        raise UpstreamStatusError(response.status_code, url)
    return response


def require_body(text: str | None, label: str) -> str:
    if not text or not text.strip():
        raise MalformedPayloadError(f"{label}: empty response from API")
    return text
