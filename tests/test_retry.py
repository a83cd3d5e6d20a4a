import asyncio

import httpx
import pytest

from genveje.utils import retry as retry_module
from genveje.utils.fetch import (
    FetchTimeoutError,
    MalformedPayloadError,
    UpstreamStatusError,
    fetch_with_timeout,
    require_body,
)
from genveje.utils.retry import backoff_delay, fetch_with_retry, retry_async


@pytest.fixture()
def sleeps(monkeypatch):
    recorded = []

    async def fake_sleep(delay):
        recorded.append(delay)

    monkeypatch.setattr(retry_module.asyncio, "sleep", fake_sleep)
    return recorded


def test_backoff_delay_doubles():
    assert [backoff_delay(1.0, attempt) for attempt in (1, 2, 3)] == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_retry_succeeds_after_transient_failures(sleeps):
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise UpstreamStatusError(502, "https://example.test")
        return "ok"

    assert await fetch_with_retry(flaky, max_retries=3, base_delay=1.0) == "ok"
    assert len(attempts) == 3
    assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_retry_reraises_last_error(sleeps):
    errors = [FetchTimeoutError("first"), FetchTimeoutError("second")]

    async def failing():
        raise errors.pop(0)

    with pytest.raises(FetchTimeoutError, match="second"):
        await fetch_with_retry(failing, max_retries=2, base_delay=0.5)
    assert sleeps == [0.5]


@pytest.mark.asyncio
async def test_non_retryable_errors_propagate_immediately(sleeps):
    calls = []

    async def broken():
        calls.append(1)
        raise KeyError("bug")

    with pytest.raises(KeyError):
        await fetch_with_retry(broken, max_retries=3)
    assert calls == [1]
    assert sleeps == []


@pytest.mark.asyncio
async def test_retry_requires_an_attempt():
    async def never():  # pragma: no cover
        return None

    with pytest.raises(ValueError):
        await fetch_with_retry(never, max_retries=0)


@pytest.mark.asyncio
async def test_retry_async_decorator(sleeps):
    calls = []

    @retry_async(max_retries=2, base_delay=0.1)
    async def lookup(value):
        calls.append(value)
        if len(calls) == 1:
            raise httpx.ConnectError("refused")
        return value * 2

    assert await lookup(21) == 42
    assert calls == [21, 21]
    assert lookup.__name__ == "lookup"


@pytest.mark.asyncio
async def test_fetch_with_timeout_bounds_slow_requests():
    async def slow(request):
        await asyncio.sleep(1)
        return httpx.Response(200)

    async with httpx.AsyncClient(transport=httpx.MockTransport(slow)) as session:
        with pytest.raises(FetchTimeoutError, match="Request timeout after 50ms"):
            await fetch_with_timeout(session, "GET", "https://example.test", timeout=0.05)


@pytest.mark.asyncio
async def test_fetch_with_timeout_rejects_error_status():
    transport = httpx.MockTransport(lambda request: httpx.Response(404))
    async with httpx.AsyncClient(transport=transport) as session:
        with pytest.raises(UpstreamStatusError) as excinfo:
            await fetch_with_timeout(session, "GET", "https://example.test/x", timeout=1)
    assert excinfo.value.status_code == 404


def test_require_body():
    assert require_body("<x/>", "test") == "<x/>"
    with pytest.raises(MalformedPayloadError, match="empty response"):
        require_body("", "test")
