"""Merchant URL helpers."""

from __future__ import annotations

import re
from urllib.parse import quote, urlparse

_SCHEME_WWW_RE = re.compile(r"^https?://(www\.)?")
_HAS_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


def normalize_url(url: str) -> str:
    """Comparison key for a merchant URL.

    >>> normalize_url("https://www.Zalando.dk/")
    'zalando.dk'
    """
    lowered = (url or "").lower()
    if lowered.endswith("/"):
        lowered = lowered[:-1]
    return _SCHEME_WWW_RE.sub("", lowered)


def is_absolute_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def ensure_absolute_url(url: str) -> str | None:
    """Prefix ``https://`` onto scheme-less URLs; None when no host remains."""
    candidate = (url or "").strip()
    if not candidate:
        return None
    if not _HAS_SCHEME_RE.match(candidate):
        candidate = f"https://{candidate}"
    return candidate if is_absolute_url(candidate) else None


def encode_component(value: str) -> str:
    # unreserved characters plus !~*'() stay literal
    return quote(value, safe="-_.!~*'()")
