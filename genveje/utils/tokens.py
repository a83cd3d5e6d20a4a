"""Signed tokens for administrative endpoints."""

from __future__ import annotations

from itsdangerous import BadSignature, URLSafeTimedSerializer

ADMIN_PURPOSE = "admin-refresh"
DEFAULT_MAX_AGE = 60 * 60


def _serializer(secret: str) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key=secret)


def generate_admin_token(secret: str, *, subject: str = "admin") -> str:
    return _serializer(secret).dumps({"sub": subject}, salt=ADMIN_PURPOSE)


def verify_admin_token(token: str, secret: str, *, max_age: int = DEFAULT_MAX_AGE) -> bool:
    """True when ``token`` was signed with ``secret`` within ``max_age`` seconds."""
    if not secret or not token:
        return False
    try:
        data = _serializer(secret).loads(token, max_age=max_age, salt=ADMIN_PURPOSE)
    except BadSignature:
        return False
    return isinstance(data, dict) and bool(data.get("sub"))
