"""SQL backing store for cache entries."""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import BigInteger, Column, MetaData, String, Table, Text
from sqlalchemy.engine import Engine
from sqlalchemy.sql import text

from genveje.cache.core import CacheEntry

logger = logging.getLogger(__name__)

metadata = MetaData()

cache_entries = Table(
    "cache_entries",
    metadata,
    Column("cache_key", String(255), primary_key=True),
    Column("version", String(32), nullable=False),
    Column("written_at", BigInteger, nullable=False),
    Column("expires_at", BigInteger, nullable=False),
    Column("payload", Text, nullable=False),
)


class CacheStore:
    """Blocking key/value access to ``cache_entries``.

    Each write replaces the whole row inside one transaction, so readers
    never observe a partially written entry.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_schema(self) -> None:
        metadata.create_all(self.engine)

    def read(self, key: str) -> CacheEntry | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                text(
                    """
                    SELECT version, written_at, expires_at, payload
                    FROM cache_entries
                    WHERE cache_key = :key
                    """
                ),
                {"key": key},
            ).mappings().first()
        if row is None:
            return None
        try:
            data = json.loads(row["payload"])
        except json.JSONDecodeError:
            logger.warning("Corrupt cache payload for %s; treating as empty", key)
            return None
        return CacheEntry(
            version=row["version"],
            data=data,
            timestamp=int(row["written_at"]),
            expires_at=int(row["expires_at"]),
        )

    def write(self, key: str, entry: CacheEntry) -> None:
        payload = _dumps(entry.data)
        with self.engine.begin() as conn:
            conn.execute(
                text(
                    """
                    INSERT INTO cache_entries (cache_key, version, written_at, expires_at, payload)
                    VALUES (:key, :version, :written_at, :expires_at, :payload)
                    ON CONFLICT (cache_key) DO UPDATE SET
                      version = EXCLUDED.version,
                      written_at = EXCLUDED.written_at,
                      expires_at = EXCLUDED.expires_at,
                      payload = EXCLUDED.payload
                    """
                ),
                {
                    "key": key,
                    "version": entry.version,
                    "written_at": entry.timestamp,
                    "expires_at": entry.expires_at,
                    "payload": payload,
                },
            )

    def delete(self, key: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                text("DELETE FROM cache_entries WHERE cache_key = :key"), {"key": key}
            )
        return result.rowcount > 0

    def clear(self) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(text("DELETE FROM cache_entries"))
        return result.rowcount

    def keys(self) -> list[str]:
        with self.engine.connect() as conn:
            rows = conn.execute(text("SELECT cache_key FROM cache_entries ORDER BY cache_key"))
            return [row[0] for row in rows]


def _dumps(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"))
