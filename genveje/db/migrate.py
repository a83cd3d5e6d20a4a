"""Create the cache schema."""

from __future__ import annotations

import sys

from dotenv import load_dotenv
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from genveje.cache.store import CacheStore
from genveje.db.session import create_engine_from_env


def run_migrations(engine: Engine) -> None:
    """Create ``cache_entries`` if it does not exist yet."""
    CacheStore(engine).create_schema()


def main() -> None:
    load_dotenv()
    engine = create_engine_from_env()
    try:
        run_migrations(engine)
    except SQLAlchemyError as exc:
        print(f"Migration failed: {exc}", file=sys.stderr)
        sys.exit(2)
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
