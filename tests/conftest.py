from pathlib import Path

import pytest

from genveje.cache.manager import CacheService
from genveje.cache.store import CacheStore
from genveje.db.session import create_engine_from_env
from genveje.ingest.models import Catalog, Category, Merchant, Source
from genveje.logic.categories import generate_category_id, normalize_category_name

FIXTURES = Path(__file__).parent / "fixtures" / "http"

START_MS = 1_700_000_000_000


class FakeClock:
    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture()
def engine(tmp_path):
    # a file database; store calls run on executor threads
    engine = create_engine_from_env(f"sqlite:///{tmp_path / 'cache.sqlite'}")
    CacheStore(engine).create_schema()
    yield engine
    engine.dispose()


@pytest.fixture()
def store(engine):
    return CacheStore(engine)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def cache(store, clock):
    return CacheService(
        store,
        clock=clock,
        serializer=Catalog.to_dict,
        deserializer=Catalog.from_dict,
        lock_poll_interval=0.01,
    )


@pytest.fixture()
def load_fixture():
    def _load(path: str) -> str:
        return (FIXTURES / path).read_text(encoding="utf-8")

    return _load


@pytest.fixture()
def make_catalog():
    """Build a catalog from ``{category name: [(merchant name, url), ...]}``."""

    def _make(categories, source=Source.PARTNERADS, last_updated=START_MS):
        built = []
        for name, merchants in categories.items():
            normalized = normalize_category_name(name)
            category_id = generate_category_id(normalized)
            built.append(
                Category(
                    id=category_id,
                    name=normalized,
                    merchants=[
                        Merchant(
                            id=f"{source.value}-{index}",
                            display_name=display_name,
                            clean_url=url,
                            affiliate_url=f"https://track.example/{source.value}/{index}",
                            category_id=category_id,
                            status="approved",
                            source=source,
                        )
                        for index, (display_name, url) in enumerate(merchants)
                    ],
                )
            )
        built.sort(key=lambda c: c.id)
        return Catalog(categories=built, last_updated=last_updated)

    return _make
