"""Affiliate network ingestion."""

from __future__ import annotations

import pathlib
from dataclasses import dataclass

import yaml

from genveje.ingest.models import Source

SOURCES_PATH = pathlib.Path(__file__).with_name("sources.yml")


@dataclass(frozen=True, slots=True)
class SourceSpec:
    slug: Source
    name: str
    cache_key: str
    endpoint: str


def load_sources(path: pathlib.Path = SOURCES_PATH) -> dict[Source, SourceSpec]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    specs = [SourceSpec(**{**item, "slug": Source(item["slug"])}) for item in data]
    return {spec.slug: spec for spec in specs}
