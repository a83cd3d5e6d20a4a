"""Category naming and identity.

Both source clients derive category ids from the category name alone, so a
category that appears in both networks gets the same id without any shared
lookup table.
"""

from __future__ import annotations

import re

from genveje.ingest.models import Catalog, Category, Merchant

DEFAULT_CATEGORY = "Diverse"
ID_SPACE = 1_000_000

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_category_name(name: str) -> str:
    return _WHITESPACE_RE.sub(" ", name.strip().lower().replace("&amp;", "&"))


def generate_category_id(name: str) -> int:
    """DJB2 hash of the lower-cased, trimmed name, folded into 1..999999.

    The hash runs on unbounded ints with no 32-bit wrap, so long names get
    different ids than a hash that overflows a signed 32-bit accumulator.
    """
    normalized = name.lower().strip()
    value = 5381
    for char in normalized:
        value = value * 33 + ord(char)
    category_id = abs(value) % ID_SPACE
    return category_id or 1


class CategoryGrouper:
    """Collects merchants per category while a source response is processed."""

    def __init__(self) -> None:
        self._categories: dict[int, Category] = {}

    def add(self, category_id: int, name: str, merchant: Merchant) -> None:
        category = self._categories.get(category_id)
        if category is None:
            category = Category(id=category_id, name=name)
            self._categories[category_id] = category
        category.merchants.append(merchant)

    def __len__(self) -> int:
        return len(self._categories)

    def build(self, last_updated: int) -> Catalog:
        categories = sorted(self._categories.values(), key=lambda c: c.id)
        return Catalog(categories=categories, last_updated=last_updated)
