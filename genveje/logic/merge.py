"""Merge per-source catalogs into one deduplicated catalog."""

from __future__ import annotations

import logging

from genveje.ingest.models import Catalog, Category, Merchant
from genveje.logic.urls import normalize_url
from genveje.utils.dates import now_ms

logger = logging.getLogger(__name__)


def merge_catalogs(
    first: Catalog | None,
    second: Catalog | None,
    *,
    now: int | None = None,
) -> Catalog:
    """Combine two catalogs by category name and dedupe merchants by URL.

    ``first`` takes precedence: when both sources list the same merchant
    (same normalized URL) inside a category, the record from ``first`` is
    kept. Neither input is modified.
    """
    timestamp = now if now is not None else now_ms()
    if first is None and second is None:
        return Catalog(categories=[], last_updated=timestamp)

    combined: dict[str, Category] = {}
    for catalog in (first, second):
        if catalog is None:
            continue
        for category in catalog.categories:
            key = category.name.lower().strip()
            existing = combined.get(key)
            if existing is None:
                combined[key] = Category(
                    id=category.id,
                    name=category.name,
                    merchants=list(category.merchants),
                )
            else:
                existing.merchants.extend(category.merchants)

    categories: list[Category] = []
    for category in combined.values():
        category.merchants = _dedupe_merchants(category.merchants)
        if category.merchants:
            categories.append(category)
    categories.sort(key=lambda c: c.id)

    merged = Catalog(
        categories=categories,
        last_updated=max(
            first.last_updated if first else 0,
            second.last_updated if second else 0,
            timestamp,
        ),
    )
    logger.info(
        "Merged into %s categories with %s unique merchants",
        len(merged.categories),
        merged.merchant_count,
    )
    return merged


def _dedupe_merchants(merchants: list[Merchant]) -> list[Merchant]:
    seen: set[str] = set()
    unique: list[Merchant] = []
    for merchant in merchants:
        key = normalize_url(merchant.clean_url).strip()
        if not key:
            logger.warning(
                "Skipping merchant with no URL: %s (%s)",
                merchant.display_name,
                merchant.source.value,
            )
            continue
        if key in seen:
            logger.debug(
                "Duplicate merchant %s (%s) for %s",
                merchant.display_name,
                merchant.source.value,
                key,
            )
            continue
        seen.add(key)
        unique.append(merchant)
    return unique
