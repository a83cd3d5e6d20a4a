"""Catalog data models shared by the source clients, cache and merger."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class Source(str, Enum):
    PARTNERADS = "partnerads"
    ADTRACTION = "adtraction"


@dataclass(slots=True)
class Merchant:
    id: str
    display_name: str
    clean_url: str
    affiliate_url: str
    category_id: int
    status: str
    source: Source

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "clean_url": self.clean_url,
            "affiliate_url": self.affiliate_url,
            "category_id": self.category_id,
            "status": self.status,
            "source": self.source.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Merchant":
        return cls(
            id=str(data["id"]),
            display_name=data["display_name"],
            clean_url=data["clean_url"],
            affiliate_url=data["affiliate_url"],
            category_id=int(data["category_id"]),
            status=data["status"],
            source=Source(data["source"]),
        )


@dataclass(slots=True)
class Category:
    id: int
    name: str
    merchants: list[Merchant] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "merchants": [m.to_dict() for m in self.merchants],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Category":
        return cls(
            id=int(data["id"]),
            name=data["name"],
            merchants=[Merchant.from_dict(m) for m in data.get("merchants", [])],
        )


@dataclass(slots=True)
class Catalog:
    """Categorized merchants from one source or from the merger.

    ``last_updated`` is unix milliseconds. Categories are ordered by id.
    """

    categories: list[Category]
    last_updated: int

    @property
    def merchant_count(self) -> int:
        return sum(len(c.merchants) for c in self.categories)

    def to_dict(self) -> dict[str, Any]:
        return {
            "categories": [c.to_dict() for c in self.categories],
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Catalog":
        return cls(
            categories=[Category.from_dict(c) for c in data.get("categories", [])],
            last_updated=int(data["last_updated"]),
        )
