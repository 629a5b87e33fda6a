# src/models/catalog_entry.py

"""Catalog entry and public snapshot models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from src.models.product import ListingResult, ProductMetadata


def utc_timestamp() -> str:
    """Return the current instant as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class CatalogEntry:
    """One analysed product, keyed by the path of its representative image."""

    image_path: str
    product_metadata: ProductMetadata
    timestamp: str = field(default_factory=utc_timestamp)
    listings: list[ListingResult] = field(
        default_factory=lambda: list[ListingResult]()
    )

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the catalog JSON shape."""
        return {
            "imagePath": self.image_path,
            "productData": self.product_metadata.to_dict(),
            "timestamp": self.timestamp,
            "mlResults": [r.to_dict() for r in self.listings],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CatalogEntry":
        """Build from the catalog JSON shape.

        ``mlResults`` is optional in older catalog files.
        """
        return cls(
            image_path=str(data["imagePath"]),
            product_metadata=ProductMetadata.from_dict(
                data.get("productData") or {}
            ),
            timestamp=str(data.get("timestamp", "")),
            listings=[
                ListingResult.from_dict(r)
                for r in data.get("mlResults") or []
            ],
        )


@dataclass
class PublicSnapshot:
    """Read-only projection of the catalog served to the frontend.

    Holds the catalog items as stored, so the frontend sees exactly what
    the catalog file contains.
    """

    entries: list[dict[str, Any]]
    last_updated: str = field(default_factory=utc_timestamp)

    @property
    def count(self) -> int:
        """Number of entries in the snapshot."""
        return len(self.entries)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the snapshot JSON shape."""
        return {
            "products": list(self.entries),
            "lastUpdated": self.last_updated,
            "count": self.count,
        }
