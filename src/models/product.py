# src/models/product.py

"""Product metadata and marketplace listing models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Condition(str, Enum):
    """Listing condition as advertised on the marketplace."""

    NEW = "new"
    USED = "used"


@dataclass
class ProductMetadata:
    """Structured fields extracted from a product photograph.

    Serialised with the Spanish keys the catalog file has always used
    (``categoria``, ``titulo``, ``autor``, ``marca``, ``descripcion``).
    Metadata built from a dict keeps that dict in ``raw`` and serialises
    it back unchanged, so keys not modelled here (``anio``, anything extra
    the vision model returns) are never lost.
    """

    category: str
    title: str
    author: str | None = None
    brand: str | None = None
    description: str | None = None
    raw: dict[str, Any] | None = field(
        default=None, repr=False, compare=False
    )

    @property
    def is_searchable(self) -> bool:
        """True when category and title are both present."""
        return bool(self.category and self.title)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the catalog JSON shape."""
        if self.raw is not None:
            return dict(self.raw)
        return {
            "categoria": self.category,
            "titulo": self.title,
            "autor": self.author,
            "marca": self.brand,
            "descripcion": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProductMetadata":
        """Build from the catalog JSON shape (or a vision response)."""
        return cls(
            category=_clean(data.get("categoria")) or "",
            title=_clean(data.get("titulo")) or "",
            author=_clean(data.get("autor")),
            brand=_clean(data.get("marca")),
            description=_clean(data.get("descripcion")),
            raw=dict(data),
        )


@dataclass
class ListingResult:
    """A single marketplace listing matched to a product."""

    id: str
    title: str
    price: int
    permalink: str
    thumbnail: str = ""
    condition: Condition = Condition.NEW

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the catalog JSON shape."""
        return {
            "id": self.id,
            "title": self.title,
            "price": self.price,
            "permalink": self.permalink,
            "thumbnail": self.thumbnail,
            "condition": self.condition.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ListingResult":
        """Build from the catalog JSON shape."""
        raw_condition = str(data.get("condition", "new")).lower()
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "")),
            price=int(data.get("price") or 0),
            permalink=str(data.get("permalink", "")),
            thumbnail=str(data.get("thumbnail") or ""),
            condition=(
                Condition.USED
                if raw_condition == Condition.USED.value
                else Condition.NEW
            ),
        )


def _clean(value: object) -> str | None:
    """Normalise optional text fields: blank and ``None`` become ``None``."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None
