"""Search document projected from an inventory item."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SizeEntry:
    title: str
    quantity: int
    on_hand: int
    price: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "quantity": self.quantity,
            "onHand": self.on_hand,
            "price": self.price,
        }


@dataclass
class SearchDocument:
    """Plaintext, denormalized view of one inventory item and its children.

    Owned by the search index and rebuildable from the primary store at any
    time. Timestamps are epoch milliseconds so both backends can sort on them.
    """

    id: str
    formatted_id: str
    name: str
    category: str
    category_counter: int
    created_at: int
    updated_at: int
    name_normalized: str = ""
    category_normalized: str = ""
    tags: list[str] = field(default_factory=list)
    sizes: list[SizeEntry] = field(default_factory=list)
    image_url: str | None = None
    description: str = ""
    patterns: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        """Wire form shared by both backends (camelCase, no null values)."""
        payload: dict[str, Any] = {
            "id": self.id,
            "formattedId": self.formatted_id,
            "name": self.name,
            "nameNormalized": self.name_normalized,
            "category": self.category,
            "categoryNormalized": self.category_normalized,
            "categoryCounter": self.category_counter,
            "tags": list(self.tags),
            "description": self.description,
            "patterns": list(self.patterns),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "sizes": [size.to_payload() for size in self.sizes],
        }
        if self.image_url is not None:
            payload["imageUrl"] = self.image_url
        return payload
