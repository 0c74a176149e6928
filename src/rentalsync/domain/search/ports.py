"""Ports for the search sync pipeline."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

Row = Mapping[str, Any]


@dataclass
class InventoryBatch:
    """Rows for one batch of item ids, as stored (sensitive columns encrypted).

    - items: ``inventory_items`` rows
    - sizes: ``inventory_sizes`` rows (``item_id`` links to the item)
    - tags: ``{"item_id", "tag_name"}`` rows, already joined through ``tags``
    - training: ``{"item_id", "description", "tags"}`` rows
    """

    items: list[Row] = field(default_factory=list)
    sizes: list[Row] = field(default_factory=list)
    tags: list[Row] = field(default_factory=list)
    training: list[Row] = field(default_factory=list)


class InventorySourcePort(Protocol):
    """Read access to the primary store, consumed by the sync orchestrator."""

    async def fetch_batch(self, item_ids: Sequence[int]) -> InventoryBatch:
        """Fetch items and their child rows for a bounded list of ids."""

    async def list_item_ids(self) -> list[int]:
        """All inventory item ids, for a full reindex."""
