"""Build search documents from stored inventory rows."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from rentalsync.domain.codecs import INVENTORY_ITEM, INVENTORY_SIZE, TAG
from rentalsync.domain.search.document import SearchDocument, SizeEntry
from rentalsync.domain.search.formatted_id import format_item_id
from rentalsync.domain.search.ports import InventoryBatch, Row
from rentalsync.shared.exceptions import RentalSyncError
from rentalsync.shared.logging import get_logger
from rentalsync.shared.text import extract_patterns, normalize_text

logger = get_logger(__name__)

REQUIRED_ITEM_COLUMNS = ("id", "name", "category", "category_counter", "created_at", "updated_at")
# Images are base64 blobs; the index only needs to know one exists
IMAGE_MARKER = "has_image"


class DocumentBuildError(RentalSyncError):
    """A row cannot be turned into a plaintext search document."""

    pass


@dataclass
class BuildReport:
    documents: list[SearchDocument] = field(default_factory=list)
    failed_ids: list[int] = field(default_factory=list)


def to_epoch_ms(value: Any) -> int:
    """Convert a stored timestamp to epoch milliseconds (naive values are UTC)."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return int(value.timestamp() * 1000)
    if isinstance(value, int | float) and not isinstance(value, bool):
        return int(value)
    if isinstance(value, str):
        return to_epoch_ms(datetime.fromisoformat(value))
    raise DocumentBuildError(f"Unsupported timestamp value: {type(value).__name__}")


def _training_text(training: Row | None) -> tuple[str, list[str]]:
    if not training:
        return "", []

    description = training.get("description") or ""
    raw_tags = training.get("tags")
    hint_tags: list[str] = []
    if raw_tags:
        try:
            parsed = json.loads(raw_tags)
        except (TypeError, ValueError):
            logger.warning("training_tags_unparsable", item_id=training.get("item_id"))
        else:
            if isinstance(parsed, list):
                hint_tags = [str(tag) for tag in parsed]

    return description, extract_patterns(" ".join([description, *hint_tags]))


class SearchDocumentBuilder:
    """Turns one item row plus its joined rows into a SearchDocument.

    Returns None instead of raising when the item is gone, a required column
    is missing, or any field cannot be decrypted, so a bulk build can skip the
    item and carry on.
    """

    def build(
        self,
        item: Row | None,
        sizes: Sequence[Row] = (),
        tags: Sequence[Row] = (),
        training: Row | None = None,
    ) -> SearchDocument | None:
        if item is None:
            return None

        item_id = item.get("id")
        try:
            return self._build(item, sizes, tags, training)
        except (DocumentBuildError, KeyError, TypeError, ValueError) as e:
            logger.warning(
                "search_document_build_failed",
                item_id=item_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    def build_many(
        self,
        batch: InventoryBatch,
        on_item: Callable[[int], None] | None = None,
    ) -> BuildReport:
        """Build every item of a batch; ``on_item`` gets the running count."""
        sizes_by_item = group_by_item(batch.sizes)
        tags_by_item = group_by_item(batch.tags)
        training_by_item = first_by_item(batch.training)

        report = BuildReport()
        for processed, item in enumerate(batch.items, start=1):
            item_id = item["id"]
            document = self.build(
                item,
                sizes_by_item.get(item_id, []),
                tags_by_item.get(item_id, []),
                training_by_item.get(item_id),
            )
            if document is None:
                report.failed_ids.append(item_id)
            else:
                report.documents.append(document)
            if on_item is not None:
                on_item(processed)
        return report

    def _build(
        self,
        item: Row,
        sizes: Sequence[Row],
        tags: Sequence[Row],
        training: Row | None,
    ) -> SearchDocument:
        missing = [column for column in REQUIRED_ITEM_COLUMNS if item.get(column) is None]
        if missing:
            raise DocumentBuildError(f"Item row is missing {', '.join(missing)}")

        decrypted, undecryptable = INVENTORY_ITEM.decrypt_checked(item)
        if undecryptable:
            raise DocumentBuildError(f"Undecryptable item fields: {', '.join(undecryptable)}")

        size_entries = [self._size_entry(row) for row in sizes]
        tag_names = [self._tag_name(row) for row in tags]
        description, patterns = _training_text(training)

        name = str(decrypted["name"])
        category = str(decrypted["category"])
        counter = int(item["category_counter"])

        return SearchDocument(
            id=str(item["id"]),
            formatted_id=format_item_id(category, counter),
            name=name,
            name_normalized=normalize_text(name),
            category=category,
            category_normalized=normalize_text(category),
            category_counter=counter,
            image_url=IMAGE_MARKER if item.get("image_url") else None,
            tags=tag_names,
            description=description,
            patterns=patterns,
            created_at=to_epoch_ms(item["created_at"]),
            updated_at=to_epoch_ms(item["updated_at"]),
            sizes=size_entries,
        )

    @staticmethod
    def _size_entry(row: Row) -> SizeEntry:
        decrypted, undecryptable = INVENTORY_SIZE.decrypt_checked(row)
        if undecryptable:
            raise DocumentBuildError(
                f"Undecryptable size fields: {', '.join(undecryptable)}",
                details={"size_id": row.get("id")},
            )

        numbers = {name: decrypted.get(name) for name in ("quantity", "on_hand", "price")}
        # nan from an unparsable number is a float
        bad = [name for name, value in numbers.items() if not isinstance(value, int)]
        if bad:
            raise DocumentBuildError(
                f"Size has non-integer {', '.join(bad)}",
                details={"size_id": row.get("id")},
            )

        return SizeEntry(
            title=str(decrypted["title"]),
            quantity=numbers["quantity"],
            on_hand=numbers["on_hand"],
            price=numbers["price"],
        )

    @staticmethod
    def _tag_name(row: Row) -> str:
        decrypted, undecryptable = TAG.decrypt_checked({"name": row["tag_name"]})
        if undecryptable:
            raise DocumentBuildError("Undecryptable tag name")
        return str(decrypted["name"])


def group_by_item(rows: Sequence[Row]) -> dict[int, list[Row]]:
    """Index child rows by their ``item_id``."""
    grouped: dict[int, list[Row]] = {}
    for row in rows:
        grouped.setdefault(row["item_id"], []).append(row)
    return grouped


def first_by_item(rows: Sequence[Row]) -> dict[int, Mapping[str, Any]]:
    """Keep the first row per ``item_id`` (one training record per item)."""
    first: dict[int, Mapping[str, Any]] = {}
    for row in rows:
        first.setdefault(row["item_id"], row)
    return first
