"""
Pytest configuration and fixtures for rentalsync tests.
"""
import os
from collections.abc import Callable, Generator, Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

import pytest

# Settings are read at import time by rentalsync.main; set them first.
TEST_ENCRYPTION_KEY = "0123456789abcdef" * 4
TEST_JWT_SECRET = "test-jwt-secret"

os.environ["ENCRYPTION_KEY"] = TEST_ENCRYPTION_KEY
os.environ["JWT_SECRET"] = TEST_JWT_SECRET
os.environ["APP_ENV"] = "development"
os.environ.pop("ADMIN_TOKEN", None)

from rentalsync.config import get_settings  # noqa: E402
from rentalsync.domain.codecs import (  # noqa: E402
    encrypt_inventory_item,
    encrypt_inventory_size,
    encrypt_tag,
)
from rentalsync.domain.search.ports import InventoryBatch  # noqa: E402
from rentalsync.infrastructure.search.base import (  # noqa: E402
    BulkUpsertResult,
    DocumentResult,
    IndexClient,
)
from rentalsync.shared.crypto import FieldCipher, get_field_cipher  # noqa: E402

CREATED_AT = datetime(2024, 3, 1, 8, 30, tzinfo=UTC)
UPDATED_AT = datetime(2024, 3, 2, 9, 45, tzinfo=UTC)


@pytest.fixture(autouse=True)
def clear_caches() -> Generator[None, None, None]:
    """Rebuild settings and the cipher for every test."""
    get_settings.cache_clear()
    get_field_cipher.cache_clear()
    yield
    get_settings.cache_clear()
    get_field_cipher.cache_clear()


@pytest.fixture
def cipher() -> FieldCipher:
    return FieldCipher(TEST_ENCRYPTION_KEY)


class FakeIndexClient(IndexClient):
    """In-memory search backend.

    ``bulk_errors`` are raised by successive bulk_upsert calls before any call
    succeeds; ``reject_ids`` are reported as per-document failures.
    """

    def __init__(
        self,
        *,
        connect_ok: bool = True,
        bulk_errors: Iterable[Exception] = (),
        upsert_error: Exception | None = None,
        reject_ids: Iterable[str] = (),
    ) -> None:
        self.connect_ok = connect_ok
        self.bulk_errors = list(bulk_errors)
        self.upsert_error = upsert_error
        self.reject_ids = set(reject_ids)
        self.connect_calls = 0
        self.bulk_calls: list[list[dict[str, Any]]] = []
        self.upserts: list[dict[str, Any]] = []
        self.deleted: list[str] = []
        self.documents: dict[str, dict[str, Any]] = {}
        self.schemas: set[str] = set()
        self.dropped: list[str] = []
        self.closed = False

    @property
    def backend_name(self) -> str:
        return "fake"

    async def connect(self) -> bool:
        self.connect_calls += 1
        self.available = self.connect_ok
        return self.connect_ok

    async def ensure_schema(self, name: str) -> None:
        self.schemas.add(name)

    async def upsert(self, name: str, document: dict[str, Any]) -> None:
        if self.upsert_error is not None:
            raise self.upsert_error
        self.upserts.append(document)
        self.documents[document["id"]] = document

    async def bulk_upsert(self, name: str, documents: list[dict[str, Any]]) -> BulkUpsertResult:
        self.bulk_calls.append(documents)
        if self.bulk_errors:
            raise self.bulk_errors.pop(0)
        results = []
        for doc in documents:
            if doc["id"] in self.reject_ids:
                results.append(DocumentResult(doc["id"], False, "rejected"))
            else:
                self.documents[doc["id"]] = doc
                results.append(DocumentResult(doc["id"], True))
        return BulkUpsertResult(results)

    async def delete(self, name: str, document_id: str) -> None:
        self.deleted.append(document_id)
        self.documents.pop(document_id, None)

    async def delete_schema(self, name: str) -> None:
        self.dropped.append(name)
        self.schemas.discard(name)
        self.documents.clear()

    async def search(self, name: str, query: dict[str, Any]) -> dict[str, Any]:
        return {"hits": list(self.documents.values())}

    async def close(self) -> None:
        self.closed = True


class FakeInventorySource:
    """In-memory InventorySourcePort holding encrypted rows."""

    def __init__(self) -> None:
        self.items: dict[int, dict[str, Any]] = {}
        self.sizes: list[dict[str, Any]] = []
        self.tags: list[dict[str, Any]] = []
        self.training: list[dict[str, Any]] = []
        self.fetch_calls: list[list[int]] = []

    def add_item(
        self,
        item_id: int,
        *,
        name: str = "Áo Dài Đỏ",
        category: str = "Áo Dài",
        counter: int | None = None,
        sizes: Sequence[tuple[str, int, int, int]] = (("M", 2, 1, 150000),),
        tags: Sequence[str] = ("Cưới",),
        description: str | None = None,
        image_url: str | None = None,
    ) -> None:
        self.items[item_id] = encrypt_inventory_item(
            {
                "id": item_id,
                "name": name,
                "category": category,
                "category_counter": counter if counter is not None else item_id,
                "image_url": image_url,
                "created_at": CREATED_AT,
                "updated_at": UPDATED_AT,
            }
        )
        for title, quantity, on_hand, price in sizes:
            self.sizes.append(
                encrypt_inventory_size(
                    {
                        "id": len(self.sizes) + 1,
                        "item_id": item_id,
                        "title": title,
                        "quantity": quantity,
                        "on_hand": on_hand,
                        "price": price,
                    }
                )
            )
        for tag in tags:
            self.tags.append({"item_id": item_id, "tag_name": encrypt_tag({"name": tag})["name"]})
        if description is not None:
            self.training.append({"item_id": item_id, "description": description, "tags": "[]"})

    async def fetch_batch(self, item_ids: Sequence[int]) -> InventoryBatch:
        self.fetch_calls.append(list(item_ids))
        wanted = set(item_ids)
        return InventoryBatch(
            items=[self.items[i] for i in item_ids if i in self.items],
            sizes=[row for row in self.sizes if row["item_id"] in wanted],
            tags=[row for row in self.tags if row["item_id"] in wanted],
            training=[row for row in self.training if row["item_id"] in wanted],
        )

    async def list_item_ids(self) -> list[int]:
        return sorted(self.items)


@pytest.fixture
def fake_client() -> FakeIndexClient:
    return FakeIndexClient()


@pytest.fixture
def inventory_source() -> FakeInventorySource:
    return FakeInventorySource()


@pytest.fixture
def make_client() -> Callable[..., FakeIndexClient]:
    """Factory for fake backends with scripted failures."""
    return FakeIndexClient
