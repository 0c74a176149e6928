"""Typesense backend for the inventory search index.

Talks to the Typesense REST API directly:
https://typesense.org/docs/latest/api/

Bulk writes go through the JSONL import endpoint with ``action=upsert``,
which answers with one JSON line per input document.
"""

import json
from typing import Any

import httpx

from rentalsync.infrastructure.search.base import (
    BulkUpsertResult,
    DocumentResult,
    HttpIndexClient,
)
from rentalsync.shared.exceptions import SearchRequestError
from rentalsync.shared.logging import get_logger

logger = get_logger(__name__)

API_KEY_HEADER = "X-TYPESENSE-API-KEY"


def collection_schema(name: str) -> dict[str, Any]:
    """Collection tuned for Vietnamese names (normalized copies hold the ascii form)."""
    return {
        "name": name,
        "fields": [
            {"name": "id", "type": "string"},
            {"name": "formattedId", "type": "string"},
            {"name": "name", "type": "string", "facet": True, "sort": True, "infix": True},
            {"name": "nameNormalized", "type": "string", "optional": True},
            {"name": "category", "type": "string", "facet": True, "sort": True},
            {"name": "categoryNormalized", "type": "string", "optional": True},
            {"name": "categoryCounter", "type": "int32", "sort": True, "optional": True},
            {"name": "tags", "type": "string[]", "facet": True, "optional": True},
            {"name": "description", "type": "string", "optional": True},
            {"name": "patterns", "type": "string[]", "facet": True, "optional": True},
            {"name": "sizes", "type": "object[]", "optional": True},
            {"name": "createdAt", "type": "int64", "sort": True},
            {"name": "updatedAt", "type": "int64", "sort": True},
            {"name": "imageUrl", "type": "string", "optional": True},
        ],
        "default_sorting_field": "updatedAt",
        "enable_nested_fields": True,
        "token_separators": ["-"],
    }


class TypesenseIndexClient(HttpIndexClient):
    """Typo-tolerant search service backend."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        connect_timeout: float = 3.0,
        request_timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the Typesense client.

        Args:
            base_url: e.g. http://localhost:8108
            api_key: Admin API key; omitted for unauthenticated local nodes
            connect_timeout: Connection timeout in seconds
            request_timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        headers = {API_KEY_HEADER: api_key} if api_key else {}
        super().__init__(
            base_url,
            headers=headers,
            connect_timeout=connect_timeout,
            request_timeout=request_timeout,
            transport=transport,
        )

    @property
    def backend_name(self) -> str:
        return "typesense"

    async def connect(self) -> bool:
        # Listing collections also proves the API key is accepted
        return await self._probe("GET", "/collections")

    async def ensure_schema(self, name: str) -> None:
        response = await self._request("GET", f"/collections/{name}", allow_not_found=True)
        if response.status_code != 404:
            logger.debug("search_schema_exists", backend=self.backend_name, name=name)
            return

        try:
            await self._request("POST", "/collections", json=collection_schema(name))
        except SearchRequestError as e:
            # Another process created it between our GET and POST
            if e.status_code != 409:
                raise
        logger.info("search_schema_created", backend=self.backend_name, name=name)

    async def upsert(self, name: str, document: dict[str, Any]) -> None:
        await self._request(
            "POST",
            f"/collections/{name}/documents",
            params={"action": "upsert"},
            json=document,
        )

    async def bulk_upsert(self, name: str, documents: list[dict[str, Any]]) -> BulkUpsertResult:
        if not documents:
            return BulkUpsertResult()

        body = "\n".join(json.dumps(doc, ensure_ascii=False) for doc in documents)
        response = await self._request(
            "POST",
            f"/collections/{name}/documents/import",
            params={"action": "upsert"},
            content=body.encode("utf-8"),
            headers={"Content-Type": "text/plain"},
        )
        return self._parse_import_response(documents, response.text)

    @staticmethod
    def _parse_import_response(
        documents: list[dict[str, Any]], text: str
    ) -> BulkUpsertResult:
        lines = [line for line in text.splitlines() if line.strip()]
        results: list[DocumentResult] = []

        for index, doc in enumerate(documents):
            doc_id = str(doc.get("id"))
            if index >= len(lines):
                results.append(DocumentResult(doc_id, False, "no import result returned"))
                continue
            try:
                outcome = json.loads(lines[index])
            except ValueError:
                results.append(DocumentResult(doc_id, False, "unparsable import result"))
                continue
            if outcome.get("success") is True:
                results.append(DocumentResult(doc_id, True))
            else:
                results.append(DocumentResult(doc_id, False, str(outcome.get("error"))))

        return BulkUpsertResult(results)

    async def delete(self, name: str, document_id: str) -> None:
        response = await self._request(
            "DELETE",
            f"/collections/{name}/documents/{document_id}",
            allow_not_found=True,
        )
        if response.status_code == 404:
            logger.debug("search_document_already_absent", name=name, document_id=document_id)

    async def delete_schema(self, name: str) -> None:
        response = await self._request("DELETE", f"/collections/{name}", allow_not_found=True)
        if response.status_code != 404:
            logger.info("search_schema_deleted", backend=self.backend_name, name=name)

    async def search(self, name: str, query: dict[str, Any]) -> dict[str, Any]:
        response = await self._request(
            "GET",
            f"/collections/{name}/documents/search",
            params=query,
        )
        result: dict[str, Any] = response.json()
        return result
