"""Elasticsearch backend for the inventory search index.

Uses the REST API directly; bulk writes go through ``_bulk`` with NDJSON and
the per-item statuses of its response.
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

ANALYZER = "vietnamese_analyzer"


def index_definition() -> dict[str, Any]:
    """Settings and mappings; asciifolding makes "ao dai" match "Áo Dài"."""
    return {
        "settings": {
            "analysis": {
                "analyzer": {
                    ANALYZER: {
                        "type": "custom",
                        "tokenizer": "standard",
                        "filter": ["lowercase", "asciifolding"],
                    },
                },
            },
        },
        "mappings": {
            "properties": {
                "id": {"type": "keyword"},
                "formattedId": {"type": "keyword"},
                "name": {
                    "type": "text",
                    "analyzer": ANALYZER,
                    "fields": {"keyword": {"type": "keyword"}},
                },
                "nameNormalized": {"type": "text", "analyzer": ANALYZER},
                "category": {
                    "type": "text",
                    "analyzer": ANALYZER,
                    "fields": {"keyword": {"type": "keyword"}},
                },
                "categoryNormalized": {"type": "text", "analyzer": ANALYZER},
                "categoryCounter": {"type": "integer"},
                "tags": {
                    "type": "text",
                    "analyzer": ANALYZER,
                    "fields": {"keyword": {"type": "keyword"}},
                },
                "description": {"type": "text", "analyzer": ANALYZER},
                "patterns": {"type": "keyword"},
                "imageUrl": {"type": "keyword", "index": False},
                "createdAt": {"type": "date", "format": "epoch_millis"},
                "updatedAt": {"type": "date", "format": "epoch_millis"},
                "sizes": {
                    "type": "nested",
                    "properties": {
                        "title": {"type": "keyword"},
                        "quantity": {"type": "integer"},
                        "onHand": {"type": "integer"},
                        "price": {"type": "long"},
                    },
                },
            },
        },
    }


class ElasticsearchIndexClient(HttpIndexClient):
    """Inverted-index engine backend."""

    def __init__(
        self,
        base_url: str,
        *,
        username: str | None = None,
        password: str | None = None,
        api_key: str | None = None,
        connect_timeout: float = 3.0,
        request_timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the Elasticsearch client.

        Args:
            base_url: e.g. http://localhost:9200
            username: Basic auth user (ignored when api_key is set)
            password: Basic auth password
            api_key: Encoded API key, sent as ``Authorization: ApiKey ...``
            connect_timeout: Connection timeout in seconds
            request_timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        headers: dict[str, str] = {}
        auth: tuple[str, str] | None = None
        if api_key:
            headers["Authorization"] = f"ApiKey {api_key}"
        elif username and password:
            auth = (username, password)

        super().__init__(
            base_url,
            headers=headers,
            auth=auth,
            connect_timeout=connect_timeout,
            request_timeout=request_timeout,
            transport=transport,
        )

    @property
    def backend_name(self) -> str:
        return "elasticsearch"

    async def connect(self) -> bool:
        return await self._probe("HEAD", "/")

    async def ensure_schema(self, name: str) -> None:
        response = await self._request("HEAD", f"/{name}", allow_not_found=True)
        if response.status_code != 404:
            logger.debug("search_schema_exists", backend=self.backend_name, name=name)
            return

        try:
            await self._request("PUT", f"/{name}", json=index_definition())
        except SearchRequestError as e:
            if "resource_already_exists_exception" not in e.message:
                raise
        logger.info("search_schema_created", backend=self.backend_name, name=name)

    async def upsert(self, name: str, document: dict[str, Any]) -> None:
        await self._request(
            "PUT",
            f"/{name}/_doc/{document['id']}",
            params={"refresh": "wait_for"},
            json=document,
        )

    async def bulk_upsert(self, name: str, documents: list[dict[str, Any]]) -> BulkUpsertResult:
        if not documents:
            return BulkUpsertResult()

        lines: list[str] = []
        for doc in documents:
            lines.append(json.dumps({"index": {"_index": name, "_id": str(doc["id"])}}))
            lines.append(json.dumps(doc, ensure_ascii=False))
        body = "\n".join(lines) + "\n"

        response = await self._request(
            "POST",
            "/_bulk",
            params={"refresh": "wait_for"},
            content=body.encode("utf-8"),
            headers={"Content-Type": "application/x-ndjson"},
        )
        return self._parse_bulk_response(documents, response.json())

    @staticmethod
    def _parse_bulk_response(
        documents: list[dict[str, Any]], payload: dict[str, Any]
    ) -> BulkUpsertResult:
        items = payload.get("items") or []
        results: list[DocumentResult] = []

        for index, doc in enumerate(documents):
            doc_id = str(doc.get("id"))
            if index >= len(items):
                results.append(DocumentResult(doc_id, False, "no bulk result returned"))
                continue
            outcome = next(iter(items[index].values()), {})
            status = int(outcome.get("status", 0))
            if 200 <= status < 300 and "error" not in outcome:
                results.append(DocumentResult(doc_id, True))
            else:
                error = outcome.get("error")
                reason = error.get("reason") if isinstance(error, dict) else error
                results.append(DocumentResult(doc_id, False, str(reason or f"status {status}")))

        return BulkUpsertResult(results)

    async def delete(self, name: str, document_id: str) -> None:
        response = await self._request(
            "DELETE",
            f"/{name}/_doc/{document_id}",
            params={"refresh": "wait_for"},
            allow_not_found=True,
        )
        if response.status_code == 404:
            logger.debug("search_document_already_absent", name=name, document_id=document_id)

    async def delete_schema(self, name: str) -> None:
        response = await self._request("DELETE", f"/{name}", allow_not_found=True)
        if response.status_code != 404:
            logger.info("search_schema_deleted", backend=self.backend_name, name=name)

    async def search(self, name: str, query: dict[str, Any]) -> dict[str, Any]:
        response = await self._request("POST", f"/{name}/_search", json=query)
        result: dict[str, Any] = response.json()
        return result
