"""Base classes for search index backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from rentalsync.shared.exceptions import (
    SearchBackendUnavailableError,
    SearchRequestError,
)
from rentalsync.shared.logging import get_logger

logger = get_logger(__name__)

# Throttling and server-side failures are worth another attempt
TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


@dataclass
class DocumentResult:
    """Outcome for one document of a bulk call."""

    id: str
    success: bool
    error: str | None = None


@dataclass
class BulkUpsertResult:
    """Per-document outcome of one bulk_upsert call."""

    results: list[DocumentResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def failed_items(self) -> list[DocumentResult]:
        return [r for r in self.results if not r.success]


class IndexClient(ABC):
    """Capability interface shared by the search backends.

    ``connect`` never raises; everything else raises
    ``SearchBackendUnavailableError`` for transient failures and
    ``SearchRequestError`` for rejected requests.
    """

    available: bool = False

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return backend name for logging/metrics."""
        pass

    @abstractmethod
    async def connect(self) -> bool:
        """Probe the backend and record whether it is available."""
        pass

    @abstractmethod
    async def ensure_schema(self, name: str) -> None:
        """Create the index/collection if it does not exist yet."""
        pass

    @abstractmethod
    async def upsert(self, name: str, document: dict[str, Any]) -> None:
        """Create or replace one document by its ``id``."""
        pass

    @abstractmethod
    async def bulk_upsert(self, name: str, documents: list[dict[str, Any]]) -> BulkUpsertResult:
        """Create or replace many documents in one round trip.

        Rejections of individual documents are reported in the result, not
        raised.
        """
        pass

    @abstractmethod
    async def delete(self, name: str, document_id: str) -> None:
        """Delete one document; an absent id is not an error."""
        pass

    @abstractmethod
    async def delete_schema(self, name: str) -> None:
        """Drop the index/collection; an absent one is not an error."""
        pass

    @abstractmethod
    async def search(self, name: str, query: dict[str, Any]) -> dict[str, Any]:
        """Run a backend-native query and return the raw response."""
        pass

    async def close(self) -> None:
        """Release network resources."""
        return None


class HttpIndexClient(IndexClient):
    """Shared httpx plumbing and error mapping for REST backends."""

    def __init__(
        self,
        base_url: str,
        *,
        headers: dict[str, str] | None = None,
        auth: httpx.Auth | tuple[str, str] | None = None,
        connect_timeout: float = 3.0,
        request_timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = {"Accept": "application/json", **(headers or {})}
        self.auth = auth
        self.timeout = httpx.Timeout(request_timeout, connect=connect_timeout)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.available = False

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                auth=self.auth,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        self.available = False

    async def _request(
        self,
        method: str,
        path: str,
        *,
        allow_not_found: bool = False,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and map failures onto the search error types."""
        client = await self._get_client()
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise SearchBackendUnavailableError(
                f"{self.backend_name} request timed out: {method} {path}",
                backend=self.backend_name,
            ) from e
        except httpx.RequestError as e:
            raise SearchBackendUnavailableError(
                f"{self.backend_name} unreachable: {e}",
                backend=self.backend_name,
            ) from e

        if response.status_code == 404 and allow_not_found:
            return response
        if response.status_code in TRANSIENT_STATUS_CODES:
            raise SearchBackendUnavailableError(
                f"{self.backend_name} returned {response.status_code} for {method} {path}",
                backend=self.backend_name,
                status_code=response.status_code,
            )
        if response.is_error:
            raise SearchRequestError(
                f"{self.backend_name} rejected {method} {path}: {response.text[:500]}",
                backend=self.backend_name,
                status_code=response.status_code,
            )
        return response

    async def _probe(self, method: str, path: str) -> bool:
        try:
            await self._request(method, path)
        except (SearchBackendUnavailableError, SearchRequestError) as e:
            logger.warning(
                "search_backend_connect_failed",
                backend=self.backend_name,
                error=e.message,
            )
            self.available = False
            return False

        logger.info("search_backend_connected", backend=self.backend_name)
        self.available = True
        return True
