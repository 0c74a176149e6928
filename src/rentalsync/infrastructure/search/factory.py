"""Factory for the configured search backend.

The client holds a pooled httpx.AsyncClient; build it once per process and
close it at shutdown.
"""

from __future__ import annotations

from rentalsync.config import Settings
from rentalsync.domain.search.sync import ConnectionState, SyncOrchestrator
from rentalsync.infrastructure.database.connection import get_session_factory
from rentalsync.infrastructure.database.repositories import InventorySearchRepository
from rentalsync.infrastructure.search.base import IndexClient
from rentalsync.infrastructure.search.elasticsearch import ElasticsearchIndexClient
from rentalsync.infrastructure.search.typesense import TypesenseIndexClient
from rentalsync.shared.logging import get_logger

logger = get_logger(__name__)


def build_index_client(settings: Settings) -> IndexClient:
    if settings.search_backend == "elasticsearch":
        logger.info(
            "using_search_backend",
            backend="elasticsearch",
            url=settings.elasticsearch_url,
            authenticated=bool(
                settings.elasticsearch_api_key
                or (settings.elasticsearch_username and settings.elasticsearch_password)
            ),
        )
        return ElasticsearchIndexClient(
            settings.elasticsearch_url,
            username=settings.elasticsearch_username or None,
            password=settings.elasticsearch_password or None,
            api_key=settings.elasticsearch_api_key or None,
            connect_timeout=settings.search_connect_timeout,
            request_timeout=settings.search_request_timeout,
        )

    logger.info(
        "using_search_backend",
        backend="typesense",
        url=settings.typesense_base_url,
        authenticated=bool(settings.typesense_api_key),
    )
    return TypesenseIndexClient(
        settings.typesense_base_url,
        api_key=settings.typesense_api_key or None,
        connect_timeout=settings.search_connect_timeout,
        request_timeout=settings.search_request_timeout,
    )


def build_sync_orchestrator(
    settings: Settings,
    client: IndexClient,
    connection: ConnectionState | None = None,
) -> SyncOrchestrator:
    """Wire an orchestrator to the configured store and backend."""
    return SyncOrchestrator(
        client,
        InventorySearchRepository(get_session_factory(settings)),
        connection=connection or ConnectionState(),
        collection=settings.search_collection,
        fetch_batch_size=settings.sync_fetch_batch_size,
        upload_chunk_size=settings.sync_upload_chunk_size,
        max_attempts=settings.sync_max_attempts,
        document_timeout=settings.search_document_timeout,
        bulk_timeout=settings.search_bulk_timeout,
    )
