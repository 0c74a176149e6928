"""Keep the search index in step with the primary store.

Write paths call ``sync_create`` / ``sync_update`` / ``sync_delete`` after the
primary write has committed; those never raise, so a search outage cannot
block or roll back a business write. Bulk resync goes through ``sync_many``,
which reports per-item outcomes in a ``SyncResult`` instead of raising.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from rentalsync.domain.search.builder import SearchDocumentBuilder
from rentalsync.domain.search.document import SearchDocument
from rentalsync.domain.search.ports import InventorySourcePort
from rentalsync.infrastructure.search.base import BulkUpsertResult, IndexClient
from rentalsync.observability.metrics import (
    BULK_SYNC_DURATION,
    BULK_UPSERT_ATTEMPTS,
    SYNC_DOCUMENTS,
    SYNC_OPERATIONS,
)
from rentalsync.shared.exceptions import (
    SearchBackendError,
    SearchBackendUnavailableError,
)
from rentalsync.shared.logging import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]
LogCallback = Callable[[str], None]
SleepFn = Callable[[float], Awaitable[None]]

# Build-phase progress is reported every this many items
PROGRESS_EVERY = 50
BUILD_SHARE = 30
UPLOAD_SHARE = 70

TRANSIENT_ERRORS = (SearchBackendUnavailableError, TimeoutError)


class SyncState(str, Enum):
    PENDING = "pending"
    BUILDING = "building"
    INDEXING = "indexing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ConnectionState:
    """Whether the index client has been probed successfully.

    One instance is shared by everything that syncs in a process; a transient
    failure resets it so the next call probes again.
    """

    connected: bool = False


@dataclass
class SyncResult:
    synced: int = 0
    failed: int = 0
    total: int = 0
    failed_ids: list[int] = field(default_factory=list)
    state: SyncState = SyncState.PENDING


class SyncOrchestrator:
    """Projects inventory items into the search index."""

    def __init__(
        self,
        client: IndexClient,
        source: InventorySourcePort,
        *,
        connection: ConnectionState | None = None,
        builder: SearchDocumentBuilder | None = None,
        collection: str = "inventory_items",
        fetch_batch_size: int = 500,
        upload_chunk_size: int = 100,
        max_attempts: int = 3,
        document_timeout: float = 30.0,
        bulk_timeout: float = 60.0,
        sleep: SleepFn = asyncio.sleep,
    ):
        """Initialize the orchestrator.

        Args:
            client: Search backend adapter
            source: Read access to inventory rows
            connection: Shared connection flag (a fresh one if omitted)
            builder: Row to document projection
            collection: Index/collection name
            fetch_batch_size: Item ids per primary-store query
            upload_chunk_size: Documents per bulk_upsert call
            max_attempts: bulk_upsert attempts per chunk
            document_timeout: Hard cap in seconds for one single-item upsert/delete
            bulk_timeout: Hard cap in seconds for one bulk_upsert attempt
            sleep: Awaitable used between retries
        """
        self.client = client
        self.source = source
        self.connection = connection or ConnectionState()
        self.builder = builder or SearchDocumentBuilder()
        self.collection = collection
        self.fetch_batch_size = fetch_batch_size
        self.upload_chunk_size = upload_chunk_size
        self.max_attempts = max_attempts
        self.document_timeout = document_timeout
        self.bulk_timeout = bulk_timeout
        self._sleep = sleep

    async def _ensure_connected(self) -> bool:
        if not self.connection.connected:
            self.connection.connected = await self.client.connect()
        return self.connection.connected

    def _record(self, operation: str, state: SyncState) -> SyncState:
        SYNC_OPERATIONS.labels(operation=operation, state=state.value).inc()
        return state

    # ----- Single item -----

    async def sync_create(self, item_id: int) -> SyncState:
        return await self._sync_one(item_id, "create")

    async def sync_update(self, item_id: int) -> SyncState:
        return await self._sync_one(item_id, "update")

    async def _sync_one(self, item_id: int, operation: str) -> SyncState:
        state = SyncState.PENDING
        try:
            if not await self._ensure_connected():
                logger.warning("search_sync_skipped", operation=operation, item_id=item_id)
                return self._record(operation, SyncState.FAILED)

            state = SyncState.BUILDING
            batch = await self.source.fetch_batch([item_id])
            report = self.builder.build_many(batch)
            if not report.documents:
                logger.warning(
                    "search_document_unavailable",
                    operation=operation,
                    item_id=item_id,
                    found=bool(batch.items),
                )
                return self._record(operation, SyncState.FAILED)

            state = SyncState.INDEXING
            await asyncio.wait_for(
                self.client.upsert(self.collection, report.documents[0].to_payload()),
                timeout=self.document_timeout,
            )
        except Exception as e:
            self._handle_failure(e, operation=operation, item_id=item_id, state=state)
            return self._record(operation, SyncState.FAILED)

        logger.info("search_sync_completed", operation=operation, item_id=item_id)
        return self._record(operation, SyncState.DONE)

    async def sync_delete(self, item_id: int) -> SyncState:
        operation = "delete"
        try:
            if not await self._ensure_connected():
                logger.warning("search_sync_skipped", operation=operation, item_id=item_id)
                return self._record(operation, SyncState.FAILED)

            await asyncio.wait_for(
                self.client.delete(self.collection, str(item_id)),
                timeout=self.document_timeout,
            )
        except Exception as e:
            self._handle_failure(e, operation=operation, item_id=item_id, state=SyncState.INDEXING)
            return self._record(operation, SyncState.FAILED)

        logger.info("search_sync_completed", operation=operation, item_id=item_id)
        return self._record(operation, SyncState.DONE)

    def _handle_failure(
        self, error: Exception, *, operation: str, item_id: int, state: SyncState
    ) -> None:
        if isinstance(error, TRANSIENT_ERRORS):
            self.connection.connected = False
            logger.warning(
                "search_sync_failed",
                operation=operation,
                item_id=item_id,
                state=state.value,
                error=str(error) or type(error).__name__,
            )
        else:
            logger.exception(
                "search_sync_failed",
                operation=operation,
                item_id=item_id,
                state=state.value,
                error=str(error),
            )

    # ----- Bulk -----

    async def sync_many(
        self,
        item_ids: Sequence[int],
        on_progress: ProgressCallback | None = None,
        on_log: LogCallback | None = None,
    ) -> SyncResult:
        """Rebuild and upload the documents for ``item_ids``.

        Progress goes 0..30 while building and 30..100 while uploading.
        Items that are missing, fail to build, or sit in a chunk that could
        not be uploaded end up in ``failed_ids``. Every progress call is a
        percentage out of 100.
        """
        # Each id is synced and counted once
        ids = list(dict.fromkeys(item_ids))
        total = len(ids)
        result = SyncResult(total=total)
        synced: set[int] = set()
        started = time.perf_counter()
        last_progress = -1

        def progress(current: int, of: int) -> None:
            nonlocal last_progress
            last_progress = current
            if on_progress is not None:
                on_progress(current, of)

        def log(message: str) -> None:
            if on_log is not None:
                on_log(message)

        progress(0, 100)
        log(f"Syncing {total} items to {self.client.backend_name}")

        try:
            if not await self._ensure_connected():
                log("Search backend unavailable, nothing synced")
                logger.warning("search_bulk_sync_skipped", total=total)
            elif total:
                result.state = SyncState.BUILDING
                documents = await self._build_documents(ids, progress, log)

                result.state = SyncState.INDEXING
                await self._upload_documents(documents, synced, progress, log)
        except Exception as e:
            logger.exception("search_bulk_sync_failed", total=total, error=str(e))
            log(f"Sync aborted: {e}")

        result.synced = len(synced)
        result.failed_ids = [item_id for item_id in ids if item_id not in synced]
        result.failed = len(result.failed_ids)
        result.state = SyncState.DONE if result.failed == 0 else SyncState.FAILED

        if last_progress != 100:
            progress(100, 100)

        SYNC_DOCUMENTS.labels(outcome="synced").inc(result.synced)
        SYNC_DOCUMENTS.labels(outcome="failed").inc(result.failed)
        BULK_SYNC_DURATION.observe(time.perf_counter() - started)
        self._record("bulk", result.state)

        logger.info(
            "search_bulk_sync_completed",
            total=total,
            synced=result.synced,
            failed=result.failed,
            state=result.state.value,
        )
        log(f"Done: {result.synced} synced, {result.failed} failed")
        return result

    async def _build_documents(
        self,
        ids: list[int],
        progress: ProgressCallback,
        log: LogCallback,
    ) -> list[SearchDocument]:
        total = len(ids)
        documents: list[SearchDocument] = []
        processed = 0

        for start in range(0, total, self.fetch_batch_size):
            batch_ids = ids[start : start + self.fetch_batch_size]
            try:
                batch = await self.source.fetch_batch(batch_ids)
            except Exception as e:
                # Primary store hiccup; these ids end up failed
                logger.exception(
                    "search_fetch_batch_failed",
                    offset=start,
                    size=len(batch_ids),
                    error=str(e),
                )
                log(f"Could not load items {start + 1}-{start + len(batch_ids)}: {e}")
                processed += len(batch_ids)
                continue

            offset = processed

            def on_item(count: int, offset: int = offset) -> None:
                done = offset + count
                if done % PROGRESS_EVERY == 0:
                    progress(round(done / total * BUILD_SHARE), 100)

            report = self.builder.build_many(batch, on_item=on_item)
            documents.extend(report.documents)

            found = {item["id"] for item in batch.items}
            missing = [item_id for item_id in batch_ids if item_id not in found]
            if missing:
                logger.warning("search_sync_items_missing", item_ids=missing)
            if report.failed_ids:
                log(f"Skipped {len(report.failed_ids)} items that could not be built")

            processed += len(batch_ids)

        progress(BUILD_SHARE, 100)
        log(f"Built {len(documents)} of {total} documents")
        return documents

    async def _upload_documents(
        self,
        documents: list[SearchDocument],
        synced: set[int],
        progress: ProgressCallback,
        log: LogCallback,
    ) -> None:
        count = len(documents)
        uploaded = 0

        for start in range(0, count, self.upload_chunk_size):
            chunk = documents[start : start + self.upload_chunk_size]
            outcome = await self._upload_chunk([doc.to_payload() for doc in chunk])

            if outcome is None:
                log(f"Chunk {start + 1}-{start + len(chunk)} failed after retries")
            else:
                synced.update(int(item.id) for item in outcome.results if item.success)
                for item in outcome.failed_items:
                    logger.warning("search_document_rejected", document_id=item.id, error=item.error)
                if outcome.failed:
                    log(f"{outcome.failed} documents rejected by {self.client.backend_name}")

            uploaded += len(chunk)
            progress(BUILD_SHARE + round(uploaded / count * UPLOAD_SHARE), 100)

    async def _upload_chunk(self, payloads: list[dict[str, object]]) -> BulkUpsertResult | None:
        """bulk_upsert one chunk with retries; None when the chunk never landed."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=2),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    BULK_UPSERT_ATTEMPTS.labels(backend=self.client.backend_name).inc()
                    return await asyncio.wait_for(
                        self.client.bulk_upsert(self.collection, payloads),
                        timeout=self.bulk_timeout,
                    )
        except (SearchBackendError, TimeoutError, ValueError) as e:
            if isinstance(e, TRANSIENT_ERRORS):
                self.connection.connected = False
            logger.error(
                "search_bulk_chunk_failed",
                size=len(payloads),
                error=str(e) or type(e).__name__,
                error_type=type(e).__name__,
            )
        except Exception as e:
            # Client closed or malformed response; later chunks still go out
            logger.exception(
                "search_bulk_chunk_failed",
                size=len(payloads),
                error=str(e) or type(e).__name__,
                error_type=type(e).__name__,
            )
        return None

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "search_bulk_chunk_retry",
            attempt=retry_state.attempt_number,
            wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(error) if error else None,
        )

    # ----- Operator helpers -----

    async def test_connection(self) -> bool:
        self.connection.connected = await self.client.connect()
        return self.connection.connected

    async def _require_connection(self) -> None:
        if not await self._ensure_connected():
            raise SearchBackendUnavailableError(
                f"{self.client.backend_name} is not reachable",
                backend=self.client.backend_name,
            )

    async def initialize_schema(self) -> None:
        """Create the collection if needed. Raises when the backend is down."""
        await self._require_connection()
        await self.client.ensure_schema(self.collection)

    async def reindex_all(
        self,
        on_progress: ProgressCallback | None = None,
        on_log: LogCallback | None = None,
    ) -> SyncResult:
        await self.initialize_schema()
        item_ids = await self.source.list_item_ids()
        return await self.sync_many(item_ids, on_progress=on_progress, on_log=on_log)

    async def recreate_and_reindex(
        self,
        on_progress: ProgressCallback | None = None,
        on_log: LogCallback | None = None,
    ) -> SyncResult:
        """Drop the collection and rebuild it from the primary store."""
        await self._require_connection()
        logger.info("search_schema_recreating", collection=self.collection)
        await self.client.delete_schema(self.collection)
        await self.client.ensure_schema(self.collection)
        item_ids = await self.source.list_item_ids()
        return await self.sync_many(item_ids, on_progress=on_progress, on_log=on_log)
