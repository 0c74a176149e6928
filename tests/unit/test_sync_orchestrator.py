"""Unit tests for the search index sync orchestrator.

Uses the in-memory backend and row source from conftest; retry sleeps are
recorded instead of awaited.
"""

from unittest.mock import AsyncMock, call

import pytest

from rentalsync.domain.search.sync import ConnectionState, SyncOrchestrator, SyncState
from rentalsync.shared.exceptions import SearchBackendUnavailableError, SearchRequestError


def unavailable() -> SearchBackendUnavailableError:
    return SearchBackendUnavailableError("fake returned 503", backend="fake", status_code=503)


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def make_orchestrator(inventory_source, sleep):
    def factory(client, **kwargs):
        kwargs.setdefault("sleep", sleep)
        return SyncOrchestrator(client, inventory_source, **kwargs)

    return factory


class TestSingleItemSync:
    """Test sync_create / sync_update / sync_delete."""

    @pytest.mark.asyncio
    async def test_create_upserts_plaintext_document(
        self, fake_client, inventory_source, make_orchestrator
    ):
        inventory_source.add_item(5, name="Quần Tây Đen", category="Quần")
        orchestrator = make_orchestrator(fake_client)

        state = await orchestrator.sync_create(5)

        assert state is SyncState.DONE
        assert fake_client.upserts[0]["id"] == "5"
        assert fake_client.upserts[0]["name"] == "Quần Tây Đen"
        assert fake_client.upserts[0]["formattedId"] == "QU-000005"

    @pytest.mark.asyncio
    async def test_connects_lazily_once(self, fake_client, inventory_source, make_orchestrator):
        inventory_source.add_item(1)
        connection = ConnectionState()
        orchestrator = make_orchestrator(fake_client, connection=connection)

        await orchestrator.sync_create(1)
        await orchestrator.sync_update(1)

        assert fake_client.connect_calls == 1
        assert connection.connected is True

    @pytest.mark.asyncio
    async def test_missing_item_fails_without_upsert(self, fake_client, make_orchestrator):
        orchestrator = make_orchestrator(fake_client)

        state = await orchestrator.sync_update(404)

        assert state is SyncState.FAILED
        assert fake_client.upserts == []

    @pytest.mark.asyncio
    async def test_unreachable_backend_never_raises(
        self, make_client, inventory_source, make_orchestrator
    ):
        inventory_source.add_item(1)
        client = make_client(connect_ok=False)
        orchestrator = make_orchestrator(client)

        assert await orchestrator.sync_create(1) is SyncState.FAILED
        assert await orchestrator.sync_delete(1) is SyncState.FAILED
        assert inventory_source.fetch_calls == []

    @pytest.mark.asyncio
    async def test_transient_upsert_error_resets_connection(
        self, make_client, inventory_source, make_orchestrator
    ):
        inventory_source.add_item(1)
        client = make_client(upsert_error=unavailable())
        connection = ConnectionState()
        orchestrator = make_orchestrator(client, connection=connection)

        state = await orchestrator.sync_update(1)

        assert state is SyncState.FAILED
        assert connection.connected is False

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, fake_client, inventory_source, make_orchestrator):
        inventory_source.add_item(1)
        orchestrator = make_orchestrator(fake_client)
        await orchestrator.sync_create(1)

        first = await orchestrator.sync_delete(1)
        second = await orchestrator.sync_delete(1)

        assert first is SyncState.DONE
        assert second is SyncState.DONE
        assert fake_client.deleted == ["1", "1"]
        assert "1" not in fake_client.documents


class TestSyncMany:
    """Test bulk sync batching, chunking and progress."""

    @pytest.mark.asyncio
    async def test_fetches_in_batches_of_500(self, fake_client, inventory_source, make_orchestrator):
        """Test 1,234 ids -> 3 fetches; ids not found count as failed."""
        orchestrator = make_orchestrator(fake_client)
        ids = list(range(1, 1235))

        result = await orchestrator.sync_many(ids)

        assert [len(batch) for batch in inventory_source.fetch_calls] == [500, 500, 234]
        assert inventory_source.fetch_calls[2][-1] == 1234
        assert result.total == 1234
        assert result.failed == 1234
        assert result.synced == 0
        assert result.state is SyncState.FAILED

    @pytest.mark.asyncio
    async def test_uploads_in_chunks_of_100(self, fake_client, inventory_source, make_orchestrator):
        """Test 250 documents -> bulk calls of 100/100/50, progress ends at 100."""
        for item_id in range(1, 251):
            inventory_source.add_item(item_id, sizes=[], tags=[])
        orchestrator = make_orchestrator(fake_client)
        progress = []
        messages = []

        result = await orchestrator.sync_many(
            list(range(1, 251)),
            on_progress=lambda current, total: progress.append((current, total)),
            on_log=messages.append,
        )

        assert [len(chunk) for chunk in fake_client.bulk_calls] == [100, 100, 50]
        assert result.synced == 250
        assert result.failed == 0
        assert result.failed_ids == []
        assert result.state is SyncState.DONE
        assert progress[0] == (0, 100)
        assert progress[-1] == (100, 100)
        assert (30, 100) in progress
        assert (58, 100) in progress
        assert (86, 100) in progress
        assert [p for p, _ in progress[1:]] == sorted(p for p, _ in progress[1:])
        assert messages[-1] == "Done: 250 synced, 0 failed"

    @pytest.mark.asyncio
    async def test_build_progress_every_50_items(
        self, fake_client, inventory_source, make_orchestrator
    ):
        for item_id in range(1, 101):
            inventory_source.add_item(item_id, sizes=[], tags=[])
        orchestrator = make_orchestrator(fake_client)
        progress = []

        await orchestrator.sync_many(
            list(range(1, 101)), on_progress=lambda c, t: progress.append((c, t))
        )

        assert progress[:3] == [(0, 100), (15, 100), (30, 100)]

    @pytest.mark.asyncio
    async def test_empty_id_list(self, fake_client, make_orchestrator):
        orchestrator = make_orchestrator(fake_client)
        progress = []

        result = await orchestrator.sync_many([], on_progress=lambda c, t: progress.append((c, t)))

        assert result.total == 0
        assert result.state is SyncState.DONE
        assert fake_client.bulk_calls == []
        assert progress[-1] == (100, 100)

    @pytest.mark.asyncio
    async def test_unbuildable_items_are_failed(
        self, fake_client, inventory_source, make_orchestrator
    ):
        inventory_source.add_item(1)
        inventory_source.add_item(2)
        inventory_source.items[2]["name"] = "00" * 16 + ":abcd"
        orchestrator = make_orchestrator(fake_client)

        result = await orchestrator.sync_many([1, 2, 3])

        assert result.synced == 1
        assert result.failed_ids == [2, 3]
        assert sorted(fake_client.documents) == ["1"]

    @pytest.mark.asyncio
    async def test_rejected_documents_are_failed(
        self, make_client, inventory_source, make_orchestrator
    ):
        for item_id in (1, 2, 3):
            inventory_source.add_item(item_id)
        client = make_client(reject_ids={"2"})
        orchestrator = make_orchestrator(client)

        result = await orchestrator.sync_many([1, 2, 3])

        assert result.synced == 2
        assert result.failed_ids == [2]
        assert result.state is SyncState.FAILED

    @pytest.mark.asyncio
    async def test_unreachable_backend_fails_everything(
        self, make_client, inventory_source, make_orchestrator
    ):
        inventory_source.add_item(1)
        client = make_client(connect_ok=False)
        orchestrator = make_orchestrator(client)

        result = await orchestrator.sync_many([1])

        assert result.failed_ids == [1]
        assert result.state is SyncState.FAILED
        assert inventory_source.fetch_calls == []

    @pytest.mark.asyncio
    async def test_duplicate_ids_counted_once(
        self, fake_client, inventory_source, make_orchestrator
    ):
        inventory_source.add_item(1)
        orchestrator = make_orchestrator(fake_client)

        result = await orchestrator.sync_many([1, 1, 2, 1])

        assert result.total == 2
        assert result.synced == 1
        assert result.failed_ids == [2]
        assert result.synced + result.failed == result.total
        assert inventory_source.fetch_calls == [[1, 2]]

    @pytest.mark.asyncio
    async def test_progress_is_always_a_percentage(
        self, fake_client, inventory_source, make_orchestrator
    ):
        for item_id in range(1, 121):
            inventory_source.add_item(item_id, sizes=[], tags=[])
        orchestrator = make_orchestrator(fake_client)
        progress = []

        await orchestrator.sync_many(
            list(range(1, 121)), on_progress=lambda c, t: progress.append((c, t))
        )

        assert progress[0] == (0, 100)
        assert {total for _, total in progress} == {100}


class TestBulkRetry:
    """Test per-chunk retry with exponential backoff."""

    @pytest.mark.asyncio
    async def test_fail_twice_then_succeed(
        self, make_client, inventory_source, make_orchestrator, sleep
    ):
        for item_id in (1, 2):
            inventory_source.add_item(item_id)
        client = make_client(bulk_errors=[unavailable(), unavailable()])
        orchestrator = make_orchestrator(client)

        result = await orchestrator.sync_many([1, 2])

        assert len(client.bulk_calls) == 3
        assert sleep.await_args_list == [call(2), call(4)]
        assert result.synced == 2
        assert result.state is SyncState.DONE

    @pytest.mark.asyncio
    async def test_exhausted_chunk_fails_and_loop_continues(
        self, make_client, inventory_source, make_orchestrator
    ):
        for item_id in range(1, 151):
            inventory_source.add_item(item_id, sizes=[], tags=[])
        client = make_client(bulk_errors=[unavailable(), unavailable(), unavailable()])
        connection = ConnectionState()
        orchestrator = make_orchestrator(client, connection=connection)

        result = await orchestrator.sync_many(list(range(1, 151)))

        # three attempts for the first chunk, one for the second
        assert [len(chunk) for chunk in client.bulk_calls] == [100, 100, 100, 50]
        assert result.synced == 50
        assert result.failed_ids == list(range(1, 101))
        assert result.state is SyncState.FAILED

    @pytest.mark.asyncio
    async def test_rejected_request_is_not_retried(
        self, make_client, inventory_source, make_orchestrator, sleep
    ):
        inventory_source.add_item(1)
        error = SearchRequestError("bad schema", backend="fake", status_code=400)
        client = make_client(bulk_errors=[error])
        orchestrator = make_orchestrator(client)

        result = await orchestrator.sync_many([1])

        assert len(client.bulk_calls) == 1
        sleep.assert_not_awaited()
        assert result.failed_ids == [1]

    @pytest.mark.asyncio
    async def test_attempts_follow_setting(
        self, make_client, inventory_source, make_orchestrator, sleep
    ):
        inventory_source.add_item(1)
        client = make_client(bulk_errors=[unavailable()] * 5)
        orchestrator = make_orchestrator(client, max_attempts=5)

        await orchestrator.sync_many([1])

        assert len(client.bulk_calls) == 5
        assert sleep.await_args_list == [call(2), call(4), call(8), call(16)]

    @pytest.mark.asyncio
    async def test_unexpected_chunk_error_does_not_stop_later_chunks(
        self, make_client, inventory_source, make_orchestrator, sleep
    ):
        for item_id in range(1, 151):
            inventory_source.add_item(item_id, sizes=[], tags=[])
        client = make_client(bulk_errors=[RuntimeError("client has been closed")])
        orchestrator = make_orchestrator(client)

        result = await orchestrator.sync_many(list(range(1, 151)))

        assert [len(chunk) for chunk in client.bulk_calls] == [100, 50]
        sleep.assert_not_awaited()
        assert result.synced == 50
        assert result.failed_ids == list(range(1, 101))
        assert result.total == 150


class TestOperatorHelpers:
    """Test schema and full reindex helpers."""

    @pytest.mark.asyncio
    async def test_initialize_schema(self, fake_client, make_orchestrator):
        orchestrator = make_orchestrator(fake_client, collection="items_test")

        await orchestrator.initialize_schema()

        assert fake_client.schemas == {"items_test"}

    @pytest.mark.asyncio
    async def test_initialize_schema_raises_when_unreachable(self, make_client, make_orchestrator):
        orchestrator = make_orchestrator(make_client(connect_ok=False))

        with pytest.raises(SearchBackendUnavailableError):
            await orchestrator.initialize_schema()

    @pytest.mark.asyncio
    async def test_reindex_all_uses_every_id(
        self, fake_client, inventory_source, make_orchestrator
    ):
        for item_id in (3, 1, 2):
            inventory_source.add_item(item_id)
        orchestrator = make_orchestrator(fake_client)

        result = await orchestrator.reindex_all()

        assert result.total == 3
        assert result.synced == 3
        assert sorted(fake_client.documents) == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_recreate_drops_then_rebuilds(
        self, fake_client, inventory_source, make_orchestrator
    ):
        inventory_source.add_item(1)
        fake_client.documents["stale"] = {"id": "stale"}
        orchestrator = make_orchestrator(fake_client)

        result = await orchestrator.recreate_and_reindex()

        assert fake_client.dropped == ["inventory_items"]
        assert fake_client.schemas == {"inventory_items"}
        assert sorted(fake_client.documents) == ["1"]
        assert result.state is SyncState.DONE

    @pytest.mark.asyncio
    async def test_test_connection(self, make_client, make_orchestrator):
        connection = ConnectionState(connected=True)
        orchestrator = make_orchestrator(make_client(connect_ok=False), connection=connection)

        assert await orchestrator.test_connection() is False
        assert connection.connected is False
