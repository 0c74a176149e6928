"""Shared API schemas and base models."""

from pydantic import BaseModel, ConfigDict, Field

from rentalsync.domain.search.sync import SyncResult, SyncState


class APIRequestModel(BaseModel):
    """Base model for request bodies.

    Forbids unknown fields to avoid silently accepting typos or outdated clients.
    """

    model_config = ConfigDict(extra="forbid")


class BulkSyncRequest(APIRequestModel):
    """Restrict a resync to these ids; omit to reindex everything."""

    item_ids: list[int] | None = Field(default=None, max_length=100_000)


class BulkSyncResponse(BaseModel):
    synced: int
    failed: int
    total: int
    failed_ids: list[int]
    state: SyncState

    @classmethod
    def from_result(cls, result: SyncResult) -> "BulkSyncResponse":
        return cls(
            synced=result.synced,
            failed=result.failed,
            total=result.total,
            failed_ids=result.failed_ids,
            state=result.state,
        )


class ItemSyncResponse(BaseModel):
    item_id: int
    state: SyncState
