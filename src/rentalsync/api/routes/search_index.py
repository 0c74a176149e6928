"""Search index sync triggers.

Used by the scheduler (full resync) and by operators repairing single items.
The back-office write paths call the orchestrator in-process instead.
"""

from fastapi import APIRouter, Depends

from rentalsync.api.deps import OrchestratorDep, require_admin
from rentalsync.api.schemas import BulkSyncRequest, BulkSyncResponse, ItemSyncResponse
from rentalsync.shared.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/search-index",
    tags=["Search Index"],
    dependencies=[Depends(require_admin)],
)


@router.post("/sync", response_model=BulkSyncResponse)
async def sync_index(
    orchestrator: OrchestratorDep,
    request: BulkSyncRequest | None = None,
) -> BulkSyncResponse:
    """Resync the given items, or every item when no ids are sent."""
    if request is not None and request.item_ids is not None:
        logger.info("search_sync_requested", scope="items", count=len(request.item_ids))
        result = await orchestrator.sync_many(request.item_ids)
    else:
        logger.info("search_sync_requested", scope="all")
        result = await orchestrator.reindex_all()
    return BulkSyncResponse.from_result(result)


@router.post("/items/{item_id}/sync", response_model=ItemSyncResponse)
async def sync_item(item_id: int, orchestrator: OrchestratorDep) -> ItemSyncResponse:
    state = await orchestrator.sync_update(item_id)
    return ItemSyncResponse(item_id=item_id, state=state)


@router.delete("/items/{item_id}", response_model=ItemSyncResponse)
async def delete_item(item_id: int, orchestrator: OrchestratorDep) -> ItemSyncResponse:
    state = await orchestrator.sync_delete(item_id)
    return ItemSyncResponse(item_id=item_id, state=state)
