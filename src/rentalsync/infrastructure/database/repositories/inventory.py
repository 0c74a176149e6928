"""Batched reads of inventory rows for the search sync."""

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rentalsync.domain.search.ports import InventoryBatch
from rentalsync.infrastructure.database.models import (
    AITrainingData,
    InventoryItem,
    InventorySize,
    InventoryTag,
    Tag,
)


class InventorySearchRepository:
    """Implements InventorySourcePort over the relational store.

    Read only. Each call opens its own short session so a long bulk sync does
    not hold a connection between batches. Rows come back as plain dicts with
    the sensitive columns still encrypted.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def fetch_batch(self, item_ids: Sequence[int]) -> InventoryBatch:
        """Load items plus sizes, tag names and training rows in four queries."""
        ids = list(item_ids)
        if not ids:
            return InventoryBatch()

        items_query = select(*InventoryItem.__table__.columns).where(InventoryItem.id.in_(ids))
        sizes_query = (
            select(*InventorySize.__table__.columns)
            .where(InventorySize.item_id.in_(ids))
            .order_by(InventorySize.id)
        )
        tags_query = (
            select(InventoryTag.item_id, Tag.name.label("tag_name"))
            .join(Tag, Tag.id == InventoryTag.tag_id)
            .where(InventoryTag.item_id.in_(ids))
            .order_by(InventoryTag.item_id, Tag.id)
        )
        # Newest first; the builder keeps the first row per item
        training_query = (
            select(AITrainingData.item_id, AITrainingData.description, AITrainingData.tags)
            .where(AITrainingData.item_id.in_(ids), AITrainingData.is_active.is_(True))
            .order_by(AITrainingData.item_id, AITrainingData.id.desc())
        )

        async with self.session_factory() as session:
            items = (await session.execute(items_query)).mappings().all()
            sizes = (await session.execute(sizes_query)).mappings().all()
            tags = (await session.execute(tags_query)).mappings().all()
            training = (await session.execute(training_query)).mappings().all()

        return InventoryBatch(
            items=[dict(row) for row in items],
            sizes=[dict(row) for row in sizes],
            tags=[dict(row) for row in tags],
            training=[dict(row) for row in training],
        )

    async def list_item_ids(self) -> list[int]:
        async with self.session_factory() as session:
            result = await session.execute(select(InventoryItem.id).order_by(InventoryItem.id))
            return list(result.scalars().all())
