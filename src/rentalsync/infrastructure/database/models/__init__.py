"""SQLAlchemy ORM models."""

from rentalsync.infrastructure.database.models.base import Base, TimestampMixin
from rentalsync.infrastructure.database.models.inventory import (
    AITrainingData,
    InventoryItem,
    InventorySize,
    InventoryTag,
    Tag,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "InventoryItem",
    "InventorySize",
    "Tag",
    "InventoryTag",
    "AITrainingData",
]
