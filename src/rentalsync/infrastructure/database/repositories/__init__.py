"""Repository pattern implementations for database access."""

from rentalsync.infrastructure.database.repositories.inventory import InventorySearchRepository

__all__ = [
    "InventorySearchRepository",
]
