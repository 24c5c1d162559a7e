"""Persistence gateway."""

from prismsync.store.memory import BulkResult, InventoryStore, Repository

__all__ = [
    "BulkResult",
    "InventoryStore",
    "Repository",
]
