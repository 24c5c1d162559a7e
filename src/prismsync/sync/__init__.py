"""Reconciliation engine and resource passes."""

from prismsync.sync.base import BaseSync
from prismsync.sync.engine import SyncResult, UpdateItem, apply, hydrate, reconcile
from prismsync.sync.errors import DataIntegrityError, PassError
from prismsync.sync.registry import SyncRegistry

__all__ = [
    "BaseSync",
    "DataIntegrityError",
    "PassError",
    "SyncRegistry",
    "SyncResult",
    "UpdateItem",
    "apply",
    "hydrate",
    "reconcile",
]
