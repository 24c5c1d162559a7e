"""Base class shared by every reconciliation pass."""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence, TYPE_CHECKING

from prismsync.models.records import Cloud, IdentityProjection
from prismsync.sync.engine import Handler, Loader, MatchFunction, SyncResult, apply, reconcile
from prismsync.sync.errors import DataIntegrityError, PassError

if TYPE_CHECKING:
    from prismsync.client.api import ApiResult, PrismApiClient
    from prismsync.store.memory import BulkResult, InventoryStore


logger = logging.getLogger(__name__)

REF_TYPE = "ComputeZone"

__all__ = ["BaseSync", "DataIntegrityError", "PassError", "REF_TYPE"]


class BaseSync(ABC):
    """A single resource kind's reconciliation against one cloud."""

    name = "base"

    def __init__(self, cloud: Cloud, client: "PrismApiClient", store: "InventoryStore"):
        self.cloud = cloud
        self.client = client
        self.store = store

    @property
    def label(self) -> str:
        return f"{self.name} sync [{self.cloud.name}]"

    @abstractmethod
    async def execute(self):
        """Fetch, diff and persist this pass's resources."""
        pass

    async def run(self) -> bool:
        """Execute the pass, logging instead of raising. Returns success."""
        logger.info(f"Running {self.name} sync for cloud {self.cloud.name}")
        try:
            await self.execute()
            return True
        except Exception as e:
            logger.error(f"{self.name} sync failed for cloud {self.cloud.name}: {e}", exc_info=True)
            return False

    async def reconcile(
        self,
        existing: Sequence[IdentityProjection],
        remote: Sequence[Any],
        match: MatchFunction,
        loader: Optional[Loader] = None,
        on_add: Optional[Handler] = None,
        on_update: Optional[Handler] = None,
        on_delete: Optional[Handler] = None,
        label: Optional[str] = None,
    ) -> SyncResult:
        """Diff and dispatch one tier of this pass."""
        label = label or self.label
        result = reconcile(existing, remote, match)
        logger.debug(
            f"{label}: {len(result.adds)} to add, {len(result.updates)} to update, "
            f"{len(result.deletes)} to delete"
        )
        await apply(result, loader, on_add, on_update, on_delete, label=label)
        return result

    def require(self, result: "ApiResult") -> List[Any]:
        """Return the listed items, or abort the pass on an unsuccessful list call."""
        if not result.success:
            raise PassError(self.label, [RuntimeError(result.message or "list call failed")])
        return result.items

    def skip(self, error: DataIntegrityError):
        logger.warning(f"{self.label}: skipping item: {error}")

    def check(self, action: str, result: "BulkResult"):
        if result.has_failures:
            logger.warning(f"{self.label}: {action} failed for {result.failures}")
