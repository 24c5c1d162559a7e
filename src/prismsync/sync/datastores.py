"""Storage container reconciliation."""

import logging
from typing import List

from prismsync.models.records import Datastore
from prismsync.models.remote import RemoteContainer
from prismsync.sync.base import REF_TYPE, BaseSync
from prismsync.sync.engine import UpdateItem


logger = logging.getLogger(__name__)

MANAGEMENT_SHARE = "nutanixmanagementshare"


class DatastoreSync(BaseSync):
    """Mirrors storage containers as generic datastores."""

    name = "datastore"

    @property
    def category(self) -> str:
        return f"prism.datastore.{self.cloud.id}"

    async def execute(self):
        containers = [
            container
            for container in self.require(await self.client.list_containers())
            if (container.name or "").lower() != MANAGEMENT_SHARE
        ]
        existing = await self.store.datastores.list_projections(
            ref_type=REF_TYPE,
            ref_id=self.cloud.id,
            type_code="generic",
        )

        await self.reconcile(
            existing,
            containers,
            lambda local, item: local.external_id == item.uuid,
            loader=self.store.datastores.list_by_id,
            on_add=self.add_missing,
            on_update=self.update_matched,
            on_delete=self.remove_missing,
        )

    async def add_missing(self, items: List[RemoteContainer]):
        datastores = [
            Datastore(
                name=item.name,
                code=f"{self.category}.{item.id or item.uuid}",
                internal_id=item.id,
                external_id=item.uuid,
                category=self.category,
                cloud_id=self.cloud.id,
                owner_id=self.cloud.owner_id,
                ref_type=REF_TYPE,
                ref_id=self.cloud.id,
                storage_size=item.max_capacity or 0,
                free_space=item.free_space,
                active=self.cloud.datastore_sync_active,
            )
            for item in items
        ]
        self.check("create datastores", await self.store.datastores.bulk_create(datastores))

    async def update_matched(self, items: List[UpdateItem]):
        changed = []
        for item in items:
            datastore: Datastore = item.existing
            remote: RemoteContainer = item.remote
            updates = {
                "name": remote.name,
                "storage_size": remote.max_capacity or 0,
                "free_space": remote.free_space,
            }
            dirty = False
            for field, value in updates.items():
                if getattr(datastore, field) != value:
                    setattr(datastore, field, value)
                    dirty = True
            if dirty:
                changed.append(datastore)

        if changed:
            self.check("save datastores", await self.store.datastores.bulk_save(changed))

    async def remove_missing(self, items):
        self.check("remove datastores", await self.store.datastores.bulk_remove(items))
