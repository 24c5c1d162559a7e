"""VM snapshot reconciliation."""

import logging
from typing import Dict, Iterable, List

from prismsync.models.records import ComputeServer, Snapshot
from prismsync.models.remote import RemoteSnapshot
from prismsync.sync.base import BaseSync
from prismsync.sync.engine import UpdateItem


logger = logging.getLogger(__name__)


class SnapshotSync(BaseSync):
    """Keeps snapshots and their owning VM links in step with the cluster."""

    name = "snapshot"

    async def execute(self):
        remote = self.require(await self.client.list_snapshots())
        existing = await self.store.snapshots.list_projections(cloud_id=self.cloud.id)

        await self.reconcile(
            existing,
            remote,
            lambda local, item: local.external_id == item.uuid,
            loader=self.store.snapshots.list_by_id,
            on_add=self.add_snapshots,
            on_update=self.update_snapshots,
            on_delete=self.remove_snapshots,
        )

    async def servers_by_vm(self, items: Iterable[RemoteSnapshot]) -> Dict[str, ComputeServer]:
        """Resolve owning servers for a whole batch with one query."""
        vm_ids = {item.vm_uuid for item in items if item.vm_uuid}
        if not vm_ids:
            return {}
        servers = await self.store.servers.list(cloud_id=self.cloud.id, external_id__in=vm_ids)
        owners = {}
        for server in servers:
            owners.setdefault(server.external_id, server)
        return owners

    async def add_snapshots(self, items: List[RemoteSnapshot]):
        owners = await self.servers_by_vm(items)

        snapshots = []
        for item in items:
            server = owners.get(item.vm_uuid)
            if server is None and item.vm_uuid:
                logger.debug(f"{self.label}: no local server for VM {item.vm_uuid} of snapshot {item.uuid}")
            snapshots.append(Snapshot(
                name=item.snapshot_name,
                external_id=item.uuid,
                cloud_id=self.cloud.id,
                account_id=server.account_id if server else self.cloud.effective_account_id,
                server_id=server.id if server else None,
                snapshot_created=item.created_at,
            ))
        result = await self.store.snapshots.bulk_create(snapshots)
        self.check("create snapshots", result)

        linked = {}
        for snapshot in result.succeeded:
            if snapshot.server_id is None:
                continue
            server = next(s for s in owners.values() if s.id == snapshot.server_id)
            server.snapshot_ids.append(snapshot.id)
            linked[server.id] = server
        if linked:
            self.check("link snapshots", await self.store.servers.bulk_save(linked.values()))

    async def update_snapshots(self, items: List[UpdateItem]):
        owners = await self.servers_by_vm(item.remote for item in items)

        changed = []
        for item in items:
            snapshot: Snapshot = item.existing
            server = owners.get(item.remote.vm_uuid)
            # Only trust the owner while it still lists this snapshot
            if server is None or snapshot.id not in server.snapshot_ids:
                continue
            if snapshot.account_id != server.account_id:
                snapshot.account_id = server.account_id
                changed.append(snapshot)

        if changed:
            self.check("save snapshots", await self.store.snapshots.bulk_save(changed))

    async def remove_snapshots(self, items):
        self.check("remove snapshots", await self.store.snapshots.bulk_remove(items))
