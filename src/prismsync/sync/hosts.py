"""Hypervisor host reconciliation."""

import logging
import uuid
from datetime import datetime
from typing import List

from prismsync.models.records import ComputeServer, PowerState, ServerAccess
from prismsync.models.remote import RemoteHost
from prismsync.sync.base import REF_TYPE, BaseSync
from prismsync.sync.engine import UpdateItem


logger = logging.getLogger(__name__)

HOST_TYPE_CODE = "prism-hypervisor"


def host_power_state(host: RemoteHost) -> PowerState:
    return PowerState.ON if host.powered_on else PowerState.OFF


class HostSync(BaseSync):
    """Keeps hypervisor hosts in step with the cluster's node list."""

    name = "host"

    async def execute(self):
        remote = self.require(await self.client.list_hosts())
        existing = await self.store.servers.list_projections(
            ref_type=REF_TYPE,
            ref_id=self.cloud.id,
            type_code=HOST_TYPE_CODE,
        )

        await self.reconcile(
            existing,
            remote,
            lambda local, item: local.external_id == item.uuid,
            loader=self.store.servers.list_by_id,
            on_add=self.add_hosts,
            on_update=self.update_hosts,
            on_delete=self.remove_hosts,
        )

    def build_host(self, item: RemoteHost) -> ComputeServer:
        address = item.hypervisor_address
        server = ComputeServer(
            name=item.name,
            external_id=item.uuid,
            cloud_id=self.cloud.id,
            account_id=self.cloud.owner_id,
            category=f"prism.host.{self.cloud.id}",
            server_type="hypervisor",
            type_code=HOST_TYPE_CODE,
            status="provisioned",
            status_date=datetime.now(),
            power_state=host_power_state(item),
            hostname=item.name,
            ssh_username="root",
            ssh_host=address,
            external_ip=address,
            internal_ip=address,
            os_type="linux",
            api_key=str(uuid.uuid4()),
            provision=False,
            single_tenant=False,
            max_memory=item.memory_capacity,
            max_cores=item.core_count,
            max_storage=0,
            ref_type=REF_TYPE,
            ref_id=self.cloud.id,
        )
        if item.ipmi_address:
            server.accesses.append(ServerAccess(access_type="ipmi", host=item.ipmi_address))
        return server

    async def add_hosts(self, items: List[RemoteHost]):
        hosts = [self.build_host(item) for item in items]
        self.check("create hosts", await self.store.servers.bulk_create(hosts))

    async def update_hosts(self, items: List[UpdateItem]):
        host_ids = [item.existing.id for item in items]
        children = await self.store.servers.list(parent_server_id__in=host_ids)
        used_memory = {host_id: 0 for host_id in host_ids}
        for child in children:
            used_memory[child.parent_server_id] += child.max_memory

        changed = []
        for item in items:
            server: ComputeServer = item.existing
            remote: RemoteHost = item.remote
            dirty = False

            if server.used_memory != used_memory[server.id]:
                server.used_memory = used_memory[server.id]
                dirty = True
            # Capacity never shrinks on a possibly stale read
            if remote.memory_capacity > server.max_memory:
                server.max_memory = remote.memory_capacity
                dirty = True
            if remote.core_count > server.max_cores:
                server.max_cores = remote.core_count
                dirty = True
            power_state = host_power_state(remote)
            if server.power_state != power_state:
                server.power_state = power_state
                dirty = True

            if dirty:
                changed.append(server)

        if changed:
            self.check("save hosts", await self.store.servers.bulk_save(changed))

    async def remove_hosts(self, items):
        children = await self.store.servers.list(parent_server_id__in=[item.id for item in items])
        for child in children:
            child.parent_server_id = None
        if children:
            self.check("unlink children", await self.store.servers.bulk_save(children))
        self.check("remove hosts", await self.store.servers.bulk_remove(items))
