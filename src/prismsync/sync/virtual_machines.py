"""Guest VM reconciliation."""

import logging
import uuid
from typing import Dict, Iterable, List, Optional

from prismsync.models.records import ComputeServer, PowerState
from prismsync.models.remote import RemoteVirtualMachine
from prismsync.sync.base import REF_TYPE, BaseSync
from prismsync.sync.engine import UpdateItem
from prismsync.sync.hosts import HOST_TYPE_CODE


logger = logging.getLogger(__name__)

VM_TYPE_CODE = "prism-unmanaged"


def vm_power_state(vm: RemoteVirtualMachine) -> PowerState:
    return PowerState.ON if vm.powered_on else PowerState.OFF


class VirtualMachineSync(BaseSync):
    """Tracks guest VMs; new VMs are only imported when the cloud asks for it."""

    name = "virtual_machine"

    async def execute(self):
        remote = self.require(await self.client.list_virtual_machines())
        existing = await self.store.servers.list_projections(cloud_id=self.cloud.id, type_code__ne=HOST_TYPE_CODE)

        await self.reconcile(
            existing,
            remote,
            lambda local, item: local.external_id == item.uuid,
            loader=self.store.servers.list_by_id,
            on_add=self.add_vms,
            on_update=self.update_vms,
            on_delete=self.remove_vms,
        )

    async def parent_hosts(self, items: Iterable[RemoteVirtualMachine]) -> Dict[str, int]:
        """Map host uuids to local host ids with one query."""
        host_ids = {item.host_uuid for item in items if item.host_uuid}
        if not host_ids:
            return {}
        hosts = await self.store.servers.list(
            cloud_id=self.cloud.id,
            type_code=HOST_TYPE_CODE,
            external_id__in=host_ids,
        )
        return {host.external_id: host.id for host in hosts}

    def build_vm(self, item: RemoteVirtualMachine, parent_id: Optional[int]) -> ComputeServer:
        address = item.ip_address
        return ComputeServer(
            name=item.name,
            external_id=item.uuid,
            cloud_id=self.cloud.id,
            account_id=self.cloud.effective_account_id,
            category=f"prism.vm.{self.cloud.id}",
            server_type="unmanaged",
            type_code=VM_TYPE_CODE,
            status="provisioned",
            power_state=vm_power_state(item),
            ssh_username="root",
            ssh_host=address,
            external_ip=address,
            internal_ip=address,
            os_type="unknown",
            api_key=str(uuid.uuid4()),
            provision=False,
            managed=False,
            discovered=True,
            single_tenant=True,
            max_cores=item.core_count,
            cores_per_socket=item.num_cores_per_vcpu or 1,
            max_memory=item.memory_bytes,
            parent_server_id=parent_id,
            ref_type=REF_TYPE,
            ref_id=self.cloud.id,
        )

    async def add_vms(self, items: List[RemoteVirtualMachine]):
        if not self.cloud.import_existing:
            logger.debug(f"{self.label}: import disabled, ignoring {len(items)} unknown VMs")
            return
        parents = await self.parent_hosts(items)
        vms = [self.build_vm(item, parents.get(item.host_uuid)) for item in items]
        self.check("create VMs", await self.store.servers.bulk_create(vms))

    async def update_vms(self, items: List[UpdateItem]):
        parents = await self.parent_hosts(item.remote for item in items)

        changed = []
        for item in items:
            server: ComputeServer = item.existing
            remote: RemoteVirtualMachine = item.remote
            if server.status == "provisioning":
                continue
            if self.apply_changes(server, remote, parents.get(remote.host_uuid)):
                changed.append(server)

        if changed:
            self.check("save VMs", await self.store.servers.bulk_save(changed))

    def apply_changes(self, server: ComputeServer, remote: RemoteVirtualMachine, parent_id: Optional[int]) -> bool:
        save = False
        power_state = vm_power_state(remote)
        if server.power_state != power_state:
            server.power_state = power_state
            save = True

        address = remote.ip_address
        if power_state == PowerState.ON and address:
            ssh_host = server.ssh_host
            if server.external_ip != address:
                if server.external_ip == ssh_host:
                    server.ssh_host = address
                server.external_ip = address
                save = True
            if server.internal_ip != address:
                if server.internal_ip == ssh_host:
                    server.ssh_host = address
                server.internal_ip = address
                save = True

        updates = {
            "name": remote.name,
            "max_cores": remote.core_count,
            "cores_per_socket": remote.num_cores_per_vcpu or 1,
            "max_memory": remote.memory_bytes,
        }
        if remote.host_uuid and parent_id is not None:
            updates["parent_server_id"] = parent_id
        for field, value in updates.items():
            if getattr(server, field) != value:
                setattr(server, field, value)
                save = True
        return save

    async def remove_vms(self, items):
        self.check("remove VMs", await self.store.servers.bulk_remove(items))
