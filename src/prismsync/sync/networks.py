"""Network and IP pool reconciliation."""

import logging
from typing import List

from prismsync.models.records import Network, NetworkPool, NetworkPoolRange
from prismsync.models.remote import IpConfig, RemoteNetwork
from prismsync.sync.base import REF_TYPE, BaseSync, DataIntegrityError
from prismsync.sync.engine import UpdateItem


logger = logging.getLogger(__name__)

NETWORK_TYPE_MANAGED = "prism-managed-vlan"
NETWORK_TYPE_UNMANAGED = "prism-vlan"
POOL_TYPE = "prism"
NETWORK_CATEGORY_PREFIX = "prism.network."


def network_type(remote: RemoteNetwork) -> str:
    return NETWORK_TYPE_MANAGED if remote.managed else NETWORK_TYPE_UNMANAGED


def pool_ranges(ip_config: IpConfig) -> List[NetworkPoolRange]:
    """Parse "start end" pool entries; malformed entries are dropped."""
    ranges = []
    for entry in ip_config.pool:
        bounds = entry.bounds()
        if bounds:
            ranges.append(NetworkPoolRange(start_address=bounds[0], end_address=bounds[1], external_id=entry.range))
    return ranges


class NetworkSync(BaseSync):
    """Keeps networks, and the pools of managed networks, in step with the cluster."""

    name = "network"

    @property
    def category(self) -> str:
        return f"{NETWORK_CATEGORY_PREFIX}{self.cloud.id}"

    async def execute(self):
        remote = self.require(await self.client.list_networks())
        existing = await self.store.networks.list_projections(cloud_id=self.cloud.id)

        await self.reconcile(
            existing,
            remote,
            lambda local, item: local.external_id == item.uuid,
            loader=self.store.networks.list_by_id,
            on_add=self.add_missing,
            on_update=self.update_matched,
            on_delete=self.remove_missing,
        )

    async def add_missing(self, items: List[RemoteNetwork]):
        networks = []
        for item in items:
            try:
                networks.append(await self._build_network(item))
            except DataIntegrityError as e:
                self.skip(e)
        if networks:
            self.check("create networks", await self.store.networks.bulk_create(networks))

    async def _build_network(self, item: RemoteNetwork) -> Network:
        network = Network(
            name=item.display_name,
            code=f"{self.category}.{item.uuid}",
            category=self.category,
            cloud_id=self.cloud.id,
            owner_id=self.cloud.owner_id,
            type_code=network_type(item),
            vlan_id=item.vlan_id,
            unique_id=item.uuid,
            external_id=item.uuid,
            ref_type=REF_TYPE,
            ref_id=self.cloud.id,
            dhcp_server=True,
            active=self.cloud.network_sync_active,
        )
        if item.managed:
            ip_config = item.ip_config
            network.prefix_length = ip_config.prefix_length
            network.dhcp_ip = ip_config.dhcp_server_address
            network.dhcp_server = bool(ip_config.dhcp_server_address)
            network.subnet_address = ip_config.network_address
            network.gateway = ip_config.default_gateway
            network.tftp_server = ip_config.dhcp_options.tftp_server_name
            network.boot_file = ip_config.dhcp_options.boot_file_name
            pool = await self._create_pool(item)
            network.pool_id = pool.id
        return network

    async def _create_pool(self, item: RemoteNetwork) -> NetworkPool:
        ip_config = item.ip_config
        options = ip_config.dhcp_options
        pool = NetworkPool(
            name=ip_config.network_address,
            external_id=item.uuid,
            category=self.category,
            type_code=POOL_TYPE,
            ref_type=REF_TYPE,
            ref_id=self.cloud.id,
            owner_id=self.cloud.owner_id,
            account_id=self.cloud.effective_account_id,
            dns_domain=options.domain_name,
            dns_search_path=options.domain_search,
            dns_servers=[options.domain_name_servers] if options.domain_name_servers else [],
            dhcp_server=bool(ip_config.dhcp_server_address),
            subnet_address=ip_config.network_address,
            gateway=ip_config.default_gateway,
            ip_ranges=pool_ranges(ip_config),
        )
        result = await self.store.pools.bulk_create([pool])
        if result.has_failures:
            raise DataIntegrityError(f"could not create pool for network {item.uuid}")

        # Creation only reports success, so look the pool back up for its id
        created = await self.store.pools.find(external_id=item.uuid, type_code=POOL_TYPE, ref_id=self.cloud.id)
        if created is None:
            raise DataIntegrityError(f"pool for network {item.uuid} missing after create")
        return created

    async def update_matched(self, items: List[UpdateItem]):
        pool_ids = {item.existing.pool_id for item in items if item.existing.pool_id}
        existing_pools = {pool.id: pool for pool in await self.store.pools.list_by_id(pool_ids)}

        networks = []
        pools = []
        for item in items:
            network: Network = item.existing
            remote: RemoteNetwork = item.remote
            changed = False

            if network.name != remote.display_name:
                network.name = remote.display_name
                changed = True
            if network.type_code != network_type(remote):
                network.type_code = network_type(remote)
                changed = True

            pool = existing_pools.get(network.pool_id)
            if pool and await self._patch_pool(pool, remote):
                pools.append(pool)
                changed = True

            if changed:
                networks.append(network)

        if pools:
            self.check("save pools", await self.store.pools.bulk_save(pools))
        if networks:
            self.check("save networks", await self.store.networks.bulk_save(networks))

    async def _patch_pool(self, pool: NetworkPool, remote: RemoteNetwork) -> bool:
        changed = False
        if remote.managed and not pool.ip_ranges:
            ranges = pool_ranges(remote.ip_config)
            if ranges:
                pool.ip_ranges = ranges
                changed = True
        if pool.type_code is None:
            pool.type_code = POOL_TYPE
            changed = True
        if pool.ref_id is None:
            pool.ref_type = REF_TYPE
            pool.ref_id = self.cloud.id
            await self.remove_duplicate_pools(pool)
            changed = True
        return changed

    async def remove_duplicate_pools(self, pool: NetworkPool):
        """Remove ghost pools sharing this pool's identity that no network references."""
        candidates = await self.store.pools.list(
            type_code=pool.type_code,
            external_id=pool.external_id,
            id__ne=pool.id,
        )
        if not candidates:
            return

        networks = await self.store.networks.list(category__startswith=NETWORK_CATEGORY_PREFIX)
        referenced = {network.pool_id for network in networks if network.pool_id is not None}
        ghosts = [candidate for candidate in candidates if candidate.id not in referenced]
        if ghosts:
            logger.info(f"{self.label}: removing {len(ghosts)} duplicate pool(s) for {pool.external_id}")
            self.check("remove duplicate pools", await self.store.pools.bulk_remove(ghosts))

    async def remove_missing(self, items):
        self.check("remove networks", await self.store.networks.bulk_remove(items))
