"""Schemas for items returned by the Prism Element v2 API.

Every field the API may omit is optional with a defined default, so a sparse
payload never breaks reconciliation. Unknown fields are ignored.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


ONE_MEGABYTE = 1024 * 1024

HOST_HEALTHY_STATES = ("COMPLETE", "NORMAL")


class RemoteItem(BaseModel):
    """Base for all remote records."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    uuid: str = Field(..., description="Remote identity")


class RemoteHost(RemoteItem):
    """A hypervisor node."""
    name: Optional[str] = None
    state: Optional[str] = None
    hypervisor_address: Optional[str] = None
    ipmi_address: Optional[str] = None
    memory_capacity_in_bytes: Optional[int] = None
    memory_capacity_mib: Optional[int] = None
    num_cpu_cores: Optional[int] = None
    num_cpu_sockets: Optional[int] = None

    @property
    def powered_on(self) -> bool:
        # Older releases report COMPLETE, newer ones NORMAL
        return self.state in HOST_HEALTHY_STATES

    @property
    def memory_capacity(self) -> int:
        if self.memory_capacity_in_bytes is not None:
            return self.memory_capacity_in_bytes
        return (self.memory_capacity_mib or 0) * ONE_MEGABYTE

    @property
    def core_count(self) -> int:
        return (self.num_cpu_cores or 0) * (self.num_cpu_sockets or 0)


class DhcpOptions(BaseModel):
    """DHCP options attached to a managed network."""
    model_config = ConfigDict(extra="ignore")

    domain_name: Optional[str] = None
    domain_name_servers: Optional[str] = None
    domain_search: Optional[str] = None
    tftp_server_name: Optional[str] = None
    boot_file_name: Optional[str] = None


class PoolRange(BaseModel):
    """An address range written as "start end"."""
    model_config = ConfigDict(extra="ignore")

    range: str = ""

    def bounds(self) -> Optional[tuple]:
        tokens = self.range.split()
        if len(tokens) > 1:
            return tokens[0], tokens[1]
        return None


class IpConfig(BaseModel):
    """IP address management block of a network."""
    model_config = ConfigDict(extra="ignore")

    network_address: Optional[str] = None
    prefix_length: Optional[int] = None
    default_gateway: Optional[str] = None
    dhcp_server_address: Optional[str] = None
    dhcp_options: DhcpOptions = Field(default_factory=DhcpOptions)
    pool: List[PoolRange] = Field(default_factory=list)


class RemoteNetwork(RemoteItem):
    """A VLAN backed virtual network."""
    name: Optional[str] = None
    vlan_id: Optional[int] = None
    ip_config: Optional[IpConfig] = None

    @property
    def managed(self) -> bool:
        return bool(self.ip_config and self.ip_config.network_address)

    @property
    def display_name(self) -> str:
        return self.name or self.uuid


class RemoteContainer(RemoteItem):
    """A storage container."""
    uuid: str = Field(..., alias="storage_container_uuid")
    id: Optional[str] = None
    name: Optional[str] = None
    max_capacity: Optional[int] = None
    usage_stats: Dict[str, Any] = Field(default_factory=dict)

    @property
    def free_space(self) -> int:
        return int(self.usage_stats.get("storage.free_bytes") or 0)


class RemoteImage(RemoteItem):
    """An image service entry."""
    name: Optional[str] = None
    vm_disk_id: Optional[str] = None
    image_type: str = "qcow2"
    image_state: Optional[str] = None
    storage_container_id: Optional[int] = None
    storage_container_uuid: Optional[str] = None
    deleted: bool = False

    @field_validator("image_type", mode="before")
    @classmethod
    def normalize_image_type(cls, v):
        """Map API image types onto local image type codes."""
        if v is None or v == "DISK_IMAGE" or str(v).lower() in ("disk", "qcow2"):
            return "qcow2"
        if str(v).lower() in ("raw",):
            return "raw"
        return "iso"


class RemoteSnapshot(RemoteItem):
    """A VM level snapshot."""
    snapshot_name: Optional[str] = None
    vm_uuid: Optional[str] = None
    created_time: Optional[int] = Field(None, description="Microseconds since the epoch")

    @property
    def created_at(self) -> Optional[datetime]:
        if self.created_time is None:
            return None
        return datetime.fromtimestamp(self.created_time / 1_000_000, tz=timezone.utc)


class RemoteNic(BaseModel):
    """A virtual NIC."""
    model_config = ConfigDict(extra="ignore")

    mac_address: Optional[str] = None
    network_uuid: Optional[str] = None
    ip_address: Optional[str] = None
    adapter_type: Optional[str] = None


class RemoteVirtualMachine(RemoteItem):
    """A guest VM."""
    name: Optional[str] = None
    power_state: Optional[str] = None
    num_vcpus: Optional[int] = None
    num_cores_per_vcpu: Optional[int] = None
    memory_mb: Optional[int] = None
    host_uuid: Optional[str] = None
    vm_nics: List[RemoteNic] = Field(default_factory=list)

    @property
    def powered_on(self) -> bool:
        return (self.power_state or "").upper() == "ON"

    @property
    def ip_address(self) -> Optional[str]:
        for nic in self.vm_nics:
            if nic.ip_address:
                return nic.ip_address
        return None

    @property
    def core_count(self) -> int:
        return (self.num_vcpus or 0) * (self.num_cores_per_vcpu or 0)

    @property
    def memory_bytes(self) -> int:
        return (self.memory_mb or 0) * ONE_MEGABYTE
