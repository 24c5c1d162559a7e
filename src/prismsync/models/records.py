"""Local inventory records and their identity projections."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CloudStatus(str, Enum):
    """Health of a cloud as seen by the refresh cycle."""
    SYNCING = "syncing"
    OK = "ok"
    OFFLINE = "offline"
    ERROR = "error"


class PowerState(str, Enum):
    """Power state of a compute record."""
    ON = "on"
    OFF = "off"
    UNKNOWN = "unknown"


class IdentityProjection(BaseModel):
    """Identity-only view of a record, used for matching and deletes."""
    model_config = ConfigDict(frozen=True)

    id: int
    external_id: Optional[str] = None
    name: Optional[str] = None
    type_code: Optional[str] = None
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None


class Record(BaseModel):
    """Base for persisted records."""
    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    external_id: Optional[str] = None

    def to_projection(self) -> IdentityProjection:
        return IdentityProjection(
            id=self.id,
            external_id=self.external_id,
            name=getattr(self, "name", None),
            type_code=getattr(self, "type_code", None),
            ref_type=getattr(self, "ref_type", None),
            ref_id=getattr(self, "ref_id", None),
        )


class Cloud(Record):
    """A registered Prism Element cluster."""
    name: str
    code: Optional[str] = None
    api_url: Optional[str] = None
    owner_id: int = 1
    account_id: Optional[int] = None
    region_code: Optional[str] = None
    status: CloudStatus = CloudStatus.OK
    status_message: Optional[str] = None
    status_date: Optional[datetime] = None
    last_sync: Optional[datetime] = None
    import_existing: bool = False
    network_sync_active: bool = True
    datastore_sync_active: bool = True

    @property
    def effective_account_id(self) -> int:
        return self.account_id if self.account_id is not None else self.owner_id


class ServerAccess(BaseModel):
    """Out-of-band access endpoint for a server."""
    access_type: str
    host: str


class ComputeServer(Record):
    """A hypervisor host or a virtual machine."""
    name: Optional[str] = None
    cloud_id: Optional[int] = None
    account_id: Optional[int] = None
    category: Optional[str] = None
    server_type: Optional[str] = None
    type_code: Optional[str] = Field(None, description="Compute server type code")
    status: str = "provisioned"
    status_date: Optional[datetime] = None
    power_state: PowerState = PowerState.UNKNOWN
    hostname: Optional[str] = None
    ssh_username: Optional[str] = None
    ssh_host: Optional[str] = None
    external_ip: Optional[str] = None
    internal_ip: Optional[str] = None
    os_type: Optional[str] = None
    api_key: Optional[str] = None
    provision: bool = False
    managed: bool = False
    discovered: bool = False
    single_tenant: bool = False
    max_memory: int = 0
    used_memory: int = 0
    max_cores: int = 0
    cores_per_socket: int = 1
    max_storage: int = 0
    parent_server_id: Optional[int] = None
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None
    accesses: List[ServerAccess] = Field(default_factory=list)
    snapshot_ids: List[int] = Field(default_factory=list)


class NetworkPoolRange(BaseModel):
    """A contiguous address range inside a pool."""
    start_address: str
    end_address: str
    external_id: Optional[str] = None


class NetworkPool(Record):
    """IP pool backing a managed network."""
    name: Optional[str] = None
    category: Optional[str] = None
    type_code: Optional[str] = None
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None
    owner_id: Optional[int] = None
    account_id: Optional[int] = None
    dns_domain: Optional[str] = None
    dns_search_path: Optional[str] = None
    dns_servers: List[str] = Field(default_factory=list)
    dhcp_server: bool = False
    subnet_address: Optional[str] = None
    gateway: Optional[str] = None
    ip_ranges: List[NetworkPoolRange] = Field(default_factory=list)


class Network(Record):
    """A virtual network."""
    name: Optional[str] = None
    code: Optional[str] = None
    unique_id: Optional[str] = None
    category: Optional[str] = None
    cloud_id: Optional[int] = None
    owner_id: Optional[int] = None
    type_code: Optional[str] = None
    vlan_id: Optional[int] = None
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None
    dhcp_server: bool = True
    dhcp_ip: Optional[str] = None
    prefix_length: Optional[int] = None
    subnet_address: Optional[str] = None
    gateway: Optional[str] = None
    tftp_server: Optional[str] = None
    boot_file: Optional[str] = None
    active: bool = True
    pool_id: Optional[int] = None


class Datastore(Record):
    """A storage container."""
    name: Optional[str] = None
    code: Optional[str] = None
    internal_id: Optional[str] = None
    category: Optional[str] = None
    cloud_id: Optional[int] = None
    owner_id: Optional[int] = None
    type_code: str = "generic"
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None
    storage_size: int = 0
    free_space: int = 0
    active: bool = True


class VirtualImage(Record):
    """Cross-cloud canonical image."""
    name: Optional[str] = None
    code: Optional[str] = None
    unique_id: Optional[str] = None
    category: Optional[str] = None
    owner_id: Optional[int] = None
    account_id: Optional[int] = None
    status: str = "Active"
    image_type: Optional[str] = None
    bucket_id: Optional[int] = None
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None
    user_uploaded: bool = False
    system_image: Optional[bool] = None
    image_region: Optional[str] = None

    def to_projection(self) -> IdentityProjection:
        return IdentityProjection(
            id=self.id,
            external_id=self.external_id,
            name=self.name,
            type_code=self.image_type,
            ref_type=self.ref_type,
            ref_id=self.ref_id,
        )


class VirtualImageLocation(Record):
    """Per-cloud occurrence of a virtual image."""
    code: Optional[str] = None
    internal_id: Optional[str] = None
    external_disk_id: Optional[str] = None
    owner_id: Optional[int] = None
    image_region: Optional[str] = None
    image_name: Optional[str] = None
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None
    virtual_image_id: Optional[int] = None

    def to_projection(self) -> IdentityProjection:
        return IdentityProjection(
            id=self.id,
            external_id=self.external_id,
            name=self.image_name,
            ref_type=self.ref_type,
            ref_id=self.ref_id,
        )


class Snapshot(Record):
    """A VM snapshot."""
    name: Optional[str] = None
    cloud_id: Optional[int] = None
    account_id: Optional[int] = None
    server_id: Optional[int] = None
    snapshot_created: Optional[datetime] = None


class ServicePlan(Record):
    """Sizing plan; only its region tag is touched by the sync."""
    name: Optional[str] = None
    code: Optional[str] = None
    region_code: Optional[str] = None


class Alarm(BaseModel):
    """Cloud level alarm raised by the refresh cycle."""
    cloud_id: int
    message: str
    created_at: datetime
