"""Pydantic models for configuration, remote payloads and local records."""

from prismsync.models.config import PrismSyncConfig, AgentConfig, ProxyConfig, CloudSpec
from prismsync.models.records import (
    Alarm,
    Cloud,
    CloudStatus,
    ComputeServer,
    Datastore,
    IdentityProjection,
    Network,
    NetworkPool,
    NetworkPoolRange,
    PowerState,
    ServerAccess,
    ServicePlan,
    Snapshot,
    VirtualImage,
    VirtualImageLocation,
)
from prismsync.models.remote import (
    RemoteContainer,
    RemoteHost,
    RemoteImage,
    RemoteNetwork,
    RemoteSnapshot,
    RemoteVirtualMachine,
)

__all__ = [
    "PrismSyncConfig",
    "AgentConfig",
    "ProxyConfig",
    "CloudSpec",
    "Alarm",
    "Cloud",
    "CloudStatus",
    "ComputeServer",
    "Datastore",
    "IdentityProjection",
    "Network",
    "NetworkPool",
    "NetworkPoolRange",
    "PowerState",
    "ServerAccess",
    "ServicePlan",
    "Snapshot",
    "VirtualImage",
    "VirtualImageLocation",
    "RemoteContainer",
    "RemoteHost",
    "RemoteImage",
    "RemoteNetwork",
    "RemoteSnapshot",
    "RemoteVirtualMachine",
]
