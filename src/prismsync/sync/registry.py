"""Ordered registry of reconciliation passes."""

import logging
from typing import Dict, List, Optional, Type

from prismsync.sync.base import BaseSync
from prismsync.sync.datastores import DatastoreSync
from prismsync.sync.hosts import HostSync
from prismsync.sync.images import ImageSync
from prismsync.sync.networks import NetworkSync
from prismsync.sync.snapshots import SnapshotSync
from prismsync.sync.virtual_machines import VirtualMachineSync


logger = logging.getLogger(__name__)


class SyncRegistry:
    """Registry for pass classes, kept in dependency order."""

    def __init__(self):
        """Initialize sync registry."""
        # Hosts reference networks, VMs reference hosts and images, snapshots reference VMs
        self._pass_classes: Dict[str, Type[BaseSync]] = {
            "network": NetworkSync,
            "datastore": DatastoreSync,
            "image": ImageSync,
            "host": HostSync,
            "virtual_machine": VirtualMachineSync,
            "snapshot": SnapshotSync,
        }

    def get_pass_class(self, name: str) -> Optional[Type[BaseSync]]:
        """Get a pass class by name."""
        return self._pass_classes.get(name)

    def list_passes(self) -> List[str]:
        """List pass names in execution order."""
        return list(self._pass_classes.keys())

    def create_passes(self, cloud, client, store) -> List[BaseSync]:
        """Instantiate every pass for one cloud, in execution order."""
        passes = []
        for name, pass_class in self._pass_classes.items():
            passes.append(pass_class(cloud, client, store))
            logger.debug(f"Prepared {name} sync for cloud {cloud.name}")
        return passes
