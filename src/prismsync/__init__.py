"""
prismsync - inventory reconciliation for Nutanix Prism Element clusters.

An agent periodically mirrors hosts, VMs, networks, storage containers, images
and snapshots of each configured cluster into a local inventory store.
"""

__version__ = "1.0.0"

from prismsync.models.config import CloudSpec, PrismSyncConfig
from prismsync.models.records import Cloud, CloudStatus

__all__ = [
    "Cloud",
    "CloudSpec",
    "CloudStatus",
    "PrismSyncConfig",
]
