"""Refresh orchestration: connectivity, region tracking and pass sequencing per cloud."""

import asyncio
import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from prismsync.client.api import ApiError, AuthError, PrismApiClient
from prismsync.models.config import CloudSpec
from prismsync.models.records import Cloud, CloudStatus
from prismsync.store.memory import InventoryStore
from prismsync.sync.registry import SyncRegistry


logger = logging.getLogger(__name__)

HOST_NOT_REACHABLE = "host not reachable"
INVALID_CREDENTIALS = "invalid credentials"

ClientFactory = Callable[[CloudSpec], PrismApiClient]


def calculate_region_code(api_url: str) -> str:
    """Derive the region code of an endpoint from its configured URL."""
    return hashlib.sha3_224(str(api_url).encode()).hexdigest()


@dataclass
class RefreshReport:
    """Outcome of one refresh of one cloud."""
    cloud: str
    started_at: datetime
    status: CloudStatus = CloudStatus.SYNCING
    message: Optional[str] = None
    finished_at: Optional[datetime] = None
    passes: Dict[str, bool] = field(default_factory=dict)

    @property
    def duration(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def finish(self, status: CloudStatus, message: Optional[str] = None) -> "RefreshReport":
        self.status = status
        self.message = message
        self.finished_at = datetime.now()
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cloud": self.cloud,
            "status": self.status.value,
            "message": self.message,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "passes": dict(self.passes),
        }


class RefreshOrchestrator:
    """Runs the pass sequence for a cloud, one refresh per cloud at a time."""

    def __init__(
        self,
        store: InventoryStore,
        client_factory: ClientFactory,
        registry: Optional[SyncRegistry] = None,
    ):
        """Initialize orchestrator."""
        self.store = store
        self.client_factory = client_factory
        self.registry = registry or SyncRegistry()
        self.reports: Dict[str, RefreshReport] = {}
        self._locks: Dict[int, asyncio.Lock] = {}

    def lock_for(self, spec: CloudSpec) -> asyncio.Lock:
        if spec.id not in self._locks:
            self._locks[spec.id] = asyncio.Lock()
        return self._locks[spec.id]

    def is_refreshing(self, spec: CloudSpec) -> bool:
        return self.lock_for(spec).locked()

    async def ensure_cloud(self, spec: CloudSpec) -> Cloud:
        """Create or update the cloud record described by a cloud spec."""
        cloud = await self.store.clouds.get(spec.id)
        values = {
            "name": spec.name,
            "code": f"prism.{spec.id}",
            "api_url": spec.api_url,
            "owner_id": spec.owner_id,
            "account_id": spec.account_id,
            "import_existing": spec.import_existing,
            "network_sync_active": spec.network_sync_active,
            "datastore_sync_active": spec.datastore_sync_active,
        }
        if cloud is None:
            return await self.store.clouds.create(Cloud(id=spec.id, **values))

        if any(getattr(cloud, key) != value for key, value in values.items()):
            for key, value in values.items():
                setattr(cloud, key, value)
            await self.store.clouds.bulk_save([cloud])
        return cloud

    async def refresh(self, spec: CloudSpec) -> RefreshReport:
        """Refresh a cloud; waits for a refresh of the same cloud already running."""
        async with self.lock_for(spec):
            report = await self._refresh(spec)
        self.reports[spec.name] = report
        return report

    async def _refresh(self, spec: CloudSpec) -> RefreshReport:
        report = RefreshReport(cloud=spec.name, started_at=datetime.now())
        logger.info(f"Starting refresh of cloud {spec.name}")
        cloud = await self.ensure_cloud(spec)

        try:
            async with self.client_factory(spec) as client:
                try:
                    await client.check_connection()
                except AuthError as e:
                    logger.warning(f"Cloud {spec.name} rejected credentials: {e}")
                    return await self._offline(cloud, report, INVALID_CREDENTIALS)
                except ApiError as e:
                    logger.warning(f"Cloud {spec.name} unreachable: {e}")
                    return await self._offline(cloud, report, HOST_NOT_REACHABLE)

                await self.migrate_region_code(cloud, calculate_region_code(spec.api_url))
                await self.store.update_cloud_status(cloud, CloudStatus.SYNCING, None, report.started_at)

                for sync_pass in self.registry.create_passes(cloud, client, self.store):
                    report.passes[sync_pass.name] = await sync_pass.run()

                await self.store.clear_alarm(cloud)
                await self.store.update_cloud_status(cloud, CloudStatus.OK, None, report.started_at)
                report.finish(CloudStatus.OK)

        except Exception as e:
            logger.error(f"Refresh of cloud {spec.name} failed: {e}", exc_info=True)
            await self.store.update_cloud_status(cloud, CloudStatus.ERROR, str(e), datetime.now())
            return report.finish(CloudStatus.ERROR, str(e))

        failed = [name for name, ok in report.passes.items() if not ok]
        if failed:
            logger.warning(f"Cloud {spec.name} refreshed with failed passes: {', '.join(failed)}")
        logger.info(f"Refresh of cloud {spec.name} completed in {report.duration:.2f}s")
        return report

    async def _offline(self, cloud: Cloud, report: RefreshReport, message: str) -> RefreshReport:
        await self.store.update_cloud_status(cloud, CloudStatus.OFFLINE, message, report.started_at)
        await self.store.create_alarm(cloud, message)
        return report.finish(CloudStatus.OFFLINE, message)

    async def migrate_region_code(self, cloud: Cloud, region_code: str):
        """Move region-tagged rows to a new region code when the endpoint changed."""
        old_code = cloud.region_code
        if old_code == region_code:
            return

        if old_code:
            logger.info(f"Cloud {cloud.name} moved endpoints, rewriting region code {old_code}")
            locations = await self.store.locations.list(image_region=old_code)
            for location in locations:
                location.image_region = region_code
            result = await self.store.locations.bulk_save(locations)
            if result.has_failures:
                logger.error(f"Failed to update region code for image locations: {result.failures}")

            images = await self.store.images.list(image_region=old_code)
            for image in images:
                image.image_region = region_code
            result = await self.store.images.bulk_save(images)
            if result.has_failures:
                logger.error(f"Failed to update region code for images: {result.failures}")

            plans = await self.store.service_plans.list(region_code=old_code)
            for plan in plans:
                plan.region_code = region_code
            result = await self.store.service_plans.bulk_save(plans)
            if result.has_failures:
                logger.error(f"Failed to update region code for service plans: {result.failures}")

        cloud.region_code = region_code
        await self.store.clouds.bulk_save([cloud])
