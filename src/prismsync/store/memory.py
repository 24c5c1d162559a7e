"""In-memory persistence gateway with JSON snapshots."""

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Generic, Iterable, List, Optional, Type, TypeVar

from prismsync.models.records import (
    Alarm,
    Cloud,
    CloudStatus,
    ComputeServer,
    Datastore,
    IdentityProjection,
    Network,
    NetworkPool,
    Record,
    ServicePlan,
    Snapshot,
    VirtualImage,
    VirtualImageLocation,
)


logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Record)


@dataclass
class BulkResult:
    """Outcome of a bulk create/save/remove call."""
    succeeded: List[Any] = field(default_factory=list)
    failures: List[Any] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)


def _matches(row: Record, filters: Dict[str, Any]) -> bool:
    """Evaluate keyword filters; a __in, __ne, __isnull or __startswith suffix selects the operator."""
    for key, expected in filters.items():
        if key.endswith("__in"):
            if getattr(row, key[:-4]) not in expected:
                return False
        elif key.endswith("__ne"):
            if getattr(row, key[:-4]) == expected:
                return False
        elif key.endswith("__isnull"):
            if (getattr(row, key[:-8]) is None) != expected:
                return False
        elif key.endswith("__startswith"):
            value = getattr(row, key[:-12])
            if value is None or not str(value).startswith(expected):
                return False
        elif getattr(row, key) != expected:
            return False
    return True


class Repository(Generic[T]):
    """Record collection for one kind.

    Reads hand out copies, so a caller's changes only land through bulk_save.
    """

    def __init__(self, model: Type[T]):
        self.model = model
        self._rows: Dict[int, T] = {}
        self._ids = itertools.count(1)

    def _copy(self, row: T) -> T:
        return row.model_copy(deep=True)

    async def get(self, record_id: int) -> Optional[T]:
        row = self._rows.get(record_id)
        return self._copy(row) if row else None

    async def list(self, **filters) -> List[T]:
        return [self._copy(row) for row in self._rows.values() if _matches(row, filters)]

    async def find(self, **filters) -> Optional[T]:
        for row in self._rows.values():
            if _matches(row, filters):
                return self._copy(row)
        return None

    async def count(self, **filters) -> int:
        return sum(1 for row in self._rows.values() if _matches(row, filters))

    async def list_projections(self, **filters) -> List[IdentityProjection]:
        return [row.to_projection() for row in self._rows.values() if _matches(row, filters)]

    async def list_by_id(self, ids: Iterable[int]) -> List[T]:
        """Batched hydration: one call for the whole id set."""
        wanted = set(ids)
        return [self._copy(row) for row_id, row in self._rows.items() if row_id in wanted]

    async def create(self, record: T) -> T:
        result = await self.bulk_create([record])
        if result.failures:
            raise ValueError(f"Failed to create {self.model.__name__}")
        return result.succeeded[0]

    async def bulk_create(self, records: Iterable[T]) -> BulkResult:
        result = BulkResult()
        for record in records:
            if record.id is None:
                record.id = next(self._ids)
            elif record.id in self._rows:
                result.failures.append(record.id)
                continue
            self._rows[record.id] = self._copy(record)
            result.succeeded.append(record)
        return result

    async def bulk_save(self, records: Iterable[T]) -> BulkResult:
        result = BulkResult()
        for record in records:
            if record.id is None or record.id not in self._rows:
                result.failures.append(record.id)
                continue
            self._rows[record.id] = self._copy(record)
            result.succeeded.append(record)
        return result

    async def bulk_remove(self, records: Iterable[Any]) -> BulkResult:
        """Remove by id; accepts records or projections."""
        result = BulkResult()
        for record in records:
            if self._rows.pop(record.id, None) is None:
                result.failures.append(record.id)
            else:
                result.succeeded.append(record.id)
        return result

    def dump(self) -> List[Dict[str, Any]]:
        return [row.model_dump(mode="json") for row in self._rows.values()]

    def restore(self, rows: List[Dict[str, Any]]):
        self._rows.clear()
        for data in rows:
            row = self.model.model_validate(data)
            self._rows[row.id] = row
        self._ids = itertools.count(max(self._rows, default=0) + 1)


class InventoryStore:
    """Persistence gateway holding every record kind the sync passes touch."""

    def __init__(self):
        self.clouds: Repository[Cloud] = Repository(Cloud)
        self.servers: Repository[ComputeServer] = Repository(ComputeServer)
        self.networks: Repository[Network] = Repository(Network)
        self.pools: Repository[NetworkPool] = Repository(NetworkPool)
        self.datastores: Repository[Datastore] = Repository(Datastore)
        self.images: Repository[VirtualImage] = Repository(VirtualImage)
        self.locations: Repository[VirtualImageLocation] = Repository(VirtualImageLocation)
        self.snapshots: Repository[Snapshot] = Repository(Snapshot)
        self.service_plans: Repository[ServicePlan] = Repository(ServicePlan)
        self.alarms: Dict[int, Alarm] = {}

    def _repositories(self) -> Dict[str, Repository]:
        return {
            "clouds": self.clouds,
            "servers": self.servers,
            "networks": self.networks,
            "pools": self.pools,
            "datastores": self.datastores,
            "images": self.images,
            "locations": self.locations,
            "snapshots": self.snapshots,
            "service_plans": self.service_plans,
        }

    async def update_cloud_status(
        self,
        cloud: Cloud,
        status: CloudStatus,
        message: Optional[str],
        date: datetime,
    ):
        """Record a cloud health transition."""
        cloud.status = status
        cloud.status_message = message
        cloud.status_date = date
        if status == CloudStatus.OK:
            cloud.last_sync = date
        await self.clouds.bulk_save([cloud])
        logger.debug(f"Cloud {cloud.name} status is now {status.value}")

    async def create_alarm(self, cloud: Cloud, message: str):
        self.alarms[cloud.id] = Alarm(cloud_id=cloud.id, message=message, created_at=datetime.now())
        logger.warning(f"Alarm raised for cloud {cloud.name}: {message}")

    async def clear_alarm(self, cloud: Cloud):
        if self.alarms.pop(cloud.id, None):
            logger.info(f"Alarm cleared for cloud {cloud.name}")

    async def save_snapshot(self, path: Path):
        """Write every collection to a JSON file."""
        data = {name: repo.dump() for name, repo in self._repositories().items()}
        data["alarms"] = [alarm.model_dump(mode="json") for alarm in self.alarms.values()]
        content = json.dumps(data, indent=2)
        await asyncio.to_thread(path.write_text, content)
        logger.debug(f"Saved inventory snapshot to {path}")

    async def load_snapshot(self, path: Path):
        """Load collections written by save_snapshot; a missing file is ignored."""
        if not path.exists():
            logger.info(f"No inventory snapshot at {path}, starting empty")
            return
        content = await asyncio.to_thread(path.read_text)
        data = json.loads(content)
        for name, repo in self._repositories().items():
            repo.restore(data.get(name, []))
        self.alarms = {
            alarm.cloud_id: alarm
            for alarm in (Alarm.model_validate(item) for item in data.get("alarms", []))
        }
        logger.info(f"Loaded inventory snapshot from {path}")
