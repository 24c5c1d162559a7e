"""Tests for the datastore pass."""

import pytest

from prismsync.client.api import ApiResult
from prismsync.models.records import Datastore
from prismsync.models.remote import RemoteContainer
from prismsync.sync.datastores import DatastoreSync


def container(uuid="c1", name="default-container", capacity=1000, free=400, container_id="0005::123"):
    return RemoteContainer.model_validate({
        "storage_container_uuid": uuid,
        "id": container_id,
        "name": name,
        "max_capacity": capacity,
        "usage_stats": {"storage.free_bytes": str(free)},
    })


async def run_pass(cloud, api, store, *containers):
    api.list_containers.return_value = ApiResult(success=True, items=list(containers))
    assert await DatastoreSync(cloud, api, store).run() is True


@pytest.mark.asyncio
class TestDatastoreSync:
    """Test container mirroring."""

    async def test_add_container(self, cloud, api, store):
        await run_pass(cloud, api, store, container())

        datastore = (await store.datastores.list())[0]
        assert datastore.external_id == "c1"
        assert datastore.code == "prism.datastore.1.0005::123"
        assert datastore.type_code == "generic"
        assert (datastore.ref_type, datastore.ref_id) == ("ComputeZone", 1)
        assert datastore.storage_size == 1000
        assert datastore.free_space == 400
        assert datastore.active is True

    async def test_inactive_when_cloud_disables_datastores(self, cloud, api, store):
        cloud.datastore_sync_active = False

        await run_pass(cloud, api, store, container())

        assert (await store.datastores.list())[0].active is False

    async def test_management_share_is_skipped(self, cloud, api, store):
        await run_pass(cloud, api, store, container(name="NutanixManagementShare"))

        assert await store.datastores.count() == 0

    async def test_capacity_is_refreshed(self, cloud, api, store):
        datastore = await store.datastores.create(Datastore(
            name="default-container", external_id="c1", ref_type="ComputeZone", ref_id=1, storage_size=10,
        ))

        await run_pass(cloud, api, store, container(capacity=2000, free=50))

        updated = await store.datastores.get(datastore.id)
        assert updated.storage_size == 2000
        assert updated.free_space == 50

    async def test_vanished_container_is_removed(self, cloud, api, store):
        datastore = await store.datastores.create(Datastore(external_id="c9", ref_type="ComputeZone", ref_id=1))

        await run_pass(cloud, api, store)

        assert await store.datastores.get(datastore.id) is None
