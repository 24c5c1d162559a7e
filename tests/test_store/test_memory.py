"""Tests for the in-memory inventory store."""

from datetime import datetime

import pytest

from prismsync.models.records import Cloud, CloudStatus, Network, VirtualImage
from prismsync.store.memory import InventoryStore


@pytest.mark.asyncio
class TestRepository:
    """Test repository reads and writes."""

    async def test_create_assigns_ids(self, store):
        first = await store.networks.create(Network(name="a"))
        second = await store.networks.create(Network(name="b"))

        assert (first.id, second.id) == (1, 2)

    async def test_reads_return_copies(self, store):
        network = await store.networks.create(Network(name="a"))

        loaded = await store.networks.get(network.id)
        loaded.name = "changed"

        assert (await store.networks.get(network.id)).name == "a"

    async def test_filter_operators(self, store):
        for name, cloud_id in (("a", 1), ("b", 2), ("c", None)):
            await store.networks.create(Network(name=name, cloud_id=cloud_id, category=f"prism.network.{cloud_id}"))

        assert [n.name for n in await store.networks.list(cloud_id__in=[1, 2])] == ["a", "b"]
        assert [n.name for n in await store.networks.list(cloud_id__ne=1)] == ["b", "c"]
        assert [n.name for n in await store.networks.list(cloud_id__isnull=True)] == ["c"]
        assert await store.networks.count(category__startswith="prism.network.") == 3
        assert (await store.networks.find(name="b")).cloud_id == 2
        assert await store.networks.find(name="zzz") is None

    async def test_projections(self, store):
        image = await store.images.create(VirtualImage(name="ubuntu", external_id="d1", image_type="qcow2"))

        projection = (await store.images.list_projections())[0]

        assert (projection.id, projection.external_id, projection.name) == (image.id, "d1", "ubuntu")
        assert projection.type_code == "qcow2"

    async def test_list_by_id(self, store):
        for name in "abc":
            await store.networks.create(Network(name=name))

        assert sorted(n.name for n in await store.networks.list_by_id([1, 3, 99])) == ["a", "c"]

    async def test_bulk_save_unknown_record_fails(self, store):
        result = await store.networks.bulk_save([Network(id=42, name="ghost")])

        assert result.has_failures
        assert result.failures == [42]

    async def test_bulk_create_duplicate_id_fails(self, store):
        await store.networks.create(Network(id=5, name="a"))

        result = await store.networks.bulk_create([Network(id=5, name="b"), Network(name="c")])

        assert result.failures == [5]
        assert [n.name for n in result.succeeded] == ["c"]

    async def test_bulk_remove(self, store):
        network = await store.networks.create(Network(name="a"))

        result = await store.networks.bulk_remove([network, Network(id=77)])

        assert result.succeeded == [network.id]
        assert result.failures == [77]
        assert await store.networks.count() == 0


@pytest.mark.asyncio
class TestInventoryStore:
    """Test cloud status, alarms and snapshots."""

    async def test_ok_status_records_last_sync(self, store):
        cloud = await store.clouds.create(Cloud(id=1, name="pe-lab"))
        now = datetime.now()

        await store.update_cloud_status(cloud, CloudStatus.OFFLINE, "host not reachable", now)
        offline = await store.clouds.get(1)
        assert offline.status == CloudStatus.OFFLINE
        assert offline.last_sync is None

        await store.update_cloud_status(cloud, CloudStatus.OK, None, now)
        assert (await store.clouds.get(1)).last_sync == now

    async def test_alarms(self, store):
        cloud = Cloud(id=1, name="pe-lab")

        await store.create_alarm(cloud, "invalid credentials")
        assert store.alarms[1].message == "invalid credentials"

        await store.clear_alarm(cloud)
        await store.clear_alarm(cloud)
        assert store.alarms == {}

    async def test_snapshot_round_trip(self, store, tmp_path):
        path = tmp_path / "inventory.json"
        cloud = await store.clouds.create(Cloud(id=3, name="pe-lab"))
        await store.networks.create(Network(name="vlan10", cloud_id=3))
        await store.create_alarm(cloud, "host not reachable")

        await store.save_snapshot(path)
        restored = InventoryStore()
        await restored.load_snapshot(path)

        assert (await restored.clouds.get(3)).name == "pe-lab"
        assert (await restored.networks.list())[0].name == "vlan10"
        assert restored.alarms[3].message == "host not reachable"
        assert (await restored.networks.create(Network(name="next"))).id == 2

    async def test_missing_snapshot_is_ignored(self, store, tmp_path):
        await store.load_snapshot(tmp_path / "absent.json")

        assert await store.clouds.count() == 0
