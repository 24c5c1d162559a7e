"""Tests for the pass base class and registry."""

import pytest

from prismsync.client.api import ApiResult
from prismsync.sync.base import BaseSync, PassError
from prismsync.sync.registry import SyncRegistry


class FailingSync(BaseSync):
    name = "failing"

    async def execute(self):
        raise RuntimeError("boom")


class ListingSync(BaseSync):
    name = "listing"

    async def execute(self):
        self.items = self.require(await self.client.list_hosts())


class TestSyncRegistry:
    """Test pass ordering."""

    def test_passes_in_dependency_order(self):
        registry = SyncRegistry()

        assert registry.list_passes() == [
            "network",
            "datastore",
            "image",
            "host",
            "virtual_machine",
            "snapshot",
        ]

    def test_get_pass_class(self):
        registry = SyncRegistry()

        assert registry.get_pass_class("host").name == "host"
        assert registry.get_pass_class("nonexistent") is None

    def test_create_passes_shares_context(self, cloud, api, store):
        passes = SyncRegistry().create_passes(cloud, api, store)

        assert [p.name for p in passes] == SyncRegistry().list_passes()
        assert all(p.cloud is cloud and p.client is api and p.store is store for p in passes)

    def test_label_names_cloud(self, cloud, api, store):
        assert ListingSync(cloud, api, store).label == "listing sync [pe-lab]"


@pytest.mark.asyncio
class TestBaseSync:
    """Test pass execution wrapper."""

    async def test_run_reports_failure(self, cloud, api, store):
        assert await FailingSync(cloud, api, store).run() is False

    async def test_require_returns_items(self, cloud, api, store):
        api.list_hosts.return_value = ApiResult(success=True, items=["a"])
        sync = ListingSync(cloud, api, store)

        assert await sync.run() is True
        assert sync.items == ["a"]

    async def test_require_aborts_on_failed_list(self, cloud, api, store):
        api.list_hosts.return_value = ApiResult(success=False, message="HTTP 503")
        sync = ListingSync(cloud, api, store)

        with pytest.raises(PassError, match="HTTP 503"):
            await sync.execute()
