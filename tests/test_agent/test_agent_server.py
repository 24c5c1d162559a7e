"""Tests for the agent HTTP server."""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from prismsync.agent.orchestrator import RefreshReport
from prismsync.agent.server import AgentServer
from prismsync.models.config import CloudSpec
from prismsync.models.records import Cloud, CloudStatus, ComputeServer, Network, Snapshot
from prismsync.sync.hosts import HOST_TYPE_CODE


@pytest.fixture
def specs():
    return {
        "pe-lab": CloudSpec(name="pe-lab", id=1, api_url="10.0.0.5", username="admin", password="x"),
        "pe-dr": CloudSpec(name="pe-dr", id=2, api_url="10.1.0.5", username="admin", password="x", enabled=False),
    }


@pytest.fixture
def mock_dependencies(specs):
    """Create mock orchestrator and config manager."""
    orchestrator = MagicMock()
    orchestrator.reports = {}
    orchestrator.is_refreshing.return_value = False
    orchestrator.refresh = AsyncMock(
        side_effect=lambda spec: RefreshReport(cloud=spec.name, started_at=datetime.now()).finish(CloudStatus.OK)
    )

    config_manager = MagicMock()
    config_manager.clouds = specs
    config_manager.get_cloud_spec.side_effect = specs.get
    config_manager.enabled_clouds.return_value = [spec for spec in specs.values() if spec.enabled]
    config_manager.load = AsyncMock()

    return orchestrator, config_manager


@pytest_asyncio.fixture
async def agent_client(mock_dependencies, store, tmp_path):
    orchestrator, config_manager = mock_dependencies
    on_reload = AsyncMock()
    server_logic = AgentServer(tmp_path / "sock", orchestrator, config_manager, store, on_reload=on_reload)

    client = TestClient(TestServer(server_logic.app))
    await client.start_server()
    try:
        yield client, on_reload
    finally:
        await client.close()


async def send(client, command, **args):
    resp = await client.post("/api/v1/command", json={"command": command, "args": args})
    return resp.status, await resp.json()


@pytest.mark.asyncio
class TestAgentServer:
    """Test command handling."""

    async def test_status(self, agent_client, store):
        client, _ = agent_client
        await store.clouds.create(Cloud(id=1, name="pe-lab", status=CloudStatus.OFFLINE,
                                        status_message="host not reachable"))
        await store.create_alarm(await store.clouds.get(1), "host not reachable")

        status, data = await send(client, "status")

        assert status == 200
        assert data["success"] is True
        clouds = data["data"]["clouds"]
        assert clouds["pe-lab"]["status"] == "offline"
        assert clouds["pe-lab"]["alarm"] == "host not reachable"
        assert clouds["pe-lab"]["refreshing"] is False
        assert clouds["pe-dr"]["status"] is None
        assert clouds["pe-dr"]["enabled"] is False

    async def test_unknown_command(self, agent_client):
        client, _ = agent_client

        status, data = await send(client, "invalid_cmd")

        assert status == 400
        assert data["success"] is False
        assert "Unknown command" in data["error"]

    async def test_invalid_json(self, agent_client):
        client, _ = agent_client

        resp = await client.post("/api/v1/command", data="not json")

        assert resp.status == 400
        assert (await resp.json())["success"] is False

    async def test_list_hosts_and_vms(self, agent_client, store):
        client, _ = agent_client
        await store.servers.create(ComputeServer(name="node-1", type_code=HOST_TYPE_CODE, ref_id=1))
        await store.servers.create(ComputeServer(name="guest", type_code="prism-unmanaged", ref_id=1))

        _, hosts = await send(client, "list", type="hosts")
        _, vms = await send(client, "list", type="vms")

        assert [item["name"] for item in hosts["data"]["items"]] == ["node-1"]
        assert [item["name"] for item in vms["data"]["items"]] == ["guest"]

    async def test_list_filtered_by_cloud(self, agent_client, store):
        client, _ = agent_client
        await store.networks.create(Network(name="vlan10", ref_id=1))
        await store.networks.create(Network(name="vlan20", ref_id=2))
        await store.snapshots.create(Snapshot(name="snap", cloud_id=2))

        _, networks = await send(client, "list", type="networks", cloud="pe-lab")
        _, snapshots = await send(client, "list", type="snapshots", cloud="pe-dr")

        assert [item["name"] for item in networks["data"]["items"]] == ["vlan10"]
        assert [item["name"] for item in snapshots["data"]["items"]] == ["snap"]

    async def test_list_rejects_unknown_type_and_cloud(self, agent_client):
        client, _ = agent_client

        status, data = await send(client, "list", type="widgets")
        assert status == 400
        assert "Unknown resource type" in data["error"]

        status, data = await send(client, "list", type="hosts", cloud="nowhere")
        assert status == 400
        assert "not found" in data["error"]

    async def test_refresh_one_cloud(self, agent_client, mock_dependencies):
        client, _ = agent_client
        orchestrator, _ = mock_dependencies

        status, data = await send(client, "refresh", cloud="pe-dr")

        assert status == 200
        assert data["data"]["results"]["pe-dr"]["status"] == "ok"
        assert orchestrator.refresh.await_count == 1

    async def test_refresh_all_enabled(self, agent_client, mock_dependencies):
        client, _ = agent_client
        orchestrator, _ = mock_dependencies

        _, data = await send(client, "refresh")

        assert list(data["data"]["results"]) == ["pe-lab"]
        assert orchestrator.refresh.await_count == 1

    async def test_refresh_failure_is_500(self, agent_client, mock_dependencies):
        client, _ = agent_client
        orchestrator, _ = mock_dependencies
        orchestrator.refresh.side_effect = RuntimeError("boom")

        status, data = await send(client, "refresh", cloud="pe-lab")

        assert status == 500
        assert data["error"] == "boom"

    async def test_refresh_saves_inventory(self, mock_dependencies, store, tmp_path):
        orchestrator, config_manager = mock_dependencies
        on_refresh = AsyncMock()
        server_logic = AgentServer(tmp_path / "sock", orchestrator, config_manager, store, on_refresh=on_refresh)
        client = TestClient(TestServer(server_logic.app))
        await client.start_server()
        try:
            status, _ = await send(client, "refresh", cloud="pe-lab")
        finally:
            await client.close()

        assert status == 200
        on_refresh.assert_awaited_once()

    async def test_reload(self, agent_client, mock_dependencies):
        client, on_reload = agent_client
        _, config_manager = mock_dependencies

        _, data = await send(client, "reload")

        assert data["data"] == {"reloaded": True, "clouds": ["pe-dr", "pe-lab"]}
        config_manager.load.assert_awaited_once()
        on_reload.assert_awaited_once()
