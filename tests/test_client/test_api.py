"""Tests for the Prism API client."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from prismsync.client.api import ApiError, AuthError, PrismApiClient, TransportError
from prismsync.models.config import CloudSpec, ProxyConfig
from prismsync.models.remote import RemoteHost, RemoteImage


@pytest.fixture
def spec():
    return CloudSpec(name="pe-lab", id=1, api_url="10.0.0.5", username="admin", password="secret")


def client_for(spec, handler):
    return PrismApiClient(spec, transport=httpx.MockTransport(handler))


def entities(*items):
    return httpx.Response(200, json={"metadata": {"count": len(items)}, "entities": list(items)})


@pytest.mark.asyncio
class TestConnection:
    """Test connectivity probing."""

    async def test_probe_uses_v2_cluster_with_basic_auth(self, spec):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"name": "lab"})

        async with client_for(spec, handler) as client:
            await client.check_connection()

        request = seen[0]
        assert str(request.url) == "https://10.0.0.5:9440/api/nutanix/v2.0/cluster"
        assert request.headers["authorization"].startswith("Basic ")
        assert request.headers["accept"] == "application/json"

    async def test_rejected_credentials(self, spec):
        async with client_for(spec, lambda request: httpx.Response(401)) as client:
            with pytest.raises(AuthError) as exc_info:
                await client.check_connection()
        assert exc_info.value.status_code == 401

    async def test_server_error(self, spec):
        async with client_for(spec, lambda request: httpx.Response(503)) as client:
            with pytest.raises(ApiError) as exc_info:
                await client.check_connection()
        assert not isinstance(exc_info.value, AuthError)
        assert exc_info.value.status_code == 503

    async def test_unreachable(self, spec):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with client_for(spec, handler) as client:
            with pytest.raises(TransportError):
                await client.check_connection()

    async def test_missing_password_is_auth_error(self):
        spec = CloudSpec(name="pe-lab", id=1, api_url="10.0.0.5", username="admin")
        client = client_for(spec, lambda request: httpx.Response(200))

        with pytest.raises(AuthError, match="No password"):
            await client.check_connection()


@pytest.mark.asyncio
class TestListing:
    """Test collection listing."""

    async def test_list_hosts(self, spec):
        def handler(request):
            assert request.url.path == "/api/nutanix/v2.0/hosts"
            return entities({"uuid": "h1", "name": "node-1", "state": "NORMAL", "num_cpu_cores": 4,
                             "num_cpu_sockets": 2, "memory_capacity_in_bytes": 1024})

        async with client_for(spec, handler) as client:
            result = await client.list_hosts()

        assert result.success is True
        assert isinstance(result.items[0], RemoteHost)
        assert result.items[0].core_count == 8

    async def test_malformed_entries_are_skipped(self, spec):
        handler = lambda request: entities({"uuid": "i1", "name": "ubuntu"}, {"name": "no uuid"})

        async with client_for(spec, handler) as client:
            result = await client.list_images()

        assert result.success is True
        assert [item.uuid for item in result.items] == ["i1"]
        assert isinstance(result.items[0], RemoteImage)

    async def test_empty_body(self, spec):
        async with client_for(spec, lambda request: httpx.Response(200, json={})) as client:
            result = await client.list_networks()

        assert result.success is True
        assert result.items == []

    async def test_http_error(self, spec):
        async with client_for(spec, lambda request: httpx.Response(500)) as client:
            result = await client.list_snapshots()

        assert result.success is False
        assert result.message == "HTTP 500"

    async def test_invalid_json(self, spec):
        async with client_for(spec, lambda request: httpx.Response(200, content=b"<html>")) as client:
            result = await client.list_containers()

        assert result.success is False
        assert result.message.startswith("Invalid JSON")

    async def test_transport_error(self, spec):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with client_for(spec, handler) as client:
            result = await client.list_virtual_machines()

        assert result.success is False

    async def test_vm_listing_requests_nic_config(self, spec):
        seen = []

        def handler(request):
            seen.append(request)
            return entities({"uuid": "vm-1", "power_state": "on",
                             "vm_nics": [{"ip_address": "10.0.0.20"}]})

        async with client_for(spec, handler) as client:
            result = await client.list_virtual_machines()

        assert seen[0].url.params["include_vm_nic_config"] == "true"
        assert result.items[0].ip_address == "10.0.0.20"


@pytest.mark.asyncio
class TestTasks:
    """Test task driven operations."""

    async def test_create_snapshot_returns_task(self, spec):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201, json={"task_uuid": "t1"})

        async with client_for(spec, handler) as client:
            result = await client.create_snapshot("vm-1", "nightly")

        assert result.success is True
        assert result.results == {"task_uuid": "t1"}
        assert json.loads(seen[0].content) == {"snapshot_specs": [{"vm_uuid": "vm-1", "snapshot_name": "nightly"}]}

    async def test_wait_for_task_success(self, spec):
        statuses = iter(["Running", "Succeeded"])
        handler = lambda request: httpx.Response(200, json={"progress_status": next(statuses)})

        with patch("prismsync.client.api.asyncio.sleep", new_callable=AsyncMock) as sleep:
            async with client_for(spec, handler) as client:
                result = await client.wait_for_task("t1", interval=1)

        assert result.success is True
        assert sleep.await_count == 2

    async def test_wait_for_task_failure(self, spec):
        handler = lambda request: httpx.Response(200, json={"progress_status": "Failed"})

        with patch("prismsync.client.api.asyncio.sleep", new_callable=AsyncMock):
            async with client_for(spec, handler) as client:
                result = await client.wait_for_task("t1")

        assert result.success is False
        assert result.message == "task failed"

    async def test_wait_for_task_times_out(self, spec):
        handler = lambda request: httpx.Response(200, json={"progress_status": "Running"})

        with patch("prismsync.client.api.asyncio.sleep", new_callable=AsyncMock):
            async with client_for(spec, handler) as client:
                result = await client.wait_for_task("t1", max_attempts=3)

        assert result.success is False
        assert "timed out" in result.message

    async def test_wait_without_task_id(self, spec):
        async with client_for(spec, lambda request: httpx.Response(200)) as client:
            result = await client.wait_for_task(None)

        assert result.success is False

    async def test_stop_vm_already_off(self, spec):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"uuid": "vm-1", "power_state": "off"})

        async with client_for(spec, handler) as client:
            result = await client.stop_vm("vm-1")

        assert result.success is True
        assert [request.method for request in seen] == ["GET"]

    async def test_stop_vm_powers_off(self, spec):
        seen = []

        def handler(request):
            seen.append(request)
            if request.url.path.endswith("/vms/vm-1"):
                return httpx.Response(200, json={"uuid": "vm-1", "power_state": "on"})
            if request.url.path.endswith("/set_power_state"):
                return httpx.Response(201, json={"task_uuid": "t1"})
            return httpx.Response(200, json={"progress_status": "Succeeded"})

        with patch("prismsync.client.api.asyncio.sleep", new_callable=AsyncMock):
            async with client_for(spec, handler) as client:
                result = await client.stop_vm("vm-1")

        assert result.success is True
        assert json.loads(seen[1].content) == {"transition": "OFF"}

    async def test_delete_server_failure(self, spec):
        def handler(request):
            if request.method == "DELETE":
                return httpx.Response(201, json={"task_uuid": "t1"})
            return httpx.Response(200, json={"progress_status": "Failed"})

        with patch("prismsync.client.api.asyncio.sleep", new_callable=AsyncMock):
            async with client_for(spec, handler) as client:
                result = await client.delete_server("vm-1")

        assert result.success is False
        assert result.message == "delete failed"


def test_proxy_is_used_without_transport(spec):
    proxy = ProxyConfig(https_proxy="http://proxy.local:3128")
    client = PrismApiClient(spec, proxy=proxy)

    with patch("prismsync.client.api.httpx.AsyncClient") as mock_client:
        client._build_client()

    assert mock_client.call_args.kwargs["proxy"] == "http://proxy.local:3128"
    assert mock_client.call_args.kwargs["verify"] is False
