"""Async HTTP client for the Prism Element REST API."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

import httpx
from pydantic import BaseModel, ValidationError

from prismsync.models.config import CloudSpec, ProxyConfig
from prismsync.models.remote import (
    RemoteContainer,
    RemoteHost,
    RemoteImage,
    RemoteNetwork,
    RemoteSnapshot,
    RemoteVirtualMachine,
)


logger = logging.getLogger(__name__)

V2_API = "/api/nutanix/v2.0/"

TASK_SUCCEEDED = "Succeeded"
TASK_FAILED = ("Failed", "Failure")


class ApiError(Exception):
    """Unexpected API response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransportError(ApiError):
    """The API endpoint could not be reached."""
    pass


class AuthError(ApiError):
    """The API rejected the configured credentials."""
    pass


@dataclass
class ApiResult:
    """Uniform result of a client call."""
    success: bool
    items: List[Any] = field(default_factory=list)
    results: Optional[Dict[str, Any]] = None
    message: Optional[str] = None


class PrismApiClient:
    """Client for one Prism Element cluster."""

    def __init__(
        self,
        cloud: CloudSpec,
        proxy: Optional[ProxyConfig] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client; the connection is opened lazily."""
        self.cloud = cloud
        self.base_url = cloud.base_url
        self.proxy = proxy
        self.timeout = timeout
        self.transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _build_client(self) -> httpx.AsyncClient:
        try:
            password = self.cloud.resolve_password()
        except ValueError as e:
            raise AuthError(str(e)) from e

        kwargs: Dict[str, Any] = {
            "base_url": self.base_url,
            "auth": (self.cloud.username, password),
            "headers": {"Accept": "application/json", "Content-Type": "application/json"},
            "timeout": self.timeout,
            "verify": self.cloud.verify_ssl,
        }
        if self.transport is not None:
            kwargs["transport"] = self.transport
        elif self.proxy and (self.proxy.https_proxy or self.proxy.http_proxy):
            kwargs["proxy"] = self.proxy.https_proxy or self.proxy.http_proxy
        return httpx.AsyncClient(**kwargs)

    async def __aenter__(self) -> "PrismApiClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Send a request, mapping connectivity failures to TransportError."""
        if self._client is None:
            self._client = self._build_client()
        try:
            return await self._client.request(method, path, params=params, json=body)
        except httpx.TransportError as e:
            raise TransportError(f"{self.base_url} not reachable: {e}") from e

    async def check_connection(self):
        """Probe the cluster endpoint; raises TransportError, AuthError or ApiError."""
        response = await self._request("GET", V2_API + "cluster")
        if response.status_code in (401, 403):
            raise AuthError("invalid credentials", response.status_code)
        if response.is_error:
            raise ApiError(f"cluster probe failed with HTTP {response.status_code}", response.status_code)

    async def _list(
        self,
        path: str,
        model: Type[BaseModel],
        params: Optional[Dict[str, Any]] = None,
    ) -> ApiResult:
        """GET a collection and parse its entities; never raises."""
        try:
            response = await self._request("GET", path, params=params)
        except TransportError as e:
            logger.error(f"Error listing {path}: {e}")
            return ApiResult(success=False, message=str(e))

        if response.is_error:
            logger.error(f"Error listing {path}: HTTP {response.status_code}")
            return ApiResult(success=False, message=f"HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            return ApiResult(success=False, message=f"Invalid JSON: {e}")

        items = []
        for entity in (data or {}).get("entities") or []:
            try:
                items.append(model.model_validate(entity))
            except ValidationError as e:
                logger.warning(f"Skipping malformed {model.__name__} entry: {e}")
        return ApiResult(success=True, items=items)

    async def list_hosts(self) -> ApiResult:
        return await self._list(V2_API + "hosts", RemoteHost)

    async def list_networks(self) -> ApiResult:
        return await self._list(V2_API + "networks/", RemoteNetwork)

    async def list_containers(self) -> ApiResult:
        return await self._list(V2_API + "storage_containers", RemoteContainer)

    async def list_images(self) -> ApiResult:
        return await self._list(V2_API + "images", RemoteImage)

    async def list_snapshots(self) -> ApiResult:
        return await self._list(V2_API + "snapshots", RemoteSnapshot)

    async def list_virtual_machines(self) -> ApiResult:
        params = {"include_vm_disk_config": "true", "include_vm_nic_config": "true"}
        return await self._list(V2_API + "vms", RemoteVirtualMachine, params=params)

    async def _call(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
    ) -> ApiResult:
        """Command-style call returning the decoded body as results."""
        response = await self._request(method, path, body=body)
        if response.is_error:
            return ApiResult(success=False, message=f"HTTP {response.status_code}")
        results = response.json() if response.content else {}
        return ApiResult(success=True, results=results)

    async def get_task(self, task_uuid: str) -> ApiResult:
        return await self._call("GET", V2_API + f"tasks/{task_uuid}")

    async def wait_for_task(
        self,
        task_uuid: Optional[str],
        interval: float = 10.0,
        max_attempts: int = 350,
    ) -> ApiResult:
        """Poll a task until it succeeds or fails."""
        if not task_uuid:
            return ApiResult(success=False, message="no task id")

        for _ in range(max_attempts):
            await asyncio.sleep(interval)
            task = await self.get_task(task_uuid)
            status = (task.results or {}).get("progress_status")
            if task.success and status == TASK_SUCCEEDED:
                return ApiResult(success=True, results=task.results)
            if task.success and status in TASK_FAILED:
                return ApiResult(success=False, results=task.results, message="task failed")
            logger.debug(f"Task {task_uuid} still pending ({status})")

        return ApiResult(success=False, message=f"task {task_uuid} timed out")

    async def _run_task(self, method: str, path: str, body: Optional[Dict[str, Any]], failure: str) -> ApiResult:
        result = await self._call(method, path, body=body)
        if not result.success:
            return result
        task_uuid = (result.results or {}).get("task_uuid")
        task = await self.wait_for_task(task_uuid)
        if task.success:
            return ApiResult(success=True, results={"task_uuid": task_uuid})
        return ApiResult(success=False, results=task.results, message=failure)

    async def load_virtual_machine(self, vm_uuid: str) -> ApiResult:
        return await self._call("GET", V2_API + f"vms/{vm_uuid}")

    async def create_snapshot(self, vm_uuid: str, snapshot_name: str) -> ApiResult:
        body = {"snapshot_specs": [{"vm_uuid": vm_uuid, "snapshot_name": snapshot_name}]}
        logger.info(f"Creating snapshot {snapshot_name} of VM {vm_uuid}")
        result = await self._call("POST", V2_API + "snapshots", body=body)
        if result.success:
            return ApiResult(success=True, results={"task_uuid": (result.results or {}).get("task_uuid")})
        return result

    async def delete_snapshot(self, snapshot_uuid: str) -> ApiResult:
        return await self._run_task("DELETE", V2_API + f"snapshots/{snapshot_uuid}", None, "delete failed")

    async def stop_vm(self, vm_uuid: str) -> ApiResult:
        """Power a VM off; a VM that is already off is left alone."""
        vm = await self.load_virtual_machine(vm_uuid)
        if not vm.success:
            return ApiResult(success=False, message=f"VM not found: {vm_uuid}")

        power_state = (vm.results or {}).get("power_state")
        if not power_state or power_state.lower() == "off":
            return ApiResult(success=True)

        body = {"transition": "OFF"}
        return await self._run_task("POST", V2_API + f"vms/{vm_uuid}/set_power_state", body, "power off failed")

    async def delete_server(self, vm_uuid: str) -> ApiResult:
        return await self._run_task("DELETE", V2_API + f"vms/{vm_uuid}", None, "delete failed")
