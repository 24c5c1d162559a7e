"""HTTP server for agent communication over a Unix socket."""

import logging
import os
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from aiohttp import web

from prismsync.agent.config import ConfigManager
from prismsync.agent.orchestrator import RefreshOrchestrator
from prismsync.store.memory import InventoryStore
from prismsync.sync.hosts import HOST_TYPE_CODE


logger = logging.getLogger(__name__)

LIST_TYPES = ("hosts", "vms", "networks", "pools", "images", "locations", "snapshots", "datastores")


class AgentServer:
    """Agent HTTP server."""

    def __init__(
        self,
        socket_path: Path,
        orchestrator: RefreshOrchestrator,
        config_manager: ConfigManager,
        store: InventoryStore,
        on_reload: Optional[Callable[[], Awaitable[Any]]] = None,
        on_refresh: Optional[Callable[[], Awaitable[Any]]] = None,
    ):
        """Initialize server."""
        self.socket_path = Path(socket_path)
        self.orchestrator = orchestrator
        self.config_manager = config_manager
        self.store = store
        self.on_reload = on_reload
        self.on_refresh = on_refresh
        self.app = web.Application()
        self.runner: Optional[web.AppRunner] = None
        self._setup_routes()

    def _setup_routes(self):
        self.app.router.add_post('/api/v1/command', self._handle_command)

    async def start(self):
        """Start the server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        if self.socket_path.exists():
            self.socket_path.unlink()
        self.socket_path.parent.mkdir(parents=True, exist_ok=True)

        site = web.UnixSite(self.runner, str(self.socket_path))
        await site.start()
        os.chmod(self.socket_path, 0o660)
        logger.info(f"Agent listening on unix:{self.socket_path}")

    async def stop(self):
        """Stop the server."""
        if self.runner:
            await self.runner.cleanup()
        if self.socket_path.exists():
            self.socket_path.unlink()
        logger.info("Agent server stopped")

    async def _handle_command(self, request: web.Request) -> web.Response:
        try:
            data = await request.json()
            command = data.get("command")
            args = data.get("args") or {}
            response_data = await self._process_command(command, args)
            return web.json_response({"success": True, "data": response_data})
        except ValueError as e:
            logger.warning(f"Rejected command: {e}")
            return web.json_response({"success": False, "error": str(e)}, status=400)
        except Exception as e:
            logger.error(f"Command error: {e}", exc_info=True)
            return web.json_response({"success": False, "error": str(e)}, status=500)

    async def _process_command(self, command: str, args: Dict[str, Any]) -> Any:
        handlers = {
            "status": self._handle_status,
            "list": self._handle_list,
            "refresh": self._handle_refresh,
            "reload": self._handle_reload,
        }

        handler = handlers.get(command)
        if not handler:
            raise ValueError(f"Unknown command: {command}")

        return await handler(args)

    async def _handle_status(self, args: Dict[str, Any]) -> Dict[str, Any]:
        clouds = {}
        for spec in self.config_manager.clouds.values():
            cloud = await self.store.clouds.get(spec.id)
            report = self.orchestrator.reports.get(spec.name)
            clouds[spec.name] = {
                "id": spec.id,
                "enabled": spec.enabled,
                "status": cloud.status.value if cloud else None,
                "message": cloud.status_message if cloud else None,
                "region_code": cloud.region_code if cloud else None,
                "last_sync": cloud.last_sync.isoformat() if cloud and cloud.last_sync else None,
                "refreshing": self.orchestrator.is_refreshing(spec),
                "alarm": self.store.alarms[spec.id].message if spec.id in self.store.alarms else None,
                "last_report": report.to_dict() if report else None,
            }
        return {"agent": {"running": True}, "clouds": clouds}

    async def _handle_list(self, args: Dict[str, Any]) -> Dict[str, Any]:
        resource_type = args.get("type")
        if resource_type not in LIST_TYPES:
            raise ValueError(f"Unknown resource type: {resource_type}")

        filters: Dict[str, Any] = {}
        cloud_name = args.get("cloud")
        if cloud_name:
            spec = self.config_manager.get_cloud_spec(cloud_name)
            if not spec:
                raise ValueError(f"Cloud {cloud_name} not found")
            filters["ref_id"] = spec.id

        records = await self._list_records(resource_type, filters)
        return {"type": resource_type, "items": [record.model_dump(mode="json") for record in records]}

    async def _list_records(self, resource_type: str, filters: Dict[str, Any]) -> List[Any]:
        store = self.store
        if resource_type == "hosts":
            return await store.servers.list(type_code=HOST_TYPE_CODE, **filters)
        if resource_type == "vms":
            return await store.servers.list(type_code__ne=HOST_TYPE_CODE, **filters)
        if resource_type == "snapshots":
            if "ref_id" in filters:
                filters = {"cloud_id": filters["ref_id"]}
            return await store.snapshots.list(**filters)
        repository = {
            "networks": store.networks,
            "pools": store.pools,
            "images": store.images,
            "locations": store.locations,
            "datastores": store.datastores,
        }[resource_type]
        return await repository.list(**filters)

    async def _handle_refresh(self, args: Dict[str, Any]) -> Dict[str, Any]:
        cloud_name = args.get("cloud")
        if cloud_name:
            spec = self.config_manager.get_cloud_spec(cloud_name)
            if not spec:
                raise ValueError(f"Cloud {cloud_name} not found")
            specs = [spec]
        else:
            specs = self.config_manager.enabled_clouds()

        results = {}
        for spec in specs:
            report = await self.orchestrator.refresh(spec)
            results[spec.name] = report.to_dict()
        if self.on_refresh:
            await self.on_refresh()
        return {"results": results}

    async def _handle_reload(self, args: Dict[str, Any]) -> Dict[str, Any]:
        await self.config_manager.load()
        if self.on_reload:
            await self.on_reload()
        return {"reloaded": True, "clouds": sorted(self.config_manager.clouds)}
