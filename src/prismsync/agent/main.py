"""Main agent implementation."""

import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import List, Optional

from watchfiles import awatch

from prismsync.agent.config import ConfigManager
from prismsync.agent.orchestrator import RefreshOrchestrator
from prismsync.agent.server import AgentServer
from prismsync.client.api import PrismApiClient
from prismsync.models.config import CloudSpec
from prismsync.store.memory import InventoryStore
from prismsync.utils.logging import setup_logging


logger = logging.getLogger(__name__)

SNAPSHOT_FILE = "inventory.json"


class PrismSyncAgent:
    """Main agent: periodic refresh, config watching and the control server."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize the agent."""
        self.config_dir = config_dir or Path("./configs")
        self.state_dir = Path("./state")
        self.config_manager: Optional[ConfigManager] = None
        self.store = InventoryStore()
        self.orchestrator: Optional[RefreshOrchestrator] = None
        self.server: Optional[AgentServer] = None
        self.shutdown_event = asyncio.Event()
        self._tasks: List[asyncio.Task] = []

    @property
    def snapshot_path(self) -> Path:
        return self.state_dir / SNAPSHOT_FILE

    def _client_for(self, spec: CloudSpec) -> PrismApiClient:
        agent = self.config_manager.config.agent
        return PrismApiClient(spec, proxy=self.config_manager.config.proxy, timeout=agent.request_timeout)

    async def initialize(self):
        """Initialize agent components."""
        self.config_manager = ConfigManager(self.config_dir)
        await self.config_manager.load()

        config = self.config_manager.config
        setup_logging(config.agent.log_level)

        self.state_dir = Path(config.agent.state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)
        await self.store.load_snapshot(self.snapshot_path)

        self.orchestrator = RefreshOrchestrator(self.store, client_factory=self._client_for)

        socket_path = Path(config.agent.socket_path)
        if not socket_path.is_absolute():
            socket_path = self.state_dir / socket_path.name

        self.server = AgentServer(
            socket_path=socket_path,
            orchestrator=self.orchestrator,
            config_manager=self.config_manager,
            store=self.store,
            on_reload=self.schedule_refresh,
            on_refresh=self.save_snapshot,
        )

        logger.info("Agent initialized successfully")

    async def run(self):
        """Run the agent main loop."""
        await self.initialize()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.shutdown)

        try:
            await self.server.start()
            self._tasks.append(asyncio.create_task(self._refresh_loop()))
            self._tasks.append(asyncio.create_task(self._config_watch_loop()))

            logger.info("Agent started, waiting for shutdown signal")
            await self.shutdown_event.wait()
        finally:
            await self._cleanup()

    async def refresh_all(self):
        """Refresh every enabled cloud, one after another."""
        for spec in self.config_manager.enabled_clouds():
            report = await self.orchestrator.refresh(spec)
            logger.debug(f"Cloud {spec.name} finished with status {report.status.value}")
        await self.save_snapshot()

    async def schedule_refresh(self):
        """Refresh all clouds in the background."""
        task = asyncio.create_task(self.refresh_all())
        task.add_done_callback(self._tasks.remove)
        self._tasks.append(task)

    async def save_snapshot(self):
        try:
            await self.store.save_snapshot(self.snapshot_path)
        except OSError as e:
            logger.error(f"Failed to save inventory snapshot: {e}")

    async def _refresh_loop(self):
        """Run periodic refreshes."""
        interval = self.config_manager.config.agent.refresh_interval

        while not self.shutdown_event.is_set():
            try:
                logger.debug("Starting refresh cycle")
                await self.refresh_all()
            except Exception as e:
                logger.error(f"Refresh cycle error: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self.shutdown_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

    async def _config_watch_loop(self):
        """Watch for configuration changes."""
        logger.info(f"Starting config watcher on {self.config_manager.config_dir}")
        try:
            async for _ in awatch(self.config_manager.config_dir, stop_event=self.shutdown_event):
                if not await self.config_manager.watch_for_changes():
                    continue
                logger.info("Configuration changed, reloading")
                try:
                    await self.config_manager.load()
                    await self.schedule_refresh()
                except Exception as e:
                    logger.error(f"Failed to reload configuration: {e}")
        except Exception as e:
            if not self.shutdown_event.is_set():
                logger.error(f"Config watch error: {e}", exc_info=True)

    def shutdown(self):
        """Signal shutdown."""
        logger.info("Shutdown requested")
        self.shutdown_event.set()

    async def _cleanup(self):
        """Clean up resources."""
        logger.info("Cleaning up agent resources")

        for task in self._tasks:
            if not task.done():
                task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if self.server:
            await self.server.stop()
        await self.save_snapshot()

        logger.info("Agent cleanup completed")


async def run_agent():
    """Run the agent."""
    config_dir = os.environ.get("PRISMSYNC_CONFIG_DIR")
    agent = PrismSyncAgent(config_dir=Path(config_dir) if config_dir else None)
    await agent.run()
