"""Configuration management for the agent."""

import hashlib
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from ruamel.yaml import YAML

from prismsync.models.config import CloudSpec, PrismSyncConfig


logger = logging.getLogger(__name__)


class ConfigManager:
    """Loads config.yaml and the cloud definitions under clouds/."""

    def __init__(self, config_dir: Path):
        """Initialize configuration manager."""
        self.config_dir = Path(config_dir)
        self.yaml = YAML()
        self.yaml.preserve_quotes = True
        self.config: Optional[PrismSyncConfig] = None
        self.clouds: Dict[str, CloudSpec] = {}
        self._config_hashes: Dict[str, str] = {}

    async def load(self):
        """Load all configuration files."""
        logger.info(f"Loading configuration from {self.config_dir}")
        self._config_hashes.clear()
        await self._load_main_config()
        await self._load_clouds()
        logger.info(f"Configuration loaded: {len(self.clouds)} cloud(s)")

    async def _load_main_config(self):
        config_file = self.config_dir / "config.yaml"
        if not config_file.exists():
            raise FileNotFoundError(f"Main config not found: {config_file}")

        try:
            data = await self._read_yaml(config_file)
            self.config = PrismSyncConfig(**(data or {}))
            logger.debug(f"Loaded main config: {config_file}")
        except ValidationError as e:
            logger.error(f"Invalid main config: {e}")
            raise

    async def _load_clouds(self):
        """Load cloud definitions; a bad file is logged and skipped."""
        clouds_dir = self.config_dir / "clouds"
        self.clouds.clear()
        if not clouds_dir.exists():
            logger.warning(f"Clouds directory not found: {clouds_dir}")
            return

        for yaml_file in sorted(clouds_dir.glob("*.yaml")):
            try:
                data = await self._read_yaml(yaml_file) or {}
                loaded = {name: CloudSpec(name=name, **spec) for name, spec in data.items()}
            except Exception as e:
                logger.error(f"Error loading {yaml_file}: {e}")
                continue

            for name, spec in loaded.items():
                clash = self._find_by_id(spec.id)
                if clash and clash.name != name:
                    logger.error(f"Cloud {name} in {yaml_file} reuses id {spec.id} of cloud {clash.name}, skipped")
                    continue
                self.clouds[name] = spec
            logger.debug(f"Loaded clouds from {yaml_file}")

    def _find_by_id(self, cloud_id: int) -> Optional[CloudSpec]:
        for spec in self.clouds.values():
            if spec.id == cloud_id:
                return spec
        return None

    async def _read_yaml(self, file_path: Path) -> Dict[str, Any]:
        """Read and parse YAML file."""
        content = file_path.read_text()
        self._config_hashes[str(file_path)] = hashlib.md5(content.encode()).hexdigest()
        return self.yaml.load(content)

    async def watch_for_changes(self) -> bool:
        """Check if configuration files have changed since the last load."""
        current = set()
        for yaml_file in self.config_dir.rglob("*.yaml"):
            current.add(str(yaml_file))
            content = yaml_file.read_text()
            if self._config_hashes.get(str(yaml_file)) != hashlib.md5(content.encode()).hexdigest():
                return True
        return current != set(self._config_hashes)

    def get_cloud_spec(self, name: str) -> Optional[CloudSpec]:
        """Get cloud specification by name."""
        return self.clouds.get(name)

    def enabled_clouds(self) -> List[CloudSpec]:
        return [spec for spec in self.clouds.values() if spec.enabled]
