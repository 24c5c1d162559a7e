"""Configuration models."""

import os
from typing import Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AgentConfig(BaseModel):
    """Agent configuration."""
    socket_path: str = Field(default="./state/prismsync-agent.sock")
    refresh_interval: int = Field(default=300, ge=30)
    request_timeout: float = Field(default=30.0, gt=0)
    log_level: str = Field(default="INFO")
    config_dir: str = Field(default="./configs")
    state_dir: str = Field(default="./state")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()


class ProxyConfig(BaseModel):
    """Proxy configuration."""
    http_proxy: Optional[str] = None
    https_proxy: Optional[str] = None
    no_proxy: str = Field(default="localhost,127.0.0.1")


class PrismSyncConfig(BaseModel):
    """Main configuration model."""
    model_config = ConfigDict(extra="ignore")

    agent: AgentConfig = Field(default_factory=AgentConfig)
    proxy: Optional[ProxyConfig] = None


class CloudSpec(BaseModel):
    """A Prism Element cluster to keep in sync."""
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., description="Cloud name")
    id: int = Field(..., ge=1, description="Stable cloud id used to scope local records")
    api_url: str = Field(..., description="Prism host name or URL")
    username: str = Field(...)
    password: Optional[str] = None
    password_env: Optional[str] = Field(None, description="Environment variable holding the password")
    owner_id: int = Field(default=1)
    account_id: Optional[int] = None
    enabled: bool = Field(default=True)
    import_existing: bool = Field(default=False)
    network_sync_active: bool = Field(default=True)
    datastore_sync_active: bool = Field(default=True)
    verify_ssl: bool = Field(default=False)

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v):
        """Reject empty API URLs."""
        if not v or not v.strip():
            raise ValueError("api_url must not be empty")
        return v.strip()

    @property
    def base_url(self) -> str:
        """API root: a bare host gets the default Prism port, a URL loses its path."""
        if self.api_url.startswith("http"):
            parts = urlsplit(self.api_url)
            return f"{parts.scheme}://{parts.netloc}"
        return f"https://{self.api_url}:9440"

    def resolve_password(self) -> str:
        """Return the configured password, reading it from the environment if needed."""
        if self.password:
            return self.password
        if self.password_env and os.environ.get(self.password_env):
            return os.environ[self.password_env]
        raise ValueError(f"No password configured for cloud {self.name}")
