"""
Configuration management for the sandshell server.

Precedence: env vars > .env file > sandshell.yaml > defaults

Config file: $SANDSHELL_CONFIG, or ./sandshell.yaml
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

from sandshell.core.policy import IsolationPolicy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "sandshell.yaml"

# Known config keys that may appear in sandshell.yaml
CONFIG_KEYS = {
    "port", "host", "mem_bytes", "cpu_quota", "cpu_period", "pids_limit",
    "docker_socket", "sandbox_image", "tmpfs_size", "idle_timeout",
    "reap_interval", "log_level", "log_format",
}


def get_config_path() -> Path:
    """Resolve the YAML config path from SANDSHELL_CONFIG or the default."""
    raw = os.environ.get("SANDSHELL_CONFIG", "")
    if raw:
        return Path(raw).expanduser().resolve()
    return Path.cwd() / DEFAULT_CONFIG_FILE


def _load_yaml_config(config_file: Path) -> dict[str, Any]:
    """Load the YAML config file. Missing or malformed files yield {}."""
    if not config_file.exists():
        return {}
    try:
        with open(config_file) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            logger.warning(f"Config file is not a mapping, ignoring: {config_file}")
            return {}
        unknown = set(data) - CONFIG_KEYS
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")
        return {k: v for k, v in data.items() if k in CONFIG_KEYS}
    except Exception as e:
        logger.warning(f"Error loading {config_file}: {e}")
        return {}


class Settings(BaseSettings):
    """Server configuration. Precedence: env vars > .env > sandshell.yaml > defaults."""

    # Server
    port: int = Field(default=8080, description="Listening port")
    host: str = Field(default="0.0.0.0", description="Server bind address")

    # Sandbox limits
    mem_bytes: int = Field(
        default=512 * 1024 * 1024,
        gt=0,
        description="Memory ceiling per sandbox in bytes (swap disabled)",
    )
    cpu_quota: int = Field(default=50000, gt=0, description="CPU quota in microseconds")
    cpu_period: int = Field(
        default=100000,
        gt=0,
        description="CPU period in microseconds (quota/period = CPU fraction)",
    )
    pids_limit: int = Field(default=128, gt=0, description="Process-count limit per sandbox")
    tmpfs_size: str = Field(default="64m", description="Size of the /tmp scratch tmpfs")

    # Provider
    docker_socket: str = Field(
        default="/var/run/docker.sock",
        description="Docker endpoint: a unix socket path or a full URL",
    )
    sandbox_image: str = Field(default="ubuntu:22.04", description="Sandbox image reference")

    # Reaping (0 disables; sandboxes then persist until removed externally)
    idle_timeout: float = Field(
        default=0,
        ge=0,
        description="Seconds a detached sandbox may stay idle before it is removed",
    )
    reap_interval: float = Field(default=60, gt=0, description="Reaper sweep period in seconds")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string",
    )

    model_config = {
        "env_prefix": "",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="before")
    @classmethod
    def _inject_yaml_config(cls, data: Any) -> Any:
        """Inject sandshell.yaml values as fallbacks below env vars and .env."""
        if not isinstance(data, dict):
            data = {}

        yaml_config = _load_yaml_config(get_config_path())

        for key, value in yaml_config.items():
            if key not in data or data[key] is None:
                env_val = os.environ.get(key.upper()) or os.environ.get(key)
                if env_val is None:
                    data[key] = value

        return data

    @property
    def docker_base_url(self) -> str:
        """Docker endpoint as a URL the SDK accepts."""
        if "://" in self.docker_socket:
            return self.docker_socket
        return f"unix://{self.docker_socket}"

    def policy(self) -> IsolationPolicy:
        """Build the isolation policy applied to every new sandbox."""
        return IsolationPolicy(
            image=self.sandbox_image,
            memory_bytes=self.mem_bytes,
            cpu_quota=self.cpu_quota,
            cpu_period=self.cpu_period,
            pids_limit=self.pids_limit,
            tmpfs={"/tmp": f"rw,noexec,nosuid,size={self.tmpfs_size}"},
        )


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance."""
    return settings


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global settings
    settings = Settings()
    return settings
