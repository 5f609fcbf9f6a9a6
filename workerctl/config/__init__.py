"""Configuration management for workerctl.

Two kinds of configuration live here:

- ``Settings``: ambient knobs for the admin tool itself (default paths,
  polling budgets, logging). Read once from the environment / ``.env``.
- ``WorkerConfig``: the per-environment ``config.json`` consumed by the
  worker daemon. Loaded per command and passed explicitly to every
  operation that needs it.

Usage:
    from workerctl.config import settings

    settings.readiness_attempts
    settings.cgroup_fs_root
"""

from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .worker import (
    FeaturesConfig,
    LimitsConfig,
    StorageConfig,
    TraceConfig,
    WorkerConfig,
    dump_config_str,
    load_config,
    save_config,
)


class Settings(BaseSettings):
    """Admin tool settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="WORKERCTL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment defaults
    default_path: str = Field(
        default="default-worker",
        description="Environment directory used when --path is not given",
    )
    default_image: str = Field(
        default="python:3.12-slim",
        description="Docker image exported as the sandbox base filesystem",
    )
    dns_nameserver: str = Field(default="8.8.8.8")

    # Kernel resources
    cgroup_fs_root: str = Field(default="/sys/fs/cgroup")

    # Detached launch
    isolate_mount_namespace: bool = Field(
        default=True,
        description="Start the detached worker in a new mount namespace",
    )
    unshare_binary: str = Field(default="unshare")

    # Polling budgets (attempts x interval = timeout)
    readiness_attempts: int = Field(default=300, ge=1)
    readiness_interval_seconds: float = Field(default=0.1, ge=0)
    shutdown_attempts: int = Field(default=300, ge=1)
    shutdown_interval_seconds: float = Field(default=0.1, ge=0)
    http_timeout_seconds: float = Field(default=1.0, gt=0)

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @validator("log_format")
    def validate_log_format(cls, v):
        """Only the console and json renderers are supported."""
        v = v.lower()
        if v not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return v

    @property
    def readiness_timeout_seconds(self) -> float:
        return self.readiness_attempts * self.readiness_interval_seconds

    @property
    def shutdown_timeout_seconds(self) -> float:
        return self.shutdown_attempts * self.shutdown_interval_seconds


# Global settings instance
settings = Settings()

__all__ = [
    "Settings",
    "settings",
    "WorkerConfig",
    "LimitsConfig",
    "FeaturesConfig",
    "TraceConfig",
    "StorageConfig",
    "load_config",
    "save_config",
    "dump_config_str",
]
