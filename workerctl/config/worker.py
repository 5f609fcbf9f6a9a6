"""Worker daemon configuration (``config.json``).

The defaults here are what ``workerctl new`` writes into a fresh
environment. Paths are derived from the environment root.
"""

import json
from pathlib import Path
from typing import Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..models.errors import ConfigurationError
from ..utils.files import atomic_write_text

logger = structlog.get_logger(__name__)


class LimitsConfig(BaseModel):
    """Per-sandbox resource limits."""

    procs: int = Field(default=10, ge=1)
    mem_mb: int = Field(default=50, ge=1)
    cpu_percent: int = Field(default=100, ge=1)
    max_runtime_default: int = Field(default=30, ge=1)
    installer_mem_mb: int = Field(default=500, ge=1)
    swappiness: int = Field(default=0, ge=0, le=100)


class FeaturesConfig(BaseModel):
    """Optional sandbox engine features."""

    import_cache: str = Field(default="tree")
    downsize_paused_mem: bool = Field(default=True)
    enable_seccomp: bool = Field(default=True)
    reuse_cgroups: bool = Field(default=False)


class TraceConfig(BaseModel):
    """Debug tracing switches."""

    cgroups: bool = False
    memory: bool = False
    evictor: bool = False
    package: bool = False
    latency: bool = False


class StorageConfig(BaseModel):
    """Sandbox storage backends."""

    root: str = Field(default="private")
    scratch: str = Field(default="")
    code: str = Field(default="")


class WorkerConfig(BaseModel):
    """Configuration tree persisted as ``config.json``."""

    model_config = ConfigDict(extra="ignore")

    worker_dir: str
    registry: str
    base_image_path: str

    server_mode: str = Field(default="lambda")
    worker_url: str = Field(default="localhost")
    worker_port: int = Field(default=5000, ge=1, le=65535)
    sandbox: str = Field(default="sock")
    log_output: bool = Field(default=True)
    pip_index: str = Field(default="https://pypi.org/simple")
    import_cache_tree: str = Field(default="")
    mem_pool_mb: int = Field(default=2048, ge=1)
    registry_cache_ms: int = Field(default=5000, ge=0)

    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    features: FeaturesConfig = Field(default_factory=FeaturesConfig)
    trace: TraceConfig = Field(default_factory=TraceConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @classmethod
    def defaults(cls, env_root: Union[str, Path]) -> "WorkerConfig":
        """Build the default configuration for an environment rooted at env_root."""
        root = Path(env_root)
        return cls(
            worker_dir=str(root / "worker"),
            registry=str(root / "registry"),
            base_image_path=str(root / "lambda"),
        )

    @property
    def pid_path(self) -> Path:
        """PID file written by the running worker."""
        return Path(self.worker_dir) / "worker.pid"

    def url(self, path: str) -> str:
        return f"http://{self.worker_url}:{self.worker_port}{path}"


def dump_config_str(config: WorkerConfig) -> str:
    """Render the configuration the way it is stored on disk."""
    return json.dumps(config.model_dump(mode="json"), indent=4) + "\n"


def save_config(config: WorkerConfig, path: Union[str, Path]) -> None:
    """Persist the configuration atomically."""
    try:
        atomic_write_text(Path(path), dump_config_str(config))
    except OSError as e:
        raise ConfigurationError(
            f"Failed to write config {path}: {e}", details={"path": str(path)}
        ) from e
    logger.debug("Saved worker config", path=str(path))


def load_config(path: Union[str, Path]) -> WorkerConfig:
    """Load and validate a configuration file."""
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(
            f"Could not read config {path}: {e}", details={"path": str(path)}
        ) from e

    try:
        config = WorkerConfig.model_validate_json(raw)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid config {path}: {e}", details={"path": str(path)}
        ) from e

    logger.debug("Loaded worker config", path=str(path), port=config.worker_port)
    return config
