"""On-disk layout of a worker environment."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

# Child cgroups created by the sandbox engine carry this prefix.
CGROUP_CHILD_PREFIX = "cg-"
CGROUP_ROOT_SUFFIX = "-sandboxes"


@dataclass(frozen=True)
class EnvironmentLayout:
    """Paths owned by an environment rooted at ``root``.

    The worker-data, registry and base image locations recorded in
    ``config.json`` may be changed by the operator; the fixed paths here
    are the ones the admin tool relies on regardless of configuration.
    """

    root: Path

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "EnvironmentLayout":
        return cls(root=Path(os.path.abspath(path)))

    @property
    def name(self) -> str:
        return self.root.name

    @property
    def config_path(self) -> Path:
        return self.root / "config.json"

    @property
    def overrides_path(self) -> Path:
        return self.root / "config.json.overrides"

    @property
    def log_path(self) -> Path:
        """Combined stdout/stderr of a detached worker."""
        return self.root / "worker.out"

    @property
    def worker_dir(self) -> Path:
        return self.root / "worker"

    @property
    def mount_root(self) -> Path:
        """Parent of the per-sandbox root filesystem mounts."""
        return self.worker_dir / "root-sandboxes"

    @property
    def pid_path(self) -> Path:
        return self.worker_dir / "worker.pid"

    @property
    def cgroup_name(self) -> str:
        return f"{self.name}{CGROUP_ROOT_SUFFIX}"

    def exists(self) -> bool:
        return self.root.exists()

    def active_config_path(self) -> Path:
        """The overrides derivative wins when present."""
        if self.overrides_path.exists():
            return self.overrides_path
        return self.config_path
