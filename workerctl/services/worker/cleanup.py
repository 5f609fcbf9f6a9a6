"""Forced reclamation of kernel resources left by a dead worker.

Only needed when the worker halted unexpectedly. Every step is attempted
regardless of earlier failures, and each outcome is recorded in a
``CleanupReport`` instead of being raised.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Union

import structlog

from ...config import settings
from ...models.environment import CGROUP_CHILD_PREFIX, EnvironmentLayout
from ...utils.syscalls import unmount_detached

logger = structlog.get_logger(__name__)


class StepOutcome(str, Enum):
    OK = "ok"
    NOT_FOUND = "not found"
    FAILED = "failed"


@dataclass
class CleanupStep:
    """Result of one cleanup action."""

    phase: str
    action: str
    target: str
    outcome: StepOutcome
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is StepOutcome.OK


@dataclass
class CleanupReport:
    steps: List[CleanupStep] = field(default_factory=list)

    @property
    def failures(self) -> List[CleanupStep]:
        return [step for step in self.steps if not step.ok]

    def for_target(self, target: Union[str, Path]) -> List[CleanupStep]:
        return [step for step in self.steps if step.target == str(target)]


class ForceCleanup:
    """Best-effort removal of cgroups, sandbox mounts and the PID file."""

    def __init__(
        self,
        cgroup_fs_root: Optional[Union[str, Path]] = None,
        unmount: Callable[[Path], None] = unmount_detached,
    ):
        """Initialize cleanup.

        Args:
            cgroup_fs_root: Mount point of the cgroup v2 hierarchy
            unmount: Lazy unmount primitive
        """
        self._cgroup_fs_root = Path(cgroup_fs_root or settings.cgroup_fs_root)
        self._unmount = unmount

    def cgroup_root(self, env: EnvironmentLayout) -> Path:
        return self._cgroup_fs_root / env.cgroup_name

    def _attempt(
        self,
        report: CleanupReport,
        phase: str,
        action: str,
        target: Path,
        fn: Callable[[], object],
    ):
        """Run fn, recording its outcome. Returns fn's result, or None on failure."""
        try:
            result = fn()
        except FileNotFoundError as e:
            outcome, error = StepOutcome.NOT_FOUND, str(e)
        except OSError as e:
            outcome, error = StepOutcome.FAILED, str(e)
        else:
            report.steps.append(CleanupStep(phase, action, str(target), StepOutcome.OK))
            logger.info("Cleanup step done", phase=phase, action=action, target=str(target))
            return result

        report.steps.append(CleanupStep(phase, action, str(target), outcome, error))
        logger.warning(
            "Cleanup step failed",
            phase=phase,
            action=action,
            target=str(target),
            outcome=outcome.value,
            error=error,
        )
        return None

    @staticmethod
    def _list_dir(path: Path) -> List[Path]:
        return sorted(path.iterdir())

    @staticmethod
    def _write_kill(cgroup_root: Path) -> None:
        # cgroup.kill is provided by the kernel; never create it
        fd = os.open(str(cgroup_root / "cgroup.kill"), os.O_WRONLY)
        try:
            os.write(fd, b"1")
        finally:
            os.close(fd)

    def _cleanup_cgroups(self, env: EnvironmentLayout, report: CleanupReport) -> None:
        cg_root = self.cgroup_root(env)
        logger.info("Attempting cgroup cleanup", cgroup_root=str(cg_root))

        entries = self._attempt(
            report, "cgroups", "list", cg_root, lambda: self._list_dir(cg_root)
        )
        if entries is None:
            return

        self._attempt(
            report, "cgroups", "kill", cg_root, lambda: self._write_kill(cg_root)
        )

        for entry in entries:
            if entry.name.startswith(CGROUP_CHILD_PREFIX):
                self._attempt(
                    report, "cgroups", "rmdir", entry, lambda entry=entry: os.rmdir(entry)
                )

        self._attempt(report, "cgroups", "rmdir", cg_root, lambda: os.rmdir(cg_root))

    def _cleanup_mounts(self, env: EnvironmentLayout, report: CleanupReport) -> None:
        mount_root = env.mount_root
        logger.info("Attempting mount cleanup", mount_root=str(mount_root))

        entries = self._attempt(
            report, "mounts", "list", mount_root, lambda: self._list_dir(mount_root)
        )
        for entry in entries or []:
            self._attempt(
                report, "mounts", "unmount", entry, lambda entry=entry: self._unmount(entry)
            )
            self._attempt(
                report, "mounts", "rmdir", entry, lambda entry=entry: os.rmdir(entry)
            )

        self._attempt(
            report, "mounts", "unmount", mount_root, lambda: self._unmount(mount_root)
        )

    def _cleanup_pid_file(self, env: EnvironmentLayout, report: CleanupReport) -> None:
        self._attempt(
            report, "pid", "remove", env.pid_path, lambda: os.remove(env.pid_path)
        )

    def run(self, env: EnvironmentLayout) -> CleanupReport:
        """Run all phases against env and return what happened."""
        report = CleanupReport()
        self._cleanup_cgroups(env, report)
        self._cleanup_mounts(env, report)
        self._cleanup_pid_file(env, report)

        logger.info(
            "Force cleanup finished",
            path=str(env.root),
            steps=len(report.steps),
            failures=len(report.failures),
        )
        return report
