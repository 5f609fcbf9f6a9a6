"""Detached launch of the worker daemon."""

import subprocess
import sys
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

import structlog

from ...config import settings
from ...models.environment import EnvironmentLayout
from ...models.errors import ProcessControlError

logger = structlog.get_logger(__name__)


@dataclass
class WorkerHandle:
    """A launched worker process.

    ``exited`` resolves exactly once, with the exit code, when the child
    terminates (or with the exception raised while waiting for it).
    """

    pid: int
    log_path: Path
    command: List[str]
    exited: "Future[int]" = field(default_factory=Future, repr=False)

    def is_running(self) -> bool:
        return not self.exited.done()


def build_worker_command(
    env_root: Union[str, Path],
    image: Optional[str] = None,
    options: Optional[str] = None,
) -> List[str]:
    """Build the foreground ``up`` command run by a detached worker.

    The command is rebuilt from parsed values rather than the caller's
    argv, so no spelling of the detach flag can reach the child.
    """
    command = [sys.executable, "-m", "workerctl", "up", "-p", str(env_root)]
    if image:
        command += ["-i", image]
    if options:
        command += ["-o", options]
    return command


def _watch(proc: subprocess.Popen, exited: "Future[int]") -> None:
    try:
        returncode = proc.wait()
    except Exception as e:
        exited.set_exception(e)
    else:
        exited.set_result(returncode)


class WorkerLauncher:
    """Starts the worker as a background process."""

    def __init__(
        self,
        isolate_mounts: Optional[bool] = None,
        unshare_binary: Optional[str] = None,
    ):
        """Initialize the launcher.

        Args:
            isolate_mounts: Run the child in a new mount namespace. The
                worker creates many mount points; keeping them out of the
                host namespace stops systemd from tracking each one.
            unshare_binary: ``unshare`` executable used for isolation
        """
        self._isolate_mounts = (
            settings.isolate_mount_namespace if isolate_mounts is None else isolate_mounts
        )
        self._unshare_binary = unshare_binary or settings.unshare_binary

    def wrap_command(self, args: Sequence[str]) -> List[str]:
        """Prefix args with the namespace wrapper when isolation is on.

        ``unshare`` execs the command, so the PID we get back is the
        worker's own PID.
        """
        if not self._isolate_mounts:
            return list(args)
        return [self._unshare_binary, "--mount", "--", *args]

    def launch_detached(
        self, env: EnvironmentLayout, args: Sequence[str]
    ) -> WorkerHandle:
        """Start the worker without waiting for it.

        Args:
            env: Environment the worker belongs to; receives ``worker.out``
            args: Full command line of the foreground worker

        Returns:
            Handle carrying the child's PID and its exit future

        Raises:
            ProcessControlError: if the log file or the process cannot be created
        """
        command = self.wrap_command(args)
        log_path = env.log_path

        try:
            log_file = open(log_path, "wb")
        except OSError as e:
            raise ProcessControlError(
                f"Could not create log file {log_path}: {e}",
                details={"path": str(log_path)},
            ) from e

        logger.info("Starting worker process", command=command, log=str(log_path))
        try:
            proc = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=log_file,
                start_new_session=True,  # Survives the admin tool's terminal
            )
        except OSError as e:
            raise ProcessControlError(
                f"Failed to start worker process: {e}", details={"argv": command}
            ) from e
        finally:
            # The child holds its own descriptor
            log_file.close()

        handle = WorkerHandle(pid=proc.pid, log_path=log_path, command=command)
        watcher = threading.Thread(
            target=_watch,
            args=(proc, handle.exited),
            name=f"worker-watch-{proc.pid}",
            daemon=True,
        )
        watcher.start()

        logger.info("Worker process started", pid=proc.pid, log=str(log_path))
        return handle
