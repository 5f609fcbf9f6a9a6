"""Graceful shutdown of a running worker."""

import os
import signal
import time
from typing import Optional

import structlog

from ...config import WorkerConfig, settings
from ...models.errors import ProcessControlError, ShutdownTimeoutError

logger = structlog.get_logger(__name__)


def read_worker_pid(config: WorkerConfig) -> int:
    """Read the PID recorded by the worker in ``<worker_dir>/worker.pid``."""
    pid_path = config.pid_path
    try:
        data = pid_path.read_text()
    except OSError as e:
        raise ProcessControlError(
            f"Could not read {pid_path}: {e}", details={"path": str(pid_path)}
        ) from e

    try:
        return int(data)
    except ValueError as e:
        raise ProcessControlError(
            f"{pid_path} does not contain a PID: {data!r}",
            details={"path": str(pid_path)},
        ) from e


def process_alive(pid: int) -> bool:
    """Probe pid with signal 0."""
    try:
        os.kill(pid, 0)
    except OSError:
        return False
    return True


class ShutdownController:
    """Interrupts a worker and waits for it to go away."""

    def __init__(self, attempts: Optional[int] = None, interval: Optional[float] = None):
        self._attempts = attempts if attempts is not None else settings.shutdown_attempts
        self._interval = (
            interval if interval is not None else settings.shutdown_interval_seconds
        )

    def graceful_stop(self, pid: int) -> None:
        """Send SIGINT to pid and poll until the process has exited.

        Lookup and signal failures are logged rather than raised: the
        process may already be gone, which the polling loop then observes.

        Raises:
            ShutdownTimeoutError: if the process is still alive after the budget
        """
        logger.info("Stopping worker process", pid=pid)

        if not process_alive(pid):
            logger.warning(
                "Failed to find worker process; may require manual cleanup", pid=pid
            )

        try:
            os.kill(pid, signal.SIGINT)
        except OSError as e:
            logger.warning(
                "Failed to signal worker process; may require manual cleanup",
                pid=pid,
                error=str(e),
            )

        for _ in range(self._attempts):
            if not process_alive(pid):
                logger.info("Worker process stopped", pid=pid)
                return
            time.sleep(self._interval)

        timeout = self._attempts * self._interval
        raise ShutdownTimeoutError(
            f"worker process {pid} didn't stop after {timeout:g}s; "
            "it may require manual cleanup (kill -9 and workerctl force-cleanup)",
            details={"pid": pid},
        )
