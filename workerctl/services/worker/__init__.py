"""Worker process lifecycle services.

- launcher.py: detached start with a background exit watcher
- readiness.py: /pid readiness polling and /status checks
- shutdown.py: SIGINT + liveness polling
- cleanup.py: forced cgroup / mount / PID file reclamation
"""

from .launcher import WorkerHandle, WorkerLauncher, build_worker_command
from .readiness import ReadinessPoller, fetch_status
from .shutdown import ShutdownController, process_alive, read_worker_pid
from .cleanup import CleanupReport, CleanupStep, ForceCleanup, StepOutcome

__all__ = [
    "WorkerHandle",
    "WorkerLauncher",
    "build_worker_command",
    "ReadinessPoller",
    "fetch_status",
    "ShutdownController",
    "process_alive",
    "read_worker_pid",
    "CleanupReport",
    "CleanupStep",
    "ForceCleanup",
    "StepOutcome",
]
