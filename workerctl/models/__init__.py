"""Data models for workerctl."""

from .environment import CGROUP_CHILD_PREFIX, CGROUP_ROOT_SUFFIX, EnvironmentLayout
from .errors import (
    ErrorType,
    WorkerAdminError,
    ConfigurationError,
    EnvironmentSetupError,
    ProcessControlError,
    WorkerExitedError,
    WorkerTimeoutError,
    ReadinessTimeoutError,
    ShutdownTimeoutError,
    PidMismatchError,
)

__all__ = [
    "EnvironmentLayout",
    "CGROUP_CHILD_PREFIX",
    "CGROUP_ROOT_SUFFIX",
    "ErrorType",
    "WorkerAdminError",
    "ConfigurationError",
    "EnvironmentSetupError",
    "ProcessControlError",
    "WorkerExitedError",
    "WorkerTimeoutError",
    "ReadinessTimeoutError",
    "ShutdownTimeoutError",
    "PidMismatchError",
]
