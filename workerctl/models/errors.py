"""Error types and exception classes for workerctl."""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorType(str, Enum):
    """Error type enumeration."""

    CONFIGURATION = "configuration"
    ENVIRONMENT = "environment"
    PROCESS_CONTROL = "process_control"
    TIMEOUT = "timeout"
    IDENTITY_MISMATCH = "identity_mismatch"


# Custom Exception Classes


class WorkerAdminError(Exception):
    """Base exception for workerctl operations."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.PROCESS_CONTROL,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_type = error_type
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Structured form used for logging."""
        return {
            "error": self.message,
            "error_type": self.error_type.value,
            **self.details,
        }


class ConfigurationError(WorkerAdminError):
    """Missing key, type mismatch, malformed override or unreadable config."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message=message, error_type=ErrorType.CONFIGURATION, **kwargs)


class EnvironmentSetupError(WorkerAdminError):
    """Failure while creating an environment directory layout."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message=message, error_type=ErrorType.ENVIRONMENT, **kwargs)


class ProcessControlError(WorkerAdminError):
    """Spawn, signal or worker communication failure."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message, error_type=ErrorType.PROCESS_CONTROL, **kwargs
        )


class WorkerExitedError(ProcessControlError):
    """The launched worker died before it became ready."""

    def __init__(self, pid: int, message: str = None, **kwargs):
        error_message = message or f"worker process {pid} is not running"
        details = {"pid": pid, **kwargs.pop("details", {})}
        super().__init__(error_message, details=details, **kwargs)


class WorkerTimeoutError(WorkerAdminError):
    """A bounded polling loop ran out of attempts."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message=message, error_type=ErrorType.TIMEOUT, **kwargs)


class ReadinessTimeoutError(WorkerTimeoutError):
    """The worker never answered on its port."""


class ShutdownTimeoutError(WorkerTimeoutError):
    """The worker survived the interrupt signal."""


class PidMismatchError(WorkerAdminError):
    """Another process answered on the worker's port."""

    def __init__(self, expected: int, found: int, port: int, **kwargs):
        super().__init__(
            message=f"expected PID {expected} but found {found} on port {port} (port conflict?)",
            error_type=ErrorType.IDENTITY_MISMATCH,
            details={"expected_pid": expected, "found_pid": found, "port": port},
            **kwargs,
        )
        self.expected = expected
        self.found = found
