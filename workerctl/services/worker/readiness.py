"""Readiness and status checks against the worker's HTTP surface."""

import time
from typing import Optional, Tuple

import httpx
import structlog

from ...config import WorkerConfig, settings
from ...models.errors import (
    PidMismatchError,
    ProcessControlError,
    ReadinessTimeoutError,
    WorkerExitedError,
)
from .launcher import WorkerHandle

logger = structlog.get_logger(__name__)


class ReadinessPoller:
    """Waits until the launched worker answers ``/pid`` with its own PID.

    Polling uses a fixed number of attempts separated by a fixed sleep.
    The launcher's exit future is the only authority on whether the child
    has died.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        attempts: Optional[int] = None,
        interval: Optional[float] = None,
        host: str = "localhost",
    ):
        self._client = client
        self._attempts = attempts if attempts is not None else settings.readiness_attempts
        self._interval = (
            interval if interval is not None else settings.readiness_interval_seconds
        )
        self._host = host

    def _check_exited(self, handle: WorkerHandle) -> None:
        if not handle.exited.done():
            return
        error = handle.exited.exception()
        if error is not None:
            raise WorkerExitedError(
                handle.pid, f"waiting for worker process {handle.pid} failed: {error}"
            ) from error
        raise WorkerExitedError(
            handle.pid,
            f"worker process {handle.pid} does not appear to be running "
            f"(exit code {handle.exited.result()}), check {handle.log_path}",
            details={"exit_code": handle.exited.result()},
        )

    def wait_ready(self, handle: WorkerHandle, port: int) -> None:
        """Block until the worker is confirmed ready.

        Args:
            handle: Worker returned by the launcher
            port: Port the worker listens on

        Raises:
            WorkerExitedError: the child terminated while we were waiting
            PidMismatchError: another process owns the port
            ProcessControlError: ``/pid`` returned something that is not a PID
            ReadinessTimeoutError: no answer within the attempt budget
        """
        if self._client is not None:
            return self._poll(self._client, handle, port)
        with httpx.Client(timeout=settings.http_timeout_seconds) as client:
            return self._poll(client, handle, port)

    def _poll(self, client: httpx.Client, handle: WorkerHandle, port: int) -> None:
        url = f"http://{self._host}:{port}/pid"
        last_error: Optional[Exception] = None

        for attempt in range(self._attempts):
            self._check_exited(handle)

            try:
                response = client.get(url)
            except httpx.TransportError as e:
                last_error = e
                time.sleep(self._interval)
                continue

            body = response.text.strip()
            try:
                reported = int(body)
            except ValueError as e:
                raise ProcessControlError(
                    f"/pid did not return an int: {body!r}",
                    details={"url": url, "status_code": response.status_code},
                ) from e

            if reported != handle.pid:
                raise PidMismatchError(expected=handle.pid, found=reported, port=port)

            logger.info("Worker ready", pid=handle.pid, port=port, attempts=attempt + 1)
            return

        timeout = self._attempts * self._interval
        message = f"worker still not reachable after {timeout:g} seconds"
        if last_error is not None:
            message = f"{message} :: {last_error}"
        raise ReadinessTimeoutError(message, details={"pid": handle.pid, "port": port})


def _get_status(client: httpx.Client, url: str) -> httpx.Response:
    try:
        return client.get(url)
    except httpx.HTTPError as e:
        raise ProcessControlError(
            f"could not send GET to {url}: {e}", details={"url": url}
        ) from e


def fetch_status(
    config: WorkerConfig, client: Optional[httpx.Client] = None
) -> Tuple[str, str, str]:
    """Ping the worker's ``/status`` endpoint.

    Returns:
        Tuple of (url, body, status line)

    Raises:
        ProcessControlError: if the worker cannot be reached
    """
    url = config.url("/status")
    if client is not None:
        response = _get_status(client, url)
    else:
        with httpx.Client(timeout=settings.http_timeout_seconds) as owned:
            response = _get_status(owned, url)

    status_line = f"{response.status_code} {response.reason_phrase}"
    return url, response.text, status_line
