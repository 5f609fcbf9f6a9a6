"""Liveness and identity endpoints.

``workerctl status`` pings ``/status``; ``workerctl up --detach`` polls
``/pid`` to confirm that the process answering on the port is the one it
launched.
"""

import os

import structlog
from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/status", summary="Liveness check", response_class=PlainTextResponse)
async def worker_status():
    """Basic liveness endpoint; the body is informational."""
    return "ready\n"


@router.get("/pid", summary="Worker process id", response_class=PlainTextResponse)
async def worker_pid():
    """Report the PID of the serving process."""
    return str(os.getpid())
