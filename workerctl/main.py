"""Worker daemon application.

``workerctl up`` (without ``--detach``) serves this app in the foreground.
The sandbox engine plugs its own routes into the app; the admin tool only
relies on ``/status``, ``/pid`` and the PID file written here.
"""

import os
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from .api import status
from .config import WorkerConfig, settings
from .utils.files import atomic_write_text

logger = structlog.get_logger()


def _write_pid_file(config: WorkerConfig) -> None:
    config.pid_path.parent.mkdir(parents=True, exist_ok=True)
    atomic_write_text(config.pid_path, str(os.getpid()))
    logger.info("Wrote PID file", path=str(config.pid_path), pid=os.getpid())


def _remove_pid_file(config: WorkerConfig) -> None:
    try:
        config.pid_path.unlink()
    except FileNotFoundError:
        logger.warning("PID file already gone", path=str(config.pid_path))
    else:
        logger.info("Removed PID file", path=str(config.pid_path))


def create_app(config: WorkerConfig) -> FastAPI:
    """Build the worker application for one configuration."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info(
            "Starting worker",
            pid=os.getpid(),
            port=config.worker_port,
            worker_dir=config.worker_dir,
        )
        _write_pid_file(config)

        yield

        logger.info("Shutting down worker", pid=os.getpid())
        _remove_pid_file(config)

    app = FastAPI(
        title="Sandbox Worker",
        description="Worker daemon managed by workerctl",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.config = config
    app.include_router(status.router, tags=["status"])
    return app


def serve_forever(config: WorkerConfig) -> None:
    """Serve the worker until it is signalled to stop.

    A signal-driven stop exits the process with status 0. Returning from
    this function means the server ended for another reason.
    """
    server = uvicorn.Server(
        uvicorn.Config(
            create_app(config),
            host=config.worker_url,
            port=config.worker_port,
            log_level=settings.log_level.lower(),
            access_log=False,
        )
    )
    logger.info(f"Starting HTTP server on {config.worker_url}:{config.worker_port}")
    server.run()

    if server.started and server.should_exit:
        logger.info("Worker stopped")
        raise SystemExit(0)
