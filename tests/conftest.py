"""Pytest configuration and shared fixtures."""

import os
from pathlib import Path

import pytest
import structlog

# Keep the developer's own environment out of the tests
os.environ.setdefault("WORKERCTL_LOG_LEVEL", "WARNING")

from workerctl.config import WorkerConfig, save_config
from workerctl.models.environment import EnvironmentLayout


@pytest.fixture(autouse=True)
def _restore_structlog_config():
    """Undo global structlog configuration done by a test (e.g. cli.main)."""
    saved = structlog.get_config()
    yield
    structlog.configure(**saved)


@pytest.fixture
def env(tmp_path) -> EnvironmentLayout:
    """Environment layout under a temporary directory (root not created)."""
    return EnvironmentLayout.from_path(tmp_path / "test-env")


@pytest.fixture
def worker_config(env) -> WorkerConfig:
    """Default configuration for the test environment."""
    return WorkerConfig.defaults(env.root)


@pytest.fixture
def existing_env(env, worker_config) -> EnvironmentLayout:
    """Environment root with a saved default config.json."""
    env.root.mkdir()
    save_config(worker_config, env.config_path)
    return env


@pytest.fixture
def base_config_path(existing_env) -> Path:
    """Path of a default config.json on disk."""
    return existing_env.config_path


class FakeImageExporter:
    """Stands in for the Docker exporter; lays out a minimal root filesystem."""

    def __init__(self, subdirs=("etc", "dev")):
        self.calls = []
        self._subdirs = subdirs

    def export_filesystem(self, image, dest):
        dest = Path(dest)
        self.calls.append((image, dest))
        dest.mkdir(mode=0o700, parents=True, exist_ok=True)
        for name in self._subdirs:
            (dest / name).mkdir()


@pytest.fixture
def fake_exporter() -> FakeImageExporter:
    return FakeImageExporter()
