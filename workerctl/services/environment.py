"""Creation of fresh worker environments."""

from pathlib import Path
from typing import Optional, Protocol, Union

import structlog

from ..config import WorkerConfig, save_config, settings
from ..models.environment import EnvironmentLayout
from ..models.errors import ConfigurationError, EnvironmentSetupError
from ..utils.syscalls import make_char_device
from .image import DockerImageExporter

logger = structlog.get_logger(__name__)

# (name, major, minor)
DEVICE_NODES = (
    ("null", 1, 3),
    ("random", 1, 8),
    ("urandom", 1, 9),
)
BASE_IMAGE_SUBDIRS = ("handler", "host", "packages")


class ImageExporter(Protocol):
    def export_filesystem(self, image: str, dest: Union[str, Path]) -> None: ...


class EnvironmentInitializer:
    """Builds the directory layout a worker needs before its first start.

    Each step must succeed before the next runs. Nothing is rolled back on
    failure; a half-built environment has to be inspected and removed by
    the operator.
    """

    def __init__(
        self,
        image_exporter: Optional[ImageExporter] = None,
        dns_nameserver: Optional[str] = None,
    ):
        self._image_exporter = image_exporter or DockerImageExporter()
        self._dns_nameserver = dns_nameserver or settings.dns_nameserver

    def initialize(
        self, env_path: Union[str, Path], image: Optional[str] = None
    ) -> WorkerConfig:
        """Create a new environment at env_path.

        Args:
            env_path: Environment root; must not exist yet
            image: Docker image used as the sandbox base filesystem

        Returns:
            The default configuration written to ``config.json``

        Raises:
            EnvironmentSetupError: on the first failing step
        """
        env = EnvironmentLayout.from_path(env_path)
        image = image or settings.default_image

        logger.info("Initializing environment", path=str(env.root), image=image)

        self._mkdir(env.root)

        config = WorkerConfig.defaults(env.root)
        try:
            save_config(config, env.config_path)
        except ConfigurationError as e:
            raise EnvironmentSetupError(e.message, details=e.details) from e

        self._mkdir(Path(config.worker_dir))
        self._mkdir(Path(config.registry))

        base = Path(config.base_image_path)
        logger.info(
            "Creating sandbox base image (may take several minutes)", path=str(base)
        )
        self._image_exporter.export_filesystem(image, base)

        for name in BASE_IMAGE_SUBDIRS:
            self._mkdir(base / name)

        # Docker images do not ship a usable resolver config
        resolv_conf = base / "etc" / "resolv.conf"
        try:
            resolv_conf.write_text(f"nameserver {self._dns_nameserver}\n")
        except OSError as e:
            raise EnvironmentSetupError(
                f"Failed to write {resolv_conf}: {e}",
                details={"path": str(resolv_conf)},
            ) from e

        for name, major, minor in DEVICE_NODES:
            node = base / "dev" / name
            try:
                make_char_device(node, major, minor, 0o644)
            except OSError as e:
                raise EnvironmentSetupError(
                    f"Failed to create device {node} ({major},{minor}): {e}",
                    details={"path": str(node)},
                ) from e

        logger.info("Environment ready", path=str(env.root), config=str(env.config_path))
        return config

    @staticmethod
    def _mkdir(path: Path) -> None:
        try:
            path.mkdir(mode=0o700)
        except FileExistsError as e:
            raise EnvironmentSetupError(
                f"{path} already exists", details={"path": str(path)}
            ) from e
        except OSError as e:
            raise EnvironmentSetupError(
                f"Failed to create directory {path}: {e}", details={"path": str(path)}
            ) from e
