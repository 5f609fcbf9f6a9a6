"""Export a Docker image's filesystem to a directory.

The sandbox engine uses the extracted tree as the template root
filesystem for every sandbox.
"""

import tarfile
import tempfile
from pathlib import Path
from typing import Optional, Union

import docker
import structlog
from docker.errors import DockerException, ImageNotFound

from ..models.errors import EnvironmentSetupError

logger = structlog.get_logger(__name__)


class DockerImageExporter:
    """Materializes image filesystems through the Docker daemon."""

    def __init__(self, client: Optional[docker.DockerClient] = None):
        """Initialize the exporter.

        Args:
            client: Docker client; created from the environment on first use
                when omitted
        """
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as e:
                raise EnvironmentSetupError(
                    f"Could not connect to Docker: {e}"
                ) from e
        return self._client

    def _ensure_image(self, image: str) -> None:
        try:
            self.client.images.get(image)
        except ImageNotFound:
            logger.info("Pulling image", image=image)
            self.client.images.pull(image)

    def export_filesystem(self, image: str, dest: Union[str, Path]) -> None:
        """Extract the filesystem of ``image`` into ``dest``.

        A stopped container is created from the image, its filesystem
        exported as a tar stream and unpacked, and the container removed.

        Raises:
            EnvironmentSetupError: on any Docker or extraction failure
        """
        dest = Path(dest)
        container = None
        try:
            self._ensure_image(image)
            dest.mkdir(mode=0o700, parents=True, exist_ok=True)
            container = self.client.containers.create(image, command=["true"])

            with tempfile.TemporaryFile() as archive:
                for chunk in container.export():
                    archive.write(chunk)
                archive.seek(0)
                with tarfile.open(fileobj=archive, mode="r") as tar:
                    # Image roots hold absolute symlinks and device files,
                    # which the default "data" filter rejects.
                    tar.extractall(
                        path=str(dest), numeric_owner=True, filter="fully_trusted"
                    )
        except (DockerException, tarfile.TarError, OSError) as e:
            raise EnvironmentSetupError(
                f"Failed to export image {image} to {dest}: {e}",
                details={"image": image, "path": str(dest)},
            ) from e
        finally:
            if container is not None:
                try:
                    container.remove(force=True)
                except DockerException as e:
                    logger.warning(
                        "Failed to remove export container",
                        container_id=container.id[:12],
                        error=str(e),
                    )

        logger.info("Exported image filesystem", image=image, dest=str(dest))
