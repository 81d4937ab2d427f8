"""Local artifact store — materializes images and exports them as tar files.

``ArtifactStore`` is the contract the pipeline depends on.
``DockerArtifactStore`` satisfies it by shelling out to the Docker CLI:

    docker version                  -> check_available
    docker images -q NAME           -> exists
    docker pull NAME                -> pull
    docker save -o TAR NAME         -> save
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


class ArtifactStoreError(RuntimeError):
    """Raised when the local store cannot check, fetch, export or remove an artifact."""


class EngineUnavailableError(ArtifactStoreError):
    """Raised when the local container engine cannot be reached at all."""


@runtime_checkable
class ArtifactStore(Protocol):
    """Protocol for local artifact stores."""

    def check_available(self) -> None:
        """Raise ``EngineUnavailableError`` if the engine is unreachable."""
        ...

    def exists(self, name: str) -> bool:
        ...

    def pull(self, name: str) -> None:
        ...

    def save(self, name: str) -> Path:
        """Export *name* to a tar file and return its path."""
        ...

    def cleanup(self, path: Path) -> None:
        ...


def tar_filename(name: str) -> str:
    """Return the tar file name for an image (``a/b:c`` -> ``a_b_c.tar``)."""
    return name.replace("/", "_").replace(":", "_") + ".tar"


class DockerArtifactStore:
    """Artifact store backed by the local ``docker`` CLI.

    Parameters
    ----------
    temp_dir:
        Directory exported tar files are written to.  Created on demand.
    docker_bin:
        Docker executable name or path.
    runner:
        ``subprocess.run``-compatible callable, replaceable in tests.
    """

    def __init__(
        self,
        temp_dir: Path,
        *,
        docker_bin: str = "docker",
        runner: Runner | None = None,
    ) -> None:
        self.temp_dir = Path(temp_dir)
        self._docker = docker_bin
        self._run = runner or subprocess.run

    def _docker_cmd(self, args: Sequence[str]) -> subprocess.CompletedProcess:
        cmd = [self._docker, *args]
        logger.debug("Running %s", " ".join(cmd))
        try:
            return self._run(cmd, capture_output=True, text=True, check=False)
        except FileNotFoundError as exc:
            raise EngineUnavailableError(
                f"docker executable not found: {self._docker}"
            ) from exc
        except OSError as exc:
            raise ArtifactStoreError(f"failed to run {' '.join(cmd)}: {exc}") from exc

    @staticmethod
    def _failure_detail(proc: subprocess.CompletedProcess) -> str:
        detail = (proc.stderr or proc.stdout or "").strip()
        return detail or f"exit status {proc.returncode}"

    # ------------------------------------------------------------------
    # Engine
    # ------------------------------------------------------------------

    def check_available(self) -> None:
        proc = self._docker_cmd(["version"])
        if proc.returncode != 0:
            raise EngineUnavailableError(
                "docker is not available, make sure it is installed and running: "
                f"{self._failure_detail(proc)}"
            )

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def exists(self, name: str) -> bool:
        proc = self._docker_cmd(["images", "-q", name])
        if proc.returncode != 0:
            raise ArtifactStoreError(
                f"failed to check image {name}: {self._failure_detail(proc)}"
            )
        return bool(proc.stdout.strip())

    def pull(self, name: str) -> None:
        logger.info("Pulling image %s", name)
        proc = self._docker_cmd(["pull", name])
        if proc.returncode != 0:
            raise ArtifactStoreError(
                f"failed to pull image {name}: {self._failure_detail(proc)}"
            )
        logger.info("Pulled image %s", name)

    def save(self, name: str) -> Path:
        try:
            self.temp_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ArtifactStoreError(
                f"cannot create temp directory {self.temp_dir}: {exc}"
            ) from exc

        tar_path = self.temp_dir / tar_filename(name)
        logger.info("Saving image %s -> %s", name, tar_path)
        proc = self._docker_cmd(["save", "-o", str(tar_path), name])
        if proc.returncode != 0:
            raise ArtifactStoreError(
                f"failed to save image {name}: {self._failure_detail(proc)}"
            )

        try:
            size = tar_path.stat().st_size
        except OSError as exc:
            raise ArtifactStoreError(
                f"saved image {name} but cannot stat {tar_path}: {exc}"
            ) from exc
        logger.info("Saved image %s (%.2f MB)", name, size / 1024 / 1024)
        return tar_path

    def cleanup(self, path: Path) -> None:
        try:
            Path(path).unlink()
        except OSError as exc:
            raise ArtifactStoreError(f"failed to remove {path}: {exc}") from exc
        logger.info("Removed local tar %s", path)
