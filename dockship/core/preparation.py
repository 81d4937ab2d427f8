"""Preparation stage — make an artifact available locally and export it once."""

from __future__ import annotations

import logging

from dockship.core.artifact_store import ArtifactStore
from dockship.models.artifacts import ArtifactSpec, PreparedArtifact

logger = logging.getLogger(__name__)


def prepare_artifact(store: ArtifactStore, spec: ArtifactSpec) -> PreparedArtifact:
    """Ensure *spec* exists locally, then export it to a tar file.

    Never raises: any store failure is captured in the returned
    ``PreparedArtifact`` and is terminal for the artifact.  Preparation
    is not retried.
    """
    pulled = False
    try:
        if store.exists(spec.name):
            logger.info("Image %s already present locally", spec.name)
        else:
            logger.info("Image %s not present locally, pulling", spec.name)
            store.pull(spec.name)
            pulled = True

        path = store.save(spec.name)
    except Exception as exc:
        logger.error("Preparation of %s failed: %s", spec.name, exc)
        return PreparedArtifact(name=spec.name, error=str(exc) or type(exc).__name__, pulled=pulled)

    try:
        size = path.stat().st_size
    except OSError:
        size = 0

    return PreparedArtifact(name=spec.name, path=path, size_bytes=size, pulled=pulled)
