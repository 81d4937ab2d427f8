"""Artifact models — what is distributed and what preparation produced."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict


class ArtifactSpec(BaseModel):
    """A named container image to distribute, as listed in ``images``."""

    model_config = ConfigDict(frozen=True)

    name: str


class PreparedArtifact(BaseModel):
    """Outcome of the preparation stage for one artifact.

    On success ``path`` points at the exported tar file and ``error`` is
    ``None``.  On failure ``path`` is ``None`` and no host transfer is
    attempted for the artifact.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    path: Path | None = None
    error: str | None = None
    size_bytes: int = 0
    pulled: bool = False  # True when the image had to be fetched first

    @property
    def ok(self) -> bool:
        return self.error is None and self.path is not None
