"""Aggregate report models — per-artifact counts and the run summary."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from dockship.models.artifacts import PreparedArtifact
from dockship.models.transfer import TransferResult


class ArtifactReport(BaseModel):
    """Per-host outcomes for one artifact.

    When preparation failed, ``prepared`` is ``False``, ``results`` is
    empty and ``preparation_error`` says why.
    """

    model_config = ConfigDict(frozen=True)

    artifact: str
    prepared: bool = True
    preparation_error: str | None = None
    results: list[TransferResult] = Field(default_factory=list)
    cleanup_warning: str | None = None
    peak_concurrency: int = 0  # most hosts served at once for this artifact

    @classmethod
    def preparation_failed(cls, prepared: PreparedArtifact) -> ArtifactReport:
        return cls(
            artifact=prepared.name,
            prepared=False,
            preparation_error=prepared.error or "preparation failed",
        )

    @property
    def attempted_hosts(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def succeeded_hosts(self) -> list[str]:
        return [r.host for r in self.results if r.success]

    @property
    def failed_hosts(self) -> list[str]:
        return [r.host for r in self.results if not r.success]

    def result_for(self, host: str) -> TransferResult:
        for result in self.results:
            if result.host == host:
                return result
        raise KeyError(f"no result for host {host!r} in artifact {self.artifact!r}")


class DistributionReport(BaseModel):
    """Everything a run produced, one ``ArtifactReport`` per artifact."""

    model_config = ConfigDict(frozen=True)

    artifacts: list[ArtifactReport] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    elapsed_seconds: float = 0.0

    def for_artifact(self, name: str) -> ArtifactReport:
        for report in self.artifacts:
            if report.artifact == name:
                return report
        raise KeyError(f"no report for artifact {name!r}")

    @property
    def total_success(self) -> int:
        return sum(r.success_count for r in self.artifacts)

    @property
    def total_failed(self) -> int:
        return sum(r.failed_count for r in self.artifacts)

    @property
    def all_succeeded(self) -> bool:
        """True when every artifact was prepared and reached every host."""
        return all(r.prepared and r.failed_count == 0 for r in self.artifacts)
