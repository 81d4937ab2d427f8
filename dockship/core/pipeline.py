"""Distribution pipeline — the central coordinator for a Dockship run.

The pipeline wires together the artifact store, the per-host transfer
state machine, the retry policy and the fan-out into one run:

1. Pre-flight: the local engine must be reachable.
2. Every artifact is prepared in a bounded pool.
3. As each preparation completes, its fan-out is submitted to a second
   bounded pool.
4. One ``ArtifactReport`` per artifact is collected into a
   ``DistributionReport``.

A failure confined to one artifact or one host never stops the others.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from datetime import datetime, timezone

from dockship.core.artifact_store import ArtifactStore, DockerArtifactStore, tar_filename
from dockship.core.fanout import FanOut
from dockship.core.preparation import prepare_artifact
from dockship.core.retry import Backoff, FixedDelay, RetryPolicy
from dockship.core.ssh import SSHEndpoint
from dockship.core.transfer import EndpointFactory, HostTransfer
from dockship.models.artifacts import ArtifactSpec, PreparedArtifact
from dockship.models.config import DistributionConfig
from dockship.models.reports import ArtifactReport, DistributionReport
from dockship.monitor.progress import NullProgressReporter, ProgressReporter

logger = logging.getLogger(__name__)


def _unique_specs(images: list[str]) -> list[ArtifactSpec]:
    seen: set[str] = set()
    specs: list[ArtifactSpec] = []
    for name in images:
        if name in seen:
            logger.warning("Image %s listed more than once, distributing it once", name)
            continue
        seen.add(name)
        specs.append(ArtifactSpec(name=name))
    return specs


def _tar_collisions(specs: list[ArtifactSpec]) -> dict[str, str]:
    """Map each image whose tar file name is already taken to the image that took it."""
    owners: dict[str, str] = {}
    collisions: dict[str, str] = {}
    for spec in specs:
        tar = tar_filename(spec.name)
        if tar in owners:
            collisions[spec.name] = owners[tar]
        else:
            owners[tar] = spec.name
    return collisions


class DistributionPipeline:
    """Prepares every configured artifact once and fans it out to every host.

    Parameters
    ----------
    config:
        The validated run configuration.
    artifact_store:
        Local store.  Defaults to ``DockerArtifactStore`` rooted at
        ``config.local_storage.temp_dir``.
    endpoint_factory:
        Builds a fresh endpoint per attempt.  Defaults to ``SSHEndpoint``.
    progress:
        Upload progress sink.  Defaults to a reporter that discards updates.
    backoff:
        Delay strategy between retries.  Defaults to
        ``FixedDelay(config.transfer.retry_delay)``.
    """

    def __init__(
        self,
        config: DistributionConfig,
        *,
        artifact_store: ArtifactStore | None = None,
        endpoint_factory: EndpointFactory | None = None,
        progress: ProgressReporter | None = None,
        backoff: Backoff | None = None,
    ) -> None:
        self.config = config
        self.store: ArtifactStore = artifact_store or DockerArtifactStore(
            config.local_storage.temp_dir
        )
        self.progress: ProgressReporter = progress or NullProgressReporter()
        self.hosts = config.hosts()
        self.specs = _unique_specs(config.images)
        self.collisions = _tar_collisions(self.specs)

        self.transfer = HostTransfer(
            config,
            endpoint_factory or SSHEndpoint,
            self.progress,
        )
        self.retry = RetryPolicy(
            config.transfer.retry,
            backoff or FixedDelay(config.transfer.retry_delay),
        )
        self.fanout = FanOut(
            self.hosts,
            self.transfer,
            self.retry,
            self.store,
            concurrency=config.transfer.concurrent,
            local_cleanup=config.local_storage.auto_cleanup,
        )

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def start(self) -> DistributionReport:
        """Run the whole distribution and return the aggregate report.

        Raises
        ------
        EngineUnavailableError
            If the local engine is unreachable; nothing is processed.
        """
        self.store.check_available()

        started_at = datetime.now(timezone.utc)
        t0 = time.monotonic()
        concurrency = self.config.transfer.concurrent
        logger.info(
            "Starting distribution of %d image(s) to %d host(s) (concurrent=%d, retry=%d)",
            len(self.specs),
            len(self.hosts),
            concurrency,
            self.config.transfer.retry,
        )

        reports: dict[str, ArtifactReport] = {}
        for name, owner in self.collisions.items():
            error = f"tar file {tar_filename(name)} collides with image {owner}"
            logger.error("Skipping %s, %s", name, error)
            reports[name] = ArtifactReport.preparation_failed(
                PreparedArtifact(name=name, error=error)
            )

        with ThreadPoolExecutor(
            max_workers=concurrency, thread_name_prefix="dockship-prepare"
        ) as prepare_pool, ThreadPoolExecutor(
            max_workers=concurrency, thread_name_prefix="dockship-fanout"
        ) as fanout_pool:
            prepared_futures: dict[Future[PreparedArtifact], ArtifactSpec] = {
                prepare_pool.submit(prepare_artifact, self.store, spec): spec
                for spec in self.specs
                if spec.name not in self.collisions
            }
            fanout_futures: dict[Future[ArtifactReport], str] = {}

            for future in as_completed(prepared_futures):
                spec = prepared_futures[future]
                prepared = self._prepared_or_failure(spec, future)
                if not prepared.ok:
                    logger.error(
                        "Skipping %s, preparation failed: %s", spec.name, prepared.error
                    )
                    reports[spec.name] = ArtifactReport.preparation_failed(prepared)
                    continue
                fanout_futures[fanout_pool.submit(self.fanout.run, prepared)] = spec.name

            for future in as_completed(fanout_futures):
                name = fanout_futures[future]
                reports[name] = self._report_or_failure(name, future)

        elapsed = time.monotonic() - t0
        report = DistributionReport(
            artifacts=[reports[spec.name] for spec in self.specs],
            started_at=started_at,
            elapsed_seconds=elapsed,
        )
        logger.info(
            "Distribution finished in %.2fs: %d host transfer(s) succeeded, %d failed",
            elapsed,
            report.total_success,
            report.total_failed,
        )
        return report

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _prepared_or_failure(
        spec: ArtifactSpec, future: Future[PreparedArtifact]
    ) -> PreparedArtifact:
        try:
            return future.result()
        except Exception as exc:
            logger.exception("Preparation of %s crashed", spec.name)
            return PreparedArtifact(name=spec.name, error=str(exc) or type(exc).__name__)

    @staticmethod
    def _report_or_failure(name: str, future: Future[ArtifactReport]) -> ArtifactReport:
        try:
            return future.result()
        except Exception as exc:
            logger.exception("Fan-out of %s crashed", name)
            return ArtifactReport(artifact=name, cleanup_warning=f"fan-out aborted: {exc}")


def start(
    config: DistributionConfig,
    *,
    artifact_store: ArtifactStore | None = None,
    endpoint_factory: EndpointFactory | None = None,
    progress: ProgressReporter | None = None,
    backoff: Backoff | None = None,
) -> DistributionReport:
    """Run a distribution for *config* and return its report."""
    pipeline = DistributionPipeline(
        config,
        artifact_store=artifact_store,
        endpoint_factory=endpoint_factory,
        progress=progress,
        backoff=backoff,
    )
    return pipeline.start()
