"""Fan-out of one prepared artifact to every target host.

Each host gets one retry-wrapped transfer.  A per-artifact
``ConcurrencyLimiter`` bounds how many hosts are served at once.  The
local tar is removed exactly once, after every host has finished.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor

from dockship.core.artifact_store import ArtifactStore
from dockship.core.limiter import ConcurrencyLimiter
from dockship.core.retry import RetryPolicy
from dockship.core.transfer import HostTransfer
from dockship.models.artifacts import PreparedArtifact
from dockship.models.config import TargetHost
from dockship.models.reports import ArtifactReport
from dockship.models.transfer import TransferResult

logger = logging.getLogger(__name__)


class FanOut:
    """Distributes prepared artifacts to a fixed set of hosts.

    Parameters
    ----------
    hosts:
        Target hosts, in the order results are reported.
    transfer:
        Runs single attempts.
    retry:
        Wraps attempts with bounded retries.
    store:
        Used to remove the local tar after the fan-out.
    concurrency:
        Maximum hosts served simultaneously per artifact.
    local_cleanup:
        Whether to remove the local tar afterwards.
    """

    def __init__(
        self,
        hosts: list[TargetHost],
        transfer: HostTransfer,
        retry: RetryPolicy,
        store: ArtifactStore,
        *,
        concurrency: int,
        local_cleanup: bool = True,
    ) -> None:
        self.hosts = list(hosts)
        self.transfer = transfer
        self.retry = retry
        self.store = store
        self.concurrency = concurrency
        self.local_cleanup = local_cleanup

    def run(self, artifact: PreparedArtifact) -> ArtifactReport:
        """Transfer *artifact* to every host and aggregate the results."""
        if not artifact.ok:
            return ArtifactReport.preparation_failed(artifact)

        limiter = ConcurrencyLimiter(self.concurrency)

        logger.info(
            "Distributing %s to %d host(s), %d at a time",
            artifact.name,
            len(self.hosts),
            self.concurrency,
        )

        results: list[TransferResult] = []
        with ThreadPoolExecutor(
            max_workers=max(len(self.hosts), 1),
            thread_name_prefix="dockship-host",
        ) as pool:
            futures: list[Future[TransferResult]] = [
                pool.submit(self._transfer_host, limiter, host, artifact)
                for host in self.hosts
            ]
            for host, future in zip(self.hosts, futures):
                results.append(self._collect(host, artifact, future))

        for result in results:
            if result.success:
                logger.info("[%s] %s transferred", result.host, artifact.name)
            else:
                logger.error("[%s] %s failed: %s", result.host, artifact.name, result.error)

        cleanup_warning = self._cleanup(artifact) if self.local_cleanup else None

        report = ArtifactReport(
            artifact=artifact.name,
            results=results,
            cleanup_warning=cleanup_warning,
            peak_concurrency=limiter.peak,
        )
        logger.info(
            "%s: %d host(s) succeeded, %d failed",
            artifact.name,
            report.success_count,
            report.failed_count,
        )
        return report

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _transfer_host(
        self, limiter: ConcurrencyLimiter, host: TargetHost, artifact: PreparedArtifact
    ) -> TransferResult:
        with limiter:
            return self.retry.execute(
                host.name,
                artifact.name,
                lambda number: self.transfer.attempt(host, artifact, number),
            )

    @staticmethod
    def _collect(
        host: TargetHost, artifact: PreparedArtifact, future: Future[TransferResult]
    ) -> TransferResult:
        try:
            return future.result()
        except Exception as exc:
            logger.exception("[%s] transfer of %s crashed", host.name, artifact.name)
            return TransferResult(
                host=host.name,
                artifact=artifact.name,
                success=False,
                error=str(exc) or type(exc).__name__,
                error_type=type(exc).__name__,
            )

    def _cleanup(self, artifact: PreparedArtifact) -> str | None:
        try:
            self.store.cleanup(artifact.path)
        except Exception as exc:
            logger.warning("Local cleanup of %s failed: %s", artifact.path, exc)
            return str(exc)
        return None
