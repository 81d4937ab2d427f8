"""One transfer attempt of a prepared artifact to one host.

Lifecycle (see ``TransferState``):

    connect -> check runtime -> upload -> pre_load hooks -> docker load
        -> post_load hooks -> remote cleanup -> succeeded

Any blocking error moves the attempt to FAILED.  Hooks and remote
cleanup never fail an attempt; their problems are recorded.  The
session is closed on every exit path.
"""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Callable, Sequence

from dockship.core.remote import RemoteEndpoint
from dockship.core.state_machine import TransferStateMachine
from dockship.models.artifacts import PreparedArtifact
from dockship.models.config import DistributionConfig, TargetHost
from dockship.models.transfer import (
    HookRecord,
    HookReport,
    TransferAttempt,
    TransferState,
)
from dockship.monitor.progress import NullProgressReporter, ProgressReporter

logger = logging.getLogger(__name__)

EndpointFactory = Callable[[TargetHost], RemoteEndpoint]


def remote_path_for(remote_dir: str, artifact: PreparedArtifact) -> str:
    """Remote destination: the local tar's file name inside *remote_dir*."""
    if artifact.path is None:
        raise ValueError(f"artifact {artifact.name} has no local tar file")
    return posixpath.join(remote_dir, artifact.path.name)


class HostTransfer:
    """Runs single attempts of the per-host state machine.

    Parameters
    ----------
    config:
        The run configuration (remote storage and hooks are read from it).
    endpoint_factory:
        Builds a fresh, unconnected endpoint for a host.  Called once per
        attempt so a failed session is never reused.
    progress:
        Sink for upload progress.
    """

    def __init__(
        self,
        config: DistributionConfig,
        endpoint_factory: EndpointFactory,
        progress: ProgressReporter | None = None,
    ) -> None:
        self.config = config
        self._endpoint_factory = endpoint_factory
        self._progress: ProgressReporter = progress or NullProgressReporter()

    def attempt(
        self, host: TargetHost, artifact: PreparedArtifact, number: int
    ) -> TransferAttempt:
        """Run the full state machine once and return its outcome."""
        machine = TransferStateMachine(host.name, artifact.name)
        hooks: list[HookReport] = []
        warnings: list[str] = []
        error: Exception | None = None

        endpoint: RemoteEndpoint | None = None
        try:
            endpoint = self._endpoint_factory(host)
            self._run(endpoint, machine, host, artifact, hooks, warnings)
        except Exception as exc:
            error = exc
            machine.fail()
            logger.warning(
                "[%s] attempt %d for %s failed in %s: %s",
                host.name,
                number,
                artifact.name,
                machine.failed_in.value if machine.failed_in else "?",
                exc,
            )
        finally:
            if endpoint is not None:
                try:
                    endpoint.close()
                except Exception as exc:
                    logger.warning("[%s] error closing session: %s", host.name, exc)
                    warnings.append(f"close failed: {exc}")

        return TransferAttempt(
            host=host.name,
            artifact=artifact.name,
            attempt=number,
            succeeded=error is None,
            error=None if error is None else (str(error) or type(error).__name__),
            error_type=None if error is None else type(error).__name__,
            failed_state=machine.failed_in,
            transitions=machine.history,
            hooks=hooks,
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _run(
        self,
        endpoint: RemoteEndpoint,
        machine: TransferStateMachine,
        host: TargetHost,
        artifact: PreparedArtifact,
        hooks: list[HookReport],
        warnings: list[str],
    ) -> None:
        hook_config = self.config.hooks
        remote_config = self.config.remote_storage

        endpoint.connect()
        machine.advance(TransferState.AUTHENTICATED)

        endpoint.check_available()
        machine.advance(TransferState.AVAILABILITY_CHECKED)

        remote_path = remote_path_for(remote_config.temp_dir, artifact)
        machine.advance(TransferState.UPLOADING)
        self._upload(endpoint, host, artifact, remote_path)

        machine.advance(TransferState.PRE_HOOKS)
        if hook_config.pre_load:
            hooks.append(self._run_hooks(endpoint, host, "pre_load", hook_config.pre_load))

        machine.advance(TransferState.LOADING)
        endpoint.load(remote_path)
        logger.info("[%s] loaded %s", host.name, artifact.name)

        machine.advance(TransferState.POST_HOOKS)
        if hook_config.post_load:
            hooks.append(self._run_hooks(endpoint, host, "post_load", hook_config.post_load))

        machine.advance(TransferState.CLEANING_UP)
        if remote_config.auto_cleanup:
            try:
                endpoint.remove_remote(remote_path)
            except Exception as exc:
                logger.warning("[%s] remote cleanup of %s failed: %s", host.name, remote_path, exc)
                warnings.append(f"remote cleanup failed: {exc}")

        machine.advance(TransferState.SUCCEEDED)

    def _upload(
        self,
        endpoint: RemoteEndpoint,
        host: TargetHost,
        artifact: PreparedArtifact,
        remote_path: str,
    ) -> None:
        handle = self._progress.start_transfer(host.name, artifact.name, artifact.size_bytes)
        try:
            endpoint.upload(
                artifact.path,
                remote_path,
                lambda done, _total: self._progress.update(handle, done),
            )
        except Exception:
            self._progress.finish(handle, success=False)
            raise
        self._progress.finish(handle, success=True)

    @staticmethod
    def _run_hooks(
        endpoint: RemoteEndpoint, host: TargetHost, stage: str, commands: Sequence[str]
    ) -> HookReport:
        try:
            return endpoint.run_hooks(stage, commands)
        except Exception as exc:
            # Hooks never block a transfer: record every command as not run.
            logger.warning("[%s] %s hooks could not run: %s", host.name, stage, exc)
            return HookReport(
                host=host.name,
                stage=stage,
                records=[
                    HookRecord(stage=stage, index=i, command=c, exit_status=-1, output=str(exc))
                    for i, c in enumerate(commands, start=1)
                ],
            )
