"""Remote endpoint contract and shared behaviour.

Defines the ``RemoteEndpoint`` Protocol the transfer state machine talks
to, and ``BaseEndpoint``, which implements the runtime check, image load
and hook execution on top of a subclass's ``run_command``.

Concrete transports implement only:
    * ``connect()`` / ``close()``
    * ``upload(local_path, remote_path, progress)``
    * ``run_command(command) -> CommandResult``
    * ``remove_remote(path)``
"""

from __future__ import annotations

import abc
import logging
import shlex
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from dockship.models.transfer import CommandResult, HookRecord, HookReport

logger = logging.getLogger(__name__)

# Called with (bytes_transferred, total_bytes) as an upload advances.
ProgressCallback = Callable[[int, int], None]


class RemoteError(RuntimeError):
    """Base class for failures talking to a target host."""


class ConnectError(RemoteError):
    """Raised when connecting or authenticating to a host fails."""


class RemoteUnavailableError(RemoteError):
    """Raised when the container runtime on the host is not usable."""


class UploadError(RemoteError):
    """Raised on short writes, I/O errors or size mismatches during upload."""


class RemoteCommandError(RemoteError):
    """Raised when a remote command exits non-zero where success is required."""

    def __init__(self, message: str, result: CommandResult | None = None) -> None:
        super().__init__(message)
        self.result = result


@runtime_checkable
class RemoteEndpoint(Protocol):
    """One authenticated session to one target host."""

    host: str

    def connect(self) -> None:
        ...

    def close(self) -> None:
        ...

    def check_available(self) -> None:
        ...

    def upload(
        self, local_path: Path, remote_path: str, progress: ProgressCallback | None = None
    ) -> None:
        ...

    def run_command(self, command: str) -> CommandResult:
        ...

    def load(self, remote_path: str) -> None:
        ...

    def remove_remote(self, path: str) -> None:
        ...

    def run_hooks(self, stage: str, commands: Sequence[str]) -> HookReport:
        ...


class BaseEndpoint(abc.ABC):
    """Shared endpoint logic built on ``run_command``.

    Subclasses provide the transport; this class provides the runtime
    check, ``docker load`` and the never-failing hook runner.  Usable as
    a context manager that always closes the session.
    """

    def __init__(self, host: str) -> None:
        self.host = host

    # ------------------------------------------------------------------
    # Transport interface
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def connect(self) -> None:
        ...

    @abc.abstractmethod
    def close(self) -> None:
        ...

    @abc.abstractmethod
    def upload(
        self, local_path: Path, remote_path: str, progress: ProgressCallback | None = None
    ) -> None:
        ...

    @abc.abstractmethod
    def run_command(self, command: str) -> CommandResult:
        """Run *command* and return its exit status and combined output.

        A non-zero exit is returned, not raised.  Only failures to run
        the command at all raise ``RemoteError``.
        """
        ...

    @abc.abstractmethod
    def remove_remote(self, path: str) -> None:
        ...

    # ------------------------------------------------------------------
    # Runtime operations
    # ------------------------------------------------------------------

    def check_available(self) -> None:
        """Raise ``RemoteUnavailableError`` unless ``docker version`` succeeds."""
        try:
            result = self.run_command("docker version")
        except RemoteError as exc:
            raise RemoteUnavailableError(
                f"docker is not available on {self.host}: {exc}"
            ) from exc
        if not result.ok:
            raise RemoteUnavailableError(
                f"docker is not available on {self.host} "
                f"(exit {result.exit_status}): {result.output.strip()}"
            )

    def load(self, remote_path: str) -> None:
        """Load an uploaded tar into the host's runtime."""
        result = self.run_command(f"docker load -i {shlex.quote(remote_path)}")
        if not result.ok:
            raise RemoteCommandError(
                f"docker load failed on {self.host} (exit {result.exit_status}): "
                f"{result.output.strip()}",
                result,
            )
        logger.debug("[%s] %s", self.host, result.output.strip())

    def run_hooks(self, stage: str, commands: Sequence[str]) -> HookReport:
        """Run every hook command in order and record each outcome.

        Never raises.  A command that cannot even be started is recorded
        with ``exit_status=-1``; execution continues with the next one.
        """
        records: list[HookRecord] = []
        if not commands:
            return HookReport(host=self.host, stage=stage, records=records)

        logger.info("[%s] Running %d %s hook(s)", self.host, len(commands), stage)
        for index, command in enumerate(commands, start=1):
            logger.info("[%s][%d/%d] %s: %s", self.host, index, len(commands), stage, command)
            try:
                result = self.run_command(command)
            except RemoteError as exc:
                result = CommandResult(command=command, exit_status=-1, output=str(exc))

            record = HookRecord(
                stage=stage,
                index=index,
                command=command,
                exit_status=result.exit_status,
                output=result.output,
            )
            records.append(record)

            if record.succeeded:
                logger.info("[%s] hook ok: %s", self.host, command)
            else:
                logger.warning(
                    "[%s] hook failed (exit %d): %s", self.host, record.exit_status, command
                )
            if record.output.strip():
                logger.info("[%s] output: %s", self.host, record.output.strip())

        report = HookReport(host=self.host, stage=stage, records=records)
        if report.all_succeeded:
            logger.info("[%s] %s hooks succeeded", self.host, stage)
        else:
            logger.warning(
                "[%s] %s hooks finished with %d failure(s)",
                self.host,
                stage,
                len(report.failed),
            )
        return report

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    def __enter__(self) -> BaseEndpoint:
        self.connect()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(host={self.host!r})"
