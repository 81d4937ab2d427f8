"""SSH/SFTP endpoint backed by paramiko.

Host keys are not verified: unknown keys are accepted and logged.
"""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Callable
from pathlib import Path
from typing import Any

import paramiko

from dockship.core.remote import (
    BaseEndpoint,
    ConnectError,
    ProgressCallback,
    RemoteError,
    UploadError,
)
from dockship.models.config import TargetHost
from dockship.models.transfer import CommandResult

logger = logging.getLogger(__name__)

CHUNK_SIZE = 32 * 1024


class _LoggingAutoAddPolicy(paramiko.MissingHostKeyPolicy):
    def missing_host_key(
        self, client: paramiko.SSHClient, hostname: str, key: paramiko.PKey
    ) -> None:
        logger.warning(
            "Accepting unverified %s host key for %s", key.get_name(), hostname
        )
        client.get_host_keys().add(hostname, key.get_name(), key)


class SSHEndpoint(BaseEndpoint):
    """A paramiko SSH session plus an SFTP channel to one target host.

    Parameters
    ----------
    target:
        The resolved host, including shared SSH credentials.
    client_factory:
        Zero-argument callable returning a ``paramiko.SSHClient``;
        replaceable in tests.
    """

    def __init__(
        self,
        target: TargetHost,
        *,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ) -> None:
        super().__init__(target.name)
        self.target = target
        self._client_factory = client_factory
        self._client: paramiko.SSHClient | None = None
        self._sftp: paramiko.SFTPClient | None = None

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def connect(self) -> None:
        ssh = self.target.ssh
        kwargs: dict[str, Any] = {
            "hostname": self.target.address,
            "port": self.target.port,
            "username": ssh.user,
            "timeout": ssh.timeout,
            "banner_timeout": ssh.timeout,
            "auth_timeout": ssh.timeout,
            "allow_agent": False,
            "look_for_keys": False,
        }
        if ssh.key_file is not None:
            kwargs["key_filename"] = str(ssh.key_file)
        elif ssh.password is not None:
            kwargs["password"] = ssh.password.get_secret_value()

        client = self._client_factory()
        client.set_missing_host_key_policy(_LoggingAutoAddPolicy())
        address = f"{self.target.address}:{self.target.port}"
        try:
            client.connect(**kwargs)
        except paramiko.AuthenticationException as exc:
            client.close()
            raise ConnectError(f"authentication failed for {ssh.user}@{address}: {exc}") from exc
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            raise ConnectError(f"failed to connect to {address}: {exc}") from exc

        try:
            sftp = client.open_sftp()
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            raise ConnectError(f"failed to open SFTP session on {address}: {exc}") from exc

        self._client = client
        self._sftp = sftp
        logger.debug("[%s] connected as %s", self.host, ssh.user)

    def close(self) -> None:
        sftp, client = self._sftp, self._client
        self._sftp = None
        self._client = None
        try:
            if sftp is not None:
                sftp.close()
        finally:
            if client is not None:
                client.close()

    def _require_client(self) -> paramiko.SSHClient:
        if self._client is None:
            raise RemoteError(f"not connected to {self.host}")
        return self._client

    def _require_sftp(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            raise RemoteError(f"not connected to {self.host}")
        return self._sftp

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def run_command(self, command: str) -> CommandResult:
        client = self._require_client()
        try:
            _stdin, stdout, _stderr = client.exec_command(command)
            stdout.channel.set_combine_stderr(True)
            output = stdout.read().decode("utf-8", errors="replace")
            status = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as exc:
            raise RemoteError(f"failed to run {command!r} on {self.host}: {exc}") from exc
        return CommandResult(command=command, exit_status=status, output=output)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def _makedirs(self, sftp: paramiko.SFTPClient, remote_dir: str) -> None:
        if remote_dir in ("", "/"):
            return
        try:
            sftp.stat(remote_dir)
            return
        except OSError:
            pass
        self._makedirs(sftp, posixpath.dirname(remote_dir.rstrip("/")))
        sftp.mkdir(remote_dir)

    def upload(
        self, local_path: Path, remote_path: str, progress: ProgressCallback | None = None
    ) -> None:
        sftp = self._require_sftp()
        local_path = Path(local_path)

        try:
            total = local_path.stat().st_size
        except OSError as exc:
            raise UploadError(f"cannot stat local file {local_path}: {exc}") from exc

        try:
            self._makedirs(sftp, posixpath.dirname(remote_path))
        except (paramiko.SSHException, OSError) as exc:
            raise UploadError(
                f"cannot create remote directory for {remote_path} on {self.host}: {exc}"
            ) from exc

        written = 0
        try:
            with local_path.open("rb") as src, sftp.open(remote_path, "wb") as dst:
                dst.set_pipelined(True)
                while True:
                    chunk = src.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    dst.write(chunk)
                    written += len(chunk)
                    if progress is not None:
                        progress(written, total)
        except (paramiko.SSHException, OSError) as exc:
            raise UploadError(
                f"upload of {local_path} to {self.host}:{remote_path} failed "
                f"after {written} bytes: {exc}"
            ) from exc

        if written != total:
            raise UploadError(
                f"incomplete upload to {self.host}: expected {total} bytes, wrote {written}"
            )
        try:
            remote_size = sftp.stat(remote_path).st_size
        except (paramiko.SSHException, OSError) as exc:
            raise UploadError(f"cannot stat uploaded file on {self.host}: {exc}") from exc
        if remote_size != total:
            raise UploadError(
                f"size mismatch on {self.host}: expected {total} bytes, found {remote_size}"
            )

    def remove_remote(self, path: str) -> None:
        sftp = self._require_sftp()
        try:
            sftp.remove(path)
        except (paramiko.SSHException, OSError) as exc:
            raise RemoteError(f"failed to remove {path} on {self.host}: {exc}") from exc
