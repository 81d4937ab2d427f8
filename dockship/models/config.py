"""Distribution configuration models — the validated shape of ``config.yaml``.

Every block is frozen.  The pipeline and each collaborator receive the
same ``DistributionConfig`` instance; nothing mutates it after load.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

logger = logging.getLogger(__name__)

DEFAULT_SSH_PORT = 22


class SSHConfig(BaseModel):
    """SSH credentials and connection options shared by every target host.

    ``password`` is read from the ``pwd`` key of the YAML file.  Either a
    password or a private key file must be supplied; when both are set
    the key file wins.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user: str = Field(min_length=1)
    password: SecretStr | None = Field(default=None, alias="pwd")
    key_file: Path | None = None
    port: int = Field(default=DEFAULT_SSH_PORT, ge=1, le=65535)
    timeout: int = Field(default=30, ge=1)  # connect-phase timeout, seconds

    @field_validator("key_file", mode="before")
    @classmethod
    def _expand_key_file(cls, value: object) -> object:
        if value in (None, ""):
            return None
        return Path(str(value)).expanduser()

    @model_validator(mode="after")
    def _require_auth_method(self) -> SSHConfig:
        if self.key_file is None and not self.has_password:
            raise ValueError("either ssh.pwd or ssh.key_file must be provided")
        if self.key_file is not None and not self.key_file.exists():
            raise ValueError(f"ssh key file does not exist: {self.key_file}")
        return self

    @property
    def has_password(self) -> bool:
        return self.password is not None and bool(self.password.get_secret_value())

    @property
    def auth_method(self) -> str:
        """Human-readable authentication method for summaries."""
        if self.key_file is not None:
            return f"key ({self.key_file})"
        return "password"


class LocalStorageConfig(BaseModel):
    """Where exported tar files are written on the control host."""

    model_config = ConfigDict(frozen=True)

    temp_dir: Path = Path("/tmp/dockship")
    auto_cleanup: bool = True


class RemoteStorageConfig(BaseModel):
    """Where tar files are uploaded on target hosts (a POSIX path)."""

    model_config = ConfigDict(frozen=True)

    temp_dir: str = "/tmp"
    auto_cleanup: bool = True


class TransferConfig(BaseModel):
    """Fan-out and retry tuning.

    ``concurrent`` bounds artifact preparation, artifact fan-outs and the
    hosts served per artifact.  Non-positive values are clamped to 1.
    """

    model_config = ConfigDict(frozen=True)

    concurrent: int = 5
    retry: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=2.0, ge=0.0)

    @field_validator("concurrent")
    @classmethod
    def _clamp_concurrent(cls, value: int) -> int:
        if value <= 0:
            logger.warning("transfer.concurrent=%d is not positive, using 1", value)
            return 1
        return value


class HooksConfig(BaseModel):
    """Shell commands run on each target host around ``docker load``."""

    model_config = ConfigDict(frozen=True)

    pre_load: list[str] = Field(default_factory=list)
    post_load: list[str] = Field(default_factory=list)


class TargetHost(BaseModel):
    """One destination host, resolved from a ``target_hosts`` entry.

    ``name`` is the entry as written in the config and is used to tag
    logs, progress bars and results.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    address: str
    port: int = Field(default=DEFAULT_SSH_PORT, ge=1, le=65535)
    ssh: SSHConfig

    @classmethod
    def parse(cls, entry: str, ssh: SSHConfig) -> TargetHost:
        """Build a host from ``"addr"`` or ``"addr:port"``.

        Entries without an explicit port use ``ssh.port``.  Bracketed IPv6
        literals (``"[::1]:2222"``) are accepted.
        """
        entry = entry.strip()
        address, port = entry, ssh.port
        if entry.startswith("["):
            closing = entry.find("]")
            if closing == -1:
                raise ValueError(f"invalid host entry: {entry!r}")
            address = entry[1:closing]
            rest = entry[closing + 1:]
            if rest.startswith(":"):
                port = int(rest[1:])
        elif entry.count(":") == 1:
            address, raw_port = entry.split(":", 1)
            port = int(raw_port)
        if not address:
            raise ValueError(f"invalid host entry: {entry!r}")
        return cls(name=entry, address=address, port=port, ssh=ssh)


class DistributionConfig(BaseModel):
    """Complete, validated configuration for one distribution run."""

    model_config = ConfigDict(frozen=True)

    images: list[str] = Field(min_length=1)
    target_hosts: list[str] = Field(min_length=1)
    ssh: SSHConfig
    local_storage: LocalStorageConfig = LocalStorageConfig()
    remote_storage: RemoteStorageConfig = RemoteStorageConfig()
    transfer: TransferConfig = TransferConfig()
    hooks: HooksConfig = HooksConfig()

    @field_validator("images", "target_hosts")
    @classmethod
    def _no_blank_entries(cls, values: list[str]) -> list[str]:
        cleaned = [v.strip() for v in values]
        if any(not v for v in cleaned):
            raise ValueError("entries must not be blank")
        return cleaned

    @model_validator(mode="after")
    def _hosts_parse(self) -> DistributionConfig:
        for entry in self.target_hosts:
            TargetHost.parse(entry, self.ssh)
        return self

    def hosts(self) -> list[TargetHost]:
        """Return the resolved target hosts in configuration order."""
        return [TargetHost.parse(entry, self.ssh) for entry in self.target_hosts]
