"""Dockship data models — all Pydantic v2, all frozen (immutable)."""

from dockship.models.artifacts import ArtifactSpec, PreparedArtifact
from dockship.models.config import (
    DistributionConfig,
    HooksConfig,
    LocalStorageConfig,
    RemoteStorageConfig,
    SSHConfig,
    TargetHost,
    TransferConfig,
)
from dockship.models.reports import ArtifactReport, DistributionReport
from dockship.models.transfer import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    CommandResult,
    HookRecord,
    HookReport,
    StateTransition,
    TransferAttempt,
    TransferResult,
    TransferState,
)

__all__ = [
    # artifacts
    "ArtifactSpec",
    "PreparedArtifact",
    # config
    "DistributionConfig",
    "HooksConfig",
    "LocalStorageConfig",
    "RemoteStorageConfig",
    "SSHConfig",
    "TargetHost",
    "TransferConfig",
    # transfer
    "TransferState",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "StateTransition",
    "CommandResult",
    "HookRecord",
    "HookReport",
    "TransferAttempt",
    "TransferResult",
    # reports
    "ArtifactReport",
    "DistributionReport",
]
