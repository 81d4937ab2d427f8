"""Per-host transfer models — state machine states, attempts and results."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TransferState(str, Enum):
    """States one (artifact, host) attempt moves through."""

    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    AVAILABILITY_CHECKED = "availability_checked"
    UPLOADING = "uploading"
    PRE_HOOKS = "pre_hooks"
    LOADING = "loading"
    POST_HOOKS = "post_hooks"
    CLEANING_UP = "cleaning_up"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# Forward path plus FAILED from every non-terminal state.
# Terminal states (SUCCEEDED, FAILED) have no outgoing transitions.
VALID_TRANSITIONS: dict[TransferState, set[TransferState]] = {
    TransferState.CONNECTING: {TransferState.AUTHENTICATED, TransferState.FAILED},
    TransferState.AUTHENTICATED: {TransferState.AVAILABILITY_CHECKED, TransferState.FAILED},
    TransferState.AVAILABILITY_CHECKED: {TransferState.UPLOADING, TransferState.FAILED},
    TransferState.UPLOADING: {TransferState.PRE_HOOKS, TransferState.FAILED},
    TransferState.PRE_HOOKS: {TransferState.LOADING, TransferState.FAILED},
    TransferState.LOADING: {TransferState.POST_HOOKS, TransferState.FAILED},
    TransferState.POST_HOOKS: {TransferState.CLEANING_UP, TransferState.FAILED},
    TransferState.CLEANING_UP: {TransferState.SUCCEEDED, TransferState.FAILED},
    TransferState.SUCCEEDED: set(),  # terminal
    TransferState.FAILED: set(),  # terminal
}

TERMINAL_STATES: frozenset[TransferState] = frozenset(
    {TransferState.SUCCEEDED, TransferState.FAILED}
)


class StateTransition(BaseModel):
    """Records a single state change of a transfer attempt."""

    model_config = ConfigDict(frozen=True)

    from_state: TransferState
    to_state: TransferState
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CommandResult(BaseModel):
    """Exit status and combined stdout/stderr of one remote command."""

    model_config = ConfigDict(frozen=True)

    command: str
    exit_status: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class HookRecord(BaseModel):
    """Outcome of a single hook command.

    ``exit_status`` is ``-1`` when the command could not be run at all
    (for example the session channel could not be opened).
    """

    model_config = ConfigDict(frozen=True)

    stage: str  # "pre_load" | "post_load"
    index: int
    command: str
    exit_status: int
    output: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_status == 0


class HookReport(BaseModel):
    """All hook records for one stage of one attempt on one host."""

    model_config = ConfigDict(frozen=True)

    host: str
    stage: str
    records: list[HookRecord] = Field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        return all(r.succeeded for r in self.records)

    @property
    def failed(self) -> list[HookRecord]:
        return [r for r in self.records if not r.succeeded]


class TransferAttempt(BaseModel):
    """One pass through the state machine for an (artifact, host) pair."""

    model_config = ConfigDict(frozen=True)

    host: str
    artifact: str
    attempt: int
    succeeded: bool
    error: str | None = None
    error_type: str | None = None
    failed_state: TransferState | None = None  # state in which the error occurred
    transitions: list[StateTransition] = Field(default_factory=list)
    hooks: list[HookReport] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def final_state(self) -> TransferState:
        if not self.transitions:
            return TransferState.CONNECTING
        return self.transitions[-1].to_state


class TransferResult(BaseModel):
    """Terminal outcome for an (artifact, host) pair after retries.

    ``error`` is taken from the last attempt only.  ``warnings`` collects
    non-fatal problems (remote cleanup, session close) from every attempt.
    """

    model_config = ConfigDict(frozen=True)

    host: str
    artifact: str
    success: bool
    error: str | None = None
    error_type: str | None = None
    attempts: int = 0
    hooks: list[HookReport] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def hook_failures(self) -> int:
        return sum(len(report.failed) for report in self.hooks)
