"""Per-host transfer state machine.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- FAILED reachable from every non-terminal state
- No transitions out of SUCCEEDED or FAILED
- Every transition recorded in order
"""

from __future__ import annotations

import logging

from dockship.models.transfer import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    StateTransition,
    TransferState,
)

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class TransferStateMachine:
    """Tracks one transfer attempt through its states.

    Parameters
    ----------
    host:
        Host label, used in log lines.
    artifact:
        Artifact name, used in log lines.
    """

    def __init__(self, host: str, artifact: str) -> None:
        self.host = host
        self.artifact = artifact
        self._state = TransferState.CONNECTING
        self._history: list[StateTransition] = []
        self.failed_in: TransferState | None = None

    @property
    def state(self) -> TransferState:
        return self._state

    @property
    def history(self) -> list[StateTransition]:
        return list(self._history)

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def advance(self, target: TransferState) -> StateTransition:
        """Move to *target*, raising ``InvalidTransitionError`` if not allowed."""
        allowed = VALID_TRANSITIONS.get(self._state, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition {self.artifact}@{self.host} from "
                f"{self._state.value} to {target.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )
        transition = StateTransition(from_state=self._state, to_state=target)
        self._history.append(transition)
        logger.debug(
            "[%s] %s: %s -> %s", self.host, self.artifact, self._state.value, target.value
        )
        self._state = target
        return transition

    def fail(self) -> StateTransition:
        """Move to FAILED from the current state, remembering where it happened."""
        self.failed_in = self._state
        return self.advance(TransferState.FAILED)
