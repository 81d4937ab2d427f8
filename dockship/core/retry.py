"""Retry policy for (artifact, host) transfers.

Attempts are strictly sequential.  The backoff is only consulted between
attempts, never after the last one.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from dockship.models.transfer import TransferAttempt, TransferResult

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAY = 2.0


@runtime_checkable
class Backoff(Protocol):
    """Strategy invoked between a failed attempt and the next one."""

    def wait(self, attempt: int) -> None:
        """Block before the attempt following *attempt*."""
        ...


class FixedDelay:
    """Sleep a constant number of seconds between attempts."""

    def __init__(
        self,
        seconds: float = DEFAULT_RETRY_DELAY,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.seconds = seconds
        self._sleep = sleep

    def wait(self, attempt: int) -> None:
        if self.seconds > 0:
            self._sleep(self.seconds)


class NoDelay:
    """Retry immediately."""

    def wait(self, attempt: int) -> None:
        return None


class RetryPolicy:
    """Bounded, sequential retries with a pluggable backoff.

    Parameters
    ----------
    max_attempts:
        Total number of attempts, at least 1.
    backoff:
        Called between attempts.  Defaults to a 2 second ``FixedDelay``.
    """

    def __init__(self, max_attempts: int, backoff: Backoff | None = None) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.max_attempts = max_attempts
        self.backoff: Backoff = backoff or FixedDelay()

    def execute(
        self,
        host: str,
        artifact: str,
        attempt_fn: Callable[[int], TransferAttempt],
    ) -> TransferResult:
        """Call ``attempt_fn(n)`` for n = 1.. until success or exhaustion."""
        warnings: list[str] = []
        last: TransferAttempt | None = None

        for number in range(1, self.max_attempts + 1):
            last = attempt_fn(number)
            warnings.extend(last.warnings)
            if last.succeeded:
                if number > 1:
                    logger.info("[%s] %s succeeded on attempt %d", host, artifact, number)
                break
            if number < self.max_attempts:
                logger.info(
                    "[%s] %s attempt %d/%d failed, retrying: %s",
                    host,
                    artifact,
                    number,
                    self.max_attempts,
                    last.error,
                )
                self.backoff.wait(number)
            else:
                logger.error(
                    "[%s] %s failed after %d attempt(s): %s",
                    host,
                    artifact,
                    number,
                    last.error,
                )

        assert last is not None
        return TransferResult(
            host=host,
            artifact=artifact,
            success=last.succeeded,
            error=last.error,
            error_type=last.error_type,
            attempts=last.attempt,
            hooks=last.hooks,
            warnings=warnings,
        )
