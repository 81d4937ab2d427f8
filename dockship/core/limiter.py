"""Counting concurrency limiter for host fan-out."""

from __future__ import annotations

import threading


class ConcurrencyLimiter:
    """A bounded semaphore that also tracks how many holders it has seen.

    Use as a context manager around each unit of work::

        with limiter:
            transfer(...)
    """

    def __init__(self, limit: int) -> None:
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        self.limit = limit
        self._semaphore = threading.BoundedSemaphore(limit)
        self._lock = threading.Lock()
        self._in_flight = 0
        self._peak = 0

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    @property
    def peak(self) -> int:
        """Highest number of simultaneous holders observed."""
        with self._lock:
            return self._peak

    def acquire(self) -> None:
        self._semaphore.acquire()
        with self._lock:
            self._in_flight += 1
            self._peak = max(self._peak, self._in_flight)

    def release(self) -> None:
        with self._lock:
            if self._in_flight == 0:
                raise ValueError("release() called without a matching acquire()")
            self._in_flight -= 1
        self._semaphore.release()

    def __enter__(self) -> ConcurrencyLimiter:
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()
