"""Upload progress reporting.

The pipeline only sees the ``ProgressReporter`` Protocol.  Every method
may be called concurrently from many upload threads.

``RichProgressReporter`` renders one bar per (host, artifact) upload and
removes it on success, leaving failed bars visible in red.
"""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)


@runtime_checkable
class ProgressReporter(Protocol):
    """Thread-safe sink for per-upload progress."""

    def start_transfer(self, host: str, artifact: str, total: int) -> int:
        """Register an upload and return a handle for later updates."""
        ...

    def update(self, handle: int, completed: int) -> None:
        ...

    def finish(self, handle: int, success: bool) -> None:
        ...


class NullProgressReporter:
    """Reporter that discards all updates."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._next = 0

    def start_transfer(self, host: str, artifact: str, total: int) -> int:
        with self._lock:
            self._next += 1
            return self._next

    def update(self, handle: int, completed: int) -> None:
        return None

    def finish(self, handle: int, success: bool) -> None:
        return None


class RichProgressReporter:
    """Multi-bar terminal progress backed by ``rich.progress.Progress``.

    Use as a context manager so the live display is started and stopped
    around the run.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    refresh_hz:
        Redraw rate of the live display.
    """

    def __init__(self, console: Console | None = None, *, refresh_hz: float = 8.0) -> None:
        self.console = console or Console()
        self._progress = Progress(
            TextColumn("[bold blue]{task.fields[host]}"),
            TextColumn("{task.fields[artifact]}", style="cyan"),
            BarColumn(),
            TaskProgressColumn(),
            DownloadColumn(binary_units=True),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            console=self.console,
            refresh_per_second=refresh_hz,
            transient=False,
        )

    def __enter__(self) -> RichProgressReporter:
        self._progress.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._progress.stop()

    def start_transfer(self, host: str, artifact: str, total: int) -> int:
        return int(
            self._progress.add_task(
                "upload", total=max(total, 1), host=host, artifact=artifact
            )
        )

    def update(self, handle: int, completed: int) -> None:
        self._progress.update(TaskID(handle), completed=completed)

    def finish(self, handle: int, success: bool) -> None:
        task_id = TaskID(handle)
        if success:
            self._progress.remove_task(task_id)
        else:
            self._progress.update(task_id, artifact="[bold red]failed[/bold red]")
            self._progress.stop_task(task_id)
