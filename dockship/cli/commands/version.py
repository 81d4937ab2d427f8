"""``dockship version`` — print version and runtime information."""

from __future__ import annotations

import platform

from rich.console import Console

from dockship import __version__

console = Console()


def version_cmd() -> None:
    """Show the Dockship version, Python version and platform."""
    console.print(f"[bold]dockship[/bold] {__version__}")
    console.print(f"Python {platform.python_version()} ({platform.python_implementation()})")
    console.print(f"Platform: {platform.platform()}")
