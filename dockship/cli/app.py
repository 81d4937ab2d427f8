"""Main Typer application — imports and registers all CLI commands.

Entry point: ``dockship`` (configured via pyproject.toml console_scripts).
"""

from __future__ import annotations

import typer

from dockship.cli.commands.transfer import transfer_cmd
from dockship.cli.commands.version import version_cmd

app = typer.Typer(
    name="dockship",
    help="Dockship: distribute container images to many hosts over SSH.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

app.command(name="transfer", help="Distribute the configured images to every target host.")(
    transfer_cmd
)
app.command(name="version", help="Show version information.")(version_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
