"""``dockship transfer`` — distribute the configured images to every host.

Loads and validates the configuration, shows a summary, asks for
confirmation, then runs the distribution with live upload progress and
prints the per-image report.
"""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from dockship.config import ConfigError, Settings, load_config
from dockship.core.artifact_store import DockerArtifactStore, EngineUnavailableError
from dockship.core.pipeline import DistributionPipeline
from dockship.models.config import DistributionConfig
from dockship.monitor.progress import ProgressReporter, RichProgressReporter
from dockship.monitor.renderer import ReportRenderer

console = Console()


def configure_logging(level: str) -> None:
    """Route all log records through Rich so they print above the progress bars."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )
    logging.getLogger("paramiko").setLevel(logging.WARNING)


def build_pipeline(
    config: DistributionConfig, settings: Settings, progress: ProgressReporter
) -> DistributionPipeline:
    """Wire the production collaborators for one run."""
    store = DockerArtifactStore(config.local_storage.temp_dir, docker_bin=settings.docker_bin)
    return DistributionPipeline(config, artifact_store=store, progress=progress)


def transfer_cmd(
    config_path: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to the YAML configuration file (default: DOCKSHIP_CONFIG_PATH or config.yaml).",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Start without asking for confirmation.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging.",
    ),
) -> None:
    """Distribute every configured image to every target host."""
    settings = Settings()
    configure_logging("DEBUG" if verbose else settings.log_level)

    path = config_path or settings.config_path
    try:
        config = load_config(path)
    except ConfigError as exc:
        console.print(f"[bold red]Configuration error:[/bold red] {exc}")
        raise typer.Exit(code=1)

    renderer = ReportRenderer(console=console)
    console.print()
    renderer.print_config_summary(config)

    if not (yes or settings.assume_yes):
        if not typer.confirm("Start the transfer?", default=False):
            console.print("[yellow]Transfer cancelled.[/yellow]")
            raise typer.Exit(code=0)

    try:
        with RichProgressReporter(console, refresh_hz=settings.progress_refresh_hz) as progress:
            report = build_pipeline(config, settings, progress).start()
    except EngineUnavailableError as exc:
        console.print(f"[bold red]Local engine unavailable:[/bold red] {exc}")
        raise typer.Exit(code=1)

    console.print()
    renderer.print_report(report)
    console.print(f"[dim]Total time: {report.elapsed_seconds:.2f}s[/dim]")
