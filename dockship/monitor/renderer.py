"""Rich terminal renderer for Dockship runs.

Renders the pre-run configuration summary and the post-run report.

Color scheme
------------
- green     : every host succeeded
- yellow    : some hosts failed
- red       : preparation failed or no host succeeded
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from dockship.models.config import DistributionConfig
from dockship.models.reports import ArtifactReport, DistributionReport


def _status_markup(report: ArtifactReport) -> str:
    if not report.prepared:
        return "[bold red]NOT PREPARED[/bold red]"
    if report.failed_count == 0:
        return "[green]OK[/green]"
    if report.success_count == 0:
        return "[bold red]FAILED[/bold red]"
    return "[yellow]PARTIAL[/yellow]"


def _details(report: ArtifactReport) -> str:
    if not report.prepared:
        return report.preparation_error or ""
    lines = [
        f"{r.host}: {r.error} (after {r.attempts} attempt(s))"
        for r in report.results
        if not r.success
    ]
    return "\n".join(lines)


def _warnings(report: ArtifactReport) -> str:
    lines: list[str] = []
    for result in report.results:
        lines.extend(f"{result.host}: {w}" for w in result.warnings)
        for hooks in result.hooks:
            lines.extend(
                f"{result.host}: {r.stage} hook exit {r.exit_status}: {r.command}"
                for r in hooks.failed
            )
    if report.cleanup_warning:
        lines.append(f"local cleanup: {report.cleanup_warning}")
    return "\n".join(lines)


class ReportRenderer:
    """Renders configuration summaries and distribution reports.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Configuration summary
    # ------------------------------------------------------------------

    def render_config_summary(self, config: DistributionConfig) -> Panel:
        """Build the panel shown before the user confirms a run."""
        images = "\n".join(f"  - {name}" for name in config.images)
        hosts = "\n".join(
            f"  - {host.address}:{host.port}" for host in config.hosts()
        )
        hook_counts = (
            f"{len(config.hooks.pre_load)} pre-load, {len(config.hooks.post_load)} post-load"
        )
        lines = [
            f"[bold]Images ({len(config.images)}):[/bold]",
            images,
            f"[bold]Target hosts ({len(config.target_hosts)}):[/bold]",
            hosts,
            "",
            f"[bold]SSH user:[/bold]     {config.ssh.user}",
            f"[bold]SSH auth:[/bold]     {config.ssh.auth_method}",
            f"[bold]Concurrency:[/bold]  {config.transfer.concurrent}",
            f"[bold]Retries:[/bold]      {config.transfer.retry} "
            f"(delay {config.transfer.retry_delay:g}s)",
            f"[bold]Hooks:[/bold]        {hook_counts}",
            f"[bold]Local dir:[/bold]    {config.local_storage.temp_dir}",
            f"[bold]Remote dir:[/bold]   {config.remote_storage.temp_dir}",
        ]
        return Panel(
            "\n".join(lines),
            title="[bold]Dockship[/bold]",
            border_style="blue",
            padding=(1, 2),
        )

    def print_config_summary(self, config: DistributionConfig) -> None:
        self.console.print(self.render_config_summary(config))

    # ------------------------------------------------------------------
    # Run report
    # ------------------------------------------------------------------

    def render_report(self, report: DistributionReport) -> Panel:
        """Render a ``DistributionReport`` as a Panel containing a Table."""
        table = self._build_artifact_table(report)

        if report.all_succeeded:
            border = "green"
        elif report.total_success:
            border = "yellow"
        else:
            border = "red"

        summary = "  |  ".join([
            f"[bold]Images:[/bold] {len(report.artifacts)}",
            f"[bold]Succeeded:[/bold] [green]{report.total_success}[/green]",
            f"[bold]Failed:[/bold] [red]{report.total_failed}[/red]",
            f"[bold]Elapsed:[/bold] {report.elapsed_seconds:.2f}s",
        ])

        return Panel(
            Group(table, Text(""), Text.from_markup(summary)),
            title="[bold]Distribution Report[/bold]",
            subtitle=f"Started: {report.started_at.strftime('%Y-%m-%d %H:%M:%S UTC')}",
            border_style=border,
            padding=(1, 2),
        )

    def _build_artifact_table(self, report: DistributionReport) -> Table:
        table = Table(
            show_header=True,
            header_style="bold cyan",
            expand=True,
            show_lines=True,
        )
        table.add_column("Image", min_width=20)
        table.add_column("Status", justify="center", min_width=12)
        table.add_column("Success", justify="right", style="green")
        table.add_column("Failed", justify="right", style="red")
        table.add_column("Errors", min_width=20)
        table.add_column("Warnings", style="yellow")

        for artifact in report.artifacts:
            table.add_row(
                artifact.artifact,
                _status_markup(artifact),
                str(artifact.success_count),
                str(artifact.failed_count),
                Text(_details(artifact)),
                Text(_warnings(artifact)),
            )
        return table

    def print_report(self, report: DistributionReport) -> None:
        self.console.print(self.render_report(report))
