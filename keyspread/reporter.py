from __future__ import annotations

from typing import Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from keyspread.analysis import KeyDistribution
from keyspread.driver import DriverReport


def _status(outcome) -> str:
    if outcome.failed:
        return f"[bold red]failed[/bold red] ({outcome.error_type})"
    if outcome.cancelled:
        return "[yellow]cancelled[/yellow]"
    return "[green]completed[/green]"


def print_report(report: DriverReport, console: Optional[Console] = None) -> None:
    """
    Render one driver run as a rich table, one row per task.

    The task that ended the run is marked; a terminal error is printed below
    the table with its type.
    """
    console = console or Console()

    if not report.outcomes:
        console.print("[yellow]No tasks ran.[/yellow]")
        return

    title = "keyspread run"
    if report.profile is not None:
        peak_mb = (report.profile.peak_rss_bytes or 0) / (1024 * 1024)
        title = (
            f"{title}\n[dim]wall {report.profile.duration_seconds:.1f}s │ "
            f"peak RSS {peak_mb:.1f}MB │ threads {report.profile.peak_threads or 0}[/dim]"
        )

    table = Table(title=title, box=box.ROUNDED, caption="* ended the run")
    table.add_column("Task", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Iterations", justify="right", style="magenta")
    table.add_column("Written", justify="right", style="green")
    table.add_column("Read", justify="right", style="green")
    table.add_column("Flushes", justify="right", style="blue")
    table.add_column("Duration (s)", justify="right", style="yellow")
    table.add_column("Rows/s", justify="right", style="bold green")

    for outcome in report.outcomes:
        name = outcome.task
        if name == report.terminal_task:
            name = f"{name} *"
        rows = outcome.records_written + outcome.records_read
        rate = rows / outcome.duration_seconds if outcome.duration_seconds else 0.0
        table.add_row(
            name,
            _status(outcome),
            f"{outcome.iterations:,}",
            f"{outcome.records_written:,}",
            f"{outcome.records_read:,}",
            str(len(outcome.flushes)),
            f"{outcome.duration_seconds:.1f}",
            f"{rate:,.2f}",
        )

    console.print(table)
    if report.terminal_error is not None:
        console.print(
            f"[bold red]{type(report.terminal_error).__name__}:[/bold red] {report.terminal_error}"
        )


def print_distributions(
    distributions: Sequence[KeyDistribution], console: Optional[Console] = None
) -> None:
    """Render key-range bucket counts per strategy, least skewed first."""
    console = console or Console()

    if not distributions:
        console.print("[yellow]No distributions to display.[/yellow]")
        return

    buckets = len(distributions[0].counts)
    table = Table(
        title="Key range distribution",
        box=box.ROUNDED,
        caption="Lower chi-square = more even spread across ranges",
    )
    table.add_column("Strategy", style="cyan", no_wrap=True)
    for i in range(buckets):
        table.add_column(f"r{i}", justify="right", style="magenta")
    table.add_column("Chi-square", justify="right", style="bold green")
    table.add_column("Hottest range", justify="right", style="red")

    for dist in sorted(distributions, key=lambda d: d.statistic):
        table.add_row(
            dist.strategy,
            *(f"{c:,}" for c in dist.counts),
            f"{dist.statistic:,.1f}",
            f"{dist.hottest_share:.0%}",
        )

    console.print(table)


__all__ = ["print_report", "print_distributions"]
