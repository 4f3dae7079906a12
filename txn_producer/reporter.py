from __future__ import annotations

from typing import Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from txn_producer.metrics import format_duration, format_rate
from txn_producer.pipeline import RunSummary

_ASSESSMENT_STYLES = {
    "excellent": "bold green",
    "good": "green",
    "moderate": "yellow",
    "low": "red",
}


def _format_memory(peak_rss_bytes: Optional[int]) -> str:
    if not peak_rss_bytes:
        return "N/A"
    mem_mb = peak_rss_bytes / (1024 * 1024)
    return f"{mem_mb:.2f} MB"


def print_summary(summary: RunSummary, console: Optional[Console] = None) -> None:
    """
    Render a run summary as a rich table.

    One row per sink with the records its channel accepted, the records it
    persisted (acknowledged, for Kafka) and its error count. Totals,
    throughput assessment and process resource usage go in the caption.
    """
    console = console or Console()

    title = "Transaction Producer Results"
    if summary.cancelled:
        title = f"{title} [yellow](cancelled)[/yellow]"

    profile = summary.profile
    cpu_str = f"{profile.cpu_percent:.1f}%" if profile and profile.cpu_percent is not None else "N/A"
    style = _ASSESSMENT_STYLES.get(summary.assessment, "white")
    caption = (
        f"Generated {summary.generated:,} in {format_duration(summary.duration_seconds)}"
        f" │ {format_rate(summary.throughput)}"
        f" │ [{style}]{summary.assessment.upper()}[/{style}]"
        f"\n[dim]Peak memory: {_format_memory(profile.peak_rss_bytes if profile else None)}"
        f" │ CPU: {cpu_str}[/dim]"
    )

    table = Table(title=title, box=box.ROUNDED, caption=caption)
    table.add_column("Sink", style="cyan", no_wrap=True)
    table.add_column("Accepted", justify="right", style="magenta")
    table.add_column("Written", justify="right", style="bold green")
    table.add_column("Errors", justify="right", style="red")
    table.add_column("Status", justify="left")

    if not summary.sinks:
        console.print("[yellow]No sinks were run.[/yellow]")
        return

    for report in summary.sinks.values():
        if report.failure is None:
            status = "[green]ok[/green]"
        else:
            status = f"[red]failed[/red]: {escape(report.failure)}"
        table.add_row(
            report.name,
            f"{report.accepted:,}",
            f"{report.written:,}",
            f"{report.errors:,}",
            status,
        )

    console.print(table)


__all__ = ["print_summary"]
