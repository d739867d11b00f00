"""
Rendering functions for feedpush output.

This module handles all pretty-printing and table formatting.
Services return data, this module makes it human-readable.
"""

from typing import Iterable

from rich import box
from rich.console import Console
from rich.table import Table

from .domain.operation import PublishStatus, PublishSummary
from .domain.source import PackageSource

console = Console()

_STATUS_STYLES = {
    PublishStatus.SUCCESS: "green",
    PublishStatus.SKIPPED: "yellow",
    PublishStatus.FAILED: "red",
    PublishStatus.DRY_RUN: "cyan",
}


def render_sources_table(sources: Iterable[PackageSource]) -> None:
    """Render registered package sources in lookup order."""
    sources = list(sources)
    if not sources:
        console.print("[yellow]No package sources registered.[/yellow]")
        return

    table = Table(
        title="Package Sources",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold magenta"
    )
    table.add_column("Name", style="cyan")
    table.add_column("Location", style="dim")
    table.add_column("Kind")

    for source in sources:
        table.add_row(source.name, source.location, "local" if source.is_local else "remote")

    console.print(table)


def render_publish_summary(summary: PublishSummary) -> None:
    """Render one row per feed followed by the totals."""
    table = Table(
        title="Dry Run" if summary.dry_run else "Publish Results",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold magenta"
    )
    table.add_column("Feed", style="cyan")
    table.add_column("Status")
    table.add_column("Pushed" if not summary.dry_run else "Would push")
    table.add_column("Already published", justify="right")
    table.add_column("Promotions", justify="right")

    for detail in summary.details:
        style = _STATUS_STYLES.get(detail.status, "white")
        table.add_row(
            detail.feed_name,
            f"[{style}]{detail.status.value}[/{style}]",
            "\n".join(detail.pushed) or "-",
            str(detail.already_published),
            str(detail.promotions),
        )

    console.print(table)
    console.print(
        f"{summary.total} feed(s): {summary.successful} ok, "
        f"{summary.skipped} skipped, {summary.failed} failed, "
        f"{summary.pushed_count} package(s) {'to push' if summary.dry_run else 'pushed'}"
    )
    for error in summary.errors:
        console.print(f"[red]✗ {error}[/red]")
