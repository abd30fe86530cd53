"""stats command: aggregate patterns across review history."""

from __future__ import annotations

from collections import Counter

import click
from rich.console import Console
from rich.table import Table

from prsage_cli.render import SEVERITY_STYLE

console = Console()

_METRIC_FIELDS = (
    ("Quality", "code_quality_score"),
    ("Complexity", "complexity"),
    ("Readability", "readability"),
    ("Maintainability", "maintainability"),
    ("Security", "security_score"),
)


@click.command("stats")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--top", default=10, show_default=True, help="Number of top entries to show per category.")
@click.pass_context
def stats_cmd(ctx, repo: str, top: int):
    """Show aggregated review statistics for a repository.

    Only current reviews count: completed and not superseded by a re-review.
    Reports severity and type distribution, average metrics, and the most
    frequently flagged files.
    """
    store = ctx.obj.get("store") if ctx.obj else None
    records = store.list_reviews(repo) if store is not None else []
    records = [r for r in records if r.status == "completed" and not r.is_superseded]
    if not records:
        console.print("[yellow]No completed reviews found for this repository.[/yellow]")
        return

    total_reviews = len(records)
    items = [item for r in records for item in r.feedback]
    severity_counter = Counter(item.severity for item in items)
    type_counter = Counter(item.type for item in items)
    file_counter = Counter(item.path for item in items)

    console.print(f"\n[bold]Review stats for [cyan]{repo}[/cyan][/bold]")
    console.print(f"  Reviews:         {total_reviews}")
    console.print(f"  Feedback items:  {len(items)}")
    console.print(f"  Avg per review:  {len(items) / total_reviews:.1f}")

    metrics = Table(title="Average Metrics", show_header=True)
    for label, _ in _METRIC_FIELDS:
        metrics.add_column(label, justify="right")
    metrics.add_row(*(f"{sum(getattr(r.metrics, f) for r in records) / total_reviews:.1f}" for _, f in _METRIC_FIELDS))
    console.print(metrics)

    if items:
        sev_table = Table(title="Severity Breakdown", show_header=True)
        sev_table.add_column("Severity", style="bold")
        sev_table.add_column("Count", justify="right")
        sev_table.add_column("% of total", justify="right")
        for sev in ("high", "medium", "low"):
            count = severity_counter.get(sev, 0)
            style = SEVERITY_STYLE.get(sev, "white")
            sev_table.add_row(f"[{style}]{sev}[/{style}]", str(count), f"{count / len(items) * 100:.1f}%")
        console.print(sev_table)

        type_table = Table(title="Feedback Types", show_header=True)
        type_table.add_column("Type")
        type_table.add_column("Count", justify="right")
        for type_, count in type_counter.most_common():
            type_table.add_row(type_, str(count))
        console.print(type_table)

        file_table = Table(title=f"Top {top} Most Flagged Files", show_header=True)
        file_table.add_column("File")
        file_table.add_column("Feedback", justify="right")
        for file_path, count in file_counter.most_common(top):
            file_table.add_row(file_path, str(count))
        console.print(file_table)
