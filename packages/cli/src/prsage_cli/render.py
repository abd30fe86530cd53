"""Terminal rendering of review records."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from prsage_store.models import Review

STATUS_STYLE = {
    "pending": "dim",
    "in_progress": "cyan",
    "completed": "green",
    "failed": "red",
}
SEVERITY_STYLE = {"high": "red", "medium": "yellow", "low": "blue"}


def print_review(console: Console, review: Review) -> None:
    style = STATUS_STYLE.get(review.status, "white")
    superseded = " [dim](superseded)[/dim]" if review.is_superseded else ""
    console.print(
        f"\n[bold]{review.review_id}[/bold]  {review.repo}#{review.pr_number}  "
        f"[{style}]{review.status}[/{style}]{superseded}"
    )
    if review.error:
        console.print(f"[red]Error:[/red] {review.error}")
        return
    if review.summary:
        console.print(f"\n{review.summary}\n")

    if review.status == "completed":
        m = review.metrics
        metrics = Table(title="Metrics", show_header=True, header_style="bold cyan")
        for name in ("Quality", "Complexity", "Readability", "Maintainability", "Security"):
            metrics.add_column(name, justify="right")
        metrics.add_row(
            str(m.code_quality_score),
            str(m.complexity),
            str(m.readability),
            str(m.maintainability),
            str(m.security_score),
        )
        console.print(metrics)
        console.print(f"Posted {review.posted_comments} comment(s), {review.failed_comments} failed.")

    for item in review.feedback:
        color = SEVERITY_STYLE.get(item.severity, "white")
        console.print(
            f"[bold cyan]{item.path}[/bold cyan]  line [bold]{item.line}[/bold]  "
            f"[{color}]{item.severity.upper()}[/{color}] {item.type}"
        )
        console.print(f"  {item.comment}")
