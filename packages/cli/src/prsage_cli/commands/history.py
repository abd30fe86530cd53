"""history command: display past reviews from the store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from prsage_cli.render import STATUS_STYLE

console = Console()


@click.command("history")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--pr", "pr_number", type=int, default=None, help="Filter by PR number.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of records to show.")
@click.pass_context
def history_cmd(ctx, repo: str, pr_number: int | None, limit: int):
    """Show past reviews for a repository, newest first.

    Superseded and failed reviews are kept and listed too.
    """
    store = ctx.obj.get("store") if ctx.obj else None
    records = store.list_reviews(repo, pr_number=pr_number) if store is not None else []
    if not records:
        console.print("[yellow]No reviews found.[/yellow]")
        return

    records = list(reversed(records))[:limit]

    table = Table(title=f"Review History: {repo}", show_header=True, header_style="bold cyan")
    table.add_column("Review", style="bold")
    table.add_column("PR")
    table.add_column("Status")
    table.add_column("Feedback", justify="right")
    table.add_column("Quality", justify="right")
    table.add_column("Created At")

    for r in records:
        style = STATUS_STYLE.get(r.status, "white")
        status = f"[{style}]{r.status}[/{style}]"
        if r.is_superseded:
            status += " [dim]superseded[/dim]"
        table.add_row(
            r.review_id,
            f"#{r.pr_number}",
            status,
            str(len(r.feedback)),
            str(r.metrics.code_quality_score) if r.status == "completed" else "—",
            r.created_at[:19].replace("T", " "),
        )

    console.print(table)
