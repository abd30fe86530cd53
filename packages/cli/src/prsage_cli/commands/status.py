"""status command: show one review from the store."""

from __future__ import annotations

import click
from rich.console import Console

from prsage_cli.render import print_review

console = Console()


@click.command("status")
@click.argument("review_id")
@click.pass_context
def status_cmd(ctx, review_id: str):
    """Show the status and findings of a review by its id."""
    store = ctx.obj.get("store") if ctx.obj else None
    review = store.find(review_id) if store is not None else None
    if review is None:
        raise click.UsageError(f"No review with id {review_id!r}. Is a persistent store (store: sqlite) configured?")
    print_review(console, review)
