"""CLI entry point for prsage.

Commands:
  review: trigger an AI review of a pull request and wait for the result
  status: show one review by id
  history: list past reviews of a repository or pull request
  stats: aggregate feedback and metrics across completed reviews
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console

from prsage_cli.commands.history import history_cmd
from prsage_cli.commands.review import review_cmd
from prsage_cli.commands.stats import stats_cmd
from prsage_cli.commands.status import status_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured store from .prsage.yml settings.

    Store selection hierarchy:
      store: sqlite → SQLiteStore (uses store_path, default .prsage.db)
      (default)     → MemoryStore (reviews last for this process only)

    This factory lives in cli.py so neither prsage_core nor prsage_store
    know about the CLI config format.
    """
    store_type = config.get("store", "memory")

    if store_type == "sqlite":
        from prsage_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=config.get("store_path", ".prsage.db"))

    if store_type != "memory":
        console.print(f"[yellow]Unknown store {store_type!r}. Falling back to the in-memory store.[/yellow]")

    from prsage_store.memory import MemoryStore

    return MemoryStore()


@click.group()
@click.version_option(
    version=importlib.metadata.version("prsage"),
    prog_name="prsage",
)
@click.option(
    "--config",
    "config_path",
    default=".prsage.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRSAGE_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Log pipeline progress to stderr.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """AI-powered pull request reviewer with line-anchored feedback."""
    from prsage_core.config import load_config

    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    ctx.ensure_object(dict)
    config = load_config(config_path)
    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(review_cmd)
main.add_command(status_cmd)
main.add_command(history_cmd)
main.add_command(stats_cmd)
