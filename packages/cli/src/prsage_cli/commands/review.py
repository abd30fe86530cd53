"""review command: trigger an AI review of a pull request."""

from __future__ import annotations

from concurrent.futures import TimeoutError as FuturesTimeoutError

import click
from rich.console import Console

from prsage_cli.render import print_review
from prsage_core.gh.pull_request import get_pull_requests
from prsage_core.reviewer import ReviewService, get_model_client

console = Console()


@click.command("review")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option(
    "--pr",
    "pr_number",
    type=int,
    default=None,
    help="Pull request number. Omit to list open PRs interactively.",
)
@click.option(
    "--provider",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="AI provider. Overrides config file.",
)
@click.option("--model", "model_name", default=None, help="Model name, e.g. gpt-4o. Overrides config file.")
@click.option(
    "--guidelines",
    "guidelines_path",
    default=None,
    help="Path to a Markdown guidelines file. Overrides config file.",
)
@click.option("--rereview", is_flag=True, help="Re-review: supersede earlier reviews and verify their findings.")
@click.option(
    "--shadow",
    "-s",
    is_flag=True,
    help="Dry-run mode: record and print the review without posting to GitHub.",
)
@click.option("--timeout", default=None, type=float, help="Seconds to wait for the review to finish.")
@click.pass_context
def review_cmd(
    ctx,
    repo: str,
    pr_number: int | None,
    provider: str | None,
    model_name: str | None,
    guidelines_path: str | None,
    rereview: bool,
    shadow: bool,
    timeout: float | None,
):
    """Review a pull request and post line-anchored feedback.

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub token (or use gh CLI, or GitHub App settings)
      ANTHROPIC_API_KEY    Required when using --provider anthropic
      OPENAI_API_KEY       Required when using --provider openai
    """
    from prsage_cli.auth import build_github
    from prsage_core.config import load_guidelines

    config = dict(ctx.obj["config"])
    for key, value in {"provider": provider, "model_name": model_name, "guidelines": guidelines_path}.items():
        if value is not None:
            config[key] = value
    if shadow:
        config["post_comments"] = False

    github = build_github(config)
    if github is None:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )
    if config["provider"] == "anthropic" and not config.get("anthropic_api_key"):
        raise click.UsageError("ANTHROPIC_API_KEY environment variable is not set.")
    if config["provider"] == "openai" and not config.get("openai_api_key"):
        raise click.UsageError("OPENAI_API_KEY environment variable is not set.")

    if pr_number is None:
        prs = list(get_pull_requests(github.get_repo(repo)))
        if not prs:
            console.print("[yellow]No open pull requests found.[/yellow]")
            return
        console.print("\nOpen pull requests:")
        for pr in prs:
            console.print(f"  [bold]#{pr.number}[/bold]  {pr.title}")
        pr_number = click.prompt("\nEnter the pull request number", type=int)

    try:
        client = get_model_client(config, guidelines=load_guidelines(config))
    except (FileNotFoundError, ValueError) as e:
        raise click.UsageError(str(e))

    service = ReviewService(github, client, ctx.obj["store"], config=config)
    try:
        review_id = service.trigger_review(repo, pr_number, is_rereview=rereview)
        console.print(f"[cyan]Review {review_id} started for {repo}#{pr_number}[/cyan]")
        service.wait(review_id, timeout=timeout)
    except FuturesTimeoutError:
        console.print(f"[yellow]Review {review_id} is still running. Check it later with `prsage status`.[/yellow]")
        return
    finally:
        service.shutdown(wait=False)

    review = service.manager.get_review(repo, pr_number, review_id)
    print_review(console, review)
    if review.status == "failed":
        ctx.exit(1)
