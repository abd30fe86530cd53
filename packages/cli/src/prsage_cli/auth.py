"""GitHub client construction for the CLI.

Two ways to authenticate, checked in order:
  1. GitHub App: `app_id`, `private_key_path` and `installation_id` in
     .prsage.yml. Tokens are minted per installation and cached.
  2. Personal token: GITHUB_TOKEN, or the `gh auth token` session of a
     developer who already uses the GitHub CLI.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

from github import Auth, Github

logger = logging.getLogger(__name__)


def resolve_github_token() -> str | None:
    """Return a personal GitHub token, or None. Never raises."""
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token
    try:
        result = subprocess.run(["gh", "auth", "token"], capture_output=True, text=True, timeout=5)
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None
    gh_token = result.stdout.strip() if result.returncode == 0 else ""
    if gh_token:
        logger.debug("Resolved GitHub token via gh CLI session.")
        return gh_token
    return None


def uses_app_auth(config: dict) -> bool:
    return all(config.get(k) for k in ("app_id", "private_key_path", "installation_id"))


def build_github(config: dict) -> Github | None:
    """Return an authenticated client, or None when no credentials are available."""
    if uses_app_auth(config):
        from prsage_core.gh.auth import InMemoryTokenCache, InstallationTokenProvider

        provider = InstallationTokenProvider(
            app_id=config["app_id"],
            private_key=Path(config["private_key_path"]).read_text(),
            cache=InMemoryTokenCache(),
            ttl=config.get("token_ttl_seconds", 3000),
        )
        return provider.client(int(config["installation_id"]))

    token = config.get("github_token") or resolve_github_token()
    if not token:
        return None
    return Github(auth=Auth.Token(token))
