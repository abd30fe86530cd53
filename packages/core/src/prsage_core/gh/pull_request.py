from __future__ import annotations

from dataclasses import dataclass

from github import GithubException

from prsage_core.errors import NotFoundError


@dataclass
class PullRequestInfo:
    """The change metadata a prompt needs, detached from the PyGithub object."""

    repo: str
    number: int
    title: str
    description: str = ""
    head_sha: str = ""
    author: str = ""


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def get_pull_requests(repo, state: str = "open"):
    return repo.get_pulls(state=state)


def get_diff(pr):
    return pr.get_files()


def fetch_pull_request(github, repo_name: str, pr_number: int):
    """Return ``(repo, pr)``; raise NotFoundError when either does not exist."""
    try:
        repo = github.get_repo(repo_name)
    except GithubException as e:
        if e.status == 404:
            raise NotFoundError(f"Repository not found: {repo_name}") from e
        raise
    try:
        pr = get_pull(repo, pr_number)
    except GithubException as e:
        if e.status == 404:
            raise NotFoundError(f"Pull request not found: {repo_name}#{pr_number}") from e
        raise
    return repo, pr


def to_info(repo_name: str, pr) -> PullRequestInfo:
    user = getattr(pr, "user", None)
    return PullRequestInfo(
        repo=repo_name,
        number=pr.number,
        title=pr.title or "",
        description=pr.body or "",
        head_sha=pr.head.sha,
        author=getattr(user, "login", "") or "",
    )
