"""Tests for GitHub pull request helper functions."""

from unittest.mock import MagicMock

import pytest
from github import GithubException

from prsage_core.errors import NotFoundError
from prsage_core.gh.pull_request import fetch_pull_request, get_diff, get_pull_requests, to_info


def not_found():
    return GithubException(404, {"message": "Not Found"}, None)


class TestFetchPullRequest:
    def test_returns_repo_and_pr(self):
        github = MagicMock()
        repo, pr = fetch_pull_request(github, "owner/repo", 7)
        github.get_repo.assert_called_once_with("owner/repo")
        repo.get_pull.assert_called_once_with(7)
        assert pr is repo.get_pull.return_value

    def test_missing_repo_raises_not_found(self):
        github = MagicMock()
        github.get_repo.side_effect = not_found()
        with pytest.raises(NotFoundError, match="Repository not found"):
            fetch_pull_request(github, "owner/missing", 1)

    def test_missing_pr_raises_not_found(self):
        github = MagicMock()
        github.get_repo.return_value.get_pull.side_effect = not_found()
        with pytest.raises(NotFoundError, match="owner/repo#99"):
            fetch_pull_request(github, "owner/repo", 99)

    def test_other_errors_propagate(self):
        github = MagicMock()
        github.get_repo.side_effect = GithubException(500, {"message": "Server Error"}, None)
        with pytest.raises(GithubException):
            fetch_pull_request(github, "owner/repo", 1)


class TestHelpers:
    def test_get_diff_returns_files(self):
        pr = MagicMock()
        assert get_diff(pr) is pr.get_files.return_value

    def test_get_pull_requests_filters_by_state(self):
        repo = MagicMock()
        get_pull_requests(repo)
        repo.get_pulls.assert_called_once_with(state="open")

    def test_to_info(self):
        pr = MagicMock(number=7, title="Fix bug", body=None)
        pr.head.sha = "a" * 40
        pr.user.login = "octocat"
        info = to_info("owner/repo", pr)
        assert info.repo == "owner/repo"
        assert info.number == 7
        assert info.description == ""
        assert info.head_sha == "a" * 40
        assert info.author == "octocat"
