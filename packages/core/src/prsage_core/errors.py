"""Exceptions raised by the review pipeline.

Only failures a caller can act on get their own type. Parse failures and
transient completion-service errors are recovered inside ModelClient and
never reach this module's callers.
"""

from __future__ import annotations


class PrsageError(Exception):
    """Base class for all prsage errors."""


class NotFoundError(PrsageError):
    """The pull request or repository under review does not exist."""


class ReviewNotFoundError(PrsageError):
    """No review with the given id is recorded for the pull request."""

    def __init__(self, repo: str, pr_number: int, review_id: str):
        super().__init__(f"Review not found: {review_id} ({repo}#{pr_number})")
        self.repo = repo
        self.pr_number = pr_number
        self.review_id = review_id


class InvalidTransitionError(PrsageError):
    """A review status change that the lifecycle does not allow."""

    def __init__(self, review_id: str, current: str, target: str):
        super().__init__(f"Review {review_id} cannot move from {current!r} to {target!r}")
        self.review_id = review_id
        self.current = current
        self.target = target
