"""Posting review comments to a pull request.

GitHub has three ways to attach feedback, in decreasing order of fidelity:
a review anchored by new-file line, a review anchored by legacy diff
position, and a plain issue comment on the PR conversation. Which of the
first two an installation accepts depends on the API version, so they are
modeled as an ordered list of strategies: each receives the comments the
previous strategies could not post, and the outcome is a set of counts rather
than an exception.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prsage_core.comments import GeneralComment, InlineComment

logger = logging.getLogger(__name__)

REVIEW_HEADER = "## 🤖 AI Code Review\n\nI've analyzed your pull request. Here are my findings:"


@dataclass
class PostingOutcome:
    posted: int = 0
    failed: int = 0
    by_strategy: dict[str, int] = field(default_factory=dict)

    def merge(self, other: PostingOutcome) -> PostingOutcome:
        by_strategy = dict(self.by_strategy)
        for name, count in other.by_strategy.items():
            by_strategy[name] = by_strategy.get(name, 0) + count
        return PostingOutcome(self.posted + other.posted, self.failed + other.failed, by_strategy)


class PostingStrategy(ABC):
    name: str = ""

    @abstractmethod
    def post(self, pr, comments: list[InlineComment]) -> list[InlineComment]:
        """Post what it can and return the comments that were not posted."""


class _ReviewStrategy(PostingStrategy):
    """All-or-nothing: one review carrying every comment."""

    def post(self, pr, comments: list[InlineComment]) -> list[InlineComment]:
        try:
            pr.create_review(body=REVIEW_HEADER, event="COMMENT", comments=[self.payload(c) for c in comments])
        except Exception as e:
            logger.warning("%s rejected by GitHub (%s): %s", self.name, type(e).__name__, e)
            return list(comments)
        return []

    @abstractmethod
    def payload(self, comment: InlineComment) -> dict: ...


class LineReviewStrategy(_ReviewStrategy):
    name = "line"

    def payload(self, comment: InlineComment) -> dict:
        return {"path": comment.path, "line": comment.line, "side": "RIGHT", "body": comment.body}


class PositionReviewStrategy(_ReviewStrategy):
    name = "position"

    def payload(self, comment: InlineComment) -> dict:
        return {"path": comment.path, "position": comment.position, "body": comment.body}


class IssueCommentStrategy(PostingStrategy):
    """Last resort: one conversation comment per finding, prefixed with its location."""

    name = "issue_comment"

    def post(self, pr, comments: list[InlineComment]) -> list[InlineComment]:
        remaining = []
        for comment in comments:
            try:
                pr.create_issue_comment(f"**{comment.path}** (Line {comment.line})\n{comment.body}")
            except Exception as e:
                logger.warning("Could not post comment on %s:%d: %s", comment.path, comment.line, e)
                remaining.append(comment)
        return remaining


def default_strategies() -> list[PostingStrategy]:
    return [LineReviewStrategy(), PositionReviewStrategy(), IssueCommentStrategy()]


def post_comments(
    pr,
    comments: list[InlineComment],
    strategies: list[PostingStrategy] | None = None,
) -> PostingOutcome:
    outcome = PostingOutcome()
    remaining = list(comments)
    for strategy in strategies if strategies is not None else default_strategies():
        if not remaining:
            break
        left = strategy.post(pr, remaining)
        posted = len(remaining) - len(left)
        if posted:
            outcome.by_strategy[strategy.name] = posted
            outcome.posted += posted
        remaining = left
    outcome.failed = len(remaining)
    if outcome.failed:
        logger.warning("Failed to post %d of %d inline comment(s)", outcome.failed, len(comments))
    return outcome


def post_general_comments(pr, comments: list[GeneralComment]) -> PostingOutcome:
    outcome = PostingOutcome()
    for comment in comments:
        try:
            pr.create_issue_comment(comment.body)
            outcome.posted += 1
        except Exception as e:
            logger.error("Failed to post general comment: %s", e)
            outcome.failed += 1
    if outcome.posted:
        outcome.by_strategy["general"] = outcome.posted
    return outcome
