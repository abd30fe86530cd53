"""Persisted review data models.

Kept in the store package so backends can be used without prsage_core.
prsage_core.manager is the only code that mutates these records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

PENDING = "pending"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
FAILED = "failed"

REVIEW_STATUSES = (PENDING, IN_PROGRESS, COMPLETED, FAILED)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class FeedbackItem:
    """A single normalized feedback entry attached to a review."""

    path: str
    line: int
    comment: str
    type: str = "suggestion"  # suggestion | issue | praise | question
    severity: str = "medium"  # low | medium | high


@dataclass
class ReviewMetrics:
    code_quality_score: int = 5
    complexity: int = 5
    readability: int = 5
    maintainability: int = 5
    security_score: int = 5


@dataclass
class Review:
    """One review run of a pull request.

    Reviews are never deleted: failed and superseded ones stay for audit.
    A re-review is linked to earlier reviews only through (repo, pr_number).
    """

    review_id: str
    repo: str
    pr_number: int
    status: str = PENDING
    created_at: str = field(default_factory=utc_now)  # ISO-8601 UTC timestamp
    completed_at: str | None = None
    summary: str = ""
    feedback: list[FeedbackItem] = field(default_factory=list)
    metrics: ReviewMetrics = field(default_factory=ReviewMetrics)
    error: str | None = None
    is_superseded: bool = False
    is_rereview: bool = False
    posted_comments: int = 0
    failed_comments: int = 0
