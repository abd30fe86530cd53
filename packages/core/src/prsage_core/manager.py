"""Review lifecycle: creation, supersession, completion and failure.

ReviewManager is the only component that mutates persisted Review records.
Status moves pending → in_progress → completed | failed; a review whose pull
request could not be found goes straight from pending to failed.
"""

from __future__ import annotations

import logging
import math
import uuid
from typing import TYPE_CHECKING

from prsage_core.errors import InvalidTransitionError, ReviewNotFoundError
from prsage_core.response import METRIC_DIMENSIONS, NEUTRAL_SCORE, ModelResponse, neutral_metrics
from prsage_store.models import (
    COMPLETED,
    FAILED,
    IN_PROGRESS,
    PENDING,
    FeedbackItem,
    Review,
    ReviewMetrics,
    utc_now,
)

if TYPE_CHECKING:
    from prsage_core.comments import ProcessedComment
    from prsage_store.base import BaseStore

logger = logging.getLogger(__name__)

_TRANSITIONS = {
    PENDING: {IN_PROGRESS, FAILED},
    IN_PROGRESS: {COMPLETED, FAILED},
    COMPLETED: set(),
    FAILED: set(),
}


def new_review_id() -> str:
    return f"review-{uuid.uuid4().hex[:12]}"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp_score(value) -> int:
    try:
        score = int(value)
    except (TypeError, ValueError):
        return NEUTRAL_SCORE
    return min(max(score, 1), 10)


def map_metrics(raw: dict | None) -> ReviewMetrics:
    """Derive the five persisted metrics from the model's six raw dimensions.

    code_quality_score = mean(readability, maintainability, security, performance), rounded half up
    complexity         = performance
    readability        = readability
    maintainability    = maintainability
    security_score     = security

    testCoverage and architecturalQuality are not persisted. Missing values
    count as 5 and every result is clamped to 1–10.
    """
    raw = raw or {}
    readability = _clamp_score(raw.get("readability", NEUTRAL_SCORE))
    maintainability = _clamp_score(raw.get("maintainability", NEUTRAL_SCORE))
    security = _clamp_score(raw.get("security", NEUTRAL_SCORE))
    performance = _clamp_score(raw.get("performance", NEUTRAL_SCORE))
    quality = _round_half_up((readability + maintainability + security + performance) / 4)
    return ReviewMetrics(
        code_quality_score=quality,
        complexity=performance,
        readability=readability,
        maintainability=maintainability,
        security_score=security,
    )


def aggregate_chunks(responses: list[ModelResponse]) -> ModelResponse:
    """Merge per-chunk responses into one.

    Comments are concatenated in chunk order, each metric is averaged across
    chunks and rounded half up, and summaries are kept as "Chunk n: ..."
    fragments. Degraded chunks (exhausted retries) contribute nothing.
    """
    comments = []
    fragments = []
    metric_lists: dict[str, list[int]] = {}
    usable = 0
    for index, response in enumerate(responses, 1):
        if response.degraded:
            logger.warning("Chunk %d produced no usable analysis; omitting it", index)
            continue
        usable += 1
        comments.extend(response.comments)
        for name, value in response.metrics.items():
            metric_lists.setdefault(name, []).append(value)
        if response.summary:
            fragments.append(f"Chunk {index}: {response.summary}")

    if not usable:
        metrics = neutral_metrics()
    else:
        metrics = {name: _round_half_up(sum(values) / len(values)) for name, values in metric_lists.items()}
        for name in METRIC_DIMENSIONS:
            metrics.setdefault(name, NEUTRAL_SCORE)
    return ModelResponse(
        summary="\n".join(fragments),
        comments=comments,
        metrics=metrics,
        degraded=bool(responses) and not usable,
    )


def combined_summary(fragments: str, comments: list[ProcessedComment]) -> str:
    issue_count = sum(1 for c in comments if c.type == "issue")
    critical_count = sum(1 for c in comments if c.raw_severity == "critical")
    summary = f"Found {issue_count} issue(s)"
    if critical_count:
        summary += f" ({critical_count} critical)"
    if fragments.strip():
        summary += ". " + fragments.strip()
    return summary


def to_feedback(comments: list[ProcessedComment]) -> list[FeedbackItem]:
    return [
        FeedbackItem(
            path=c.file,
            line=c.resolved_line,
            comment=c.comment,
            type=c.type,
            severity=c.severity,
        )
        for c in comments
    ]


class ReviewManager:
    def __init__(self, store: BaseStore, id_factory=new_review_id):
        self.store = store
        self._new_id = id_factory

    # ------------------------------------------------------------------ #
    # Queries                                                              #
    # ------------------------------------------------------------------ #

    def get_review(self, repo: str, pr_number: int, review_id: str) -> Review:
        review = self.store.get(repo, pr_number, review_id)
        if review is None:
            raise ReviewNotFoundError(repo, pr_number, review_id)
        return review

    def current_review(self, repo: str, pr_number: int) -> Review | None:
        """The most recent completed, non-superseded review, if any."""
        candidates = [
            r for r in self.store.list_reviews(repo, pr_number) if r.status == COMPLETED and not r.is_superseded
        ]
        return candidates[-1] if candidates else None

    # ------------------------------------------------------------------ #
    # Lifecycle                                                            #
    # ------------------------------------------------------------------ #

    def initialize_review(self, repo: str, pr_number: int, is_rereview: bool = False) -> tuple[str, Review | None]:
        """Create an in-progress review and return its id plus the prior review.

        The prior review is captured before supersession so a re-review
        prompt can still list what it found.
        """
        prior = self.current_review(repo, pr_number)
        if is_rereview:
            self.supersede_completed(repo, pr_number)

        review = Review(review_id=self._new_id(), repo=repo, pr_number=pr_number, is_rereview=is_rereview)
        self._transition(review, IN_PROGRESS)
        self.store.add(review)
        logger.info("Started review %s for %s#%d (re-review=%s)", review.review_id, repo, pr_number, is_rereview)
        return review.review_id, prior

    def supersede_completed(self, repo: str, pr_number: int) -> int:
        """Flag every completed, non-superseded review of the PR. Feedback is left as is."""
        count = 0
        for review in self.store.list_reviews(repo, pr_number):
            if review.status == COMPLETED and not review.is_superseded:
                review.is_superseded = True
                self.store.update(review)
                count += 1
        if count:
            logger.info("Superseded %d earlier review(s) of %s#%d", count, repo, pr_number)
        return count

    def create_failed_review(self, repo: str, pr_number: int, error: str) -> str:
        """Record a trigger that failed before any processing started."""
        review = Review(review_id=self._new_id(), repo=repo, pr_number=pr_number)
        self._transition(review, FAILED)
        review.completed_at = utc_now()
        review.error = error
        self.store.add(review)
        logger.error("Review %s for %s#%d failed: %s", review.review_id, repo, pr_number, error)
        return review.review_id

    def complete_review(
        self,
        repo: str,
        pr_number: int,
        review_id: str,
        summary: str,
        comments: list[ProcessedComment],
        metrics: dict | None,
        posted: int = 0,
        failed: int = 0,
    ) -> Review:
        review = self.get_review(repo, pr_number, review_id)
        self._transition(review, COMPLETED)
        review.completed_at = utc_now()
        review.summary = summary or "AI code review completed"
        review.feedback = to_feedback(comments)
        review.metrics = map_metrics(metrics)
        review.posted_comments = posted
        review.failed_comments = failed
        self.store.update(review)
        logger.info(
            "Completed review %s: %d feedback item(s), %d posted, %d failed to post",
            review_id,
            len(review.feedback),
            posted,
            failed,
        )
        return review

    def mark_failed(self, repo: str, pr_number: int, review_id: str, error: str) -> None:
        """Record an unrecoverable error. Never raises: called from task boundaries."""
        try:
            review = self.store.get(repo, pr_number, review_id)
            if review is None:
                logger.error("Cannot mark missing review %s as failed: %s", review_id, error)
                return
            self._transition(review, FAILED)
            review.completed_at = utc_now()
            review.error = error
            self.store.update(review)
            logger.error("Review %s for %s#%d failed: %s", review_id, repo, pr_number, error)
        except Exception as e:
            logger.error("Error marking review %s as failed (%s): %s", review_id, type(e).__name__, e)

    @staticmethod
    def _transition(review: Review, target: str) -> None:
        if target not in _TRANSITIONS.get(review.status, set()):
            raise InvalidTransitionError(review.review_id, review.status, target)
        review.status = target
