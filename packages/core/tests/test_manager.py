"""Tests for the review lifecycle and result aggregation."""

import pytest

from prsage_core.comments import ProcessedComment
from prsage_core.errors import InvalidTransitionError, ReviewNotFoundError
from prsage_core.manager import (
    ReviewManager,
    aggregate_chunks,
    combined_summary,
    map_metrics,
    new_review_id,
)
from prsage_core.response import ModelResponse, RawComment, degraded_response
from prsage_store.memory import MemoryStore
from prsage_store.models import Review

REPO = "owner/repo"


def sequential_ids():
    counter = iter(range(1, 1000))
    return lambda: f"review-{next(counter)}"


def make_manager():
    return ReviewManager(MemoryStore(), id_factory=sequential_ids())


def processed(type_="issue", raw_severity="high", line=2):
    return ProcessedComment(
        file="src/a.py",
        line=line,
        resolved_line=line,
        diff_position=line,
        type=type_,
        severity="high" if raw_severity in ("critical", "high") else raw_severity,
        raw_severity=raw_severity,
        comment=f"finding on {line}",
        body="body",
    )


def test_new_review_id_format():
    review_id = new_review_id()
    assert review_id.startswith("review-")
    assert len(review_id) == len("review-") + 12
    assert new_review_id() != review_id


class TestMapMetrics:
    def test_quality_is_rounded_mean_of_four(self):
        metrics = map_metrics({"readability": 8, "maintainability": 7, "security": 6, "performance": 8})
        # mean 7.25 → 7
        assert metrics.code_quality_score == 7
        assert metrics.complexity == 8
        assert metrics.readability == 8
        assert metrics.maintainability == 7
        assert metrics.security_score == 6

    def test_half_rounds_up(self):
        metrics = map_metrics({"readability": 7, "maintainability": 8, "security": 7, "performance": 8})
        assert metrics.code_quality_score == 8

    def test_missing_values_count_as_five(self):
        metrics = map_metrics({"readability": 9})
        assert metrics.code_quality_score == 6
        assert metrics.security_score == 5
        assert map_metrics(None).code_quality_score == 5

    def test_values_are_clamped(self):
        metrics = map_metrics({"readability": 42, "security": -3, "performance": "fast"})
        assert metrics.readability == 10
        assert metrics.security_score == 1
        assert metrics.complexity == 5


class TestAggregateChunks:
    def chunk(self, security, summary="ok", comments=None):
        metrics = {
            "readability": 6,
            "maintainability": 6,
            "security": security,
            "performance": 6,
            "testCoverage": 5,
            "architecturalQuality": 5,
        }
        return ModelResponse(summary=summary, comments=comments or [], metrics=metrics)

    def test_metrics_are_averaged(self):
        result = aggregate_chunks([self.chunk(8), self.chunk(6), self.chunk(7)])
        assert result.metrics["security"] == 7
        assert map_metrics(result.metrics).security_score == 7

    def test_comments_are_concatenated_in_order(self):
        a = RawComment(file="a.py", line=1, comment="first")
        b = RawComment(file="b.py", line=2, comment="second")
        result = aggregate_chunks([self.chunk(5, comments=[a]), self.chunk(5, comments=[b])])
        assert [c.comment for c in result.comments] == ["first", "second"]

    def test_summary_fragments(self):
        result = aggregate_chunks([self.chunk(5, "fine"), self.chunk(5, "one bug")])
        assert result.summary == "Chunk 1: fine\nChunk 2: one bug"

    def test_degraded_chunks_are_omitted(self):
        result = aggregate_chunks([self.chunk(9), degraded_response("Failed after multiple attempts"), self.chunk(7)])
        assert result.metrics["security"] == 8
        assert "Chunk 2" not in result.summary
        assert result.degraded is False

    def test_all_degraded(self):
        result = aggregate_chunks([degraded_response(), degraded_response()])
        assert result.degraded is True
        assert set(result.metrics.values()) == {5}


class TestCombinedSummary:
    def test_counts_issues_and_critical(self):
        comments = [processed(raw_severity="critical"), processed(line=3), processed("suggestion", "low", 4)]
        summary = combined_summary("Chunk 1: x", comments)
        assert summary == "Found 2 issue(s) (1 critical). Chunk 1: x"

    def test_no_critical(self):
        assert combined_summary("", []) == "Found 0 issue(s)"


class TestLifecycle:
    def test_initialize_creates_in_progress_review(self):
        manager = make_manager()
        review_id, prior = manager.initialize_review(REPO, 1)
        review = manager.get_review(REPO, 1, review_id)
        assert review.status == "in_progress"
        assert review.is_rereview is False
        assert prior is None

    def test_complete_review(self):
        manager = make_manager()
        review_id, _ = manager.initialize_review(REPO, 1)
        manager.complete_review(
            REPO, 1, review_id, "All good", [processed()], {"security": 9, "readability": 7}, posted=1, failed=0
        )
        review = manager.get_review(REPO, 1, review_id)
        assert review.status == "completed"
        assert review.completed_at is not None
        assert review.summary == "All good"
        assert review.feedback[0].path == "src/a.py"
        assert review.feedback[0].severity == "high"
        assert review.metrics.security_score == 9
        assert review.posted_comments == 1

    def test_mark_failed_records_error(self):
        manager = make_manager()
        review_id, _ = manager.initialize_review(REPO, 1)
        manager.mark_failed(REPO, 1, review_id, "boom")
        review = manager.get_review(REPO, 1, review_id)
        assert review.status == "failed"
        assert review.error == "boom"
        assert review.completed_at is not None

    def test_mark_failed_never_raises(self):
        manager = make_manager()
        review_id, _ = manager.initialize_review(REPO, 1)
        manager.complete_review(REPO, 1, review_id, "done", [], None)
        manager.mark_failed(REPO, 1, review_id, "late failure")
        manager.mark_failed(REPO, 1, "review-missing", "no such review")
        assert manager.get_review(REPO, 1, review_id).status == "completed"

    def test_completed_review_cannot_complete_again(self):
        manager = make_manager()
        review_id, _ = manager.initialize_review(REPO, 1)
        manager.complete_review(REPO, 1, review_id, "done", [], None)
        with pytest.raises(InvalidTransitionError):
            manager.complete_review(REPO, 1, review_id, "again", [], None)

    def test_pending_cannot_complete(self):
        with pytest.raises(InvalidTransitionError):
            ReviewManager._transition(Review(review_id="r", repo=REPO, pr_number=1), "completed")

    def test_create_failed_review(self):
        manager = make_manager()
        review_id = manager.create_failed_review(REPO, 404, "Pull request not found")
        review = manager.get_review(REPO, 404, review_id)
        assert review.status == "failed"
        assert review.error == "Pull request not found"

    def test_unknown_review_raises(self):
        with pytest.raises(ReviewNotFoundError):
            make_manager().get_review(REPO, 1, "review-nope")


class TestRereview:
    def complete(self, manager, pr_number=1, is_rereview=False):
        review_id, prior = manager.initialize_review(REPO, pr_number, is_rereview)
        manager.complete_review(REPO, pr_number, review_id, "s", [processed()], None)
        return review_id, prior

    def test_rereview_supersedes_and_returns_prior(self):
        manager = make_manager()
        first_id, _ = self.complete(manager)
        second_id, prior = manager.initialize_review(REPO, 1, is_rereview=True)
        assert prior.review_id == first_id
        assert prior.feedback[0].comment == "finding on 2"
        first = manager.get_review(REPO, 1, first_id)
        assert first.is_superseded is True
        assert len(first.feedback) == 1
        assert manager.get_review(REPO, 1, second_id).is_rereview is True

    def test_at_most_one_current_review(self):
        manager = make_manager()
        self.complete(manager)
        self.complete(manager, is_rereview=True)
        latest_id, _ = self.complete(manager, is_rereview=True)
        current = [r for r in manager.store.list_reviews(REPO, 1) if r.status == "completed" and not r.is_superseded]
        assert [r.review_id for r in current] == [latest_id]
        assert manager.current_review(REPO, 1).review_id == latest_id

    def test_plain_review_does_not_supersede(self):
        manager = make_manager()
        first_id, _ = self.complete(manager)
        _, prior = manager.initialize_review(REPO, 1)
        assert prior.review_id == first_id
        assert manager.get_review(REPO, 1, first_id).is_superseded is False

    def test_other_prs_are_untouched(self):
        manager = make_manager()
        other_id, _ = self.complete(manager, pr_number=2)
        self.complete(manager)
        manager.initialize_review(REPO, 1, is_rereview=True)
        assert manager.get_review(REPO, 2, other_id).is_superseded is False

    def test_failed_reviews_are_not_superseded(self):
        manager = make_manager()
        failed_id = manager.create_failed_review(REPO, 1, "boom")
        manager.initialize_review(REPO, 1, is_rereview=True)
        assert manager.get_review(REPO, 1, failed_id).is_superseded is False
