"""Tests for prsage-store implementations."""

from __future__ import annotations

import threading

import pytest

from prsage_store.memory import MemoryStore
from prsage_store.models import FeedbackItem, Review, ReviewMetrics
from prsage_store.sqlite import SQLiteStore


def _make_review(review_id="review-1", repo="owner/repo", pr_number=1, created_at="2026-01-01T00:00:00+00:00"):
    return Review(
        review_id=review_id,
        repo=repo,
        pr_number=pr_number,
        status="in_progress",
        created_at=created_at,
        feedback=[FeedbackItem(path="src/auth.py", line=42, comment="Missing null check", severity="high")],
    )


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        backend = MemoryStore()
    else:
        backend = SQLiteStore(db_path=str(tmp_path / "test.db"))
    yield backend
    backend.close()


# ---------------------------------------------------------------------------
# Behaviour shared by every backend
# ---------------------------------------------------------------------------


class TestStoreContract:
    def test_add_and_get(self, store):
        store.add(_make_review())
        review = store.get("owner/repo", 1, "review-1")
        assert review.status == "in_progress"
        assert review.feedback[0].path == "src/auth.py"
        assert review.feedback[0].severity == "high"
        assert review.metrics == ReviewMetrics()

    def test_get_missing_returns_none(self, store):
        assert store.get("owner/repo", 1, "review-404") is None

    def test_get_requires_matching_pr(self, store):
        store.add(_make_review())
        assert store.get("owner/repo", 2, "review-1") is None

    def test_duplicate_add_raises(self, store):
        store.add(_make_review())
        with pytest.raises(ValueError):
            store.add(_make_review())

    def test_update_replaces_record(self, store):
        review = _make_review()
        store.add(review)
        review.status = "completed"
        review.summary = "Done"
        review.is_superseded = True
        review.metrics = ReviewMetrics(code_quality_score=8, security_score=9)
        review.posted_comments = 3
        store.update(review)

        stored = store.get("owner/repo", 1, "review-1")
        assert stored.status == "completed"
        assert stored.summary == "Done"
        assert stored.is_superseded is True
        assert stored.metrics.code_quality_score == 8
        assert stored.metrics.security_score == 9
        assert stored.posted_comments == 3

    def test_update_missing_raises(self, store):
        with pytest.raises(KeyError):
            store.update(_make_review())

    def test_list_reviews_oldest_first(self, store):
        store.add(_make_review("review-b", created_at="2026-01-02T00:00:00+00:00"))
        store.add(_make_review("review-a", created_at="2026-01-01T00:00:00+00:00"))
        assert [r.review_id for r in store.list_reviews("owner/repo")] == ["review-a", "review-b"]

    def test_list_by_pr_number(self, store):
        store.add(_make_review("review-1", pr_number=1))
        store.add(_make_review("review-2", pr_number=2))
        results = store.list_reviews("owner/repo", pr_number=1)
        assert [r.review_id for r in results] == ["review-1"]

    def test_list_different_repo_isolated(self, store):
        store.add(_make_review("review-1", repo="owner/repo-a"))
        store.add(_make_review("review-2", repo="owner/repo-b"))
        results = store.list_reviews("owner/repo-a")
        assert [r.repo for r in results] == ["owner/repo-a"]

    def test_list_empty(self, store):
        assert store.list_reviews("owner/none") == []

    def test_find_by_id(self, store):
        store.add(_make_review("review-xyz", pr_number=9))
        assert store.find("review-xyz").pr_number == 9
        assert store.find("review-missing") is None

    def test_concurrent_writers(self, store):
        def write(n):
            store.add(_make_review(f"review-{n}", pr_number=n))

        threads = [threading.Thread(target=write, args=(n,)) for n in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(store.list_reviews("owner/repo")) == 10


# ---------------------------------------------------------------------------
# Backend-specific
# ---------------------------------------------------------------------------


class TestMemoryStore:
    def test_returned_records_are_copies(self):
        store = MemoryStore()
        store.add(_make_review())
        review = store.get("owner/repo", 1, "review-1")
        review.feedback.clear()
        assert len(store.get("owner/repo", 1, "review-1").feedback) == 1


class TestSQLiteStore:
    def test_survives_reopen(self, tmp_path):
        path = str(tmp_path / "test.db")
        store = SQLiteStore(db_path=path)
        store.add(_make_review())
        store.close()

        reopened = SQLiteStore(db_path=path)
        review = reopened.get("owner/repo", 1, "review-1")
        assert review.feedback[0].comment == "Missing null check"
        reopened.close()

    def test_failed_review_keeps_error(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        review = _make_review()
        review.status = "failed"
        review.error = "Pull request not found"
        store.add(review)
        assert store.get("owner/repo", 1, "review-1").error == "Pull request not found"
        store.close()
