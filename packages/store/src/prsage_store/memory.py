"""MemoryStore: the default store when nothing is configured.

Reviews live for the lifetime of the process. Good enough for a single CLI
run, which triggers a review, waits for it and prints the result, and the
store used by tests.
"""

from __future__ import annotations

import copy
import threading
from typing import TYPE_CHECKING

from prsage_store.base import BaseStore

if TYPE_CHECKING:
    from prsage_store.models import Review


class MemoryStore(BaseStore):
    """Keeps deep copies so callers cannot mutate stored state by accident."""

    def __init__(self):
        self._lock = threading.Lock()
        self._reviews: dict[tuple[str, int, str], Review] = {}

    def add(self, review: Review) -> None:
        key = (review.repo, review.pr_number, review.review_id)
        with self._lock:
            if key in self._reviews:
                raise ValueError(f"Review {review.review_id} already exists for {review.repo}#{review.pr_number}")
            self._reviews[key] = copy.deepcopy(review)

    def update(self, review: Review) -> None:
        key = (review.repo, review.pr_number, review.review_id)
        with self._lock:
            if key not in self._reviews:
                raise KeyError(review.review_id)
            self._reviews[key] = copy.deepcopy(review)

    def get(self, repo: str, pr_number: int, review_id: str) -> Review | None:
        with self._lock:
            review = self._reviews.get((repo, pr_number, review_id))
            return copy.deepcopy(review) if review is not None else None

    def find(self, review_id: str) -> Review | None:
        with self._lock:
            for (_, _, rid), review in self._reviews.items():
                if rid == review_id:
                    return copy.deepcopy(review)
        return None

    def list_reviews(self, repo: str, pr_number: int | None = None) -> list[Review]:
        with self._lock:
            results = [
                copy.deepcopy(r)
                for r in self._reviews.values()
                if r.repo == repo and (pr_number is None or r.pr_number == pr_number)
            ]
        return sorted(results, key=lambda r: r.created_at)
