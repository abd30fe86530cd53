"""Abstract store interface.

Any storage backend (in-memory, SQLite, a document database) implements this
interface. ReviewManager depends on BaseStore, not on a concrete backend,
so backends are swappable without touching the review pipeline.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prsage_store.models import Review


class BaseStore(ABC):
    """Pluggable persistence layer for review records.

    Implementations must be safe to call from several worker threads at once:
    each background review writes only its own record, but writes to
    different records may interleave.
    """

    @abstractmethod
    def add(self, review: Review) -> None:
        """Persist a new review. Raises ValueError if its review_id already exists for the PR."""

    @abstractmethod
    def update(self, review: Review) -> None:
        """Replace the stored copy of an existing review."""

    @abstractmethod
    def get(self, repo: str, pr_number: int, review_id: str) -> Review | None:
        """Return one review, or None if it does not exist."""

    @abstractmethod
    def list_reviews(self, repo: str, pr_number: int | None = None) -> list[Review]:
        """Return reviews for a repo, optionally filtered by PR number, oldest first.

        Returns an empty list if no reviews exist; never raises.
        """

    def find(self, review_id: str) -> Review | None:
        """Look a review up by id alone. Backends may override with an indexed query."""
        return None

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional. Subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """
