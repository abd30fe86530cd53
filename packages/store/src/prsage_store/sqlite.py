"""SQLiteStore: local file-based review store.

Why SQLite as the persistent store:
- Batteries included: ships with Python, no extra dependencies.
- Fast random access: indexed lookups on (repo, pr_number, review_id).
- Survives the process, so `prsage status` and `prsage history` can read
  reviews written by an earlier `prsage review` run.

Schema:
  reviews: one row per review run. Feedback and metrics are stored as JSON
             columns to keep reads a single-row fetch without JOINs.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from dataclasses import asdict

from prsage_store.base import BaseStore
from prsage_store.models import FeedbackItem, Review, ReviewMetrics

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS reviews (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    review_id       TEXT NOT NULL,
    repo            TEXT NOT NULL,
    pr_number       INTEGER NOT NULL,
    status          TEXT NOT NULL,
    created_at      TEXT NOT NULL,
    completed_at    TEXT,
    summary         TEXT DEFAULT '',
    feedback_json   TEXT DEFAULT '[]',
    metrics_json    TEXT DEFAULT '{}',
    error           TEXT,
    is_superseded   INTEGER DEFAULT 0,
    is_rereview     INTEGER DEFAULT 0,
    posted_comments INTEGER DEFAULT 0,
    failed_comments INTEGER DEFAULT 0
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_reviews_key ON reviews (repo, pr_number, review_id);
CREATE INDEX IF NOT EXISTS idx_reviews_pr ON reviews (repo, pr_number);
CREATE INDEX IF NOT EXISTS idx_reviews_id ON reviews (review_id);
"""

_COLUMNS = (
    "status",
    "created_at",
    "completed_at",
    "summary",
    "feedback_json",
    "metrics_json",
    "error",
    "is_superseded",
    "is_rereview",
    "posted_comments",
    "failed_comments",
)


class SQLiteStore(BaseStore):
    """Stores reviews in a local SQLite database file.

    The database file path defaults to `.prsage.db` in the current working
    directory. Configure via .prsage.yml: `store_path: /path/to/prsage.db`.
    One connection is shared across worker threads and guarded by a lock.
    """

    def __init__(self, db_path: str = ".prsage.db"):
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def add(self, review: Review) -> None:
        values = self._to_row(review)
        with self._lock:
            try:
                self._conn.execute(
                    f"""
                    INSERT INTO reviews (review_id, repo, pr_number, {", ".join(_COLUMNS)})
                    VALUES (?, ?, ?, {", ".join("?" for _ in _COLUMNS)})
                    """,
                    (review.review_id, review.repo, review.pr_number, *values),
                )
            except sqlite3.IntegrityError as e:
                raise ValueError(
                    f"Review {review.review_id} already exists for {review.repo}#{review.pr_number}"
                ) from e
            self._conn.commit()

    def update(self, review: Review) -> None:
        assignments = ", ".join(f"{c}=?" for c in _COLUMNS)
        with self._lock:
            cursor = self._conn.execute(
                f"UPDATE reviews SET {assignments} WHERE repo=? AND pr_number=? AND review_id=?",
                (*self._to_row(review), review.repo, review.pr_number, review.review_id),
            )
            self._conn.commit()
        if cursor.rowcount == 0:
            raise KeyError(review.review_id)

    def get(self, repo: str, pr_number: int, review_id: str) -> Review | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM reviews WHERE repo=? AND pr_number=? AND review_id=?",
                (repo, pr_number, review_id),
            ).fetchone()
        return self._row_to_review(row) if row is not None else None

    def find(self, review_id: str) -> Review | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM reviews WHERE review_id=?", (review_id,)).fetchone()
        return self._row_to_review(row) if row is not None else None

    def list_reviews(self, repo: str, pr_number: int | None = None) -> list[Review]:
        with self._lock:
            if pr_number is not None:
                rows = self._conn.execute(
                    "SELECT * FROM reviews WHERE repo=? AND pr_number=? ORDER BY created_at, id",
                    (repo, pr_number),
                ).fetchall()
            else:
                rows = self._conn.execute(
                    "SELECT * FROM reviews WHERE repo=? ORDER BY created_at, id",
                    (repo,),
                ).fetchall()
        return [self._row_to_review(r) for r in rows]

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _to_row(review: Review) -> tuple:
        return (
            review.status,
            review.created_at,
            review.completed_at,
            review.summary,
            json.dumps([asdict(f) for f in review.feedback]),
            json.dumps(asdict(review.metrics)),
            review.error,
            int(review.is_superseded),
            int(review.is_rereview),
            review.posted_comments,
            review.failed_comments,
        )

    @staticmethod
    def _row_to_review(row: sqlite3.Row) -> Review:
        feedback = [
            FeedbackItem(
                path=f.get("path", ""),
                line=f.get("line", 0),
                comment=f.get("comment", ""),
                type=f.get("type", "suggestion"),
                severity=f.get("severity", "medium"),
            )
            for f in json.loads(row["feedback_json"] or "[]")
        ]
        metrics_data = json.loads(row["metrics_json"] or "{}")
        return Review(
            review_id=row["review_id"],
            repo=row["repo"],
            pr_number=row["pr_number"],
            status=row["status"],
            created_at=row["created_at"],
            completed_at=row["completed_at"],
            summary=row["summary"] or "",
            feedback=feedback,
            metrics=ReviewMetrics(**{k: v for k, v in metrics_data.items() if k in ReviewMetrics.__dataclass_fields__}),
            error=row["error"],
            is_superseded=bool(row["is_superseded"]),
            is_rereview=bool(row["is_rereview"]),
            posted_comments=row["posted_comments"] or 0,
            failed_comments=row["failed_comments"] or 0,
        )
