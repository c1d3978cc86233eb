"""
Review State Store.

Provides local persistence for:
- SM-2 review state per question
- Finished review session log (for "completed today" checks)

Database location: ~/.toeic_review/review.db (see Settings.database_url)
"""

from __future__ import annotations

import threading
import weakref
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, time
from typing import TypeVar

from loguru import logger
from sqlalchemy import Engine, delete, func, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from config import Settings, get_settings
from src.db.database import create_db_engine, make_session_factory, session_scope
from src.db.models import ReviewItem, SessionLog

from .errors import StorageError

T = TypeVar("T")

# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class ReviewRecord:
    """SM-2 review state for a single question."""

    question_id: str
    last_reviewed: datetime
    next_review: datetime  # Midnight of the due day
    repetition_count: int = 0  # Consecutive passes since the last lapse
    ease_factor: float = 2.5
    last_interval_seconds: float = 0.0

    @property
    def interval_days(self) -> float:
        """Interval used for next_review, in days."""
        return self.last_interval_seconds / (24 * 60 * 60)

    def is_due(self, as_of: datetime) -> bool:
        """Check if this question is due for review."""
        return self.next_review <= as_of

    def days_overdue(self, as_of: datetime) -> int:
        """Days past the scheduled review date."""
        return max(0, (as_of.date() - self.next_review.date()).days)


@dataclass(frozen=True)
class SessionRecord:
    """A finished review session summary."""

    id: int
    started_at: datetime
    finished_at: datetime
    items_answered: int
    items_correct: int
    items_failed: int


def _to_record(item: ReviewItem) -> ReviewRecord:
    return ReviewRecord(
        question_id=item.question_id,
        last_reviewed=item.last_reviewed,
        next_review=item.next_review,
        repetition_count=item.repetition_count,
        ease_factor=item.ease_factor,
        last_interval_seconds=item.last_interval_seconds,
    )


# =============================================================================
# State Store
# =============================================================================


class StateStore:
    """
    SQLAlchemy-backed review state persistence.

    Handles:
    - SM-2 state per question (ease, interval, repetitions, due date)
    - Session history for the home screen review state

    Every write runs in its own transaction. Writes for the same question
    are serialized through a per-question lock (see locked()).
    """

    def __init__(self, engine: Engine, retry_attempts: int = 1):
        """
        Initialize the state store.

        Args:
            engine: Engine for the review database (tables must exist)
            retry_attempts: Retries on transient operational errors
        """
        self.engine = engine
        self.retry_attempts = retry_attempts
        self._session_factory = make_session_factory(engine)

        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

        logger.info(f"StateStore initialized at {engine.url}")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> StateStore:
        """Open the store configured by application settings."""
        settings = settings or get_settings()
        try:
            engine = create_db_engine(settings.database_url)
        except SQLAlchemyError as exc:
            raise StorageError(f"Cannot open review database: {exc}") from exc
        return cls(engine, retry_attempts=settings.storage_retry_attempts)

    def _lock_for(self, question_id: str):
        # Entries vanish once no caller holds the lock
        with self._locks_guard:
            lock = self._locks.get(question_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[question_id] = lock
            return lock

    @contextmanager
    def locked(self, question_id: str) -> Iterator[None]:
        """
        Hold the write lock of one question.

        Wrap a get_record -> upsert sequence in this so that concurrent
        answers for the same question are applied one after the other.
        The lock is reentrant, so upsert and delete may run inside it.
        """
        with self._lock_for(question_id):
            yield

    def _run(self, action: str, operation: Callable[[], T]) -> T:
        """Run a database operation, retrying transient failures."""
        attempt = 0
        while True:
            try:
                return operation()
            except OperationalError as exc:
                if attempt < self.retry_attempts:
                    attempt += 1
                    logger.warning(f"{action} failed ({exc.orig}), retrying ({attempt}/{self.retry_attempts})")
                    continue
                raise StorageError(f"{action} failed: {exc}") from exc
            except SQLAlchemyError as exc:
                raise StorageError(f"{action} failed: {exc}") from exc

    # =========================================================================
    # Review Record Operations
    # =========================================================================

    def get_record(self, question_id: str) -> ReviewRecord | None:
        """
        Get review state for a question.

        Args:
            question_id: The question identifier

        Returns:
            ReviewRecord, or None if the question was never reviewed
        """

        def _get() -> ReviewRecord | None:
            with session_scope(self._session_factory) as session:
                item = session.get(ReviewItem, question_id)
                return _to_record(item) if item is not None else None

        return self._run(f"get_record({question_id})", _get)

    def upsert(self, record: ReviewRecord) -> None:
        """
        Insert or replace the review state for a question.

        Args:
            record: ReviewRecord to persist
        """

        def _upsert() -> None:
            with session_scope(self._session_factory) as session:
                session.merge(
                    ReviewItem(
                        question_id=record.question_id,
                        last_reviewed=record.last_reviewed,
                        next_review=record.next_review,
                        repetition_count=record.repetition_count,
                        ease_factor=record.ease_factor,
                        last_interval_seconds=record.last_interval_seconds,
                    )
                )

        with self._lock_for(record.question_id):
            self._run(f"upsert({record.question_id})", _upsert)

        logger.debug(
            f"Saved {record.question_id}: next_review={record.next_review:%Y-%m-%d}, "
            f"reps={record.repetition_count}, ef={record.ease_factor:.2f}"
        )

    def get_due_records(self, as_of: datetime) -> list[ReviewRecord]:
        """
        Get questions that are due for review.

        Args:
            as_of: Records with next_review at or before this time are due

        Returns:
            Due records, earliest due first
        """

        def _due() -> list[ReviewRecord]:
            with session_scope(self._session_factory) as session:
                rows = session.scalars(
                    select(ReviewItem)
                    .where(ReviewItem.next_review <= as_of)
                    .order_by(ReviewItem.next_review.asc(), ReviewItem.question_id.asc())
                ).all()
                return [_to_record(row) for row in rows]

        return self._run("get_due_records", _due)

    def get_all(self) -> list[ReviewRecord]:
        """Get every review record, ordered by question id."""

        def _all() -> list[ReviewRecord]:
            with session_scope(self._session_factory) as session:
                rows = session.scalars(select(ReviewItem).order_by(ReviewItem.question_id)).all()
                return [_to_record(row) for row in rows]

        return self._run("get_all", _all)

    def exists(self, question_id: str) -> bool:
        """Check whether a question has review state."""
        return self.get_record(question_id) is not None

    def count_due(self, as_of: datetime) -> int:
        """Count questions due at or before as_of."""

        def _count() -> int:
            with session_scope(self._session_factory) as session:
                return session.scalar(
                    select(func.count()).select_from(ReviewItem).where(ReviewItem.next_review <= as_of)
                )

        return self._run("count_due", _count)

    def delete(self, question_id: str) -> bool:
        """
        Delete the review state of one question.

        Returns:
            True if a record was deleted, False if none existed
        """

        def _delete() -> bool:
            with session_scope(self._session_factory) as session:
                item = session.get(ReviewItem, question_id)
                if item is None:
                    return False
                session.delete(item)
                return True

        with self._lock_for(question_id):
            deleted = self._run(f"delete({question_id})", _delete)

        if deleted:
            logger.info(f"Review state for {question_id} deleted")
        else:
            logger.info(f"No review state for {question_id} to delete")
        return deleted

    def reset(self) -> int:
        """
        Delete all review state and session history.

        DANGER: This deletes the learner's progress!

        Returns:
            Number of review records deleted
        """

        def _reset() -> int:
            with session_scope(self._session_factory) as session:
                result = session.execute(delete(ReviewItem))
                session.execute(delete(SessionLog))
                return result.rowcount

        count = self._run("reset", _reset)
        logger.warning(f"Review state reset: {count} records deleted")
        return count

    # =========================================================================
    # Session Operations
    # =========================================================================

    def log_session(
        self,
        started_at: datetime,
        finished_at: datetime,
        items_answered: int,
        items_correct: int,
        items_failed: int = 0,
    ) -> int:
        """
        Record a finished review session.

        Returns:
            Session ID
        """

        def _log() -> int:
            with session_scope(self._session_factory) as session:
                entry = SessionLog(
                    started_at=started_at,
                    finished_at=finished_at,
                    items_answered=items_answered,
                    items_correct=items_correct,
                    items_failed=items_failed,
                )
                session.add(entry)
                session.flush()
                return entry.id

        return self._run("log_session", _log)

    def last_session_finished_at(self) -> datetime | None:
        """When the most recent review session finished, if any."""

        def _last() -> datetime | None:
            with session_scope(self._session_factory) as session:
                return session.scalar(select(func.max(SessionLog.finished_at)))

        return self._run("last_session_finished_at", _last)

    def get_session_history(self, limit: int = 10) -> list[SessionRecord]:
        """Get recent sessions, most recent first."""

        def _history() -> list[SessionRecord]:
            with session_scope(self._session_factory) as session:
                rows = session.scalars(
                    select(SessionLog).order_by(SessionLog.finished_at.desc()).limit(limit)
                ).all()
                return [
                    SessionRecord(
                        id=row.id,
                        started_at=row.started_at,
                        finished_at=row.finished_at,
                        items_answered=row.items_answered,
                        items_correct=row.items_correct,
                        items_failed=row.items_failed,
                    )
                    for row in rows
                ]

        return self._run("get_session_history", _history)

    # =========================================================================
    # Stats
    # =========================================================================

    def get_stats(self, as_of: datetime) -> dict:
        """
        Get overall review statistics.

        Returns:
            Dictionary with aggregate stats
        """

        def _sessions() -> int:
            with session_scope(self._session_factory) as session:
                return session.scalar(select(func.count()).select_from(SessionLog))

        records = self.get_all()
        sessions = self._run("count_sessions", _sessions)
        end_of_day = datetime.combine(as_of.date(), time.max)
        mature = [r for r in records if r.interval_days >= 21]
        avg_ease = sum(r.ease_factor for r in records) / len(records) if records else 0.0

        return {
            "total_tracked": len(records),
            "due_now": sum(1 for r in records if r.is_due(as_of)),
            "due_today": sum(1 for r in records if r.is_due(end_of_day)),
            "learning": sum(1 for r in records if r.repetition_count == 0),
            "mature": len(mature),
            "avg_ease_factor": round(avg_ease, 2),
            "sessions_completed": sessions,
        }

    def close(self) -> None:
        """Release pooled database connections."""
        self.engine.dispose()
