"""
Review Session Coordinator.

Drives one batch of reviews:
- Selects due questions (optionally capped for free-tier users)
- Converts quiz answers into SM-2 grades through a QualityPolicy
- Applies the SM2Scheduler and writes each result back to the StateStore

Session states: NOT_STARTED -> IN_PROGRESS -> FINALIZING -> DONE.
Each answer is persisted on its own, so an interrupted session keeps every
answer recorded before the interruption.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from loguru import logger

from config import Settings, get_settings

from .errors import InvalidArgumentError, SessionStateError, StorageError
from .scheduler import (
    REVIEW_POLICY,
    WEAK_QUALITY,
    AnswerOutcome,
    QualityPolicy,
    SM2Scheduler,
    validate_quality,
)
from .state_store import ReviewRecord, StateStore


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    FINALIZING = "finalizing"
    DONE = "done"


@dataclass
class SessionSummary:
    """Outcome of a finished review session."""

    answered: int = 0
    correct: int = 0
    failed: dict[str, str] = field(default_factory=dict)  # question_id -> error

    @property
    def accuracy_percent(self) -> float:
        if self.answered == 0:
            return 0.0
        return self.correct * 100.0 / self.answered


class ReviewSession:
    """
    Coordinates one review session against a StateStore.

    Usage:
        with ReviewSession(store) as session:
            for question_id in session.prepare_session(datetime.now(), max_items=20):
                session.record_answer(question_id, was_correct=ask(question_id))

    Leaving the ``with`` block finalizes the session on every exit path.
    """

    def __init__(
        self,
        store: StateStore,
        scheduler: SM2Scheduler | None = None,
        policy: QualityPolicy = REVIEW_POLICY,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the session.

        Args:
            store: Review state persistence
            scheduler: SM2Scheduler (creates default if None)
            policy: Answer-to-grade mapping of the calling quiz mode
            clock: Source of "now" for each answer (defaults to datetime.now)
        """
        self.store = store
        self.scheduler = scheduler or SM2Scheduler()
        self.policy = policy
        self.clock = clock or datetime.now

        self._state = SessionState.NOT_STARTED
        self._question_ids: list[str] = []
        self._prepared = False
        self._started_at: datetime | None = None
        self._summary = SessionSummary()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def question_ids(self) -> list[str]:
        """Questions selected by prepare_session."""
        return list(self._question_ids)

    @property
    def failures(self) -> dict[str, str]:
        """Questions whose update could not be persisted."""
        return dict(self._summary.failed)

    def _require(self, expected: SessionState, action: str) -> None:
        if self._state is not expected:
            raise SessionStateError(f"Cannot {action} while session is {self._state.value}")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def begin(self) -> None:
        """Start the session without selecting due questions (quiz drills)."""
        self._require(SessionState.NOT_STARTED, "begin")
        self._started_at = self.clock()
        self._state = SessionState.IN_PROGRESS

    def prepare_session(self, as_of: datetime | None = None, max_items: int | None = None) -> list[str]:
        """
        Select the questions due for review and start the session.

        Args:
            as_of: Due cut-off (defaults to now)
            max_items: Cap on the number of questions (None = no cap)

        Returns:
            Due question ids, earliest due first; empty if nothing is due

        Raises:
            InvalidArgumentError: Negative max_items
            StorageError: Due records could not be loaded (session not started)
        """
        self._require(SessionState.NOT_STARTED, "prepare")
        if max_items is not None and (isinstance(max_items, bool) or max_items < 0):
            raise InvalidArgumentError(f"max_items must be >= 0, got {max_items!r}")

        as_of = as_of or self.clock()
        due = self.store.get_due_records(as_of)
        if max_items is not None:
            due = due[:max_items]

        self._question_ids = [record.question_id for record in due]
        self.begin()
        self._prepared = True

        logger.info(f"Review session prepared: {len(self._question_ids)} questions due as of {as_of:%Y-%m-%d %H:%M}")
        return list(self._question_ids)

    def finalize_session(self) -> SessionSummary:
        """
        Close the session and record it in the session log.

        Drill sessions started with begin() and review sessions without any
        answer are not logged.

        Returns:
            SessionSummary with counts and per-question failures
        """
        self._require(SessionState.IN_PROGRESS, "finalize")
        self._state = SessionState.FINALIZING
        summary = self._summary

        # Only review sessions with answers count as "reviewed today"
        try:
            if self._prepared and summary.answered:
                self.store.log_session(
                    started_at=self._started_at or self.clock(),
                    finished_at=self.clock(),
                    items_answered=summary.answered,
                    items_correct=summary.correct,
                    items_failed=len(summary.failed),
                )
        except StorageError as exc:
            logger.error(f"Could not log review session: {exc}")
        finally:
            self._state = SessionState.DONE

        if summary.failed:
            logger.warning(
                f"Review session finished with {len(summary.failed)} unsaved answers: "
                f"{', '.join(sorted(summary.failed))}"
            )
        else:
            logger.info(f"Review session finished: {summary.correct}/{summary.answered} correct")

        return SessionSummary(
            answered=summary.answered,
            correct=summary.correct,
            failed=dict(summary.failed),
        )

    def __enter__(self) -> ReviewSession:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._state is SessionState.IN_PROGRESS:
            self.finalize_session()

    # =========================================================================
    # Answers
    # =========================================================================

    def record_answer(self, question_id: str, was_correct: bool) -> ReviewRecord | None:
        """
        Record a right/wrong answer (review quiz: correct -> 4, wrong -> 1).

        Returns:
            The updated ReviewRecord, or None if it could not be saved
        """
        return self.record_quality(question_id, self.policy.quality_for_answer(was_correct))

    def record_outcome(self, question_id: str, outcome: AnswerOutcome) -> ReviewRecord | None:
        """Record an answer outcome (correct, incorrect, revealed, timed out)."""
        return self.record_quality(question_id, self.policy.quality_for(outcome))

    def mark_weak(self, question_id: str) -> ReviewRecord | None:
        """Flag a question as weak: graded as a blackout, so it is due again tomorrow."""
        return self.record_quality(question_id, WEAK_QUALITY)

    def record_quality(self, question_id: str, quality: int) -> ReviewRecord | None:
        """
        Apply an SM-2 grade to a question and persist the new state.

        A storage failure is logged and remembered for finalize_session;
        it does not affect other questions of the session.

        Raises:
            InvalidArgumentError: Quality outside 0-5 or empty question id
            SessionStateError: Session is not in progress
        """
        self._require(SessionState.IN_PROGRESS, "record an answer")
        validate_quality(quality)
        if not question_id:
            raise InvalidArgumentError("question_id must not be empty")

        self._summary.answered += 1
        if quality >= self.scheduler.config.pass_threshold:
            self._summary.correct += 1

        try:
            with self.store.locked(question_id):
                current = self.store.get_record(question_id)
                updated = self.scheduler.compute_next_state(
                    current, quality, question_id=question_id, now=self.clock()
                )
                self.store.upsert(updated)
        except StorageError as exc:
            logger.error(f"Review update for {question_id} not saved: {exc}")
            self._summary.failed[question_id] = str(exc)
            return None

        self._summary.failed.pop(question_id, None)
        logger.debug(
            f"Recorded review for {question_id}: quality={quality}, "
            f"next_review={updated.next_review:%Y-%m-%d}, interval={updated.interval_days:.1f}d"
        )
        return updated


# =============================================================================
# Home Screen Review State
# =============================================================================


class ReviewAvailability(str, Enum):
    COMPLETED_TODAY = "completed_today"
    AVAILABLE = "available"
    NOTHING_TO_REVIEW = "nothing_to_review"


@dataclass(frozen=True)
class ReviewStatus:
    availability: ReviewAvailability
    due_count: int = 0


def review_status(store: StateStore, now: datetime | None = None) -> ReviewStatus:
    """
    Whether a review session is on offer right now.

    A session already finished today wins over any due count.
    """
    now = now or datetime.now()
    last_finished = store.last_session_finished_at()
    if last_finished is not None and last_finished.date() == now.date():
        return ReviewStatus(ReviewAvailability.COMPLETED_TODAY)

    count = store.count_due(now)
    if count > 0:
        return ReviewStatus(ReviewAvailability.AVAILABLE, count)
    return ReviewStatus(ReviewAvailability.NOTHING_TO_REVIEW)


def session_cap(is_premium: bool | None = None, settings: Settings | None = None) -> int | None:
    """Maximum questions per session: free tier is capped, premium is not."""
    settings = settings or get_settings()
    if is_premium is None:
        is_premium = settings.is_premium_user
    return None if is_premium else settings.free_session_cap
