"""
SM-2 Spaced Repetition Scheduler.

Implements:
- SM-2 algorithm for review intervals and ease factor updates
- Quality policies that turn quiz answers into SM-2 grades

SM-2 Grade Scale:
0 - Complete blackout, wrong response
1 - Incorrect, but upon seeing answer remembered
2 - Incorrect, but answer seemed easy to recall
3 - Correct, but with significant difficulty
4 - Correct, with some hesitation
5 - Correct, with perfect recall
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from enum import Enum

from config import Settings, get_settings

from .errors import InvalidArgumentError
from .state_store import ReviewRecord

SECONDS_PER_DAY = 24 * 60 * 60

MIN_QUALITY = 0
MAX_QUALITY = 5

ABSOLUTE_MINIMUM_EASE = 1.3

# =============================================================================
# SM-2 Algorithm
# =============================================================================


@dataclass(frozen=True)
class SM2Config:
    """Configuration for SM-2 algorithm."""

    initial_ease: float = 2.5
    minimum_ease: float = 1.3
    lapse_penalty: float = 0.2  # Subtracted from EF on a failed review
    first_interval: int = 1  # Days after first successful review
    second_interval: int = 6  # Days after second successful review
    relearn_interval: int = 1  # Days after a failed review
    pass_threshold: int = 3

    def __post_init__(self) -> None:
        if self.minimum_ease < ABSOLUTE_MINIMUM_EASE:
            raise InvalidArgumentError(
                f"minimum_ease must be >= {ABSOLUTE_MINIMUM_EASE}, got {self.minimum_ease}"
            )
        if self.initial_ease < self.minimum_ease:
            raise InvalidArgumentError(
                f"initial_ease {self.initial_ease} is below minimum_ease {self.minimum_ease}"
            )
        if self.lapse_penalty < 0:
            raise InvalidArgumentError(f"lapse_penalty must be >= 0, got {self.lapse_penalty}")
        for name in ("first_interval", "second_interval", "relearn_interval"):
            if getattr(self, name) < 1:
                raise InvalidArgumentError(f"{name} must be at least 1 day, got {getattr(self, name)}")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> SM2Config:
        """Build the config from application settings."""
        settings = settings or get_settings()
        return cls(
            initial_ease=settings.sm2_initial_ease,
            minimum_ease=settings.sm2_minimum_ease,
            lapse_penalty=settings.sm2_lapse_penalty,
            first_interval=settings.sm2_first_interval_days,
            second_interval=settings.sm2_second_interval_days,
            relearn_interval=settings.sm2_relearn_interval_days,
        )


def validate_quality(quality: int) -> int:
    """
    Check that a quality rating is an integer grade in 0-5.

    Raises:
        InvalidArgumentError: For anything else (no clamping)
    """
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidArgumentError(f"quality must be an integer in 0-5, got {quality!r}")
    if not MIN_QUALITY <= quality <= MAX_QUALITY:
        raise InvalidArgumentError(f"quality must be in 0-5, got {quality}")
    return quality


def ease_delta(quality: int) -> float:
    """EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))"""
    miss = MAX_QUALITY - quality
    return 0.1 - miss * (0.08 + miss * 0.02)


def due_date(now: datetime, interval_seconds: float) -> datetime:
    """Midnight of the calendar day on which ``now + interval`` falls."""
    moment = now + timedelta(seconds=interval_seconds)
    return datetime.combine(moment.date(), time.min)


class SM2Scheduler:
    """
    Implements the SM-2 spaced repetition algorithm.

    Each question has:
    - Easiness Factor (EF): How easy the item is (2.5 default, min 1.3)
    - Interval: Time until next review, kept in seconds
    - Repetitions: Consecutive correct recalls since the last lapse

    The scheduler holds no state; all persistence goes through the StateStore.
    """

    def __init__(self, config: SM2Config | None = None):
        """
        Initialize SM-2 scheduler.

        Args:
            config: Custom configuration (uses defaults if None)
        """
        self.config = config or SM2Config()

    def compute_next_state(
        self,
        record: ReviewRecord | None,
        quality: int,
        question_id: str | None = None,
        now: datetime | None = None,
    ) -> ReviewRecord:
        """
        Calculate the review state after answering with the given quality.

        Args:
            record: Current state, or None for a first-time review
            quality: SM-2 grade (0-5)
            question_id: Required when record is None
            now: Time of the review (defaults to the current time)

        Returns:
            New ReviewRecord; the input record is left untouched

        Raises:
            InvalidArgumentError: Quality outside 0-5 or missing question id
        """
        validate_quality(quality)
        cfg = self.config

        if record is None:
            if not question_id:
                raise InvalidArgumentError("question_id is required for a first-time review")
            repetitions = 0
            ease = cfg.initial_ease
            last_interval = 0.0
        else:
            if question_id is not None and question_id != record.question_id:
                raise InvalidArgumentError(
                    f"question_id {question_id!r} does not match record {record.question_id!r}"
                )
            question_id = record.question_id
            repetitions = record.repetition_count
            ease = record.ease_factor
            last_interval = record.last_interval_seconds

        if now is None:
            now = datetime.now()

        if quality < cfg.pass_threshold:
            # Failed - relearn from the beginning
            new_repetitions = 0
            new_ease = max(cfg.minimum_ease, ease - cfg.lapse_penalty)
            interval = cfg.relearn_interval * SECONDS_PER_DAY
        else:
            new_repetitions = repetitions + 1
            new_ease = max(cfg.minimum_ease, ease + ease_delta(quality))

            if new_repetitions == 1:
                interval = cfg.first_interval * SECONDS_PER_DAY
            elif new_repetitions == 2:
                interval = cfg.second_interval * SECONDS_PER_DAY
            else:
                interval = max(cfg.first_interval * SECONDS_PER_DAY, last_interval * new_ease)

        return ReviewRecord(
            question_id=question_id,
            last_reviewed=now,
            next_review=due_date(now, interval),
            repetition_count=new_repetitions,
            ease_factor=new_ease,
            last_interval_seconds=float(interval),
        )


# =============================================================================
# Quality Policies
# =============================================================================


class AnswerOutcome(str, Enum):
    """How a question was answered in a quiz."""

    CORRECT = "correct"
    INCORRECT = "incorrect"
    REVEALED = "revealed"  # Answer shown without an attempt
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class QualityPolicy:
    """Maps quiz answer outcomes to SM-2 grades for one quiz mode."""

    name: str
    correct: int
    incorrect: int
    revealed: int

    def __post_init__(self) -> None:
        for value in (self.correct, self.incorrect, self.revealed):
            validate_quality(value)

    def quality_for(self, outcome: AnswerOutcome) -> int:
        """Grade for an answer outcome. Timeouts count as revealed."""
        if outcome is AnswerOutcome.CORRECT:
            return self.correct
        if outcome is AnswerOutcome.INCORRECT:
            return self.incorrect
        return self.revealed

    def quality_for_answer(self, was_correct: bool) -> int:
        """Grade for a plain right/wrong answer."""
        return self.correct if was_correct else self.incorrect


# Review quiz: correct -> 4, incorrect -> 1
REVIEW_POLICY = QualityPolicy(name="review", correct=4, incorrect=1, revealed=1)

# Standard quiz, scramble, syntax sprint and vocabulary drills
DRILL_POLICY = QualityPolicy(name="drill", correct=5, incorrect=0, revealed=0)

# Grade used when the learner marks a question as weak
WEAK_QUALITY = 0
