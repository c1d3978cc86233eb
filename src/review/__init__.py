"""
TOEIC Part 5 review scheduler.

Spaced repetition review for multiple-choice grammar questions.

Components:
- SM2Scheduler: SM-2 interval and ease factor calculation
- StateStore: Review state persistence (SQLite via SQLAlchemy)
- ReviewSession: Due selection, answer grading and write-back
- QuestionBank: Course JSON loading and id resolution
- QualityPolicy: Quiz mode answer-to-grade mapping
"""

from .errors import InvalidArgumentError, ReviewError, SessionStateError, StorageError
from .question_bank import Question, QuestionBank
from .scheduler import (
    DRILL_POLICY,
    REVIEW_POLICY,
    WEAK_QUALITY,
    AnswerOutcome,
    QualityPolicy,
    SM2Config,
    SM2Scheduler,
)
from .session import (
    ReviewAvailability,
    ReviewSession,
    ReviewStatus,
    SessionState,
    SessionSummary,
    review_status,
    session_cap,
)
from .state_store import ReviewRecord, SessionRecord, StateStore

__all__ = [
    # Errors
    "ReviewError",
    "InvalidArgumentError",
    "StorageError",
    "SessionStateError",
    # Persistence
    "StateStore",
    "ReviewRecord",
    "SessionRecord",
    # Scheduling
    "SM2Scheduler",
    "SM2Config",
    "QualityPolicy",
    "AnswerOutcome",
    "REVIEW_POLICY",
    "DRILL_POLICY",
    "WEAK_QUALITY",
    # Sessions
    "ReviewSession",
    "SessionState",
    "SessionSummary",
    "ReviewAvailability",
    "ReviewStatus",
    "review_status",
    "session_cap",
    # Questions
    "Question",
    "QuestionBank",
]
