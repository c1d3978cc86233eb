"""
Review Persistence Models.

SQLAlchemy models for the spaced repetition review state:
- Per-question SM-2 state (one row per question ever reviewed)
- Finished review sessions
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Float, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ReviewItem(Base):
    """SM-2 review state for a single question."""

    __tablename__ = "review_items"

    question_id: Mapped[str] = mapped_column(Text, primary_key=True)
    last_reviewed: Mapped[datetime] = mapped_column(nullable=False)
    next_review: Mapped[datetime] = mapped_column(nullable=False)
    repetition_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ease_factor: Mapped[float] = mapped_column(Float, nullable=False, default=2.5)
    last_interval_seconds: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    __table_args__ = (Index("idx_review_items_next_review", "next_review"),)

    def __repr__(self) -> str:
        return f"<ReviewItem question={self.question_id} next={self.next_review:%Y-%m-%d} reps={self.repetition_count}>"


class SessionLog(Base):
    """Summary of a finished review session."""

    __tablename__ = "review_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    started_at: Mapped[datetime] = mapped_column(nullable=False)
    finished_at: Mapped[datetime] = mapped_column(nullable=False, index=True)
    items_answered: Mapped[int] = mapped_column(Integer, default=0)
    items_correct: Mapped[int] = mapped_column(Integer, default=0)
    items_failed: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return f"<SessionLog id={self.id} answered={self.items_answered} finished={self.finished_at}>"
