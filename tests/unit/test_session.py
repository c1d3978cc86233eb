"""
Unit tests for ReviewSession.

Tests:
- Due selection and session caps
- Answer grading and write-back
- Session state machine
- Per-question storage failure isolation
- Home screen review availability
"""

import threading
import time
from datetime import datetime, timedelta

import pytest

from config import Settings
from src.review.errors import InvalidArgumentError, SessionStateError, StorageError
from src.review.scheduler import DRILL_POLICY, AnswerOutcome
from src.review.session import (
    ReviewAvailability,
    ReviewSession,
    SessionState,
    review_status,
    session_cap,
)
from src.review.state_store import ReviewRecord

DAY0 = datetime(2024, 1, 1)


def day(n: float) -> datetime:
    return DAY0 + timedelta(days=n)


def seed(store, question_id: str, due_day: float, reps: int = 2, ease: float = 2.5) -> None:
    store.upsert(
        ReviewRecord(
            question_id=question_id,
            last_reviewed=day(due_day - 6),
            next_review=day(due_day),
            repetition_count=reps,
            ease_factor=ease,
            last_interval_seconds=6 * 86400.0,
        )
    )


@pytest.fixture
def session(store, clock):
    return ReviewSession(store, clock=clock)


class TestPrepare:
    def test_nothing_due(self, session):
        assert session.prepare_session(day(0)) == []
        assert session.state is SessionState.IN_PROGRESS

    def test_due_questions_in_due_order(self, store, session):
        seed(store, "Q2", 2)
        seed(store, "Q1", 1)
        seed(store, "Q9", 9)

        assert session.prepare_session(day(5)) == ["Q1", "Q2"]
        assert session.question_ids == ["Q1", "Q2"]

    def test_max_items_truncates(self, store, session):
        for n in range(5):
            seed(store, f"Q{n}", n)

        assert session.prepare_session(day(10), max_items=3) == ["Q0", "Q1", "Q2"]

    def test_max_items_zero(self, store, session):
        seed(store, "Q1", 0)

        assert session.prepare_session(day(1), max_items=0) == []

    def test_negative_max_items_rejected(self, session):
        with pytest.raises(InvalidArgumentError):
            session.prepare_session(day(0), max_items=-1)

        assert session.state is SessionState.NOT_STARTED

    def test_defaults_to_clock(self, store, session, clock):
        seed(store, "Q1", 0)
        clock.now = day(0) + timedelta(hours=8)

        assert session.prepare_session() == ["Q1"]

    def test_storage_error_aborts_preparation(self, store, session, monkeypatch):
        def broken(as_of):
            raise StorageError("disk I/O error")

        monkeypatch.setattr(store, "get_due_records", broken)

        with pytest.raises(StorageError):
            session.prepare_session(day(0))

        assert session.state is SessionState.NOT_STARTED


class TestRecordAnswer:
    def test_correct_answer_on_new_question(self, store, session, clock):
        session.prepare_session(day(0))

        updated = session.record_answer("NEW", True)

        assert updated.repetition_count == 1
        assert updated.next_review == day(1)
        assert updated.ease_factor == pytest.approx(2.5)
        assert store.get_record("NEW") == updated

    def test_wrong_answer_uses_quality_1(self, store, session):
        seed(store, "Q1", 0, reps=3, ease=2.5)
        session.prepare_session(day(0))

        updated = session.record_answer("Q1", False)

        assert updated.repetition_count == 0
        assert updated.ease_factor == pytest.approx(2.3)
        assert updated.next_review == day(1)

    def test_revealed_counts_as_failure(self, store, session):
        seed(store, "Q1", 0, reps=3)
        session.prepare_session(day(0))

        updated = session.record_outcome("Q1", AnswerOutcome.REVEALED)

        assert updated.repetition_count == 0

    def test_drill_policy_grades_5(self, store, clock):
        drill = ReviewSession(store, policy=DRILL_POLICY, clock=clock)
        drill.begin()

        updated = drill.record_answer("Q1", True)

        assert updated.ease_factor == pytest.approx(2.6)

    def test_invalid_quality_writes_nothing(self, store, session):
        session.prepare_session(day(0))

        with pytest.raises(InvalidArgumentError):
            session.record_quality("Q1", 7)

        assert store.get_record("Q1") is None

    def test_empty_question_id_rejected(self, session):
        session.prepare_session(day(0))

        with pytest.raises(InvalidArgumentError):
            session.record_answer("", True)

    def test_failed_write_is_isolated(self, store, session, monkeypatch):
        real_upsert = store.upsert

        def upsert(record):
            if record.question_id == "BAD":
                raise StorageError("disk full")
            real_upsert(record)

        monkeypatch.setattr(store, "upsert", upsert)
        session.prepare_session(day(0))

        assert session.record_answer("A", True) is not None
        assert session.record_answer("BAD", True) is None
        assert session.record_answer("C", False) is not None

        summary = session.finalize_session()

        assert store.get_record("A") is not None
        assert store.get_record("C") is not None
        assert store.get_record("BAD") is None
        assert list(summary.failed) == ["BAD"]
        assert summary.answered == 3
        assert summary.correct == 2

    def test_retry_of_failed_question_clears_failure(self, store, session, monkeypatch):
        real_upsert = store.upsert
        attempts = []

        def upsert(record):
            attempts.append(record.question_id)
            if len(attempts) == 1:
                raise StorageError("locked")
            real_upsert(record)

        monkeypatch.setattr(store, "upsert", upsert)
        session.prepare_session(day(0))

        session.record_answer("Q1", True)
        assert "Q1" in session.failures
        session.record_answer("Q1", True)

        assert session.failures == {}

    def test_mark_weak_relearns_tomorrow(self, store, session):
        seed(store, "Q1", 0, reps=4, ease=2.5)
        session.prepare_session(day(0))

        updated = session.mark_weak("Q1")

        assert updated.repetition_count == 0
        assert updated.ease_factor == pytest.approx(2.3)
        assert updated.next_review == day(1)

        summary = session.finalize_session()
        assert summary.answered == 1
        assert summary.correct == 0


class TestConcurrentAnswers:
    def test_same_question_answers_are_applied_in_turn(self, store, clock, monkeypatch):
        seed(store, "Q1", 0, reps=1)
        real_get_record = store.get_record
        first_read = threading.Event()
        reads = []

        def slow_get_record(question_id):
            record = real_get_record(question_id)
            reads.append(question_id)
            if len(reads) == 1:
                first_read.set()
                time.sleep(0.2)
            return record

        monkeypatch.setattr(store, "get_record", slow_get_record)
        first = ReviewSession(store, clock=clock)
        second = ReviewSession(store, clock=clock)
        first.begin()
        second.begin()

        worker = threading.Thread(target=first.record_answer, args=("Q1", True))
        worker.start()
        assert first_read.wait(timeout=5)
        second.record_answer("Q1", True)
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert real_get_record("Q1").repetition_count == 3

    def test_different_questions_do_not_block(self, store, clock):
        session = ReviewSession(store, clock=clock)
        session.begin()

        with store.locked("Q1"):
            worker = threading.Thread(target=session.record_answer, args=("Q2", True))
            worker.start()
            worker.join(timeout=5)

            assert not worker.is_alive()

        assert store.get_record("Q2") is not None


class TestStateMachine:
    def test_answer_before_prepare(self, session):
        with pytest.raises(SessionStateError):
            session.record_answer("Q1", True)

    def test_prepare_twice(self, session):
        session.prepare_session(day(0))

        with pytest.raises(SessionStateError):
            session.prepare_session(day(0))

    def test_answer_after_finalize(self, session):
        session.prepare_session(day(0))
        session.finalize_session()

        assert session.state is SessionState.DONE
        with pytest.raises(SessionStateError):
            session.record_answer("Q1", True)

    def test_finalize_twice(self, session):
        session.prepare_session(day(0))
        session.finalize_session()

        with pytest.raises(SessionStateError):
            session.finalize_session()

    def test_context_manager_finalizes_on_error(self, store, session):
        with pytest.raises(RuntimeError):
            with session:
                session.prepare_session(day(0))
                session.record_answer("Q1", True)
                raise RuntimeError("quiz UI crashed")

        assert session.state is SessionState.DONE
        assert store.get_record("Q1") is not None
        assert store.last_session_finished_at() == day(0)


class TestFinalize:
    def test_review_session_is_logged(self, store, session, clock):
        seed(store, "Q1", 0)
        session.prepare_session(day(0))
        session.record_answer("Q1", True)
        clock.advance(0.01)

        summary = session.finalize_session()

        assert summary.answered == 1
        assert summary.accuracy_percent == 100.0
        assert store.last_session_finished_at() == clock.now

    def test_empty_session_not_logged(self, store, session):
        session.prepare_session(day(0))
        session.finalize_session()

        assert store.last_session_finished_at() is None

    def test_drill_session_not_logged(self, store, clock):
        drill = ReviewSession(store, policy=DRILL_POLICY, clock=clock)
        drill.begin()
        drill.record_answer("Q1", True)
        drill.finalize_session()

        assert store.get_record("Q1") is not None
        assert store.last_session_finished_at() is None

    def test_session_log_failure_keeps_answers(self, store, session, monkeypatch):
        def broken(**kwargs):
            raise StorageError("locked")

        monkeypatch.setattr(store, "log_session", broken)
        session.prepare_session(day(0))
        session.record_answer("Q1", True)

        summary = session.finalize_session()

        assert session.state is SessionState.DONE
        assert summary.answered == 1
        assert store.get_record("Q1") is not None


class TestReviewScenario:
    def test_question_over_three_weeks(self, store, clock):
        clock.now = day(0)
        with ReviewSession(store, clock=clock) as first:
            first.begin()
            first.record_answer("Q1", True)

        record = store.get_record("Q1")
        assert record.repetition_count == 1
        assert record.next_review == day(1)

        clock.now = day(1)
        with ReviewSession(store, clock=clock) as second:
            assert second.prepare_session() == ["Q1"]
            second.record_answer("Q1", True)

        record = store.get_record("Q1")
        assert record.repetition_count == 2
        assert record.next_review == day(7)

        clock.now = day(3)
        with ReviewSession(store, clock=clock) as early:
            assert early.prepare_session() == []

        clock.now = day(7)
        with ReviewSession(store, clock=clock) as third:
            assert third.prepare_session() == ["Q1"]
            third.record_quality("Q1", 5)

        record = store.get_record("Q1")
        assert record.repetition_count == 3
        assert record.last_interval_seconds == pytest.approx(6 * 86400 * 2.6)
        assert record.next_review == day(22)

        clock.now = day(22)
        with ReviewSession(store, clock=clock) as fourth:
            fourth.prepare_session()
            fourth.record_answer("Q1", False)

        record = store.get_record("Q1")
        assert record.repetition_count == 0
        assert record.ease_factor == pytest.approx(2.4)
        assert record.next_review == day(23)


class TestReviewStatus:
    def test_nothing_to_review(self, store):
        status = review_status(store, day(0))

        assert status.availability is ReviewAvailability.NOTHING_TO_REVIEW
        assert status.due_count == 0

    def test_available(self, store):
        seed(store, "Q1", 0)
        seed(store, "Q2", 1)
        seed(store, "Q3", 5)

        status = review_status(store, day(1) + timedelta(hours=10))

        assert status.availability is ReviewAvailability.AVAILABLE
        assert status.due_count == 2

    def test_completed_today_wins(self, store):
        seed(store, "Q1", 0)
        store.log_session(day(1) + timedelta(hours=7), day(1) + timedelta(hours=8), 5, 5)

        status = review_status(store, day(1) + timedelta(hours=21))

        assert status.availability is ReviewAvailability.COMPLETED_TODAY

    def test_yesterdays_session_does_not_count(self, store):
        seed(store, "Q1", 0)
        store.log_session(day(0), day(0) + timedelta(hours=8), 5, 5)

        status = review_status(store, day(1) + timedelta(hours=9))

        assert status.availability is ReviewAvailability.AVAILABLE


class TestSessionCap:
    def test_free_tier_capped(self):
        assert session_cap(is_premium=False, settings=Settings(free_session_cap=20)) == 20

    def test_premium_uncapped(self):
        assert session_cap(is_premium=True, settings=Settings()) is None

    def test_defaults_from_settings(self):
        assert session_cap(settings=Settings(is_premium_user=True)) is None
        assert session_cap(settings=Settings(is_premium_user=False, free_session_cap=10)) == 10
