"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import json
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.db.database import create_db_engine  # noqa: E402
from src.review.scheduler import SM2Scheduler  # noqa: E402
from src.review.state_store import StateStore  # noqa: E402

DAY0 = datetime(2024, 1, 1)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class FakeClock:
    """Settable clock for ReviewSession."""

    def __init__(self, now: datetime = DAY0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: float) -> None:
        self.now += timedelta(days=days)


@pytest.fixture
def db_url(tmp_path):
    """URL of a fresh SQLite database."""
    return f"sqlite:///{tmp_path / 'review.db'}"


@pytest.fixture
def store(db_url):
    """StateStore over a fresh database."""
    state_store = StateStore(create_db_engine(db_url))
    yield state_store
    state_store.close()


@pytest.fixture
def scheduler():
    return SM2Scheduler()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sample_question():
    """Provide a sample Part 5 question as stored in course JSON."""
    return {
        "id": "BASIC_1_001",
        "questionText": "The new policy will take effect ------- the first of next month.",
        "options": ["in", "on", "at", "by"],
        "correctAnswerIndex": 1,
        "explanation": "Use 'on' with specific dates.",
        "category": "Prepositions",
        "difficultyLevel": "easy",
        "skillTags": ["preposition"],
    }


@pytest.fixture
def courses_dir(tmp_path, sample_question):
    """Directory holding one course file with two questions."""
    directory = tmp_path / "courses"
    directory.mkdir()
    second = dict(sample_question, id="BASIC_1_002", correctAnswerIndex=3)
    course = {"quizSets": [{"setId": "BASIC_1", "setName": "Basic 1", "questions": [sample_question, second]}]}
    (directory / "basic.json").write_text(json.dumps(course), encoding="utf-8")
    return directory
