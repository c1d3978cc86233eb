"""
Question Bank: TOEIC Part 5 Question Loader.

Loads course JSON files of the form:

    {"quizSets": [{"setId": "...", "setName": "...", "questions": [...]}]}

and resolves review question ids back to question content. The scheduler
itself only ever sees question ids.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from config import get_settings

# =============================================================================
# Question Data Class
# =============================================================================


@dataclass
class Question:
    """A single multiple-choice question."""

    id: str
    question_text: str
    options: list[str]
    correct_answer_index: int
    explanation: str = ""
    category: str | None = None
    difficulty_level: str | None = None
    skill_tags: list[str] = field(default_factory=list)
    set_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict, set_id: str | None = None) -> Question:
        """
        Create a Question from course JSON.

        Args:
            data: Question object (camelCase keys)
            set_id: Quiz set the question belongs to

        Returns:
            Question instance
        """
        options = data["options"]
        correct = data["correctAnswerIndex"]
        if not isinstance(correct, int) or not 0 <= correct < len(options):
            raise ValueError(f"Question {data.get('id')!r}: correctAnswerIndex out of range")

        return cls(
            id=data["id"],
            question_text=data["questionText"],
            options=list(options),
            correct_answer_index=correct,
            explanation=data.get("explanation", ""),
            category=data.get("category"),
            difficulty_level=data.get("difficultyLevel"),
            skill_tags=data.get("skillTags") or [],
            set_id=set_id,
        )

    @property
    def correct_answer(self) -> str:
        return self.options[self.correct_answer_index]

    def is_correct(self, index: int) -> bool:
        return index == self.correct_answer_index


# =============================================================================
# Question Bank
# =============================================================================


class QuestionBank:
    """
    Question corpus indexed by id.

    Features:
    - Auto-discovery of course JSON files
    - Skips malformed files and questions with a warning
    - Order-preserving id resolution for review sessions
    """

    def __init__(self, data_dir: Path | None = None):
        self.data_dir = Path(data_dir) if data_dir else get_settings().questions_dir
        self._questions: dict[str, Question] = {}
        self._files_loaded: list[Path] = []

    @property
    def total_questions(self) -> int:
        return len(self._questions)

    def __contains__(self, question_id: str) -> bool:
        return question_id in self._questions

    def load(self) -> int:
        """
        Load questions from every JSON file in the data directory.

        Returns:
            Number of questions loaded
        """
        self._questions.clear()
        self._files_loaded.clear()

        json_files = sorted(self.data_dir.glob("*.json")) if self.data_dir.is_dir() else []
        if not json_files:
            logger.warning(f"No course JSON files found in {self.data_dir}")
            return 0

        for json_path in json_files:
            self._load_file(json_path)

        logger.info(f"QuestionBank loaded: {self.total_questions} questions from {len(self._files_loaded)} files")
        return self.total_questions

    def _load_file(self, path: Path) -> int:
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"Skipping {path.name}: {exc}")
            return 0

        loaded = 0
        for quiz_set in data.get("quizSets", []) if isinstance(data, dict) else []:
            set_id = quiz_set.get("setId")
            for raw in quiz_set.get("questions", []):
                try:
                    question = Question.from_dict(raw, set_id=set_id)
                except (KeyError, TypeError, ValueError) as exc:
                    logger.warning(f"Skipping question in {path.name}: {exc}")
                    continue
                if question.id in self._questions:
                    logger.debug(f"Duplicate question id {question.id} in {path.name}, keeping first")
                    continue
                self._questions[question.id] = question
                loaded += 1

        self._files_loaded.append(path)
        return loaded

    def add(self, question: Question) -> None:
        self._questions[question.id] = question

    def get(self, question_id: str) -> Question | None:
        return self._questions.get(question_id)

    def resolve(self, question_ids: Iterable[str]) -> list[Question]:
        """
        Look up questions in the given order, dropping unknown ids.

        Args:
            question_ids: Ids from a review session

        Returns:
            Questions in the same order as the ids
        """
        resolved = []
        for question_id in question_ids:
            question = self._questions.get(question_id)
            if question is None:
                logger.warning(f"Question {question_id} not found in corpus")
                continue
            resolved.append(question)
        return resolved
