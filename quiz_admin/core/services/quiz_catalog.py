"""Service for storing quiz definitions."""

from __future__ import annotations

import math

from quiz_admin.constants.quiz_constants import DEFAULT_DURATION_MINUTES, DEFAULT_MAX_GRADE
from quiz_admin.core.document_store import QUIZZES, DocumentStore
from quiz_admin.core.models import QuizDefinition, ReviewOptions


class QuizCatalog:
    """Persists quiz definitions returned by the authoring operations."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def create_quiz(
        self,
        course_id: str,
        title: str,
        description: str = "",
        duration_minutes: int = DEFAULT_DURATION_MINUTES,
        max_grade: float = DEFAULT_MAX_GRADE,
        review_options: ReviewOptions | None = None,
    ) -> QuizDefinition:
        quiz = QuizDefinition(
            id="",
            course_id=course_id,
            title=title,
            description=description,
            duration_minutes=duration_minutes,
            max_grade=max_grade,
            review_options=review_options or ReviewOptions(),
        )
        self._validate(quiz)
        quiz.title = quiz.title.strip()
        quiz.id = self._store.add(QUIZZES, quiz.to_document())
        return quiz

    def get_quiz(self, quiz_id: str) -> QuizDefinition | None:
        doc = self._store.get(QUIZZES, quiz_id)
        if doc is None:
            return None
        return QuizDefinition.from_document(quiz_id, doc)

    def require_quiz(self, quiz_id: str) -> QuizDefinition:
        quiz = self.get_quiz(quiz_id)
        if quiz is None:
            raise LookupError(f"Quiz {quiz_id} not found")
        return quiz

    def save_quiz(self, quiz: QuizDefinition) -> QuizDefinition:
        if self._store.get(QUIZZES, quiz.id) is None:
            raise LookupError(f"Quiz {quiz.id} not found")
        self._validate(quiz)
        self._store.put(QUIZZES, quiz.id, quiz.to_document())
        return quiz

    def delete_quiz(self, quiz_id: str) -> None:
        if not self._store.delete(QUIZZES, quiz_id):
            raise LookupError(f"Quiz {quiz_id} not found")

    def list_quizzes(self, course_id: str | None = None) -> list[QuizDefinition]:
        filters = {"course_id": course_id} if course_id is not None else {}
        quizzes = [QuizDefinition.from_document(doc_id, doc) for doc_id, doc in self._store.find(QUIZZES, **filters)]
        return sorted(quizzes, key=lambda q: q.created_at)

    @staticmethod
    def _validate(quiz: QuizDefinition) -> None:
        if not quiz.course_id:
            raise ValueError("Quiz must belong to a course.")
        if not quiz.title.strip():
            raise ValueError("Quiz title must not be empty.")
        if isinstance(quiz.duration_minutes, bool) or not isinstance(quiz.duration_minutes, int):
            raise ValueError("Duration must be a whole number of minutes.")
        if quiz.duration_minutes <= 0:
            raise ValueError("Duration must be a positive number of minutes.")
        if quiz.max_grade <= 0:
            raise ValueError("Maximum grade must be positive.")
        # Negative weights would let a score exceed its total
        for question_id, points in quiz.question_points.items():
            if not math.isfinite(points) or points < 0:
                raise ValueError(f"Points for question {question_id} must be a finite, non-negative number.")
