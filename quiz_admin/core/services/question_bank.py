"""Service for managing the question bank of every course."""

from __future__ import annotations

import math

from quiz_admin.constants.quiz_constants import MIN_OPTION_COUNT
from quiz_admin.core.document_store import QUESTIONS, DocumentStore
from quiz_admin.core.models import Question
from quiz_admin.core.question_resolution import sort_for_authoring


class QuestionBank:
    """Validates questions and stores them in the document store."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def add_question(self, question: Question) -> Question:
        """Store a new question and return it with its generated id."""
        prepared = self._prepare_question(question)
        new_id = self._store.add(QUESTIONS, prepared.to_document())
        prepared.id = new_id
        return prepared

    def update_question(self, question_id: str, question: Question) -> Question:
        existing = self.get_question(question_id)
        if existing is None:
            raise LookupError(f"Question {question_id} not found")

        prepared = self._prepare_question(question)
        # Preserve the original identity and creation time
        prepared.id = existing.id
        prepared.created_at = existing.created_at
        self._store.put(QUESTIONS, prepared.id, prepared.to_document())
        return prepared

    def delete_question(self, question_id: str) -> None:
        """Delete a question. Quizzes still referencing it keep a dangling id."""
        if not self._store.delete(QUESTIONS, question_id):
            raise LookupError(f"Question {question_id} not found")

    def get_question(self, question_id: str) -> Question | None:
        doc = self._store.get(QUESTIONS, question_id)
        if doc is None:
            return None
        return Question.from_document(question_id, doc)

    def get_questions(self, question_ids: list[str]) -> dict[str, Question]:
        """Fetch several questions at once, keyed by id. Missing ids are absent."""
        return {
            doc_id: Question.from_document(doc_id, doc)
            for doc_id, doc in self._store.find_in(QUESTIONS, "id", question_ids)
        }

    def list_questions(self, course_id: str | None = None) -> list[Question]:
        filters = {"course_id": course_id} if course_id is not None else {}
        return [Question.from_document(doc_id, doc) for doc_id, doc in self._store.find(QUESTIONS, **filters)]

    def list_for_authoring(self, course_id: str | None = None) -> list[Question]:
        return sort_for_authoring(self.list_questions(course_id))

    def _prepare_question(self, question: Question) -> Question:
        """Validate and normalize a question before storage."""
        if not question.course_id:
            raise ValueError("Question must belong to a course.")

        cleaned_text = question.text.strip()
        if not cleaned_text:
            raise ValueError("Question text must not be empty.")

        options = self._validate_options(question.options)
        if not 0 <= question.correct_option_index < len(options):
            raise ValueError(f"Correct option index must be between 0 and {len(options) - 1}.")

        secondary_options = None
        if question.secondary_options is not None and any(o.strip() for o in question.secondary_options):
            secondary_options = [option.strip() for option in question.secondary_options]
            if len(secondary_options) > len(options):
                raise ValueError("Secondary options cannot outnumber the primary options.")

        secondary_text = (question.secondary_text or "").strip() or None

        return Question(
            id=question.id,
            course_id=question.course_id,
            text=cleaned_text,
            options=options,
            correct_option_index=question.correct_option_index,
            points=self._normalize_points(question.points),
            secondary_text=secondary_text,
            secondary_options=secondary_options,
            image_url=question.image_url or None,
            question_number=question.question_number,
            created_at=question.created_at,
        )

    @staticmethod
    def _validate_options(options: list[str]) -> list[str]:
        if len(options) < MIN_OPTION_COUNT:
            raise ValueError(f"Each question must have at least {MIN_OPTION_COUNT} options.")
        cleaned = [option.strip() for option in options]
        if any(not option for option in cleaned):
            raise ValueError("Option text cannot be empty.")
        return cleaned

    @staticmethod
    def _normalize_points(points: float) -> float:
        if isinstance(points, bool) or not isinstance(points, (int, float)):
            raise ValueError("Points must be a number.")
        if not math.isfinite(points) or points <= 0:
            raise ValueError("Points must be a positive number.")
        return points
