"""Domain models for the quiz application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from quiz_admin.constants.quiz_constants import (
    DEFAULT_DURATION_MINUTES,
    DEFAULT_MAX_GRADE,
    DEFAULT_QUESTION_POINTS,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Question:
    """Multiple-choice question stored in a course's question bank."""

    id: str
    course_id: str
    text: str
    options: list[str]
    correct_option_index: int
    points: float = DEFAULT_QUESTION_POINTS
    secondary_text: str | None = None
    secondary_options: list[str] | None = None
    image_url: str | None = None
    question_number: int | None = None  # Authoring sort only, never identity
    created_at: datetime = field(default_factory=utc_now)

    def to_document(self) -> dict[str, Any]:
        return {
            "course_id": self.course_id,
            "text": self.text,
            "options": list(self.options),
            "correct_option_index": self.correct_option_index,
            "points": self.points,
            "secondary_text": self.secondary_text,
            "secondary_options": list(self.secondary_options) if self.secondary_options is not None else None,
            "image_url": self.image_url,
            "question_number": self.question_number,
            "created_at": self.created_at,
        }

    @classmethod
    def from_document(cls, doc_id: str, doc: dict[str, Any]) -> "Question":
        return cls(
            id=doc_id,
            course_id=doc["course_id"],
            text=doc["text"],
            options=list(doc["options"]),
            correct_option_index=doc["correct_option_index"],
            points=doc.get("points", DEFAULT_QUESTION_POINTS),
            secondary_text=doc.get("secondary_text"),
            secondary_options=doc.get("secondary_options"),
            image_url=doc.get("image_url"),
            question_number=doc.get("question_number"),
            created_at=doc.get("created_at") or utc_now(),
        )


@dataclass(slots=True)
class Section:
    """Cosmetic heading shown immediately before ``start_question_id``.

    A ``start_question_id`` of ``None`` marks a trailing heading rendered after
    every question of the quiz.
    """

    id: str
    title: str
    start_question_id: str | None = None
    shuffle: bool = False


@dataclass(slots=True)
class ReviewOptions:
    """What a student sees when reviewing a completed attempt."""

    show_marks: bool = True
    show_whether_correct: bool = True
    show_right_answer: bool = True
    show_feedback: bool = True


@dataclass(slots=True)
class QuizDefinition:
    """An authored, ordered and sectioned set of question references."""

    id: str
    course_id: str
    title: str
    description: str = ""
    question_ids: list[str] = field(default_factory=list)
    question_points: dict[str, float] = field(default_factory=dict)
    sections: list[Section] = field(default_factory=list)
    duration_minutes: int = DEFAULT_DURATION_MINUTES
    max_grade: float = DEFAULT_MAX_GRADE
    review_options: ReviewOptions = field(default_factory=ReviewOptions)
    created_at: datetime = field(default_factory=utc_now)

    @property
    def duration_seconds(self) -> int:
        return self.duration_minutes * 60

    def find_section(self, section_id: str) -> Section | None:
        return next((s for s in self.sections if s.id == section_id), None)

    def to_document(self) -> dict[str, Any]:
        return {
            "course_id": self.course_id,
            "title": self.title,
            "description": self.description,
            "question_ids": list(self.question_ids),
            "question_points": dict(self.question_points),
            "sections": [
                {
                    "id": s.id,
                    "title": s.title,
                    "start_question_id": s.start_question_id,
                    "shuffle": s.shuffle,
                }
                for s in self.sections
            ],
            "duration_minutes": self.duration_minutes,
            "max_grade": self.max_grade,
            "review_options": {
                "show_marks": self.review_options.show_marks,
                "show_whether_correct": self.review_options.show_whether_correct,
                "show_right_answer": self.review_options.show_right_answer,
                "show_feedback": self.review_options.show_feedback,
            },
            "created_at": self.created_at,
        }

    @classmethod
    def from_document(cls, doc_id: str, doc: dict[str, Any]) -> "QuizDefinition":
        review = doc.get("review_options") or {}
        return cls(
            id=doc_id,
            course_id=doc["course_id"],
            title=doc["title"],
            description=doc.get("description", ""),
            question_ids=list(doc.get("question_ids") or []),
            question_points=dict(doc.get("question_points") or {}),
            sections=[Section(**section) for section in doc.get("sections") or []],
            duration_minutes=doc.get("duration_minutes", DEFAULT_DURATION_MINUTES),
            max_grade=doc.get("max_grade") or DEFAULT_MAX_GRADE,
            review_options=ReviewOptions(**review),
            created_at=doc.get("created_at") or utc_now(),
        )


@dataclass(frozen=True, slots=True)
class Attempt:
    """One student's scored pass through a quiz. Never updated once created."""

    id: str
    quiz_id: str
    student_id: str
    answers: tuple[int, ...]
    score: float
    total_points: float
    started_at: datetime
    completed_at: datetime

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()

    def to_document(self) -> dict[str, Any]:
        return {
            "quiz_id": self.quiz_id,
            "student_id": self.student_id,
            "answers": list(self.answers),
            "score": self.score,
            "total_points": self.total_points,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_document(cls, doc_id: str, doc: dict[str, Any]) -> "Attempt":
        return cls(
            id=doc_id,
            quiz_id=doc["quiz_id"],
            student_id=doc["student_id"],
            answers=tuple(doc["answers"]),
            score=doc["score"],
            total_points=doc["total_points"],
            started_at=doc["started_at"],
            completed_at=doc["completed_at"],
        )
