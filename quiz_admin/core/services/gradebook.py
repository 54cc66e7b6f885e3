"""Service for summarizing stored attempts per quiz and per student."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from quiz_admin.core.models import Attempt
from quiz_admin.core.scoring import is_passing, normalized_grade, percentage, round_half_up


@dataclass(slots=True)
class GradebookRow:
    """Immutable snapshot of one attempt returned to consumers."""

    attempt_id: str
    quiz_id: str
    student_id: str
    score: float
    total_points: float
    grade: float
    percentage: int
    passed: bool
    started_at: datetime
    completed_at: datetime


@dataclass(slots=True)
class StudentSummary:
    student_id: str
    attempts_completed: int
    quizzes_attempted: int
    average_percentage: int


class Gradebook:
    """Tracks attempts and derives grades, pass status and averages."""

    def __init__(self, max_grades: dict[str, float] | None = None) -> None:
        self._max_grades: dict[str, float] = dict(max_grades or {})
        self._attempts: dict[str, Attempt] = {}

    def record_attempt(self, attempt: Attempt, max_grade: float | None = None) -> None:
        self._attempts[attempt.id] = attempt
        if max_grade is not None:
            self._max_grades[attempt.quiz_id] = max_grade

    def get_rows(self, quiz_id: str | None = None, student_id: str | None = None) -> list[GradebookRow]:
        """Rows for the matching attempts, most recently completed first."""
        selected = [
            a for a in self._attempts.values()
            if (quiz_id is None or a.quiz_id == quiz_id) and (student_id is None or a.student_id == student_id)
        ]
        selected.sort(key=lambda a: a.completed_at, reverse=True)
        return [self._row_for(a) for a in selected]

    def summarize_student(self, student_id: str) -> StudentSummary:
        attempts = [a for a in self._attempts.values() if a.student_id == student_id]
        if attempts:
            ratios = [a.score / a.total_points if a.total_points > 0 else 0.0 for a in attempts]
            average = round_half_up(sum(ratios) / len(ratios) * 100)
        else:
            average = 0
        return StudentSummary(
            student_id=student_id,
            attempts_completed=len(attempts),
            quizzes_attempted=len({a.quiz_id for a in attempts}),
            average_percentage=average,
        )

    def _row_for(self, attempt: Attempt) -> GradebookRow:
        percent = percentage(attempt.score, attempt.total_points)
        max_grade = self._max_grades.get(attempt.quiz_id)
        grade = (
            normalized_grade(attempt.score, attempt.total_points, max_grade)
            if max_grade is not None
            else attempt.score
        )
        return GradebookRow(
            attempt_id=attempt.id,
            quiz_id=attempt.quiz_id,
            student_id=attempt.student_id,
            score=attempt.score,
            total_points=attempt.total_points,
            grade=grade,
            percentage=percent,
            passed=is_passing(percent),
            started_at=attempt.started_at,
            completed_at=attempt.completed_at,
        )
