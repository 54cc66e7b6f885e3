"""Points resolution and scoring shared by the attempt engine and reviews."""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Sequence

from quiz_admin.constants.quiz_constants import PASS_THRESHOLD_PERCENT, UNANSWERED
from quiz_admin.core.models import Question, QuizDefinition


@dataclass(frozen=True, slots=True)
class ScoreResult:
    score: float
    total_points: float


def effective_points(quiz: QuizDefinition, question: Question) -> float:
    """The question's weight within ``quiz``: the override if present, else its own points."""
    override = quiz.question_points.get(question.id)
    return question.points if override is None else override


def is_correct(answer: int, question: Question) -> bool:
    # Exact index match only; the unanswered sentinel is never a valid index.
    return answer != UNANSWERED and answer == question.correct_option_index


def score_answers(quiz: QuizDefinition, questions: Sequence[Question], answers: Sequence[int]) -> ScoreResult:
    if len(answers) != len(questions):
        raise ValueError(
            f"Expected {len(questions)} answers, received {len(answers)}."
        )

    score = 0.0
    total_points = 0.0
    for question, answer in zip(questions, answers):
        points = effective_points(quiz, question)
        total_points += points
        if is_correct(answer, question):
            score += points
    return ScoreResult(score=score, total_points=total_points)


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def percentage(score: float, total_points: float) -> int:
    """Whole-number percentage; a quiz worth nothing scores 0%."""
    if total_points <= 0:
        return 0
    return round_half_up(100 * score / total_points)


def normalized_grade(score: float, total_points: float, max_grade: float) -> float:
    """Scale a raw score onto the quiz's display grade, rounded to two decimals."""
    if total_points <= 0:
        return 0.0
    return round(score / total_points * max_grade, 2)


def is_passing(percent: int) -> bool:
    return percent >= PASS_THRESHOLD_PERCENT
