"""Read-only breakdown of a completed attempt.

The review is rebuilt from the quiz definition as it is *now*; attempts do
not snapshot the definition, so later edits to the question list or point
overrides show up here. Only ``answers``, ``score`` and ``total_points`` come
from the stored attempt.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from quiz_admin.constants.quiz_constants import UNANSWERED
from quiz_admin.core.models import Attempt, Question, QuizDefinition, Section
from quiz_admin.core.question_resolution import resolve_quiz
from quiz_admin.core.scoring import effective_points, is_correct, is_passing, normalized_grade, percentage


class OptionHighlight(str, Enum):
    NONE = "none"
    SELECTED = "selected"
    CORRECT_PICK = "correct_pick"
    INCORRECT_PICK = "incorrect_pick"
    MISSED_CORRECT = "missed_correct"


@dataclass(slots=True)
class ReviewOption:
    index: int
    text: str
    secondary_text: str | None
    is_selected: bool
    highlight: OptionHighlight


@dataclass(slots=True)
class ReviewItem:
    position: int
    question: Question
    section: Section | None
    selected_index: int
    is_correct: bool
    possible_points: float
    earned_points: float
    show_marks: bool
    options: list[ReviewOption] = field(default_factory=list)
    feedback_text: str | None = None  # the correct answer, shown only when allowed


@dataclass(slots=True)
class AttemptReview:
    attempt: Attempt
    quiz: QuizDefinition
    items: list[ReviewItem]
    trailing_sections: list[Section]
    percentage: int
    grade: float
    passed: bool

    @property
    def score(self) -> float:
        return self.attempt.score

    @property
    def total_points(self) -> float:
        return self.attempt.total_points


def build_review(attempt: Attempt, quiz: QuizDefinition, questions_by_id: Mapping[str, Question]) -> AttemptReview:
    if attempt.quiz_id != quiz.id:
        raise ValueError(f"Attempt {attempt.id} belongs to quiz {attempt.quiz_id}, not {quiz.id}.")

    resolved = resolve_quiz(quiz, questions_by_id)
    review_options = quiz.review_options
    items: list[ReviewItem] = []

    for resolved_item in resolved.items:
        question = resolved_item.question
        position = resolved_item.position
        selected = attempt.answers[position] if position < len(attempt.answers) else UNANSWERED
        correct = is_correct(selected, question)
        points = effective_points(quiz, question)

        feedback_text = None
        if (
            not correct
            and review_options.show_feedback
            and review_options.show_right_answer
            and 0 <= question.correct_option_index < len(question.options)
        ):
            feedback_text = question.options[question.correct_option_index]

        items.append(
            ReviewItem(
                position=position,
                question=question,
                section=resolved_item.section,
                selected_index=selected,
                is_correct=correct,
                possible_points=points,
                earned_points=points if correct else 0.0,
                show_marks=review_options.show_marks,
                options=_review_options_for(question, selected, quiz),
                feedback_text=feedback_text,
            )
        )

    percent = percentage(attempt.score, attempt.total_points)
    return AttemptReview(
        attempt=attempt,
        quiz=quiz,
        items=items,
        trailing_sections=resolved.trailing_sections,
        percentage=percent,
        grade=normalized_grade(attempt.score, attempt.total_points, quiz.max_grade),
        passed=is_passing(percent),
    )


def _review_options_for(question: Question, selected: int, quiz: QuizDefinition) -> list[ReviewOption]:
    flags = quiz.review_options
    secondary = question.secondary_options or []
    options = []
    for index, text in enumerate(question.options):
        is_selected = index == selected
        is_right = index == question.correct_option_index

        highlight = OptionHighlight.NONE
        if flags.show_whether_correct:
            if is_selected:
                highlight = OptionHighlight.CORRECT_PICK if is_right else OptionHighlight.INCORRECT_PICK
            elif is_right and flags.show_right_answer:
                highlight = OptionHighlight.MISSED_CORRECT
        elif is_selected:
            highlight = OptionHighlight.SELECTED

        options.append(
            ReviewOption(
                index=index,
                text=text,
                secondary_text=secondary[index] if index < len(secondary) else None,
                is_selected=is_selected,
                highlight=highlight,
            )
        )
    return options
