"""Authoring operations on a quiz's question order and section headings.

Every function here is pure: it takes a ``QuizDefinition`` value and returns
an updated copy for the caller to persist. The input quiz is never mutated.

Section headings are anchored to the question they precede. Inserting at a
section splices the new questions in front of that question and moves the
anchor to the first inserted one, so the heading keeps introducing the same
block of content. Removing a question does not touch anchors; a heading
whose question disappeared is simply not rendered.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum, auto
import math
import random
from uuid import uuid4

from quiz_admin.constants.quiz_constants import ALL_COURSES
from quiz_admin.core.models import Question, QuizDefinition, Section


class AnchorKind(Enum):
    START = auto()
    END = auto()
    AFTER_QUESTION = auto()
    SECTION = auto()


@dataclass(frozen=True, slots=True)
class InsertionAnchor:
    """Where new questions or headings go in a quiz."""

    kind: AnchorKind
    target_id: str | None = None

    @classmethod
    def start(cls) -> "InsertionAnchor":
        return cls(AnchorKind.START)

    @classmethod
    def end(cls) -> "InsertionAnchor":
        return cls(AnchorKind.END)

    @classmethod
    def after_question(cls, question_id: str) -> "InsertionAnchor":
        return cls(AnchorKind.AFTER_QUESTION, question_id)

    @classmethod
    def section(cls, section_id: str) -> "InsertionAnchor":
        return cls(AnchorKind.SECTION, section_id)


@dataclass(slots=True)
class InsertionResult:
    quiz: QuizDefinition
    inserted_ids: list[str] = field(default_factory=list)


@dataclass(slots=True)
class RandomSelection:
    quiz: QuizDefinition
    selected_ids: list[str] = field(default_factory=list)
    pool_size: int = 0

    @property
    def found_none(self) -> bool:
        """True when no eligible question was left to add."""
        return self.pool_size == 0


def _copy_quiz(quiz: QuizDefinition, **changes) -> QuizDefinition:
    fields = {
        "question_ids": list(quiz.question_ids),
        "question_points": dict(quiz.question_points),
        "sections": [replace(s) for s in quiz.sections],
    }
    fields.update(changes)
    return replace(quiz, **fields)


def insert_questions(quiz: QuizDefinition, question_ids: list[str], anchor: InsertionAnchor) -> InsertionResult:
    """Splice ``question_ids`` into the quiz at ``anchor``, skipping ids already present."""
    new_ids: list[str] = []
    for qid in question_ids:
        if qid not in quiz.question_ids and qid not in new_ids:
            new_ids.append(qid)
    if not new_ids:
        return InsertionResult(quiz=quiz)

    sequence = list(quiz.question_ids)
    sections = [replace(s) for s in quiz.sections]
    position = len(sequence)

    if anchor.kind is AnchorKind.START:
        position = 0
    elif anchor.kind is AnchorKind.AFTER_QUESTION and anchor.target_id in sequence:
        position = sequence.index(anchor.target_id) + 1
    elif anchor.kind is AnchorKind.SECTION:
        section = next((s for s in sections if s.id == anchor.target_id), None)
        if section is not None and section.start_question_id is not None:
            if section.start_question_id in sequence:
                position = sequence.index(section.start_question_id)
            section.start_question_id = new_ids[0]

    sequence[position:position] = new_ids
    return InsertionResult(
        quiz=_copy_quiz(quiz, question_ids=sequence, sections=sections),
        inserted_ids=new_ids,
    )


def remove_question(quiz: QuizDefinition, question_id: str) -> QuizDefinition:
    """Drop every occurrence of ``question_id`` and its point override."""
    updated = _copy_quiz(quiz)
    updated.question_ids = [qid for qid in quiz.question_ids if qid != question_id]
    updated.question_points.pop(question_id, None)
    return updated


def add_section(quiz: QuizDefinition, title: str, anchor: InsertionAnchor) -> tuple[QuizDefinition, Section]:
    cleaned_title = title.strip()
    if not cleaned_title:
        raise ValueError("Section title must not be empty.")

    sequence = quiz.question_ids
    if anchor.kind is AnchorKind.START:
        start_question_id = sequence[0] if sequence else None
    elif anchor.kind is AnchorKind.END:
        start_question_id = None
    elif anchor.kind is AnchorKind.AFTER_QUESTION:
        index = sequence.index(anchor.target_id) if anchor.target_id in sequence else -1
        following = index + 1
        start_question_id = sequence[following] if following < len(sequence) else None
    else:
        raise ValueError("A section heading cannot be anchored to another section.")

    section = Section(id=uuid4().hex, title=cleaned_title, start_question_id=start_question_id)
    updated = _copy_quiz(quiz)
    updated.sections.append(section)
    return updated, section


def remove_section(quiz: QuizDefinition, section_id: str) -> QuizDefinition:
    if quiz.find_section(section_id) is None:
        raise LookupError(f"Section {section_id} not found")
    return _copy_quiz(quiz, sections=[replace(s) for s in quiz.sections if s.id != section_id])


def set_section_shuffle(quiz: QuizDefinition, section_id: str, shuffle: bool) -> QuizDefinition:
    updated = _copy_quiz(quiz)
    section = updated.find_section(section_id)
    if section is None:
        raise LookupError(f"Section {section_id} not found")
    section.shuffle = bool(shuffle)
    return updated


def set_question_points(quiz: QuizDefinition, question_id: str, points: float) -> QuizDefinition:
    """Override a question's weight within this quiz.

    Non-finite values are stored as 0; negative values are rejected.
    """
    if question_id not in quiz.question_ids:
        raise LookupError(f"Question {question_id} is not part of quiz {quiz.id}")
    value = float(points)
    if value < 0:
        raise ValueError("Question points cannot be negative.")
    updated = _copy_quiz(quiz)
    updated.question_points[question_id] = value if math.isfinite(value) else 0.0
    return updated


def clear_question_points(quiz: QuizDefinition, question_id: str) -> QuizDefinition:
    updated = _copy_quiz(quiz)
    updated.question_points.pop(question_id, None)
    return updated


def eligible_pool(quiz: QuizDefinition, candidates: list[Question], scope: str | None = None) -> list[Question]:
    """Questions in scope that the quiz does not already use.

    ``scope`` is a course id, ``ALL_COURSES``, or ``None`` for the quiz's own course.
    """
    course_id = quiz.course_id if scope is None else scope
    present = set(quiz.question_ids)
    return [
        q for q in candidates
        if (course_id == ALL_COURSES or q.course_id == course_id) and q.id not in present
    ]


def add_random_questions(
    quiz: QuizDefinition,
    candidates: list[Question],
    count: int,
    anchor: InsertionAnchor,
    scope: str | None = None,
    rng: random.Random | None = None,
) -> RandomSelection:
    if count < 1:
        raise ValueError("At least one random question must be requested.")

    pool = eligible_pool(quiz, candidates, scope)
    if not pool:
        return RandomSelection(quiz=quiz)

    chooser = rng or random.SystemRandom()
    picked = chooser.sample(pool, min(count, len(pool)))
    result = insert_questions(quiz, [q.id for q in picked], anchor)
    return RandomSelection(quiz=result.quiz, selected_ids=result.inserted_ids, pool_size=len(pool))
