"""Turn a quiz's ordered question references into concrete questions.

The quiz's persisted ``question_ids`` order is authoritative for attempts and
reviews. Ids that no longer resolve (the question was deleted from the bank)
are dropped without error, duplicates are kept, and every surviving entry is
paired with the section heading that immediately precedes it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from quiz_admin.core.models import Question, QuizDefinition, Section


@dataclass(slots=True)
class ResolvedQuestion:
    """A question at a concrete position of an attempt."""

    position: int
    question: Question
    section: Section | None = None  # heading rendered immediately before this question


@dataclass(slots=True)
class ResolvedQuiz:
    """The presentation order of a quiz at the moment it was resolved."""

    quiz: QuizDefinition
    items: list[ResolvedQuestion] = field(default_factory=list)
    trailing_sections: list[Section] = field(default_factory=list)

    @property
    def questions(self) -> list[Question]:
        return [item.question for item in self.items]

    def __len__(self) -> int:
        return len(self.items)


def resolve_questions(question_ids: list[str], questions_by_id: Mapping[str, Question]) -> list[Question]:
    """Resolve ids in order, silently omitting the ones missing from the bank."""
    return [questions_by_id[qid] for qid in question_ids if qid in questions_by_id]


def resolve_quiz(quiz: QuizDefinition, questions_by_id: Mapping[str, Question]) -> ResolvedQuiz:
    headings: dict[str, Section] = {}
    trailing: list[Section] = []
    for section in quiz.sections:
        if section.start_question_id is None:
            trailing.append(section)
        else:
            headings.setdefault(section.start_question_id, section)

    items: list[ResolvedQuestion] = []
    placed: set[str] = set()
    for question in resolve_questions(quiz.question_ids, questions_by_id):
        section = None
        if question.id not in placed:
            section = headings.get(question.id)
            placed.add(question.id)
        items.append(ResolvedQuestion(position=len(items), question=question, section=section))

    return ResolvedQuiz(quiz=quiz, items=items, trailing_sections=trailing)


def sort_for_authoring(questions: list[Question]) -> list[Question]:
    """Order bank listings by question number; unnumbered questions come first."""
    return sorted(
        questions,
        key=lambda q: (q.question_number is not None, q.question_number or 0),
    )
