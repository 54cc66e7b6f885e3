"""Business logic shared between the HTTP API and the countdown driver."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import random
from threading import Lock
from uuid import uuid4

from quiz_admin.constants.quiz_constants import LOW_TIME_WARNING_SECONDS
from quiz_admin.core import quiz_editor
from quiz_admin.core.document_store import DocumentStore, InMemoryDocumentStore
from quiz_admin.core.models import Attempt, Question, QuizDefinition, ReviewOptions, Section
from quiz_admin.core.question_resolution import ResolvedQuestion
from quiz_admin.core.quiz_editor import InsertionAnchor, InsertionResult, RandomSelection
from quiz_admin.core.results_review import AttemptReview, build_review
from quiz_admin.core.services.attempt_engine import (
    AttemptEngine,
    AttemptState,
    AttemptSubmissionError,
    Clock,
    SubmitTrigger,
)
from quiz_admin.core.services.attempt_repository import AttemptRepository
from quiz_admin.core.services.gradebook import Gradebook, GradebookRow, StudentSummary
from quiz_admin.core.services.question_bank import QuestionBank
from quiz_admin.core.services.quiz_catalog import QuizCatalog

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AttemptStatus:
    """Snapshot of a live attempt for display."""

    session_id: str
    quiz_id: str
    quiz_title: str
    student_id: str
    state: AttemptState
    cursor: int
    question_count: int
    answers: tuple[int, ...]
    remaining_seconds: int
    current_item: ResolvedQuestion | None
    attempt_id: str | None = None

    @property
    def low_time_warning(self) -> bool:
        return self.state is AttemptState.IN_PROGRESS and 0 < self.remaining_seconds < LOW_TIME_WARNING_SECONDS


@dataclass(slots=True)
class TickReport:
    """Outcome of one pass over the live attempts."""

    expired: list[Attempt] = field(default_factory=list)  # auto-submitted on time expiry
    recovered: list[Attempt] = field(default_factory=list)  # stored by retrying a failed write
    failures: dict[str, str] = field(default_factory=dict)  # session id -> error message


class QuizManager:
    """Facade for quiz services: QuestionBank, QuizCatalog, AttemptRepository and live attempts."""

    def __init__(
        self,
        store: DocumentStore | None = None,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._lock = Lock()
        self._clock = clock
        self._rng = rng

        # Services
        store = store or InMemoryDocumentStore()
        self._bank = QuestionBank(store)
        self._catalog = QuizCatalog(store)
        self._attempts = AttemptRepository(store)
        self._sessions: dict[str, AttemptEngine] = {}

    # --- Question Bank Delegation ---

    def add_question(self, question: Question) -> Question:
        with self._lock:
            return self._bank.add_question(question)

    def update_question(self, question_id: str, question: Question) -> Question:
        with self._lock:
            return self._bank.update_question(question_id, question)

    def delete_question(self, question_id: str) -> None:
        with self._lock:
            self._bank.delete_question(question_id)

    def get_question(self, question_id: str) -> Question | None:
        with self._lock:
            return self._bank.get_question(question_id)

    def list_questions_for_authoring(self, course_id: str | None = None) -> list[Question]:
        with self._lock:
            return self._bank.list_for_authoring(course_id)

    # --- Quiz Catalog Delegation ---

    def create_quiz(self, course_id: str, title: str, **settings) -> QuizDefinition:
        with self._lock:
            return self._catalog.create_quiz(course_id, title, **settings)

    def get_quiz(self, quiz_id: str) -> QuizDefinition | None:
        with self._lock:
            return self._catalog.get_quiz(quiz_id)

    def list_quizzes(self, course_id: str | None = None) -> list[QuizDefinition]:
        with self._lock:
            return self._catalog.list_quizzes(course_id)

    def update_quiz_settings(
        self,
        quiz_id: str,
        title: str | None = None,
        description: str | None = None,
        duration_minutes: int | None = None,
        max_grade: float | None = None,
        review_options: ReviewOptions | None = None,
    ) -> QuizDefinition:
        with self._lock:
            quiz = self._catalog.require_quiz(quiz_id)
            if title is not None:
                quiz.title = title.strip()
            if description is not None:
                quiz.description = description
            if duration_minutes is not None:
                quiz.duration_minutes = duration_minutes
            if max_grade is not None:
                quiz.max_grade = max_grade
            if review_options is not None:
                quiz.review_options = review_options
            return self._catalog.save_quiz(quiz)

    def delete_quiz(self, quiz_id: str) -> None:
        with self._lock:
            self._catalog.delete_quiz(quiz_id)

    # --- Authoring ---

    def add_questions_to_quiz(self, quiz_id: str, question_ids: list[str], anchor: InsertionAnchor) -> InsertionResult:
        with self._lock:
            quiz = self._catalog.require_quiz(quiz_id)
            result = quiz_editor.insert_questions(quiz, question_ids, anchor)
            if result.inserted_ids:
                self._catalog.save_quiz(result.quiz)
            return result

    def add_random_questions(
        self,
        quiz_id: str,
        count: int,
        anchor: InsertionAnchor,
        scope: str | None = None,
    ) -> RandomSelection:
        with self._lock:
            quiz = self._catalog.require_quiz(quiz_id)
            selection = quiz_editor.add_random_questions(
                quiz,
                self._bank.list_questions(),
                count,
                anchor,
                scope=scope,
                rng=self._rng,
            )
            if selection.found_none:
                logger.info("No eligible questions to add to quiz %s (scope=%s)", quiz_id, scope)
            elif selection.selected_ids:
                self._catalog.save_quiz(selection.quiz)
            return selection

    def remove_question_from_quiz(self, quiz_id: str, question_id: str) -> QuizDefinition:
        with self._lock:
            quiz = self._catalog.require_quiz(quiz_id)
            return self._catalog.save_quiz(quiz_editor.remove_question(quiz, question_id))

    def add_section(self, quiz_id: str, title: str, anchor: InsertionAnchor) -> Section:
        with self._lock:
            quiz = self._catalog.require_quiz(quiz_id)
            updated, section = quiz_editor.add_section(quiz, title, anchor)
            self._catalog.save_quiz(updated)
            return section

    def remove_section(self, quiz_id: str, section_id: str) -> QuizDefinition:
        with self._lock:
            quiz = self._catalog.require_quiz(quiz_id)
            return self._catalog.save_quiz(quiz_editor.remove_section(quiz, section_id))

    def set_section_shuffle(self, quiz_id: str, section_id: str, shuffle: bool) -> QuizDefinition:
        with self._lock:
            quiz = self._catalog.require_quiz(quiz_id)
            return self._catalog.save_quiz(quiz_editor.set_section_shuffle(quiz, section_id, shuffle))

    def set_question_points(self, quiz_id: str, question_id: str, points: float | None) -> QuizDefinition:
        """Override a question's points in one quiz; ``None`` restores its own points."""
        with self._lock:
            quiz = self._catalog.require_quiz(quiz_id)
            if points is None:
                updated = quiz_editor.clear_question_points(quiz, question_id)
            else:
                updated = quiz_editor.set_question_points(quiz, question_id, points)
            return self._catalog.save_quiz(updated)

    # --- Attempt Sessions ---
    # Session ids double as attempt ids, so a finished session can be answered
    # from the attempt repository once its engine has been evicted.

    def start_attempt(self, quiz_id: str, student_id: str) -> AttemptStatus:
        with self._lock:
            quiz = self._catalog.require_quiz(quiz_id)
            session_id = uuid4().hex
            engine = AttemptEngine(
                quiz,
                student_id,
                self._bank,
                self._attempts,
                clock=self._clock,
                attempt_id=session_id,
            )
            engine.start()
            self._sessions[session_id] = engine
            return self._status_for(session_id, engine)

    def get_attempt_status(self, session_id: str) -> AttemptStatus:
        with self._lock:
            engine = self._sessions.get(session_id)
            if engine is None:
                return self._completed_status(session_id, self._require_stored_attempt(session_id))
            engine.tick()
            return self._status_for(session_id, engine)

    def select_option(self, session_id: str, option_index: int) -> AttemptStatus:
        with self._lock:
            engine = self._require_session(session_id)
            engine.select_option(option_index)
            return self._status_for(session_id, engine)

    def navigate(self, session_id: str, position: int) -> AttemptStatus:
        with self._lock:
            engine = self._require_session(session_id)
            engine.go_to(position)
            return self._status_for(session_id, engine)

    def move_next(self, session_id: str) -> AttemptStatus:
        with self._lock:
            engine = self._require_session(session_id)
            engine.move_next()
            return self._status_for(session_id, engine)

    def move_previous(self, session_id: str) -> AttemptStatus:
        with self._lock:
            engine = self._require_session(session_id)
            engine.move_previous()
            return self._status_for(session_id, engine)

    def finish_attempt(self, session_id: str) -> Attempt:
        """Submit manually. Returns the stored attempt even if the timer won the race."""
        with self._lock:
            engine = self._sessions.get(session_id)
            if engine is None:
                return self._require_stored_attempt(session_id)
            attempt = engine.submit(SubmitTrigger.MANUAL)
            if attempt is None:
                attempt = engine.attempt
            if attempt is None:
                raise RuntimeError("The attempt is still being submitted.")
            del self._sessions[session_id]
            return attempt

    def abandon_attempt(self, session_id: str) -> None:
        """Discard a live attempt without writing anything."""
        with self._lock:
            engine = self._sessions.pop(session_id, None)
            if engine is None:
                # Already finished and evicted
                self._require_stored_attempt(session_id)
                return
            if engine.state is AttemptState.COMPLETED:
                return
            logger.info(
                "Attempt abandoned: quiz=%s student=%s state=%s",
                engine.quiz.id,
                engine.student_id,
                engine.state.name,
            )

    def tick_active_attempts(self) -> TickReport:
        """Wake every live attempt: auto-submit expired ones, retry failed writes, evict finished ones."""
        report = TickReport()
        with self._lock:
            for session_id, engine in list(self._sessions.items()):
                if engine.state is AttemptState.COMPLETED:
                    del self._sessions[session_id]
                    continue
                retrying = engine.state is AttemptState.SUBMITTING
                try:
                    if retrying:
                        engine.submit(SubmitTrigger.TIME_EXPIRED)
                    else:
                        engine.tick()
                except AttemptSubmissionError as exc:
                    report.failures[session_id] = str(exc)
                    continue
                except Exception as exc:
                    # Keep ticking the remaining sessions
                    logger.exception("Attempt session %s failed during tick", session_id)
                    report.failures[session_id] = str(exc)
                    continue
                if engine.state is AttemptState.COMPLETED:
                    (report.recovered if retrying else report.expired).append(engine.attempt)
                    del self._sessions[session_id]
        return report

    def active_session_count(self) -> int:
        with self._lock:
            return sum(1 for e in self._sessions.values() if e.state is not AttemptState.COMPLETED)

    def tracked_session_count(self) -> int:
        """Engines still held in memory, including finished ones awaiting eviction."""
        with self._lock:
            return len(self._sessions)

    # --- Results ---

    def get_attempt(self, attempt_id: str) -> Attempt | None:
        with self._lock:
            return self._attempts.get_attempt(attempt_id)

    def review_attempt(self, attempt_id: str) -> AttemptReview:
        with self._lock:
            attempt = self._attempts.get_attempt(attempt_id)
            if attempt is None:
                raise LookupError(f"Attempt {attempt_id} not found")
            quiz = self._catalog.require_quiz(attempt.quiz_id)
            questions = self._bank.get_questions(quiz.question_ids)
            return build_review(attempt, quiz, questions)

    def get_quiz_gradebook(self, quiz_id: str) -> list[GradebookRow]:
        with self._lock:
            quiz = self._catalog.require_quiz(quiz_id)
            gradebook = Gradebook({quiz.id: quiz.max_grade})
            for attempt in self._attempts.list_by_quiz(quiz_id):
                gradebook.record_attempt(attempt)
            return gradebook.get_rows(quiz_id=quiz_id)

    def get_student_results(self, student_id: str) -> tuple[list[GradebookRow], StudentSummary]:
        with self._lock:
            attempts = self._attempts.list_by_student(student_id)
            gradebook = Gradebook()
            for attempt in attempts:
                quiz = self._catalog.get_quiz(attempt.quiz_id)
                gradebook.record_attempt(attempt, quiz.max_grade if quiz else None)
            return gradebook.get_rows(student_id=student_id), gradebook.summarize_student(student_id)

    # --- Helpers ---

    def _require_session(self, session_id: str) -> AttemptEngine:
        engine = self._sessions.get(session_id)
        if engine is None:
            if self._attempts.get_attempt(session_id) is not None:
                raise RuntimeError("Answers are locked once the quiz has been submitted.")
            raise LookupError(f"Attempt session {session_id} not found")
        return engine

    def _require_stored_attempt(self, session_id: str) -> Attempt:
        attempt = self._attempts.get_attempt(session_id)
        if attempt is None:
            raise LookupError(f"Attempt session {session_id} not found")
        return attempt

    def _completed_status(self, session_id: str, attempt: Attempt) -> AttemptStatus:
        quiz = self._catalog.get_quiz(attempt.quiz_id)
        return AttemptStatus(
            session_id=session_id,
            quiz_id=attempt.quiz_id,
            quiz_title=quiz.title if quiz else "",
            student_id=attempt.student_id,
            state=AttemptState.COMPLETED,
            cursor=0,
            question_count=len(attempt.answers),
            answers=attempt.answers,
            remaining_seconds=0,
            current_item=None,
            attempt_id=attempt.id,
        )

    @staticmethod
    def _status_for(session_id: str, engine: AttemptEngine) -> AttemptStatus:
        return AttemptStatus(
            session_id=session_id,
            quiz_id=engine.quiz.id,
            quiz_title=engine.quiz.title,
            student_id=engine.student_id,
            state=engine.state,
            cursor=engine.cursor,
            question_count=engine.question_count,
            answers=engine.answers,
            remaining_seconds=engine.remaining_seconds(),
            current_item=engine.get_current_item(),
            attempt_id=engine.attempt.id if engine.attempt else None,
        )
