"""Service that runs one student's timed pass through a quiz."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum, auto
import logging
import math
from threading import Lock
from typing import Callable
from uuid import uuid4

from quiz_admin.constants.quiz_constants import UNANSWERED
from quiz_admin.core.document_store import DocumentStoreError
from quiz_admin.core.models import Attempt, Question, QuizDefinition, utc_now
from quiz_admin.core.question_resolution import ResolvedQuestion, ResolvedQuiz, resolve_quiz
from quiz_admin.core.scoring import score_answers
from quiz_admin.core.services.attempt_repository import AttemptRepository
from quiz_admin.core.services.question_bank import QuestionBank

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class AttemptState(Enum):
    NOT_STARTED = auto()
    IN_PROGRESS = auto()
    SUBMITTING = auto()
    COMPLETED = auto()


class SubmitTrigger(Enum):
    MANUAL = "manual"
    TIME_EXPIRED = "time_expired"


class AttemptSubmissionError(RuntimeError):
    """The attempt could not be persisted. Answers are kept; submitting again retries."""


class AttemptEngine:
    """State machine for a single timed attempt.

    ``NOT_STARTED -> IN_PROGRESS -> SUBMITTING -> COMPLETED``. Remaining time is
    always derived from the recorded start instant and the clock, so missed
    ticks never drift the countdown. Manual finishing and time expiry share
    ``submit``; a latch lets only the first trigger write the attempt.
    """

    def __init__(
        self,
        quiz: QuizDefinition,
        student_id: str,
        question_bank: QuestionBank,
        attempt_repository: AttemptRepository,
        clock: Clock | None = None,
        attempt_id: str | None = None,
    ) -> None:
        self._quiz = quiz
        self._attempt_id = attempt_id or uuid4().hex
        self._student_id = student_id
        self._question_bank = question_bank
        self._attempt_repository = attempt_repository
        self._clock: Clock = clock or utc_now

        self._state = AttemptState.NOT_STARTED
        self._resolved: ResolvedQuiz | None = None
        self._answers: list[int] = []
        self._cursor: int = 0
        self._started_at: datetime | None = None
        self._deadline: datetime | None = None

        # Submission latch
        self._latch = Lock()
        self._write_pending: bool = False
        self._frozen_attempt: Attempt | None = None
        self._attempt: Attempt | None = None

    # --- Lifecycle ---

    def start(self) -> ResolvedQuiz:
        if self._state is not AttemptState.NOT_STARTED:
            raise RuntimeError("Attempt has already been started.")

        questions = self._question_bank.get_questions(self._quiz.question_ids)
        self._resolved = resolve_quiz(self._quiz, questions)
        self._answers = [UNANSWERED] * len(self._resolved)
        self._cursor = 0
        self._started_at = self._clock()
        self._deadline = self._started_at + timedelta(seconds=self._quiz.duration_seconds)
        self._state = AttemptState.IN_PROGRESS
        logger.info(
            "Attempt started: quiz=%s student=%s questions=%d duration=%ds",
            self._quiz.id,
            self._student_id,
            len(self._resolved),
            self._quiz.duration_seconds,
        )
        return self._resolved

    @property
    def state(self) -> AttemptState:
        return self._state

    @property
    def quiz(self) -> QuizDefinition:
        return self._quiz

    @property
    def student_id(self) -> str:
        return self._student_id

    @property
    def started_at(self) -> datetime | None:
        return self._started_at

    @property
    def attempt(self) -> Attempt | None:
        """The persisted attempt once the engine is completed."""
        return self._attempt

    # --- Navigation and answers ---

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def question_count(self) -> int:
        return len(self._answers)

    @property
    def answers(self) -> tuple[int, ...]:
        return tuple(self._answers)

    @property
    def is_on_final_question(self) -> bool:
        return self._cursor >= len(self._answers) - 1

    def get_current_item(self) -> ResolvedQuestion | None:
        if self._resolved is None or not self._resolved.items:
            return None
        return self._resolved.items[self._cursor]

    def get_current_question(self) -> Question | None:
        item = self.get_current_item()
        return item.question if item else None

    def select_option(self, option_index: int) -> None:
        """Record (or replace) the answer for the question under the cursor."""
        self._require_in_progress()
        question = self.get_current_question()
        if question is None:
            raise RuntimeError("This quiz has no questions to answer.")
        if not 0 <= option_index < len(question.options):
            raise ValueError(f"Option index must be between 0 and {len(question.options) - 1}.")
        self._answers[self._cursor] = option_index

    def move_next(self) -> int:
        return self.go_to(self._cursor + 1)

    def move_previous(self) -> int:
        return self.go_to(self._cursor - 1)

    def go_to(self, position: int) -> int:
        self._require_in_progress()
        if not 0 <= position < len(self._answers):
            raise IndexError(f"Question position {position} out of range")
        self._cursor = position
        return self._cursor

    # --- Timing ---

    def remaining_time(self) -> timedelta:
        """Signed time left; negative once the deadline has passed."""
        if self._deadline is None:
            return timedelta(seconds=self._quiz.duration_seconds)
        return self._deadline - self._clock()

    def remaining_seconds(self) -> int:
        return max(0, math.ceil(self.remaining_time().total_seconds()))

    def is_time_expired(self) -> bool:
        return self._deadline is not None and self.remaining_time() <= timedelta(0)

    def tick(self) -> int:
        """Periodic wake-up: recompute the countdown and auto-submit at zero."""
        if self._state is AttemptState.IN_PROGRESS and self.is_time_expired():
            logger.info("Time limit reached for quiz=%s student=%s", self._quiz.id, self._student_id)
            self.submit(SubmitTrigger.TIME_EXPIRED)
        return self.remaining_seconds()

    # --- Submission ---

    def submit(self, trigger: SubmitTrigger = SubmitTrigger.MANUAL) -> Attempt | None:
        """Score and persist the attempt.

        Returns the stored attempt, or ``None`` when another trigger already
        owns the submission. Raises ``AttemptSubmissionError`` if the write
        fails; the engine then stays in ``SUBMITTING`` with its answers frozen.
        """
        with self._latch:
            if self._state is AttemptState.NOT_STARTED:
                raise RuntimeError("Attempt has not been started.")
            if self._state is AttemptState.COMPLETED or self._write_pending:
                logger.debug("Ignoring %s submission for quiz=%s; already submitted", trigger.value, self._quiz.id)
                return None
            if self._state is AttemptState.IN_PROGRESS:
                if trigger is SubmitTrigger.MANUAL and not self.is_on_final_question and not self.is_time_expired():
                    raise RuntimeError("Move to the final question before finishing the quiz.")
                self._frozen_attempt = self._build_attempt()
                self._state = AttemptState.SUBMITTING
            self._write_pending = True
            attempt = self._frozen_attempt

        try:
            self._attempt_repository.create_attempt(attempt)
        except DocumentStoreError as exc:
            logger.warning(
                "Could not store attempt %s for quiz=%s student=%s: %s",
                attempt.id,
                self._quiz.id,
                self._student_id,
                exc,
            )
            raise AttemptSubmissionError("The attempt could not be saved. Please try submitting again.") from exc
        else:
            with self._latch:
                self._attempt = attempt
                self._state = AttemptState.COMPLETED
            logger.info(
                "Attempt %s submitted (%s): score %s/%s",
                attempt.id,
                trigger.value,
                attempt.score,
                attempt.total_points,
            )
            return attempt
        finally:
            with self._latch:
                self._write_pending = False

    def _build_attempt(self) -> Attempt:
        result = score_answers(self._quiz, self._resolved.questions, self._answers)
        completed_at = max(self._clock(), self._started_at)
        return Attempt(
            id=self._attempt_id,
            quiz_id=self._quiz.id,
            student_id=self._student_id,
            answers=tuple(self._answers),
            score=result.score,
            total_points=result.total_points,
            started_at=self._started_at,
            completed_at=completed_at,
        )

    def _require_in_progress(self) -> None:
        if self._state is AttemptState.SUBMITTING or self._state is AttemptState.COMPLETED:
            raise RuntimeError("Answers are locked once the quiz has been submitted.")
        if self._state is not AttemptState.IN_PROGRESS:
            raise RuntimeError("Attempt has not been started.")
        if self.is_time_expired():
            self.submit(SubmitTrigger.TIME_EXPIRED)
            raise RuntimeError("Time limit reached; the quiz has been submitted.")
