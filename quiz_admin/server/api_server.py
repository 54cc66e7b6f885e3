"""FastAPI server that exposes the student and authoring endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from threading import Thread
from typing import Literal

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field
import uvicorn

from quiz_admin.constants.about import APP_NAME, APP_VERSION
from quiz_admin.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from quiz_admin.constants.quiz_constants import DEFAULT_DURATION_MINUTES, DEFAULT_MAX_GRADE, DEFAULT_QUESTION_POINTS
from quiz_admin.core.markdown_math_renderer import renderer
from quiz_admin.core.models import Attempt, Question, QuizDefinition, ReviewOptions, Section
from quiz_admin.core.quiz_editor import AnchorKind, InsertionAnchor
from quiz_admin.core.quiz_manager import AttemptStatus, QuizManager
from quiz_admin.core.results_review import AttemptReview
from quiz_admin.core.services.attempt_engine import AttemptSubmissionError
from quiz_admin.core.services.gradebook import GradebookRow

logger = logging.getLogger(__name__)


class AnchorPayload(BaseModel):
    """Insertion point: quiz start/end, after a question, or at a section heading."""

    kind: Literal["start", "end", "after_question", "section"] = "end"
    target_id: str | None = None

    def to_anchor(self) -> InsertionAnchor:
        kind = AnchorKind[self.kind.upper()]
        if kind in (AnchorKind.AFTER_QUESTION, AnchorKind.SECTION) and not self.target_id:
            raise ValueError(f"Anchor '{self.kind}' requires a target_id.")
        return InsertionAnchor(kind, self.target_id)


class QuestionPayload(BaseModel):
    course_id: str
    text: str
    options: list[str]
    correct_option_index: int
    points: float = DEFAULT_QUESTION_POINTS
    secondary_text: str | None = None
    secondary_options: list[str] | None = None
    image_url: str | None = None
    question_number: int | None = None

    def to_question(self) -> Question:
        return Question(id="", **self.model_dump())


class ReviewOptionsPayload(BaseModel):
    show_marks: bool = True
    show_whether_correct: bool = True
    show_right_answer: bool = True
    show_feedback: bool = True


class QuizPayload(BaseModel):
    course_id: str
    title: str
    description: str = ""
    duration_minutes: int = DEFAULT_DURATION_MINUTES
    max_grade: float = DEFAULT_MAX_GRADE
    review_options: ReviewOptionsPayload = Field(default_factory=ReviewOptionsPayload)


class QuizSettingsPayload(BaseModel):
    title: str | None = None
    description: str | None = None
    duration_minutes: int | None = None
    max_grade: float | None = None
    review_options: ReviewOptionsPayload | None = None


class InsertQuestionsPayload(BaseModel):
    question_ids: list[str]
    anchor: AnchorPayload = Field(default_factory=AnchorPayload)


class RandomQuestionsPayload(BaseModel):
    count: int = 1
    scope: str | None = None  # course id, "all", or the quiz's own course when omitted
    anchor: AnchorPayload = Field(default_factory=AnchorPayload)


class SectionPayload(BaseModel):
    title: str
    anchor: AnchorPayload = Field(default_factory=AnchorPayload)


class SectionShufflePayload(BaseModel):
    shuffle: bool


class PointsPayload(BaseModel):
    points: float | None = None


class StartAttemptPayload(BaseModel):
    quiz_id: str
    student_id: str


class AnswerPayload(BaseModel):
    """Payload schema for submitted answers."""

    selected_option_index: int


class NavigatePayload(BaseModel):
    direction: Literal["next", "previous"] | None = None
    position: int | None = None


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _serialize_question(question: Question) -> dict[str, object]:
    return {
        "id": question.id,
        "course_id": question.course_id,
        "text": question.text,
        "secondary_text": question.secondary_text,
        "options": question.options,
        "secondary_options": question.secondary_options,
        "correct_option_index": question.correct_option_index,
        "points": question.points,
        "image_url": question.image_url,
        "question_number": question.question_number,
        "created_at": _iso(question.created_at),
    }


def _serialize_section(section: Section) -> dict[str, object]:
    return {
        "id": section.id,
        "title": section.title,
        "start_question_id": section.start_question_id,
        "shuffle": section.shuffle,
    }


def _serialize_quiz(quiz: QuizDefinition) -> dict[str, object]:
    return {
        "id": quiz.id,
        "course_id": quiz.course_id,
        "title": quiz.title,
        "description": quiz.description,
        "question_ids": quiz.question_ids,
        "question_points": quiz.question_points,
        "sections": [_serialize_section(s) for s in quiz.sections],
        "duration_minutes": quiz.duration_minutes,
        "max_grade": quiz.max_grade,
        "review_options": {
            "show_marks": quiz.review_options.show_marks,
            "show_whether_correct": quiz.review_options.show_whether_correct,
            "show_right_answer": quiz.review_options.show_right_answer,
            "show_feedback": quiz.review_options.show_feedback,
        },
        "created_at": _iso(quiz.created_at),
    }


def _serialize_attempt(attempt: Attempt) -> dict[str, object]:
    return {
        "id": attempt.id,
        "quiz_id": attempt.quiz_id,
        "student_id": attempt.student_id,
        "answers": list(attempt.answers),
        "score": attempt.score,
        "total_points": attempt.total_points,
        "started_at": _iso(attempt.started_at),
        "completed_at": _iso(attempt.completed_at),
        "duration_seconds": attempt.duration_seconds,
    }


def _serialize_status(status: AttemptStatus) -> dict[str, object]:
    question = None
    item = status.current_item
    if item is not None:
        # Never send the answer key to the student page
        question = {
            "id": item.question.id,
            "position": item.position,
            "question_number": item.question.question_number,
            "section_title": item.section.title if item.section else None,
            **renderer.render_question(item.question),
        }
    return {
        "session_id": status.session_id,
        "quiz_id": status.quiz_id,
        "quiz_title": status.quiz_title,
        "student_id": status.student_id,
        "state": status.state.name.lower(),
        "cursor": status.cursor,
        "question_count": status.question_count,
        "answers": list(status.answers),
        "remaining_seconds": status.remaining_seconds,
        "low_time_warning": status.low_time_warning,
        "question": question,
        "attempt_id": status.attempt_id,
    }


def _serialize_review(review: AttemptReview) -> dict[str, object]:
    items = []
    for item in review.items:
        items.append(
            {
                "position": item.position,
                "question_id": item.question.id,
                "section_title": item.section.title if item.section else None,
                "question_html": renderer.render_fragment(item.question.text),
                "image_url": item.question.image_url,
                "selected_index": item.selected_index,
                "marks": (
                    {"earned": item.earned_points, "possible": item.possible_points}
                    if item.show_marks
                    else None
                ),
                "options": [
                    {
                        "index": option.index,
                        "text": option.text,
                        "secondary_text": option.secondary_text,
                        "is_selected": option.is_selected,
                        "highlight": option.highlight.value,
                    }
                    for option in item.options
                ],
                "feedback": item.feedback_text,
            }
        )
    return {
        "attempt": _serialize_attempt(review.attempt),
        "quiz_title": review.quiz.title,
        "percentage": review.percentage,
        "grade": review.grade,
        "max_grade": review.quiz.max_grade,
        "passed": review.passed,
        "items": items,
        "trailing_sections": [s.title for s in review.trailing_sections],
    }


def _serialize_row(row: GradebookRow) -> dict[str, object]:
    return {
        "attempt_id": row.attempt_id,
        "quiz_id": row.quiz_id,
        "student_id": row.student_id,
        "score": row.score,
        "total_points": row.total_points,
        "grade": row.grade,
        "percentage": row.percentage,
        "status": "passed" if row.passed else "review",
        "started_at": _iso(row.started_at),
        "completed_at": _iso(row.completed_at),
    }


def _raise_http(exc: Exception) -> None:
    if isinstance(exc, AttemptSubmissionError):
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if isinstance(exc, LookupError) and not isinstance(exc, IndexError):
        raise HTTPException(status_code=404, detail=str(exc).strip("'\"")) from exc
    if isinstance(exc, (ValueError, IndexError)):
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    if isinstance(exc, RuntimeError):
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    raise exc


def _get_quiz_manager_dependency(quiz_manager: QuizManager):
    def dependency() -> QuizManager:
        return quiz_manager

    return dependency


def create_api_app(quiz_manager: QuizManager) -> FastAPI:
    """Create a FastAPI application wired to the provided quiz manager."""
    app = FastAPI(title=f"{APP_NAME} API", version=APP_VERSION)
    quiz_manager_dep = _get_quiz_manager_dependency(quiz_manager)
    handled = (LookupError, ValueError, RuntimeError)

    @app.get("/health")
    def health(manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        return {
            "status": "healthy",
            "active_attempts": manager.active_session_count(),
            "tracked_sessions": manager.tracked_session_count(),
        }

    # --- Question bank ---

    @app.post("/questions", status_code=201)
    def create_question(payload: QuestionPayload, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        try:
            return _serialize_question(manager.add_question(payload.to_question()))
        except handled as exc:
            _raise_http(exc)

    @app.get("/questions")
    def list_questions(course_id: str | None = None, manager: QuizManager = Depends(quiz_manager_dep)) -> list[dict[str, object]]:
        return [_serialize_question(q) for q in manager.list_questions_for_authoring(course_id)]

    @app.delete("/questions/{question_id}", status_code=204)
    def delete_question(question_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> None:
        try:
            manager.delete_question(question_id)
        except handled as exc:
            _raise_http(exc)

    # --- Quizzes ---

    @app.post("/quizzes", status_code=201)
    def create_quiz(payload: QuizPayload, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        try:
            quiz = manager.create_quiz(
                payload.course_id,
                payload.title,
                description=payload.description,
                duration_minutes=payload.duration_minutes,
                max_grade=payload.max_grade,
                review_options=ReviewOptions(**payload.review_options.model_dump()),
            )
        except handled as exc:
            _raise_http(exc)
        return _serialize_quiz(quiz)

    @app.get("/quizzes")
    def list_quizzes(course_id: str | None = None, manager: QuizManager = Depends(quiz_manager_dep)) -> list[dict[str, object]]:
        return [_serialize_quiz(q) for q in manager.list_quizzes(course_id)]

    @app.get("/quizzes/{quiz_id}")
    def get_quiz(quiz_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        quiz = manager.get_quiz(quiz_id)
        if quiz is None:
            raise HTTPException(status_code=404, detail="Quiz not found")
        return _serialize_quiz(quiz)

    @app.patch("/quizzes/{quiz_id}")
    def update_quiz(quiz_id: str, payload: QuizSettingsPayload, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        review_options = ReviewOptions(**payload.review_options.model_dump()) if payload.review_options else None
        try:
            quiz = manager.update_quiz_settings(
                quiz_id,
                title=payload.title,
                description=payload.description,
                duration_minutes=payload.duration_minutes,
                max_grade=payload.max_grade,
                review_options=review_options,
            )
        except handled as exc:
            _raise_http(exc)
        return _serialize_quiz(quiz)

    @app.delete("/quizzes/{quiz_id}", status_code=204)
    def delete_quiz(quiz_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> None:
        try:
            manager.delete_quiz(quiz_id)
        except handled as exc:
            _raise_http(exc)

    @app.post("/quizzes/{quiz_id}/questions")
    def insert_questions(quiz_id: str, payload: InsertQuestionsPayload, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        try:
            result = manager.add_questions_to_quiz(quiz_id, payload.question_ids, payload.anchor.to_anchor())
        except handled as exc:
            _raise_http(exc)
        return {"inserted_ids": result.inserted_ids, "quiz": _serialize_quiz(result.quiz)}

    @app.post("/quizzes/{quiz_id}/random-questions")
    def insert_random_questions(quiz_id: str, payload: RandomQuestionsPayload, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        try:
            selection = manager.add_random_questions(quiz_id, payload.count, payload.anchor.to_anchor(), scope=payload.scope)
        except handled as exc:
            _raise_http(exc)
        return {
            "inserted_ids": selection.selected_ids,
            "found_none": selection.found_none,
            "detail": "No eligible questions found for this scope." if selection.found_none else None,
            "quiz": _serialize_quiz(selection.quiz),
        }

    @app.delete("/quizzes/{quiz_id}/questions/{question_id}")
    def remove_question(quiz_id: str, question_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        try:
            return _serialize_quiz(manager.remove_question_from_quiz(quiz_id, question_id))
        except handled as exc:
            _raise_http(exc)

    @app.put("/quizzes/{quiz_id}/points/{question_id}")
    def set_points(quiz_id: str, question_id: str, payload: PointsPayload, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        try:
            return _serialize_quiz(manager.set_question_points(quiz_id, question_id, payload.points))
        except handled as exc:
            _raise_http(exc)

    @app.post("/quizzes/{quiz_id}/sections", status_code=201)
    def create_section(quiz_id: str, payload: SectionPayload, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        try:
            return _serialize_section(manager.add_section(quiz_id, payload.title, payload.anchor.to_anchor()))
        except handled as exc:
            _raise_http(exc)

    @app.put("/quizzes/{quiz_id}/sections/{section_id}/shuffle")
    def shuffle_section(quiz_id: str, section_id: str, payload: SectionShufflePayload, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        try:
            return _serialize_quiz(manager.set_section_shuffle(quiz_id, section_id, payload.shuffle))
        except handled as exc:
            _raise_http(exc)

    @app.delete("/quizzes/{quiz_id}/sections/{section_id}")
    def delete_section(quiz_id: str, section_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        try:
            return _serialize_quiz(manager.remove_section(quiz_id, section_id))
        except handled as exc:
            _raise_http(exc)

    @app.get("/quizzes/{quiz_id}/gradebook")
    def quiz_gradebook(quiz_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> list[dict[str, object]]:
        try:
            return [_serialize_row(row) for row in manager.get_quiz_gradebook(quiz_id)]
        except handled as exc:
            _raise_http(exc)

    # --- Attempts ---

    @app.post("/attempts", status_code=201)
    def start_attempt(payload: StartAttemptPayload, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        try:
            return _serialize_status(manager.start_attempt(payload.quiz_id, payload.student_id))
        except handled as exc:
            _raise_http(exc)

    @app.get("/attempts/{session_id}")
    def attempt_status(session_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        try:
            return _serialize_status(manager.get_attempt_status(session_id))
        except handled as exc:
            _raise_http(exc)

    @app.post("/attempts/{session_id}/answer")
    def submit_answer(session_id: str, payload: AnswerPayload, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        try:
            return _serialize_status(manager.select_option(session_id, payload.selected_option_index))
        except handled as exc:
            _raise_http(exc)

    @app.post("/attempts/{session_id}/navigate")
    def navigate(session_id: str, payload: NavigatePayload, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        try:
            if payload.direction == "next":
                status = manager.move_next(session_id)
            elif payload.direction == "previous":
                status = manager.move_previous(session_id)
            elif payload.position is not None:
                status = manager.navigate(session_id, payload.position)
            else:
                raise ValueError("Provide a direction or a position.")
        except handled as exc:
            _raise_http(exc)
        return _serialize_status(status)

    @app.post("/attempts/{session_id}/finish", status_code=201)
    def finish_attempt(session_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        try:
            return _serialize_attempt(manager.finish_attempt(session_id))
        except handled as exc:
            _raise_http(exc)

    @app.delete("/attempts/{session_id}", status_code=204)
    def abandon_attempt(session_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> None:
        try:
            manager.abandon_attempt(session_id)
        except handled as exc:
            _raise_http(exc)

    # --- Results ---

    @app.get("/results/{attempt_id}")
    def review_attempt(attempt_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        try:
            return _serialize_review(manager.review_attempt(attempt_id))
        except handled as exc:
            _raise_http(exc)

    @app.get("/students/{student_id}/results")
    def student_results(student_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        rows, summary = manager.get_student_results(student_id)
        return {
            "attempts": [_serialize_row(row) for row in rows],
            "attempts_completed": summary.attempts_completed,
            "quizzes_attempted": summary.quizzes_attempted,
            "average_percentage": summary.average_percentage,
        }

    return app


def start_api_server(
    quiz_manager: QuizManager,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> Thread:
    """Start the FastAPI server in a background daemon thread."""
    app = create_api_app(quiz_manager)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)

    def run_server() -> None:
        server.run()

    thread = Thread(target=run_server, name="QuizApiServer", daemon=True)
    thread.start()
    logger.info("API server listening on %s:%d", host, port)
    return thread
