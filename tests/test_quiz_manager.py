import pytest

from quiz_admin.constants.quiz_constants import ALL_COURSES, UNANSWERED
from quiz_admin.core.document_store import ATTEMPTS
from quiz_admin.core.models import ReviewOptions
from quiz_admin.core.quiz_editor import InsertionAnchor
from quiz_admin.core.services.attempt_engine import AttemptState, AttemptSubmissionError
from tests.conftest import make_question


@pytest.fixture
def quiz_with_questions(manager):
    q1 = manager.add_question(make_question(points=1, correct=1))
    q2 = manager.add_question(make_question(points=2, correct=2))
    quiz = manager.create_quiz("course-1", "Weekly check", duration_minutes=5)
    manager.add_questions_to_quiz(quiz.id, [q1.id, q2.id], InsertionAnchor.end())
    return manager.get_quiz(quiz.id), (q1, q2)


def test_authoring_changes_are_persisted(manager, quiz_with_questions):
    quiz, (q1, q2) = quiz_with_questions
    section = manager.add_section(quiz.id, "Part 2", InsertionAnchor.after_question(q1.id))
    manager.set_question_points(quiz.id, q2.id, 4)
    manager.set_section_shuffle(quiz.id, section.id, True)

    stored = manager.get_quiz(quiz.id)

    assert stored.question_ids == [q1.id, q2.id]
    assert stored.question_points == {q2.id: 4}
    assert stored.find_section(section.id).start_question_id == q2.id
    assert stored.find_section(section.id).shuffle is True

    manager.set_question_points(quiz.id, q2.id, None)
    manager.remove_section(quiz.id, section.id)
    manager.remove_question_from_quiz(quiz.id, q1.id)
    stored = manager.get_quiz(quiz.id)
    assert stored.question_ids == [q2.id]
    assert stored.question_points == {}
    assert stored.sections == []


def test_update_quiz_settings(manager, quiz_with_questions):
    quiz, _ = quiz_with_questions
    updated = manager.update_quiz_settings(
        quiz.id,
        title=" Final exam ",
        duration_minutes=45,
        review_options=ReviewOptions(show_marks=False),
    )
    assert updated.title == "Final exam"
    assert manager.get_quiz(quiz.id).duration_minutes == 45
    assert manager.get_quiz(quiz.id).review_options.show_marks is False
    with pytest.raises(ValueError):
        manager.update_quiz_settings(quiz.id, duration_minutes=0)
    with pytest.raises(LookupError):
        manager.update_quiz_settings("missing", title="x")


def test_random_questions_are_drawn_and_saved(manager):
    quiz = manager.create_quiz("course-1", "Random")
    for _ in range(3):
        manager.add_question(make_question())
    manager.add_question(make_question(course_id="course-2"))

    selection = manager.add_random_questions(quiz.id, 10, InsertionAnchor.end())
    assert len(selection.selected_ids) == 3
    assert manager.get_quiz(quiz.id).question_ids == selection.selected_ids

    selection = manager.add_random_questions(quiz.id, 10, InsertionAnchor.end(), scope=ALL_COURSES)
    assert len(selection.selected_ids) == 1
    assert manager.add_random_questions(quiz.id, 1, InsertionAnchor.end()).found_none


def test_attempt_flow_through_the_manager(manager, quiz_with_questions, clock):
    quiz, _ = quiz_with_questions
    status = manager.start_attempt(quiz.id, "student-1")

    assert status.state is AttemptState.IN_PROGRESS
    assert status.question_count == 2
    assert status.answers == (UNANSWERED, UNANSWERED)
    assert status.remaining_seconds == 300
    assert status.low_time_warning is False

    clock.advance(1)
    assert manager.get_attempt_status(status.session_id).low_time_warning is True
    manager.select_option(status.session_id, 1)
    manager.move_next(status.session_id)
    status = manager.select_option(status.session_id, 2)
    assert status.answers == (1, 2)
    assert manager.move_previous(status.session_id).cursor == 0
    assert manager.navigate(status.session_id, 1).cursor == 1

    clock.advance(42)
    attempt = manager.finish_attempt(status.session_id)

    assert attempt.score == attempt.total_points == 3
    assert attempt.duration_seconds == 43
    assert manager.get_attempt(attempt.id) == attempt
    assert manager.get_attempt_status(status.session_id).attempt_id == attempt.id
    assert manager.active_session_count() == 0


def test_tick_auto_submits_expired_attempts_once(manager, quiz_with_questions, clock):
    quiz, _ = quiz_with_questions
    status = manager.start_attempt(quiz.id, "student-1")
    manager.select_option(status.session_id, 1)

    clock.advance(299)
    assert manager.tick_active_attempts().expired == []
    clock.advance(1)
    report = manager.tick_active_attempts()

    assert [a.quiz_id for a in report.expired] == [quiz.id]
    assert report.expired[0].score == 1
    assert manager.tick_active_attempts().expired == []
    status = manager.get_attempt_status(status.session_id)
    assert status.state is AttemptState.COMPLETED
    assert status.attempt_id == report.expired[0].id


def test_finish_after_timer_returns_the_stored_attempt(manager, quiz_with_questions, clock):
    quiz, _ = quiz_with_questions
    status = manager.start_attempt(quiz.id, "student-1")
    clock.advance(400)
    report = manager.tick_active_attempts()

    attempt = manager.finish_attempt(status.session_id)

    assert attempt == report.expired[0]
    assert len(manager.get_quiz_gradebook(quiz.id)) == 1


def test_failed_write_is_reported_and_retried_on_next_tick(manager, quiz_with_questions, store, clock):
    quiz, _ = quiz_with_questions
    status = manager.start_attempt(quiz.id, "student-1")
    store.fail_attempt_writes = True
    clock.advance(300)

    report = manager.tick_active_attempts()
    assert list(report.failures) == [status.session_id]
    assert manager.get_attempt_status(status.session_id).state is AttemptState.SUBMITTING
    with pytest.raises(AttemptSubmissionError):
        manager.finish_attempt(status.session_id)

    store.fail_attempt_writes = False
    report = manager.tick_active_attempts()
    assert len(report.recovered) == 1
    assert report.expired == []
    assert report.failures == {}


def test_abandon_discards_the_session(manager, quiz_with_questions):
    quiz, _ = quiz_with_questions
    status = manager.start_attempt(quiz.id, "student-1")
    manager.abandon_attempt(status.session_id)

    with pytest.raises(LookupError):
        manager.get_attempt_status(status.session_id)
    with pytest.raises(LookupError):
        manager.abandon_attempt(status.session_id)
    assert manager.get_quiz_gradebook(quiz.id) == []


def test_starting_an_unknown_quiz_fails(manager):
    with pytest.raises(LookupError):
        manager.start_attempt("missing", "student-1")


def test_review_and_results(manager, quiz_with_questions, clock):
    quiz, _ = quiz_with_questions
    status = manager.start_attempt(quiz.id, "student-1")
    manager.select_option(status.session_id, 1)
    manager.navigate(status.session_id, 1)
    attempt = manager.finish_attempt(status.session_id)

    review = manager.review_attempt(attempt.id)
    assert [item.is_correct for item in review.items] == [True, False]
    assert review.percentage == 33

    rows, summary = manager.get_student_results("student-1")
    assert [row.attempt_id for row in rows] == [attempt.id]
    assert rows[0].grade == 3.33
    assert summary.quizzes_attempted == 1
    assert summary.average_percentage == 33

    with pytest.raises(LookupError):
        manager.review_attempt("missing")


def test_negative_point_override_is_rejected(manager, quiz_with_questions):
    quiz, (q1, _) = quiz_with_questions
    with pytest.raises(ValueError):
        manager.set_question_points(quiz.id, q1.id, -5)
    assert manager.get_quiz(quiz.id).question_points == {}


def test_one_broken_session_does_not_block_other_auto_submits(manager, quiz_with_questions, store, clock, monkeypatch):
    quiz, _ = quiz_with_questions
    original_add = store.add

    def add(collection, data, doc_id=None):
        if collection == ATTEMPTS and data["student_id"] == "broken":
            raise ValueError("Attempt score cannot exceed its total points.")
        return original_add(collection, data, doc_id=doc_id)

    monkeypatch.setattr(store, "add", add)
    broken = manager.start_attempt(quiz.id, "broken")
    healthy = manager.start_attempt(quiz.id, "healthy")
    clock.advance(301)

    first = manager.tick_active_attempts()
    second = manager.tick_active_attempts()

    assert list(first.failures) == [broken.session_id]
    assert [a.student_id for a in first.expired] == ["healthy"]
    assert list(second.failures) == [broken.session_id]
    assert second.expired == []
    assert manager.get_attempt_status(healthy.session_id).state is AttemptState.COMPLETED


def test_finished_sessions_are_evicted_and_still_answer_from_storage(manager, quiz_with_questions, clock):
    quiz, _ = quiz_with_questions
    finished = manager.start_attempt(quiz.id, "student-1")
    expiring = manager.start_attempt(quiz.id, "student-2")
    assert manager.tracked_session_count() == 2

    manager.navigate(finished.session_id, 1)
    attempt = manager.finish_attempt(finished.session_id)
    assert manager.tracked_session_count() == 1

    clock.advance(300)
    manager.tick_active_attempts()
    assert manager.tracked_session_count() == 0

    status = manager.get_attempt_status(finished.session_id)
    assert status.state is AttemptState.COMPLETED
    assert status.attempt_id == attempt.id
    assert status.quiz_title == "Weekly check"
    assert manager.get_attempt_status(expiring.session_id).attempt_id == expiring.session_id
    assert manager.finish_attempt(finished.session_id) == attempt
    with pytest.raises(RuntimeError):
        manager.select_option(finished.session_id, 0)
    manager.abandon_attempt(finished.session_id)
    assert manager.get_attempt(attempt.id) == attempt


def test_session_completed_by_a_status_poll_is_evicted_on_next_tick(manager, quiz_with_questions, clock):
    quiz, _ = quiz_with_questions
    status = manager.start_attempt(quiz.id, "student-1")
    clock.advance(300)

    assert manager.get_attempt_status(status.session_id).state is AttemptState.COMPLETED
    assert manager.tracked_session_count() == 1
    manager.tick_active_attempts()
    assert manager.tracked_session_count() == 0


def test_list_and_delete_quizzes(manager, quiz_with_questions):
    quiz, _ = quiz_with_questions
    other = manager.create_quiz("course-2", "Elsewhere")

    assert [q.id for q in manager.list_quizzes()] == [quiz.id, other.id]
    assert [q.id for q in manager.list_quizzes("course-2")] == [other.id]

    manager.delete_quiz(other.id)
    assert manager.get_quiz(other.id) is None
    with pytest.raises(LookupError):
        manager.delete_quiz(other.id)


def test_catalog_refuses_to_save_negative_overrides(catalog):
    quiz = catalog.create_quiz("course-1", "Direct")
    quiz.question_ids = ["q1"]
    quiz.question_points = {"q1": -5}
    with pytest.raises(ValueError):
        catalog.save_quiz(quiz)
    assert catalog.get_quiz(quiz.id).question_points == {}
