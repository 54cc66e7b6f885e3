from datetime import datetime, timedelta, timezone

from quiz_admin.core.models import Attempt
from quiz_admin.core.services.gradebook import Gradebook

BASE = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def _attempt(attempt_id, quiz_id, student_id, score, total, minutes):
    return Attempt(
        id=attempt_id,
        quiz_id=quiz_id,
        student_id=student_id,
        answers=(),
        score=score,
        total_points=total,
        started_at=BASE,
        completed_at=BASE + timedelta(minutes=minutes),
    )


def test_rows_are_newest_first_and_filtered():
    gradebook = Gradebook({"quiz-1": 10})
    gradebook.record_attempt(_attempt("a1", "quiz-1", "ana", 4, 6, 5))
    gradebook.record_attempt(_attempt("a2", "quiz-1", "ben", 6, 6, 9))
    gradebook.record_attempt(_attempt("a3", "quiz-2", "ana", 1, 2, 7))

    rows = gradebook.get_rows(quiz_id="quiz-1")

    assert [row.attempt_id for row in rows] == ["a2", "a1"]
    assert rows[1].grade == 6.67
    assert rows[1].percentage == 67
    assert rows[1].passed is False
    assert rows[0].passed is True
    assert [row.attempt_id for row in gradebook.get_rows(student_id="ana")] == ["a3", "a1"]


def test_grade_falls_back_to_raw_score_without_max_grade():
    gradebook = Gradebook()
    gradebook.record_attempt(_attempt("a1", "quiz-9", "ana", 3, 4, 1))
    assert gradebook.get_rows()[0].grade == 3


def test_record_attempt_can_register_max_grade():
    gradebook = Gradebook()
    gradebook.record_attempt(_attempt("a1", "quiz-1", "ana", 3, 4, 1), max_grade=20)
    assert gradebook.get_rows()[0].grade == 15.0


def test_recording_the_same_attempt_twice_keeps_one_row():
    gradebook = Gradebook()
    attempt = _attempt("a1", "quiz-1", "ana", 3, 4, 1)
    gradebook.record_attempt(attempt)
    gradebook.record_attempt(attempt)
    assert len(gradebook.get_rows()) == 1


def test_student_summary_averages_percentages():
    gradebook = Gradebook()
    gradebook.record_attempt(_attempt("a1", "quiz-1", "ana", 1, 2, 1))
    gradebook.record_attempt(_attempt("a2", "quiz-1", "ana", 2, 2, 2))
    gradebook.record_attempt(_attempt("a3", "quiz-2", "ana", 0, 0, 3))

    summary = gradebook.summarize_student("ana")

    assert summary.attempts_completed == 3
    assert summary.quizzes_attempted == 2
    assert summary.average_percentage == 50


def test_summary_for_unknown_student_is_empty():
    summary = Gradebook().summarize_student("nobody")
    assert summary.attempts_completed == 0
    assert summary.average_percentage == 0

