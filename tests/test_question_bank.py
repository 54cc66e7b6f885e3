import pytest

from tests.conftest import make_question


def test_add_question_assigns_id_and_normalizes_text(bank):
    stored = bank.add_question(make_question(text="  What is 2 + 2?  ", secondary_text="   "))

    assert stored.id
    assert stored.text == "What is 2 + 2?"
    assert stored.secondary_text is None
    assert bank.get_question(stored.id) == stored


@pytest.mark.parametrize(
    "overrides",
    [
        {"course_id": ""},
        {"text": "   "},
        {"correct": 4},
        {"correct": -1},
        {"points": 0},
        {"points": -2},
        {"points": float("inf")},
        {"points": True},
    ],
)
def test_invalid_questions_are_rejected(bank, overrides):
    with pytest.raises(ValueError):
        bank.add_question(make_question(**overrides))


def test_options_need_at_least_two_non_empty_entries(bank):
    question = make_question()
    question.options = ["only one"]
    with pytest.raises(ValueError):
        bank.add_question(question)

    question.options = ["one", "  "]
    with pytest.raises(ValueError):
        bank.add_question(question)


def test_secondary_options_cannot_outnumber_options(bank):
    with pytest.raises(ValueError):
        bank.add_question(make_question(secondary_options=["a", "b", "c", "d", "e"]))
    stored = bank.add_question(make_question(secondary_options=["tres", "cuatro"]))
    assert stored.secondary_options == ["tres", "cuatro"]


def test_update_keeps_identity_and_creation_time(bank):
    original = bank.add_question(make_question())
    updated = bank.update_question(original.id, make_question(text="What is 3 + 1?", points=2))

    assert updated.id == original.id
    assert updated.created_at == original.created_at
    assert bank.get_question(original.id).text == "What is 3 + 1?"
    with pytest.raises(LookupError):
        bank.update_question("missing", make_question())


def test_delete_question(bank):
    stored = bank.add_question(make_question())
    bank.delete_question(stored.id)
    assert bank.get_question(stored.id) is None
    with pytest.raises(LookupError):
        bank.delete_question(stored.id)


def test_get_questions_skips_missing_ids(bank):
    stored = bank.add_question(make_question())
    found = bank.get_questions([stored.id, "missing"])
    assert list(found) == [stored.id]


def test_listing_filters_by_course_and_sorts_for_authoring(bank):
    bank.add_question(make_question(question_number=2, text="second"))
    bank.add_question(make_question(question_number=None, text="unnumbered"))
    bank.add_question(make_question(question_number=1, text="first"))
    bank.add_question(make_question(course_id="course-2", text="elsewhere"))

    texts = [q.text for q in bank.list_for_authoring("course-1")]

    assert texts == ["unnumbered", "first", "second"]
    assert len(bank.list_questions()) == 4
