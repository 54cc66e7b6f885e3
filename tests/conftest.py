from datetime import datetime, timedelta, timezone
import random

import pytest

from quiz_admin.core.document_store import ATTEMPTS, DocumentStoreError, InMemoryDocumentStore
from quiz_admin.core.models import Question
from quiz_admin.core.quiz_manager import QuizManager
from quiz_admin.core.services.attempt_repository import AttemptRepository
from quiz_admin.core.services.question_bank import QuestionBank
from quiz_admin.core.services.quiz_catalog import QuizCatalog


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FlakyStore(InMemoryDocumentStore):
    """Store whose attempt writes fail until ``fail_attempt_writes`` is cleared."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_attempt_writes = False
        self.attempt_write_calls = 0

    def add(self, collection, data, doc_id=None):
        if collection == ATTEMPTS:
            self.attempt_write_calls += 1
            if self.fail_attempt_writes:
                raise DocumentStoreError("backend unavailable")
        return super().add(collection, data, doc_id=doc_id)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def bank(store):
    return QuestionBank(store)


@pytest.fixture
def catalog(store):
    return QuizCatalog(store)


@pytest.fixture
def attempts(store):
    return AttemptRepository(store)


@pytest.fixture
def manager(store, clock):
    return QuizManager(store=store, clock=clock, rng=random.Random(7))


def make_question(course_id="course-1", points=1, correct=0, text="What is 2 + 2?", **extra):
    return Question(
        id="",
        course_id=course_id,
        text=text,
        options=["3", "4", "5", "22"],
        correct_option_index=correct,
        points=points,
        **extra,
    )


@pytest.fixture
def add_question(bank):
    def _add(**kwargs):
        return bank.add_question(make_question(**kwargs))

    return _add
