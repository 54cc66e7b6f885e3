"""Append-only storage of completed attempts."""

from __future__ import annotations

from quiz_admin.core.document_store import ATTEMPTS, DocumentStore
from quiz_admin.core.models import Attempt


class AttemptRepository:
    """Creates attempt records exactly once and answers the read queries on them."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def create_attempt(self, attempt: Attempt) -> Attempt:
        if attempt.score > attempt.total_points:
            raise ValueError("Attempt score cannot exceed its total points.")
        if attempt.completed_at < attempt.started_at:
            raise ValueError("Attempt cannot complete before it started.")
        # add() refuses an id that already exists, so records are never overwritten
        self._store.add(ATTEMPTS, attempt.to_document(), doc_id=attempt.id)
        return attempt

    def get_attempt(self, attempt_id: str) -> Attempt | None:
        doc = self._store.get(ATTEMPTS, attempt_id)
        if doc is None:
            return None
        return Attempt.from_document(attempt_id, doc)

    def list_by_student(self, student_id: str) -> list[Attempt]:
        return self._from_rows(self._store.find(ATTEMPTS, student_id=student_id))

    def list_by_quiz(self, quiz_id: str) -> list[Attempt]:
        return self._from_rows(self._store.find(ATTEMPTS, quiz_id=quiz_id))

    @staticmethod
    def _from_rows(rows) -> list[Attempt]:
        attempts = [Attempt.from_document(doc_id, doc) for doc_id, doc in rows]
        return sorted(attempts, key=lambda a: a.completed_at)
