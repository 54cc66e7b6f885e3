"""Key/value document store used by the bank, catalog and attempt repositories.

The application treats persistence as an opaque collaborator: documents are
plain dictionaries addressed by collection and id, and the only queries are
equality filters and id/field membership. ``InMemoryDocumentStore`` is the
implementation used by the server and the test-suite; a hosted backend only
has to provide the same six methods.
"""

from __future__ import annotations

import copy
from threading import Lock
from typing import Any, Iterable
from uuid import uuid4

Document = dict[str, Any]

QUESTIONS = "questions"
QUIZZES = "quizzes"
ATTEMPTS = "attempts"


class DocumentStoreError(Exception):
    """Raised when the store cannot complete a read or write."""


class DocumentStore:
    """Interface shared by every store backend."""

    def get(self, collection: str, doc_id: str) -> Document | None:
        raise NotImplementedError

    def add(self, collection: str, data: Document, doc_id: str | None = None) -> str:
        """Create a document and return its id. Fails if ``doc_id`` is taken."""
        raise NotImplementedError

    def put(self, collection: str, doc_id: str, data: Document) -> None:
        raise NotImplementedError

    def delete(self, collection: str, doc_id: str) -> bool:
        raise NotImplementedError

    def find(self, collection: str, **equals: Any) -> list[tuple[str, Document]]:
        raise NotImplementedError

    def find_in(self, collection: str, field: str, values: Iterable[Any]) -> list[tuple[str, Document]]:
        """Return documents whose ``field`` is one of ``values``. ``"id"`` matches the document id."""
        raise NotImplementedError


class InMemoryDocumentStore(DocumentStore):
    """Process-local store. Documents are deep-copied on the way in and out."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._collections: dict[str, dict[str, Document]] = {}

    def get(self, collection: str, doc_id: str) -> Document | None:
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def add(self, collection: str, data: Document, doc_id: str | None = None) -> str:
        with self._lock:
            documents = self._collections.setdefault(collection, {})
            new_id = doc_id or uuid4().hex
            if new_id in documents:
                raise DocumentStoreError(f"Document {collection}/{new_id} already exists.")
            documents[new_id] = copy.deepcopy(data)
            return new_id

    def put(self, collection: str, doc_id: str, data: Document) -> None:
        with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._lock:
            return self._collections.get(collection, {}).pop(doc_id, None) is not None

    def find(self, collection: str, **equals: Any) -> list[tuple[str, Document]]:
        with self._lock:
            return [
                (doc_id, copy.deepcopy(doc))
                for doc_id, doc in self._collections.get(collection, {}).items()
                if all(doc.get(key) == value for key, value in equals.items())
            ]

    def find_in(self, collection: str, field: str, values: Iterable[Any]) -> list[tuple[str, Document]]:
        wanted = set(values)
        with self._lock:
            return [
                (doc_id, copy.deepcopy(doc))
                for doc_id, doc in self._collections.get(collection, {}).items()
                if (doc_id if field == "id" else doc.get(field)) in wanted
            ]
