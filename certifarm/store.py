"""
Document store abstraction.

The engine only needs create / read / update by identifier plus simple
equality queries. ``update`` is the single write primitive and is atomic:
the ``expected`` guard, field changes, list appends and counter increments
are applied together or not at all. A failed guard raises ``Conflict``.

Implementations surface transport failures as ``Unavailable``.
"""

from __future__ import annotations

import copy
import threading
from typing import Iterable, Optional, Protocol

from .errors import Conflict, DuplicateKey, NotFound


BATCHES = "batches"
INSPECTIONS = "inspections"
CREDENTIALS = "credentials"
PARTIES = "parties"


class DocumentStore(Protocol):
    """Protocol for the persistence collaborator."""

    def insert(self, collection: str, doc_id: str, document: dict) -> dict:
        """Create a document. Raises ``DuplicateKey`` if *doc_id* exists."""
        ...

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        ...

    def find(self, collection: str, criteria: dict | None = None) -> list[dict]:
        """Documents whose top-level fields match *criteria*.

        A list, tuple or set criterion value matches any of its members.
        """
        ...

    def update(
        self,
        collection: str,
        doc_id: str,
        changes: dict | None = None,
        *,
        expected: dict | None = None,
        append: dict | None = None,
        increment: dict | None = None,
    ) -> dict:
        """Atomically modify a document and return its new state."""
        ...

    def delete(self, collection: str, doc_id: str) -> bool:
        ...


def _matches(document: dict, criteria: dict) -> bool:
    for key, want in criteria.items():
        have = document.get(key)
        if isinstance(want, (list, tuple, set, frozenset)):
            if have not in want:
                return False
        elif have != want:
            return False
    return True


class InMemoryStore:
    """
    Thread-safe in-process document store.

    Documents are deep-copied on the way in and out so callers never hold
    references into stored state.
    """

    def __init__(self, collections: Iterable[str] = (BATCHES, INSPECTIONS, CREDENTIALS, PARTIES)):
        self._lock = threading.RLock()
        self._data: dict[str, dict[str, dict]] = {c: {} for c in collections}

    def _collection(self, name: str) -> dict[str, dict]:
        return self._data.setdefault(name, {})

    def insert(self, collection: str, doc_id: str, document: dict) -> dict:
        with self._lock:
            docs = self._collection(collection)
            if doc_id in docs:
                raise DuplicateKey(f"{collection}: duplicate key {doc_id}")
            docs[doc_id] = copy.deepcopy(document)
            return copy.deepcopy(docs[doc_id])

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        with self._lock:
            doc = self._collection(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def find(self, collection: str, criteria: dict | None = None) -> list[dict]:
        criteria = criteria or {}
        with self._lock:
            return [
                copy.deepcopy(doc)
                for doc in self._collection(collection).values()
                if _matches(doc, criteria)
            ]

    def update(
        self,
        collection: str,
        doc_id: str,
        changes: dict | None = None,
        *,
        expected: dict | None = None,
        append: dict | None = None,
        increment: dict | None = None,
    ) -> dict:
        with self._lock:
            docs = self._collection(collection)
            current = docs.get(doc_id)
            if current is None:
                raise NotFound(collection, doc_id)
            if expected and not _matches(current, expected):
                raise Conflict(
                    f"{collection}/{doc_id} changed concurrently "
                    f"(expected {expected})"
                )

            updated = copy.deepcopy(current)
            updated.update(copy.deepcopy(changes or {}))
            for key, items in (append or {}).items():
                updated.setdefault(key, [])
                updated[key].extend(copy.deepcopy(list(items)))
            for key, amount in (increment or {}).items():
                updated[key] = (updated.get(key) or 0) + amount

            docs[doc_id] = updated
            return copy.deepcopy(updated)

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._lock:
            return self._collection(collection).pop(doc_id, None) is not None

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._collection(collection))
