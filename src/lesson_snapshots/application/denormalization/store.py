"""Denormalization – DocumentStore port and InMemoryDocumentStore."""

from __future__ import annotations

import abc
import contextlib
import copy
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager
from contextvars import ContextVar
from enum import Enum
from typing import Any

from lesson_snapshots.application.denormalization.errors import WriteConflictError
from lesson_snapshots.application.denormalization.events import EntityKind
from lesson_snapshots.kernel.types import VersionId


class Collection(str, Enum):
    """The five logical collections the engine reads and writes."""

    REVISION_LOG = "revision_log"
    SLIDE_LOG = "slide_log"
    TRACK_LOG = "track_log"
    SLIDE_SNAPSHOTS = "slide_snapshots"
    REVISION_SNAPSHOTS = "revision_snapshots"

    @classmethod
    def log_for(cls, entity: EntityKind) -> "Collection":
        return _LOGS[entity]

    @classmethod
    def snapshots_for(cls, entity: EntityKind) -> "Collection":
        try:
            return _SNAPSHOTS[entity]
        except KeyError:
            raise ValueError(f"{entity.value} has no snapshot store") from None


_LOGS = {
    EntityKind.REVISION: Collection.REVISION_LOG,
    EntityKind.SLIDE: Collection.SLIDE_LOG,
    EntityKind.TRACK: Collection.TRACK_LOG,
}
_SNAPSHOTS = {
    EntityKind.REVISION: Collection.REVISION_SNAPSHOTS,
    EntityKind.SLIDE: Collection.SLIDE_SNAPSHOTS,
}


class DocumentStore(abc.ABC):
    """Port: the document database behind the audit logs and snapshot stores.

    Documents are plain dicts. Every document has an ``_id``, a
    ``domain_id`` and a ``created_at``; snapshot documents also carry a
    ``previous`` version id.

    Ordering contract for :meth:`find_latest`: greatest ``created_at``
    wins, ties go to the document inserted last.
    """

    @abc.abstractmethod
    async def insert(self, collection: Collection, doc: dict[str, Any]) -> str:
        """Insert *doc*; return its ``_id`` (generated when absent)."""

    @abc.abstractmethod
    async def insert_version(self, collection: Collection, doc: dict[str, Any]) -> str:
        """Insert a snapshot version, enforcing optimistic concurrency.

        Raises :class:`WriteConflictError` when another version of the
        same ``domain_id`` already has the same ``previous``.
        """

    @abc.abstractmethod
    async def find_latest(self, collection: Collection, domain_id: str) -> dict[str, Any] | None:
        """Return the most recently created document for *domain_id*."""

    @abc.abstractmethod
    async def get(self, collection: Collection, doc_id: str) -> dict[str, Any] | None:
        """Return the document whose ``_id`` is *doc_id*."""

    @abc.abstractmethod
    async def find_all(self, collection: Collection, domain_id: str) -> list[dict[str, Any]]:
        """Return every document for *domain_id*, oldest first."""

    @abc.abstractmethod
    async def find_with_previous(self, collection: Collection) -> list[dict[str, Any]]:
        """Return every document with ``previous`` replaced by the referenced
        document (one hop only) or ``None``, oldest first."""

    @abc.abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Group writes so they become visible together or not at all.

        Inside the block, reads see the block's own writes; other readers
        see none of them until the block exits normally. An exception
        discards them all. Entering the block again from the same task
        joins the open transaction.
        """


class _Pending:
    """Writes of one open in-memory transaction."""

    def __init__(self) -> None:
        self.docs: dict[Collection, list[dict[str, Any]]] = {c: [] for c in Collection}


class InMemoryDocumentStore(DocumentStore):
    """In-memory :class:`DocumentStore` for tests and local runs.

    Documents are deep-copied on the way in and out, so callers can never
    mutate a stored version through a reference they still hold.

    Transactions buffer their writes until the block exits. A pending
    snapshot version still reserves its ``(domain_id, previous)`` pair, so
    a second writer conflicts at once, as it would against MongoDB.
    """

    def __init__(self) -> None:
        # collection → insertion-ordered committed documents
        self._docs: dict[Collection, list[dict[str, Any]]] = {c: [] for c in Collection}
        self._open: list[_Pending] = []
        self._current: ContextVar[_Pending | None] = ContextVar(
            f"in_memory_transaction_{id(self)}", default=None
        )

    def _visible(self, collection: Collection) -> list[dict[str, Any]]:
        """Committed documents plus the current transaction's own writes."""
        pending = self._current.get()
        if pending is None:
            return self._docs[collection]
        return self._docs[collection] + pending.docs[collection]

    def _reserved(self, collection: Collection) -> list[dict[str, Any]]:
        """Committed documents plus the writes of every open transaction."""
        docs = list(self._docs[collection])
        for pending in self._open:
            docs.extend(pending.docs[collection])
        return docs

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._current.get() is not None:
            yield
            return
        pending = _Pending()
        token = self._current.set(pending)
        self._open.append(pending)
        try:
            yield
            for collection, docs in pending.docs.items():
                self._docs[collection].extend(docs)
        finally:
            self._open.remove(pending)
            self._current.reset(token)

    async def insert(self, collection: Collection, doc: dict[str, Any]) -> str:
        stored = copy.deepcopy(doc)
        stored.setdefault("_id", VersionId.generate().value)
        if any(d["_id"] == stored["_id"] for d in self._reserved(collection)):
            raise ValueError(f"Duplicate _id {stored['_id']!r} in {collection.value}")
        pending = self._current.get()
        target = pending.docs[collection] if pending is not None else self._docs[collection]
        target.append(stored)
        return stored["_id"]

    async def insert_version(self, collection: Collection, doc: dict[str, Any]) -> str:
        for existing in self._reserved(collection):
            if (
                existing["domain_id"] == doc["domain_id"]
                and existing.get("previous") == doc.get("previous")
            ):
                raise WriteConflictError(collection.value, doc["domain_id"], doc.get("previous"))
        return await self.insert(collection, doc)

    async def find_latest(self, collection: Collection, domain_id: str) -> dict[str, Any] | None:
        latest: dict[str, Any] | None = None
        for doc in self._visible(collection):
            # ">=" lets a later insert win a created_at tie
            if doc["domain_id"] == domain_id and (
                latest is None or doc["created_at"] >= latest["created_at"]
            ):
                latest = doc
        return copy.deepcopy(latest)

    async def get(self, collection: Collection, doc_id: str) -> dict[str, Any] | None:
        for doc in self._visible(collection):
            if doc["_id"] == doc_id:
                return copy.deepcopy(doc)
        return None

    async def find_all(self, collection: Collection, domain_id: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(d) for d in self._visible(collection) if d["domain_id"] == domain_id]

    async def find_with_previous(self, collection: Collection) -> list[dict[str, Any]]:
        docs = self._visible(collection)
        by_id = {d["_id"]: d for d in docs}
        joined: list[dict[str, Any]] = []
        for doc in docs:
            row = copy.deepcopy(doc)
            prev_id = doc.get("previous")
            row["previous"] = copy.deepcopy(by_id.get(prev_id)) if prev_id is not None else None
            joined.append(row)
        return joined

    def count(self, collection: Collection) -> int:
        """Return the number of committed documents in *collection*."""
        return len(self._docs[collection])

    def documents(self, collection: Collection) -> list[dict[str, Any]]:
        """Return a copy of every committed document in *collection*, in insertion order."""
        return copy.deepcopy(self._docs[collection])


__all__ = ["Collection", "DocumentStore", "InMemoryDocumentStore"]
