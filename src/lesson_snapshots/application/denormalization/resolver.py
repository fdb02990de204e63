"""Denormalization – VersionResolver."""

from __future__ import annotations

from lesson_snapshots.application.denormalization.events import EntityKind
from lesson_snapshots.application.denormalization.snapshot import Snapshot
from lesson_snapshots.application.denormalization.store import Collection, DocumentStore


class VersionResolver:
    """Finds snapshot versions in a snapshot store.

    :meth:`latest` picks the version with the greatest ``created_at``; on
    a tie the version inserted last wins. The ``occurred_at`` of the
    originating event plays no part.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def latest(self, entity: EntityKind, domain_id: str) -> Snapshot | None:
        doc = await self._store.find_latest(Collection.snapshots_for(entity), domain_id)
        return Snapshot.from_document(doc) if doc is not None else None

    async def get(self, entity: EntityKind, version_id: str) -> Snapshot | None:
        doc = await self._store.get(Collection.snapshots_for(entity), version_id)
        return Snapshot.from_document(doc) if doc is not None else None


__all__ = ["VersionResolver"]
