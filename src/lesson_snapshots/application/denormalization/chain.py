"""Denormalization – VersionChain read path."""

from __future__ import annotations

from lesson_snapshots.application.denormalization.errors import ChainIntegrityError
from lesson_snapshots.application.denormalization.events import EntityKind
from lesson_snapshots.application.denormalization.resolver import VersionResolver
from lesson_snapshots.application.denormalization.snapshot import ChainedSnapshot, Snapshot
from lesson_snapshots.application.denormalization.store import Collection, DocumentStore

DEFAULT_DEPTH = 1


class VersionChain:
    """Reads snapshot versions together with their ancestors.

    Ancestors are resolved one id lookup at a time and :meth:`chain`
    stops after ``depth`` of them, so a read costs the same however long
    the entity's history is. The full history stays in the store and is
    reachable through :meth:`history`.
    """

    def __init__(self, store: DocumentStore, resolver: VersionResolver | None = None) -> None:
        self._store = store
        self._resolver = resolver or VersionResolver(store)

    async def chain(
        self,
        entity: EntityKind,
        domain_id: str,
        depth: int = DEFAULT_DEPTH,
    ) -> ChainedSnapshot | None:
        """Return the latest version of *domain_id* with up to *depth* ancestors."""
        if depth < 0:
            raise ValueError("depth must not be negative")
        latest = await self._resolver.latest(entity, domain_id)
        if latest is None:
            return None
        ancestors: list[Snapshot] = []
        node = latest
        while len(ancestors) < depth and node.previous is not None:
            parent = await self._resolver.get(entity, node.previous)
            if parent is None:
                raise ChainIntegrityError(
                    f"{entity.value} version {node.version_id!r} points at missing "
                    f"version {node.previous!r}",
                    detail={"domain_id": domain_id, "version_id": node.version_id},
                )
            ancestors.append(parent)
            node = parent

        chained: ChainedSnapshot | None = None
        for ancestor in reversed(ancestors):
            chained = ChainedSnapshot(ancestor, chained)
        return ChainedSnapshot(latest, chained)

    async def history(self, entity: EntityKind, domain_id: str) -> list[Snapshot]:
        """Return every version of *domain_id*, newest first.

        Raises :class:`ChainIntegrityError` if the chain cycles, dangles,
        or jumps to another domain id.
        """
        latest = await self._resolver.latest(entity, domain_id)
        if latest is None:
            return []
        versions = [latest]
        seen = {latest.version_id}
        node = latest
        while node.previous is not None:
            if node.previous in seen:
                raise ChainIntegrityError(
                    f"{entity.value} chain for {domain_id!r} cycles at {node.previous!r}",
                    detail={"domain_id": domain_id, "version_id": node.previous},
                )
            parent = await self._resolver.get(entity, node.previous)
            if parent is None or parent.domain_id != domain_id:
                raise ChainIntegrityError(
                    f"{entity.value} chain for {domain_id!r} breaks at {node.previous!r}",
                    detail={"domain_id": domain_id, "version_id": node.previous},
                )
            versions.append(parent)
            seen.add(parent.version_id)
            node = parent
        return versions

    async def verify(self, entity: EntityKind, domain_id: str) -> int:
        """Check the chain of *domain_id* and return its length."""
        return len(await self.history(entity, domain_id))

    async def all_with_previous(self, entity: EntityKind) -> list[ChainedSnapshot]:
        """Return every stored version joined to its immediate predecessor."""
        rows = await self._store.find_with_previous(Collection.snapshots_for(entity))
        chained: list[ChainedSnapshot] = []
        for row in rows:
            prev_doc = row.get("previous")
            previous = None
            if prev_doc is not None:
                previous = ChainedSnapshot(Snapshot.from_document(prev_doc))
                row = {**row, "previous": prev_doc["_id"]}
            chained.append(ChainedSnapshot(Snapshot.from_document(row), previous))
        return chained


__all__ = ["DEFAULT_DEPTH", "VersionChain"]
