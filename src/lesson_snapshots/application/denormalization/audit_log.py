"""Denormalization – append-only audit logs, one per entity kind."""

from __future__ import annotations

from lesson_snapshots.application.denormalization.events import AuditRecord, EntityKind, Event
from lesson_snapshots.application.denormalization.store import Collection, DocumentStore
from lesson_snapshots.kernel.time import Clock, SystemClock
from lesson_snapshots.kernel.types import VersionId
from lesson_snapshots.observability.logging import get_logger

logger = get_logger(__name__)


class AuditLog:
    """Records every accepted event, verbatim, before it is folded.

    Records are never updated or deleted. There is no deduplication: the
    same event appended twice yields two records.
    """

    def __init__(self, store: DocumentStore, clock: Clock | None = None) -> None:
        self._store = store
        self._clock = clock or SystemClock()

    async def append(self, event: Event) -> AuditRecord:
        """Validate *event* and append it to its entity kind's log.

        Raises :class:`MalformedEventError` without writing anything when
        the event lacks its domain id or parent reference.
        """
        record = self.record(event)
        await self.write(record)
        return record

    def record(self, event: Event) -> AuditRecord:
        """Validate *event* and stamp it as a record, without writing it.

        The engine stamps the record first so the snapshots it folds can
        point at ``record_id``, then writes the record in the same
        transaction as those snapshots.
        """
        event.validate()
        return AuditRecord(
            record_id=VersionId.generate().value,
            event=event,
            recorded_at=self._clock.now(),
        )

    async def write(self, record: AuditRecord) -> None:
        entity = record.event.entity
        await self._store.insert(Collection.log_for(entity), record.to_document())
        logger.debug(
            "audit.appended",
            entity=entity.value,
            domain_id=record.domain_id,
            record_id=record.record_id,
        )

    async def history(self, entity: EntityKind, domain_id: str) -> list[AuditRecord]:
        """Return every record for *domain_id*, oldest first."""
        docs = await self._store.find_all(Collection.log_for(entity), domain_id)
        return [AuditRecord.from_document(doc) for doc in docs]


__all__ = ["AuditLog"]
