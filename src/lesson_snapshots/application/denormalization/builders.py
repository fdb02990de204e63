"""Denormalization – Slide- and Revision-level snapshot builders.

Each builder call runs one resolve → fold → persist cycle and produces
exactly one new snapshot version:

1. resolve the latest version of the target snapshot;
2. deep-copy it as the baseline;
3. fold the event into the baseline;
4. persist the result with ``previous`` pointing at the resolved version.

The store rejects a second successor of the same version
(:class:`WriteConflictError`); the cycle is then re-run against the new
latest version. Within one process, cycles for the same target are also
serialised by :class:`WriterLocks`.
"""

from __future__ import annotations

import copy
import dataclasses
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from lesson_snapshots.application.denormalization.errors import (
    ParentNotFoundError,
    WriteConflictError,
)
from lesson_snapshots.application.denormalization.events import AuditRecord, EntityKind, EventKind
from lesson_snapshots.application.denormalization.fold import (
    ChildChange,
    FoldOutcome,
    TrackChange,
    fold_change,
    fold_children,
)
from lesson_snapshots.application.denormalization.locks import WriterLocks
from lesson_snapshots.application.denormalization.merge import merge_payload
from lesson_snapshots.application.denormalization.resolver import VersionResolver
from lesson_snapshots.application.denormalization.snapshot import EmbeddedChild, Snapshot
from lesson_snapshots.application.denormalization.store import Collection, DocumentStore
from lesson_snapshots.kernel.time import Clock, SystemClock
from lesson_snapshots.kernel.types import VersionId
from lesson_snapshots.observability.logging import get_logger
from lesson_snapshots.observability.metrics import EngineMetrics
from lesson_snapshots.resilience.retry import TenacityRetryPolicy

logger = get_logger(__name__)

_Fold = Callable[[Snapshot | None], tuple[Snapshot, FoldOutcome]]

# smallest step MongoDB can store between two datetimes
_SUCCESSOR_STEP = timedelta(milliseconds=1)


@dataclasses.dataclass(frozen=True)
class BuildResult:
    """The version a builder persisted and what the fold did."""

    snapshot: Snapshot
    outcome: FoldOutcome


class _SnapshotBuilder:
    entity: EntityKind

    def __init__(
        self,
        store: DocumentStore,
        *,
        resolver: VersionResolver | None = None,
        clock: Clock | None = None,
        locks: WriterLocks | None = None,
        retry: TenacityRetryPolicy | None = None,
        metrics: EngineMetrics | None = None,
    ) -> None:
        self._store = store
        self._resolver = resolver or VersionResolver(store)
        self._clock = clock or SystemClock()
        self._locks = locks or WriterLocks()
        self._retry = retry or TenacityRetryPolicy(max_attempts=5, retry_on=(WriteConflictError,))
        self._metrics = metrics or EngineMetrics()
        self._collection = Collection.snapshots_for(self.entity)

    async def _build(self, domain_id: str, fold: _Fold) -> BuildResult:
        async with self._locks.hold(self.entity, domain_id):
            return await self._retry.execute_async(lambda: self._cycle(domain_id, fold))

    async def _cycle(self, domain_id: str, fold: _Fold) -> BuildResult:
        previous = await self._resolver.latest(self.entity, domain_id)
        snapshot, outcome = fold(previous)
        try:
            await self._store.insert_version(self._collection, snapshot.to_document())
        except WriteConflictError:
            self._metrics.write_conflict(self.entity.value)
            logger.info("snapshot.write_conflict", entity=self.entity.value, domain_id=domain_id)
            raise
        self._metrics.snapshot_written(self.entity.value)
        if outcome.is_noop:
            self._metrics.fold_noop(self.entity.value, outcome.value)
            logger.warning(
                "fold.noop",
                entity=self.entity.value,
                domain_id=domain_id,
                reason=outcome.value,
                version_id=snapshot.version_id,
            )
        return BuildResult(snapshot, outcome)

    def _stamp(self, previous: Snapshot | None) -> datetime:
        """``created_at`` for a successor of *previous*.

        The latest version is the one with the greatest ``created_at``, so a
        successor must sort after its predecessor even when this writer's
        clock runs behind the writer that stamped *previous*.
        """
        now = self._clock.now()
        if previous is not None and now < previous.created_at + _SUCCESSOR_STEP:
            return previous.created_at + _SUCCESSOR_STEP
        return now

    def _next_version(
        self,
        previous: Snapshot | None,
        record: AuditRecord,
        *,
        domain_id: str,
        event_kind: str,
        payload: dict[str, Any],
        children: tuple[EmbeddedChild, ...],
    ) -> Snapshot:
        return Snapshot(
            version_id=VersionId.generate().value,
            entity=self.entity,
            domain_id=domain_id,
            event_kind=event_kind,
            payload=payload,
            previous=previous.version_id if previous is not None else None,
            created_at=self._stamp(previous),
            children=children,
            actor=record.event.actor,
            record_id=record.record_id,
        )

    def _apply_own(self, previous: Snapshot | None, record: AuditRecord) -> tuple[Snapshot, FoldOutcome]:
        """Fold an event about the snapshot's own entity (not a child).

        The first version of a chain keeps the kind of the event that
        started it, so a first-ever ``deleted`` yields a version marked
        ``deleted``. Only an unknown kind starts the chain as ``created``.
        """
        kind = record.event.known_kind
        outcome = FoldOutcome.APPLIED if kind is not None else FoldOutcome.UNKNOWN_EVENT_KIND
        if previous is None:
            return self._next_version(
                None,
                record,
                domain_id=record.domain_id,
                event_kind=(kind or EventKind.CREATED).value,
                payload=copy.deepcopy(dict(record.event.payload)),
                children=(),
            ), outcome

        payload = copy.deepcopy(previous.payload)
        event_kind = EventKind.UPDATED.value
        if kind is not None:
            payload = merge_payload(self.entity, previous.payload, record.event.payload)
            if kind is EventKind.DELETED:
                event_kind = EventKind.DELETED.value
        return self._next_version(
            previous,
            record,
            domain_id=previous.domain_id,
            event_kind=event_kind,
            payload=payload,
            children=copy.deepcopy(previous.children),
        ), outcome


class SlideSnapshotBuilder(_SnapshotBuilder):
    """Maintains Slide snapshots with their current Tracks embedded."""

    entity = EntityKind.SLIDE

    async def apply_slide(self, record: AuditRecord) -> BuildResult:
        """Fold a Slide's own event into its snapshot chain.

        The first event seen for a slide id starts the chain with an empty
        Track collection.
        """
        return await self._build(record.domain_id, lambda prev: self._apply_own(prev, record))

    async def fold_track(self, record: AuditRecord) -> BuildResult:
        """Fold a Track event into its parent Slide's snapshot.

        Raises :class:`ParentNotFoundError` when the Slide has no snapshot.
        """
        change = TrackChange(record)

        def fold(previous: Snapshot | None) -> tuple[Snapshot, FoldOutcome]:
            if previous is None:
                raise ParentNotFoundError(
                    EntityKind.SLIDE.value, change.slide_id, child_id=change.track_id
                )
            tracks, outcome = fold_children(
                EntityKind.TRACK, copy.deepcopy(previous.children), record
            )
            return self._next_version(
                previous,
                record,
                domain_id=previous.domain_id,
                # the Slide is "touched" even though only a child changed
                event_kind=EventKind.UPDATED.value,
                payload=copy.deepcopy(previous.payload),
                children=tracks,
            ), outcome

        return await self._build(change.slide_id, fold)


class RevisionSnapshotBuilder(_SnapshotBuilder):
    """Maintains Revision snapshots with Slides (and their Tracks) embedded."""

    entity = EntityKind.REVISION

    def __init__(self, store: DocumentStore, *, strict_parents: bool = True, **kwargs: Any) -> None:
        super().__init__(store, **kwargs)
        self._strict_parents = strict_parents

    async def apply_revision(self, record: AuditRecord) -> BuildResult:
        """Fold a Revision's own event into its snapshot chain."""
        return await self._build(record.domain_id, lambda prev: self._apply_own(prev, record))

    async def fold_child(self, revision_id: str, change: ChildChange) -> BuildResult:
        """Fold a Slide or Track change into the Revision *revision_id*.

        With ``strict_parents`` a Revision without any snapshot raises
        :class:`ParentNotFoundError`; otherwise a fresh, empty baseline is
        synthesised and becomes the first version of the chain.
        """
        record = change.record

        def fold(previous: Snapshot | None) -> tuple[Snapshot, FoldOutcome]:
            if previous is None:
                if self._strict_parents:
                    raise ParentNotFoundError(
                        EntityKind.REVISION.value, revision_id, child_id=record.domain_id
                    )
                payload: dict[str, Any] = {"id": revision_id}
                slides: tuple[EmbeddedChild, ...] = ()
                event_kind = EventKind.CREATED.value
            else:
                payload = copy.deepcopy(previous.payload)
                slides = copy.deepcopy(previous.children)
                event_kind = EventKind.UPDATED.value
            slides, outcome = fold_change(slides, change)
            return self._next_version(
                previous,
                record,
                domain_id=revision_id,
                event_kind=event_kind,
                payload=payload,
                children=slides,
            ), outcome

        return await self._build(revision_id, fold)


__all__ = ["BuildResult", "RevisionSnapshotBuilder", "SlideSnapshotBuilder"]
