"""Denormalization – DenormalizationEngine.

Routes each event through the audit log and the snapshot builders:

* Revision event → Revision builder;
* Slide event → Slide builder, then Revision builder;
* Track event → Slide builder, then Revision builder (through the Slide's
  ``revisionId``).

Each event is all-or-nothing: its audit record and every snapshot
version it produces are written in one store transaction. Within a
process the engine first locks every snapshot the event will extend;
across processes the store's optimistic check rejects the second writer,
whose transaction is discarded and re-run from the new latest versions.
"""

from __future__ import annotations

import contextlib
import dataclasses
import time
from collections.abc import Iterable
from typing import Any

from lesson_snapshots.application.denormalization.audit_log import AuditLog
from lesson_snapshots.application.denormalization.builders import (
    BuildResult,
    RevisionSnapshotBuilder,
    SlideSnapshotBuilder,
)
from lesson_snapshots.application.denormalization.chain import VersionChain
from lesson_snapshots.application.denormalization.errors import (
    ParentNotFoundError,
    UnknownEventKindError,
    WriteConflictError,
)
from lesson_snapshots.application.denormalization.events import AuditRecord, EntityKind, Event
from lesson_snapshots.application.denormalization.fold import FoldOutcome, SlideChange, TrackChange
from lesson_snapshots.application.denormalization.locks import WriterLocks
from lesson_snapshots.application.denormalization.projection import project_revision, project_slide
from lesson_snapshots.application.denormalization.resolver import VersionResolver
from lesson_snapshots.application.denormalization.snapshot import Snapshot
from lesson_snapshots.application.denormalization.store import DocumentStore
from lesson_snapshots.config.settings import EngineSettings
from lesson_snapshots.kernel.errors import DomainError
from lesson_snapshots.kernel.time import Clock, MillisecondClock
from lesson_snapshots.observability.logging import get_logger
from lesson_snapshots.observability.logging.processors import event_context
from lesson_snapshots.observability.metrics import EngineMetrics, Metrics
from lesson_snapshots.resilience.retry import TenacityRetryPolicy

logger = get_logger(__name__)


@dataclasses.dataclass(frozen=True)
class FoldResult:
    """Everything one :meth:`DenormalizationEngine.handle` call wrote."""

    record: AuditRecord
    builds: tuple[BuildResult, ...]

    @property
    def snapshots(self) -> tuple[Snapshot, ...]:
        return tuple(build.snapshot for build in self.builds)

    @property
    def noops(self) -> tuple[FoldOutcome, ...]:
        return tuple(build.outcome for build in self.builds if build.outcome.is_noop)

    def snapshot_for(self, entity: EntityKind) -> Snapshot | None:
        return next((s for s in self.snapshots if s.entity is entity), None)


class DenormalizationEngine:
    """Turns a stream of change events into audit logs and snapshot chains.

    Every collaborator is built around the *store* handed in here; the
    engine keeps no module-level state.

    Usage::

        engine = DenormalizationEngine(InMemoryDocumentStore())
        await engine.handle(revision_created)
        await engine.handle(slide_created)
        view = await engine.revision_view("rev-1")
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self._settings = settings or EngineSettings()
        self._clock = clock or MillisecondClock()
        self._metrics = EngineMetrics(metrics)
        self._store = store

        # one retry loop around the whole event; the builders try once each
        self._locks = WriterLocks()
        self._retry = TenacityRetryPolicy(
            max_attempts=self._settings.max_write_retries,
            retry_on=(WriteConflictError,),
            max_wait=self._settings.retry_max_wait,
        )
        resolver = VersionResolver(store)
        shared: dict[str, Any] = {
            "resolver": resolver,
            "clock": self._clock,
            "locks": self._locks,
            "retry": TenacityRetryPolicy(max_attempts=1, retry_on=(WriteConflictError,)),
            "metrics": self._metrics,
        }
        self.audit_log = AuditLog(store, clock=self._clock)
        self.resolver = resolver
        self.chain = VersionChain(store, resolver)
        self.slides = SlideSnapshotBuilder(store, **shared)
        self.revisions = RevisionSnapshotBuilder(
            store, strict_parents=self._settings.strict_parents, **shared
        )

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    async def handle(self, event: Event) -> FoldResult:
        """Append *event* to its audit log and fold it into every affected snapshot.

        Raises
        ------
        MalformedEventError
            The event lacks its id or parent reference. Nothing is written.
        UnknownEventKindError
            Only with ``reject_unknown_event_kinds``. Nothing is written.
        ParentNotFoundError
            The parent Slide (or Revision) has no snapshot. Nothing is written.
        WriteConflictError
            Optimistic writes kept losing after ``max_write_retries`` attempts.
            Nothing is written: neither the audit record nor any snapshot.
        """
        try:
            event.validate()
        except DomainError as exc:
            logger.warning("event.rejected", **exc.log_fields())
            raise
        with event_context(
            entity=event.entity.value, domain_id=event.domain_id, event_kind=event.kind
        ):
            try:
                return await self._fold(event)
            except DomainError as exc:
                logger.warning("event.rejected", **exc.log_fields())
                raise

    async def _fold(self, event: Event) -> FoldResult:
        if event.known_kind is None and self._settings.reject_unknown_event_kinds:
            raise UnknownEventKindError(
                event.kind, entity=event.entity.value, domain_id=event.domain_id
            )
        targets = await self._targets(event)

        started = time.perf_counter()
        record = self.audit_log.record(event)
        async with contextlib.AsyncExitStack() as held:
            for entity, domain_id in targets:
                await held.enter_async_context(self._locks.hold(entity, domain_id))
            builds = await self._retry.execute_async(lambda: self._commit(record))
        self._metrics.event_appended(event.entity.value)
        self._metrics.fold_duration(event.entity.value, (time.perf_counter() - started) * 1000)

        result = FoldResult(record=record, builds=builds)
        logger.info(
            "event.folded",
            record_id=record.record_id,
            versions=[s.version_id for s in result.snapshots],
            noops=[o.value for o in result.noops],
        )
        return result

    async def handle_many(self, events: Iterable[Event]) -> list[FoldResult]:
        """Handle *events* in order, each one fully before the next."""
        return [await self.handle(event) for event in events]

    async def _commit(self, record: AuditRecord) -> tuple[BuildResult, ...]:
        """One attempt: every snapshot version plus the audit record, or none of them."""
        async with self._store.transaction():
            builds = await self._route(record)
            await self.audit_log.write(record)
        return builds

    async def _targets(self, event: Event) -> list[tuple[EntityKind, str]]:
        """Check the event's parents; return the snapshots it will extend.

        Slides always come before Revisions, so two events never wait on
        each other's locks in opposite order.
        """
        if event.entity is EntityKind.REVISION:
            return [(EntityKind.REVISION, event.domain_id)]
        if event.entity is EntityKind.TRACK:
            slide_id = event.payload["slideId"]
            slide = await self.resolver.latest(EntityKind.SLIDE, slide_id)
            if slide is None:
                raise ParentNotFoundError(
                    EntityKind.SLIDE.value, slide_id, child_id=event.domain_id
                )
            revision_id = slide.payload.get("revisionId")
        else:
            slide_id = event.domain_id
            revision_id = event.payload["revisionId"]

        if self._settings.strict_parents and (
            revision_id is None
            or await self.resolver.latest(EntityKind.REVISION, revision_id) is None
        ):
            raise ParentNotFoundError(
                EntityKind.REVISION.value, revision_id, child_id=event.domain_id
            )
        targets = [(EntityKind.SLIDE, slide_id)]
        if revision_id is not None:
            targets.append((EntityKind.REVISION, revision_id))
        return targets

    async def _route(self, record: AuditRecord) -> tuple[BuildResult, ...]:
        entity = record.event.entity
        if entity is EntityKind.REVISION:
            return (await self.revisions.apply_revision(record),)
        if entity is EntityKind.SLIDE:
            slide = await self.slides.apply_slide(record)
            revision = await self.revisions.fold_child(
                record.event.payload["revisionId"], SlideChange(record)
            )
            return slide, revision
        if entity is EntityKind.TRACK:
            slide = await self.slides.fold_track(record)
            revision_id = slide.snapshot.payload.get("revisionId")
            if revision_id is None:
                raise ParentNotFoundError(
                    EntityKind.REVISION.value, None, child_id=record.domain_id
                )
            revision = await self.revisions.fold_child(revision_id, TrackChange(record))
            return slide, revision
        raise ValueError(f"Unroutable entity kind {entity!r}")

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def revision_view(self, domain_id: str, with_ancestor: bool = True) -> dict[str, Any] | None:
        """Latest Revision view with (by default) its previous version."""
        chained = await self.chain.chain(EntityKind.REVISION, domain_id)
        return project_revision(chained, with_ancestor) if chained is not None else None

    async def slide_view(self, domain_id: str, with_ancestor: bool = True) -> dict[str, Any] | None:
        """Latest Slide view with (by default) its previous version."""
        chained = await self.chain.chain(EntityKind.SLIDE, domain_id)
        return project_slide(chained, with_ancestor) if chained is not None else None

    async def revision_views(self) -> list[dict[str, Any]]:
        """Every stored Revision version, each with its predecessor."""
        return [project_revision(c) for c in await self.chain.all_with_previous(EntityKind.REVISION)]

    async def slide_views(self) -> list[dict[str, Any]]:
        """Every stored Slide version, each with its predecessor."""
        return [project_slide(c) for c in await self.chain.all_with_previous(EntityKind.SLIDE)]


__all__ = ["DenormalizationEngine", "FoldResult"]
