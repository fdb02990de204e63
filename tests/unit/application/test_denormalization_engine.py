"""Unit tests for DenormalizationEngine – end-to-end over the in-memory store."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any

import pytest
from structlog.testing import capture_logs

from lesson_snapshots.application.denormalization import (
    Collection,
    DenormalizationEngine,
    EntityKind,
    Event,
    FoldOutcome,
    InMemoryDocumentStore,
    MalformedEventError,
    ParentNotFoundError,
    UnknownEventKindError,
    WriteConflictError,
    parse_event,
)
from lesson_snapshots.config.settings import EngineSettings
from lesson_snapshots.kernel.time import FrozenClock
from lesson_snapshots.observability.metrics.engine import (
    EVENTS_APPENDED,
    FOLD_DURATION,
    FOLD_NOOPS,
    SNAPSHOTS_WRITTEN,
    WRITE_CONFLICTS,
)
from lesson_snapshots.testing.fakes import FakeClock, FakeMetricsRegistry, StepClock
from lesson_snapshots.testing.generators import (
    RevisionEventBuilder,
    SlideEventBuilder,
    TrackEventBuilder,
)

REVISION = RevisionEventBuilder("R1", status="draft")
SLIDE = SlideEventBuilder("S1", "R1", position=1)
TRACK = TrackEventBuilder("T1", "S1", seconds=6)


def _engine(
    store: InMemoryDocumentStore | None = None,
    metrics: FakeMetricsRegistry | None = None,
    clock: StepClock | None = None,
    **settings: Any,
) -> DenormalizationEngine:
    settings.setdefault("retry_max_wait", 0.01)
    return DenormalizationEngine(
        store or InMemoryDocumentStore(),
        settings=EngineSettings(**settings),
        clock=clock or StepClock(),
        metrics=metrics,
    )


def _handle_all(engine: DenormalizationEngine, *events: Event) -> list:
    return asyncio.run(engine.handle_many(events))


def _latest(engine: DenormalizationEngine, entity: EntityKind, domain_id: str):
    return asyncio.run(engine.resolver.latest(entity, domain_id))


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


class TestScenarios:
    def test_a_create_hierarchy(self) -> None:
        engine = _engine()
        _handle_all(engine, REVISION.created(), SLIDE.created(), TRACK.created())

        revision = _latest(engine, EntityKind.REVISION, "R1")
        assert revision.payload["status"] == "draft"
        assert [s.domain_id for s in revision.children] == ["S1"]
        assert [t.domain_id for t in revision.children[0].children] == ["T1"]
        assert revision.children[0].children[0].payload["seconds"] == 6

        slide = _latest(engine, EntityKind.SLIDE, "S1")
        assert [t.domain_id for t in slide.children] == ["T1"]

    def test_b_slide_update_keeps_unchanged_fields(self) -> None:
        engine = _engine()
        _handle_all(
            engine,
            REVISION.created(),
            SLIDE.created(),
            TRACK.created(),
            SLIDE.with_(mediaUrl="https://cdn.example.com/s1.png").updated("mediaUrl"),
        )

        slide_entry = _latest(engine, EntityKind.REVISION, "R1").children[0]
        assert slide_entry.payload["mediaUrl"] == "https://cdn.example.com/s1.png"
        assert slide_entry.payload["position"] == 1
        assert [t.domain_id for t in slide_entry.children] == ["T1"]

    def test_c_track_delete_reaches_both_levels(self) -> None:
        engine = _engine()
        _handle_all(engine, REVISION.created(), SLIDE.created(), TRACK.created(), TRACK.deleted())

        assert _latest(engine, EntityKind.SLIDE, "S1").children == ()
        assert _latest(engine, EntityKind.REVISION, "R1").children[0].children == ()

    def test_d_delete_is_inverse_of_create(self) -> None:
        engine = _engine()
        _handle_all(engine, REVISION.created(), SLIDE.created())
        before_revision = _latest(engine, EntityKind.REVISION, "R1")
        before_slide = _latest(engine, EntityKind.SLIDE, "S1")

        track2 = TrackEventBuilder("T2", "S1")
        _handle_all(engine, track2.created(), track2.deleted())

        after_revision = _latest(engine, EntityKind.REVISION, "R1")
        after_slide = _latest(engine, EntityKind.SLIDE, "S1")
        assert after_revision.children == before_revision.children
        assert after_slide.children == before_slide.children
        # the history still records both steps
        assert asyncio.run(engine.chain.verify(EntityKind.REVISION, "R1")) == 4
        assert asyncio.run(engine.chain.verify(EntityKind.SLIDE, "S1")) == 3


# ---------------------------------------------------------------------------
# Write accounting
# ---------------------------------------------------------------------------


class TestWriteAccounting:
    def test_one_snapshot_per_affected_level(self) -> None:
        store = InMemoryDocumentStore()
        engine = _engine(store)
        results = _handle_all(engine, REVISION.created(), SLIDE.created(), TRACK.created())

        assert [len(r.snapshots) for r in results] == [1, 2, 2]
        assert store.count(Collection.REVISION_SNAPSHOTS) == 3
        assert store.count(Collection.SLIDE_SNAPSHOTS) == 2
        for log in (Collection.REVISION_LOG, Collection.SLIDE_LOG, Collection.TRACK_LOG):
            assert store.count(log) == 1

    def test_snapshot_links_to_audit_record(self) -> None:
        engine = _engine()
        result = _handle_all(engine, REVISION.created(), SLIDE.created())[1]

        assert result.snapshot_for(EntityKind.SLIDE).record_id == result.record.record_id
        assert result.snapshot_for(EntityKind.REVISION).record_id == result.record.record_id
        assert result.snapshot_for(EntityKind.TRACK) is None

    def test_each_version_extends_the_previous_latest(self) -> None:
        engine = _engine()
        results = _handle_all(engine, REVISION.created(), SLIDE.created(), TRACK.created())

        versions = [r.snapshot_for(EntityKind.REVISION) for r in results]
        assert versions[0].previous is None
        assert versions[1].previous == versions[0].version_id
        assert versions[2].previous == versions[1].version_id

    def test_frozen_clock_ties_resolve_to_last_write(self) -> None:
        store = InMemoryDocumentStore()
        engine = DenormalizationEngine(store, clock=FakeClock())
        _handle_all(
            engine,
            REVISION.created(),
            REVISION.with_(status="review").updated("status"),
            REVISION.with_(status="live").updated("status"),
        )
        assert _latest(engine, EntityKind.REVISION, "R1").payload["status"] == "live"
        assert asyncio.run(engine.chain.verify(EntityKind.REVISION, "R1")) == 3

    def test_wire_events_are_accepted(self) -> None:
        engine = _engine()
        raw = {
            "entity": "revision",
            "event": "created",
            "logTime": "2026-02-01T09:30:00+00:00",
            "object": {"id": "R1", "status": "draft", "major": 1},
            "blameUser": {"email": "author@example.com"},
        }
        result = asyncio.run(engine.handle(parse_event(raw)))
        assert result.snapshots[0].actor.email == "author@example.com"


# ---------------------------------------------------------------------------
# Rejections: nothing is written
# ---------------------------------------------------------------------------


class TestRejections:
    def test_malformed_event(self) -> None:
        store = InMemoryDocumentStore()
        engine = _engine(store)

        with pytest.raises(MalformedEventError):
            asyncio.run(engine.handle(Event(EntityKind.TRACK, "created", {"id": "T1"})))
        assert store.count(Collection.TRACK_LOG) == 0

    def test_track_without_slide(self) -> None:
        store = InMemoryDocumentStore()
        engine = _engine(store)
        _handle_all(engine, REVISION.created())

        with pytest.raises(ParentNotFoundError) as exc_info:
            asyncio.run(engine.handle(TRACK.created()))
        assert exc_info.value.parent_kind == "slide"
        assert exc_info.value.code == "parent_not_found"
        assert store.count(Collection.TRACK_LOG) == 0
        assert store.count(Collection.REVISION_SNAPSHOTS) == 1

    def test_slide_without_revision_when_strict(self) -> None:
        store = InMemoryDocumentStore()
        engine = _engine(store)

        with pytest.raises(ParentNotFoundError) as exc_info:
            asyncio.run(engine.handle(SLIDE.created()))
        assert exc_info.value.parent_id == "R1"
        assert store.count(Collection.SLIDE_LOG) == 0
        assert store.count(Collection.SLIDE_SNAPSHOTS) == 0

    def test_slide_without_revision_when_lenient(self) -> None:
        engine = _engine(strict_parents=False)
        _handle_all(engine, SLIDE.created())

        revision = _latest(engine, EntityKind.REVISION, "R1")
        assert revision.payload == {"id": "R1"}
        assert [s.domain_id for s in revision.children] == ["S1"]

    def test_unknown_kind_rejected_when_configured(self) -> None:
        store = InMemoryDocumentStore()
        engine = _engine(store, reject_unknown_event_kinds=True)
        _handle_all(engine, REVISION.created(), SLIDE.created())

        with pytest.raises(UnknownEventKindError) as exc_info:
            asyncio.run(engine.handle(SLIDE.event("archived")))
        assert exc_info.value.event_kind == "archived"
        assert store.count(Collection.SLIDE_LOG) == 1

    def test_rejections_are_logged_with_error_fields(self) -> None:
        engine = _engine()
        _handle_all(engine, REVISION.created())

        with capture_logs() as logs, pytest.raises(ParentNotFoundError):
            asyncio.run(engine.handle(TRACK.created()))

        rejected = [entry for entry in logs if entry["event"] == "event.rejected"]
        assert len(rejected) == 1
        assert rejected[0]["error_code"] == "parent_not_found"
        assert rejected[0]["parent_id"] == "S1"
        assert rejected[0]["log_level"] == "warning"

    def test_malformed_rejection_is_logged(self) -> None:
        with capture_logs() as logs, pytest.raises(MalformedEventError):
            asyncio.run(_engine().handle(Event(EntityKind.SLIDE, "created", {"id": "S1"})))
        assert [e["error_code"] for e in logs if e["event"] == "event.rejected"] == ["malformed_event"]


# ---------------------------------------------------------------------------
# No-op folds are observable
# ---------------------------------------------------------------------------


class TestNoops:
    def test_unknown_kind_is_recorded_and_counted(self) -> None:
        metrics = FakeMetricsRegistry()
        store = InMemoryDocumentStore()
        engine = _engine(store, metrics)
        _handle_all(engine, REVISION.created(), SLIDE.created(), TRACK.created())
        before = _latest(engine, EntityKind.REVISION, "R1")

        result = asyncio.run(engine.handle(TRACK.event("archived", TRACK.attrs)))

        assert result.noops == (FoldOutcome.UNKNOWN_EVENT_KIND, FoldOutcome.UNKNOWN_EVENT_KIND)
        assert store.count(Collection.TRACK_LOG) == 2
        after = _latest(engine, EntityKind.REVISION, "R1")
        assert after.children == before.children
        assert after.previous == before.version_id
        metrics.assert_counter_total(FOLD_NOOPS, 2, reason="unknown_event_kind")
        metrics.assert_counter_total(FOLD_NOOPS, 1, entity="slide")

    def test_update_of_missing_track(self) -> None:
        metrics = FakeMetricsRegistry()
        engine = _engine(metrics=metrics)
        _handle_all(engine, REVISION.created(), SLIDE.created())

        result = asyncio.run(engine.handle(TrackEventBuilder("T9", "S1").updated()))
        assert result.noops == (FoldOutcome.MISSING_CHILD, FoldOutcome.MISSING_CHILD)
        metrics.assert_counter_total(FOLD_NOOPS, 2, reason="missing_child")

    def test_track_of_deleted_slide(self) -> None:
        engine = _engine()
        _handle_all(engine, REVISION.created(), SLIDE.created(), SLIDE.deleted())

        result = asyncio.run(engine.handle(TRACK.created()))
        assert result.snapshot_for(EntityKind.SLIDE).children[0].domain_id == "T1"
        assert result.noops == (FoldOutcome.MISSING_PARENT_ENTRY,)
        assert _latest(engine, EntityKind.REVISION, "R1").children == ()

    def test_applied_events_are_counted(self) -> None:
        metrics = FakeMetricsRegistry()
        engine = _engine(metrics=metrics)
        results = _handle_all(engine, REVISION.created(), SLIDE.created(), TRACK.created())

        assert not any(r.noops for r in results)
        metrics.assert_counter_total(EVENTS_APPENDED, 3)
        metrics.assert_counter_total(SNAPSHOTS_WRITTEN, 5)
        metrics.assert_counter_total(SNAPSHOTS_WRITTEN, 3, entity="revision")
        assert metrics.histogram(FOLD_DURATION).call_count == 3


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class _InterleavingStore(InMemoryDocumentStore):
    """Yields to the event loop between resolving and writing a version."""

    async def find_latest(self, collection, domain_id):
        doc = await super().find_latest(collection, domain_id)
        await asyncio.sleep(0)
        return doc


class TestConcurrency:
    def test_concurrent_events_on_one_engine(self) -> None:
        engine = _engine()
        _handle_all(engine, REVISION.created(), SLIDE.created())
        tracks = [TrackEventBuilder(f"T{i}", "S1").created() for i in range(10)]

        async def run() -> None:
            await asyncio.gather(*(engine.handle(event) for event in tracks))

        asyncio.run(run())
        slide = _latest(engine, EntityKind.SLIDE, "S1")
        assert sorted(t.domain_id for t in slide.children) == sorted(f"T{i}" for i in range(10))
        assert asyncio.run(engine.chain.verify(EntityKind.SLIDE, "S1")) == 11
        assert asyncio.run(engine.chain.verify(EntityKind.REVISION, "R1")) == 12

    def test_engines_sharing_a_store_retry_lost_races(self) -> None:
        store = _InterleavingStore()
        metrics = FakeMetricsRegistry()
        clock = StepClock()
        first = _engine(store, metrics, clock)
        second = _engine(store, metrics, clock)
        _handle_all(first, REVISION.created(), SLIDE.created())

        async def run() -> None:
            await asyncio.gather(
                first.handle(TrackEventBuilder("T1", "S1").created()),
                second.handle(TrackEventBuilder("T2", "S1").created()),
            )

        asyncio.run(run())
        slide = _latest(first, EntityKind.SLIDE, "S1")
        assert sorted(t.domain_id for t in slide.children) == ["T1", "T2"]
        revision = _latest(first, EntityKind.REVISION, "R1")
        assert sorted(t.domain_id for t in revision.children[0].children) == ["T1", "T2"]
        assert metrics.counter(WRITE_CONFLICTS).total >= 1

        previous_ids = [d["previous"] for d in store.documents(Collection.SLIDE_SNAPSHOTS)]
        assert len(previous_ids) == len(set(previous_ids))

    def test_skewed_clocks_still_extend_the_chain(self) -> None:
        store = InMemoryDocumentStore()
        ahead = _engine(store, clock=FrozenClock(datetime(2026, 1, 1, 12, 0, tzinfo=UTC)))
        behind = _engine(store, clock=FrozenClock(datetime(2026, 1, 1, 11, 0, tzinfo=UTC)))

        asyncio.run(ahead.handle(REVISION.created()))
        asyncio.run(behind.handle(REVISION.with_(status="review").updated("status")))
        asyncio.run(ahead.handle(REVISION.with_(status="live").updated("status")))

        assert _latest(ahead, EntityKind.REVISION, "R1").payload["status"] == "live"
        assert asyncio.run(ahead.chain.verify(EntityKind.REVISION, "R1")) == 3
        stamps = [d["created_at"] for d in store.documents(Collection.REVISION_SNAPSHOTS)]
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == 3


# ---------------------------------------------------------------------------
# Redelivery and first events
# ---------------------------------------------------------------------------


class TestRedelivery:
    def test_repeated_slide_created_keeps_tracks_at_both_levels(self) -> None:
        engine = _engine()
        _handle_all(
            engine,
            REVISION.created(),
            SLIDE.created(),
            TRACK.created(),
            SLIDE.with_(position=2).created(),
        )

        slide = _latest(engine, EntityKind.SLIDE, "S1")
        revision = _latest(engine, EntityKind.REVISION, "R1")
        assert [t.domain_id for t in slide.children] == ["T1"]
        assert [s.domain_id for s in revision.children] == ["S1"]
        assert [t.domain_id for t in revision.children[0].children] == ["T1"]
        assert revision.children[0].payload["position"] == 2


class TestFirstEventKind:
    def test_first_slide_event_deleted_is_recorded_as_deleted(self) -> None:
        engine = _engine()
        _handle_all(engine, REVISION.created())

        result = asyncio.run(engine.handle(SLIDE.deleted()))
        assert result.snapshot_for(EntityKind.SLIDE).event_kind == "deleted"
        assert result.snapshot_for(EntityKind.SLIDE).previous is None
        assert result.noops == (FoldOutcome.MISSING_CHILD,)

    def test_first_revision_event_updated_is_recorded_as_updated(self) -> None:
        engine = _engine()
        result = asyncio.run(engine.handle(REVISION.updated("status")))
        snapshot = result.snapshot_for(EntityKind.REVISION)
        assert snapshot.event_kind == "updated"
        assert snapshot.payload["status"] == "draft"

    def test_first_event_of_unknown_kind_starts_as_created(self) -> None:
        engine = _engine()
        result = asyncio.run(engine.handle(REVISION.event("archived", REVISION.attrs)))
        assert result.snapshot_for(EntityKind.REVISION).event_kind == "created"
        assert result.noops == (FoldOutcome.UNKNOWN_EVENT_KIND,)


# ---------------------------------------------------------------------------
# Atomicity
# ---------------------------------------------------------------------------


class _RevisionConflictStore(InMemoryDocumentStore):
    """Rejects every Revision version while ``armed``."""

    armed = False

    async def insert_version(self, collection, doc):
        if self.armed and collection is Collection.REVISION_SNAPSHOTS:
            raise WriteConflictError(collection.value, doc["domain_id"], doc.get("previous"))
        return await super().insert_version(collection, doc)


class TestAtomicity:
    def test_exhausted_revision_retries_write_nothing(self) -> None:
        store = _RevisionConflictStore()
        metrics = FakeMetricsRegistry()
        engine = _engine(store, metrics, max_write_retries=3)
        _handle_all(engine, REVISION.created())

        store.armed = True
        with pytest.raises(WriteConflictError):
            asyncio.run(engine.handle(SLIDE.created()))

        assert store.count(Collection.SLIDE_LOG) == 0
        assert store.count(Collection.SLIDE_SNAPSHOTS) == 0
        assert store.count(Collection.REVISION_LOG) == 1
        assert store.count(Collection.REVISION_SNAPSHOTS) == 1
        metrics.assert_counter_total(WRITE_CONFLICTS, 3, entity="revision")
        metrics.assert_counter_total(EVENTS_APPENDED, 1)

    def test_event_succeeds_once_the_conflict_clears(self) -> None:
        store = _RevisionConflictStore()
        engine = _engine(store, max_write_retries=2)
        _handle_all(engine, REVISION.created())

        store.armed = True
        with pytest.raises(WriteConflictError):
            asyncio.run(engine.handle(SLIDE.created()))
        store.armed = False
        result = asyncio.run(engine.handle(SLIDE.created()))

        assert store.count(Collection.SLIDE_LOG) == 1
        assert result.snapshot_for(EntityKind.SLIDE).previous is None
        assert asyncio.run(engine.chain.verify(EntityKind.SLIDE, "S1")) == 1
        assert asyncio.run(engine.chain.verify(EntityKind.REVISION, "R1")) == 2

    def test_parent_rejection_writes_no_audit_record(self) -> None:
        store = InMemoryDocumentStore()
        engine = _engine(store)
        with pytest.raises(ParentNotFoundError):
            asyncio.run(engine.handle(TRACK.created()))
        assert store.count(Collection.TRACK_LOG) == 0
