"""Unit tests for VersionChain and the view projections."""

from __future__ import annotations

import asyncio
import dataclasses
from datetime import UTC, datetime

import pytest

from lesson_snapshots.application.denormalization import (
    ChainedSnapshot,
    ChainIntegrityError,
    Collection,
    DenormalizationEngine,
    EntityKind,
    InMemoryDocumentStore,
    ProjectionTransformer,
    VersionChain,
    project_revision,
    project_slide,
)
from lesson_snapshots.application.denormalization.projection import format_version
from lesson_snapshots.testing.fakes import StepClock
from lesson_snapshots.testing.generators import (
    RevisionEventBuilder,
    SlideEventBuilder,
    TrackEventBuilder,
)


def _engine() -> tuple[DenormalizationEngine, InMemoryDocumentStore]:
    store = InMemoryDocumentStore()
    return DenormalizationEngine(store, clock=StepClock()), store


def _revision_with_updates(engine: DenormalizationEngine, updates: int) -> None:
    revision = RevisionEventBuilder("r-1", status="draft")

    async def run() -> None:
        await engine.handle(revision.created())
        for minor in range(1, updates + 1):
            await engine.handle(revision.with_(minor=minor).updated("minor"))

    asyncio.run(run())


def _raw_version(version_id: str, previous: str | None, domain_id: str = "r-1") -> dict:
    return {
        "_id": version_id,
        "entity": "revision",
        "domain_id": domain_id,
        "event_kind": "updated",
        "payload": {"id": domain_id},
        "previous": previous,
        "created_at": datetime(2026, 1, 1, tzinfo=UTC),
        "children": [],
        "actor": None,
        "record_id": None,
    }


# ---------------------------------------------------------------------------
# VersionChain
# ---------------------------------------------------------------------------


class TestVersionChain:
    def test_unknown_id_gives_none(self) -> None:
        engine, _ = _engine()
        assert asyncio.run(engine.chain.chain(EntityKind.REVISION, "r-404")) is None

    def test_default_depth_resolves_one_ancestor(self) -> None:
        engine, _ = _engine()
        _revision_with_updates(engine, 3)

        chained = asyncio.run(engine.chain.chain(EntityKind.REVISION, "r-1"))
        assert chained.snapshot.payload["minor"] == 3
        assert chained.previous is not None
        assert chained.previous.snapshot.payload["minor"] == 2
        assert chained.previous.previous is None
        assert chained.depth == 1

    def test_depth_zero_has_no_ancestor(self) -> None:
        engine, _ = _engine()
        _revision_with_updates(engine, 2)

        chained = asyncio.run(engine.chain.chain(EntityKind.REVISION, "r-1", depth=0))
        assert chained.previous is None

    def test_depth_is_capped_by_history(self) -> None:
        engine, _ = _engine()
        _revision_with_updates(engine, 3)

        chained = asyncio.run(engine.chain.chain(EntityKind.REVISION, "r-1", depth=10))
        assert chained.depth == 3

    def test_negative_depth_rejected(self) -> None:
        engine, _ = _engine()
        with pytest.raises(ValueError):
            asyncio.run(engine.chain.chain(EntityKind.REVISION, "r-1", depth=-1))

    def test_history_is_newest_first(self) -> None:
        engine, _ = _engine()
        _revision_with_updates(engine, 2)

        history = asyncio.run(engine.chain.history(EntityKind.REVISION, "r-1"))
        assert [v.payload["minor"] for v in history] == [2, 1, 0]
        assert history[-1].previous is None

    def test_verify_returns_length(self) -> None:
        engine, _ = _engine()
        _revision_with_updates(engine, 4)
        assert asyncio.run(engine.chain.verify(EntityKind.REVISION, "r-1")) == 5

    def test_dangling_reference_raises(self) -> None:
        store = InMemoryDocumentStore()
        asyncio.run(store.insert(Collection.REVISION_SNAPSHOTS, _raw_version("v2", "v-gone")))
        chain = VersionChain(store)

        with pytest.raises(ChainIntegrityError):
            asyncio.run(chain.chain(EntityKind.REVISION, "r-1"))
        with pytest.raises(ChainIntegrityError):
            asyncio.run(chain.verify(EntityKind.REVISION, "r-1"))

    def test_cycle_is_detected(self) -> None:
        store = InMemoryDocumentStore()

        async def run() -> None:
            await store.insert(Collection.REVISION_SNAPSHOTS, _raw_version("va", "vb"))
            await store.insert(Collection.REVISION_SNAPSHOTS, _raw_version("vb", "va"))
            await VersionChain(store).history(EntityKind.REVISION, "r-1")

        with pytest.raises(ChainIntegrityError) as exc_info:
            asyncio.run(run())
        assert exc_info.value.code == "chain_integrity"

    def test_chain_jumping_domain_ids_is_detected(self) -> None:
        store = InMemoryDocumentStore()

        async def run() -> None:
            await store.insert(Collection.REVISION_SNAPSHOTS, _raw_version("vx", None, "r-2"))
            await store.insert(Collection.REVISION_SNAPSHOTS, _raw_version("v1", "vx"))
            await VersionChain(store).history(EntityKind.REVISION, "r-1")

        with pytest.raises(ChainIntegrityError):
            asyncio.run(run())

    def test_all_with_previous(self) -> None:
        engine, _ = _engine()
        _revision_with_updates(engine, 2)

        rows = asyncio.run(engine.chain.all_with_previous(EntityKind.REVISION))
        assert len(rows) == 3
        assert rows[0].previous is None
        assert rows[2].previous.snapshot.version_id == rows[1].snapshot.version_id
        assert rows[2].snapshot.previous == rows[1].snapshot.version_id


# ---------------------------------------------------------------------------
# Projections
# ---------------------------------------------------------------------------


class TestProjection:
    def _populate(self, engine: DenormalizationEngine) -> None:
        async def run() -> None:
            await engine.handle(
                RevisionEventBuilder("r-1", status="draft", major=2, minor=1, patch=0).created()
            )
            await engine.handle(SlideEventBuilder("s-1", "r-1", position=1).created())
            await engine.handle(TrackEventBuilder("t-1", "s-1", seconds=6).created())

        asyncio.run(run())

    def test_revision_view_shape(self) -> None:
        engine, _ = _engine()
        self._populate(engine)

        view = asyncio.run(engine.revision_view("r-1"))
        assert set(view) == {"event", "lessonRevision", "previous"}
        assert view["event"] == "updated"
        revision = view["lessonRevision"]
        assert revision["version"] == "2.1.0"
        assert revision["status"] == "draft"
        assert revision["id"] == "r-1"
        assert revision["slides"] == [
            {
                "event": "created",
                "lessonSlide": {
                    "id": "s-1",
                    "revisionId": "r-1",
                    "position": 1,
                    "type": "media",
                    "mediaUrl": None,
                    "createdAt": "2026-01-01T00:00:00+00:00",
                },
            }
        ]

    def test_ancestor_is_one_level_only(self) -> None:
        engine, _ = _engine()
        self._populate(engine)

        view = asyncio.run(engine.revision_view("r-1"))
        assert "previous" not in view["previous"]
        assert view["previous"]["lessonRevision"]["slides"][0]["lessonSlide"]["id"] == "s-1"

    def test_without_ancestor(self) -> None:
        engine, _ = _engine()
        self._populate(engine)

        view = asyncio.run(engine.revision_view("r-1", with_ancestor=False))
        assert "previous" not in view

    def test_slide_view_embeds_tracks(self) -> None:
        engine, _ = _engine()
        self._populate(engine)

        view = asyncio.run(engine.slide_view("s-1"))
        assert view["lessonSlide"]["id"] == "s-1"
        assert [t["id"] for t in view["lessonSlide"]["tracks"]] == ["t-1"]
        assert view["previous"]["lessonSlide"]["tracks"] == []

    def test_views_drop_internal_fields(self) -> None:
        engine, _ = _engine()
        self._populate(engine)

        view = asyncio.run(engine.revision_view("r-1"))
        flat = repr(view)
        for internal in ("version_id", "record_id", "domain_id", "actor"):
            assert internal not in flat

    def test_projection_is_stable_and_detached(self) -> None:
        engine, _ = _engine()
        self._populate(engine)

        first = asyncio.run(engine.slide_view("s-1"))
        first["lessonSlide"]["tracks"][0]["seconds"] = 999
        second = asyncio.run(engine.slide_view("s-1"))
        assert second["lessonSlide"]["tracks"][0]["seconds"] == 6
        assert project_slide(asyncio.run(engine.chain.chain(EntityKind.SLIDE, "s-1"))) == second

    def test_transformer_bounds_deeper_chains(self) -> None:
        engine, _ = _engine()
        _revision_with_updates(engine, 3)

        chained = asyncio.run(engine.chain.chain(EntityKind.REVISION, "r-1", depth=3))
        view = ProjectionTransformer().project(chained)
        assert "previous" not in view["previous"]
        assert view == project_revision(chained)

    def test_transformer_rejects_unknown_entities(self) -> None:
        engine, _ = _engine()
        _revision_with_updates(engine, 0)
        chained = asyncio.run(engine.chain.chain(EntityKind.REVISION, "r-1"))
        track_like = ChainedSnapshot(dataclasses.replace(chained.snapshot, entity=EntityKind.TRACK))
        with pytest.raises(ValueError):
            ProjectionTransformer().project(track_like)

    def test_all_views(self) -> None:
        engine, _ = _engine()
        self._populate(engine)

        revisions = asyncio.run(engine.revision_views())
        slides = asyncio.run(engine.slide_views())
        assert len(revisions) == 3
        assert "previous" not in revisions[0]
        assert len(slides) == 2

    @pytest.mark.parametrize(
        ("payload", "expected"),
        [
            ({"major": 1, "minor": 2, "patch": 3}, "1.2.3"),
            ({"major": 4}, "4.0.0"),
            ({}, "0.0.0"),
            ({"major": 1, "minor": None, "patch": 7}, "1.0.7"),
        ],
    )
    def test_format_version(self, payload: dict, expected: str) -> None:
        assert format_version(payload) == expected
