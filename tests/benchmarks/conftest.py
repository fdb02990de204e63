"""conftest.py for benchmarks.

Every benchmark drives the engine through one session-wide event loop, so
loop start-up never shows up in the timings.
"""

from __future__ import annotations

import asyncio

import pytest

from lesson_snapshots.application.denormalization import DenormalizationEngine, InMemoryDocumentStore
from lesson_snapshots.testing.fakes import StepClock
from lesson_snapshots.testing.generators import (
    RevisionEventBuilder,
    SlideEventBuilder,
    TrackEventBuilder,
)


@pytest.fixture(scope="session")
def event_loop():
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


@pytest.fixture(scope="session")
def run_async(event_loop):
    """Run a coroutine to completion on the session loop."""

    def _run(coro):
        return event_loop.run_until_complete(coro)

    return _run


@pytest.fixture()
def seeded_engine(run_async):
    """Factory: an engine holding rev-1 → slide-1 → t-0, with *history*
    extra updates of t-0 already folded."""

    def _make(history: int) -> DenormalizationEngine:
        engine = DenormalizationEngine(InMemoryDocumentStore(), clock=StepClock())
        track = TrackEventBuilder("t-0", "slide-1")

        async def seed() -> None:
            await engine.handle(RevisionEventBuilder("rev-1").created())
            await engine.handle(SlideEventBuilder("slide-1", "rev-1").created())
            await engine.handle(track.created())
            for seconds in range(history):
                await engine.handle(track.with_(seconds=seconds).updated("seconds"))

        run_async(seed())
        return engine

    return _make
