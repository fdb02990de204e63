"""Observability – EngineMetrics.

Names every instrument the denormalization engine records, so that
call sites say *what* happened and this module decides how it is
reported.
"""
from __future__ import annotations

from lesson_snapshots.observability.metrics.noop import NoopMetrics
from lesson_snapshots.observability.metrics.ports import Metrics

PREFIX = "lesson_snapshots"

EVENTS_APPENDED = f"{PREFIX}.events.appended"
SNAPSHOTS_WRITTEN = f"{PREFIX}.snapshots.written"
FOLD_NOOPS = f"{PREFIX}.fold.noop"
WRITE_CONFLICTS = f"{PREFIX}.write.conflicts"
FOLD_DURATION = f"{PREFIX}.fold.duration"


class EngineMetrics:
    """Thin facade over a :class:`Metrics` backend."""

    def __init__(self, metrics: Metrics | None = None) -> None:
        self._metrics = metrics or NoopMetrics()

    def event_appended(self, entity: str) -> None:
        self._metrics.counter(EVENTS_APPENDED, "Events appended to an audit log").add(
            1, labels={"entity": entity}
        )

    def snapshot_written(self, entity: str) -> None:
        self._metrics.counter(SNAPSHOTS_WRITTEN, "Snapshot versions persisted").add(
            1, labels={"entity": entity}
        )

    def fold_noop(self, entity: str, reason: str) -> None:
        self._metrics.counter(FOLD_NOOPS, "Folds that left the child collection unchanged").add(
            1, labels={"entity": entity, "reason": reason}
        )

    def write_conflict(self, entity: str) -> None:
        self._metrics.counter(WRITE_CONFLICTS, "Optimistic snapshot writes that lost a race").add(
            1, labels={"entity": entity}
        )

    def fold_duration(self, entity: str, millis: float) -> None:
        self._metrics.histogram(FOLD_DURATION, "Time to fold one event", "ms").record(
            millis, labels={"entity": entity}
        )


__all__ = [
    "EVENTS_APPENDED",
    "EngineMetrics",
    "FOLD_DURATION",
    "FOLD_NOOPS",
    "SNAPSHOTS_WRITTEN",
    "WRITE_CONFLICTS",
]
