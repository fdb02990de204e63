"""Observability – NoopMetrics, the backend used when none is configured."""
from __future__ import annotations

from lesson_snapshots.observability.metrics.ports import Counter, Histogram, Labels, Metrics


class _Discard(Counter, Histogram):
    def add(self, value: float = 1.0, labels: Labels | None = None) -> None:
        return None

    def record(self, value: float, labels: Labels | None = None) -> None:
        return None


_DISCARD = _Discard()


class NoopMetrics(Metrics):
    """Every instrument is one shared sink that drops its readings."""

    def counter(self, name: str, description: str = "", unit: str = "") -> Counter:
        return _DISCARD

    def histogram(self, name: str, description: str = "", unit: str = "ms") -> Histogram:
        return _DISCARD


__all__ = ["NoopMetrics"]
