"""Observability – metrics ports and the engine's instruments."""
from lesson_snapshots.observability.metrics.engine import EngineMetrics
from lesson_snapshots.observability.metrics.noop import NoopMetrics
from lesson_snapshots.observability.metrics.ports import Counter, Histogram, Metrics

__all__ = ["Counter", "EngineMetrics", "Histogram", "Metrics", "NoopMetrics"]
