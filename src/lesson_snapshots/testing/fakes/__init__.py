"""Testing fakes – in-memory doubles for kernel and observability ports."""
from lesson_snapshots.kernel.time import FrozenClock
from lesson_snapshots.testing.fakes.clock import FakeClock, StepClock
from lesson_snapshots.testing.fakes.metrics import FakeMetricsRegistry

__all__ = ["FakeClock", "FakeMetricsRegistry", "FrozenClock", "StepClock"]
