"""Kernel time – Clock port + implementations."""
from lesson_snapshots.kernel.time.clock import Clock, FrozenClock, MillisecondClock, SystemClock, utc_now

__all__ = ["Clock", "FrozenClock", "MillisecondClock", "SystemClock", "utc_now"]
