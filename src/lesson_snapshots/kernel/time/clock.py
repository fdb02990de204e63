"""Kernel time – Clock protocol + implementations.

Snapshot ``created_at`` and audit ``recorded_at`` stamps are taken from a
:class:`Clock` handed to each component, never from a module global.
"""
from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol

_MILLISECOND = timedelta(milliseconds=1)


class Clock(Protocol):
    """Port: source of UTC timestamps."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time, ``datetime.now(UTC)``."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class MillisecondClock:
    """Strictly increasing timestamps at millisecond resolution.

    MongoDB keeps datetimes to the millisecond, so two versions written
    within the same millisecond would tie on ``created_at``. This clock
    truncates *source* readings to the millisecond and bumps a reading
    that does not move past the previous one by one millisecond.
    """

    def __init__(self, source: Clock | None = None) -> None:
        self._source = source or SystemClock()
        self._last: datetime | None = None

    def now(self) -> datetime:
        reading = self._source.now()
        reading = reading.replace(microsecond=reading.microsecond // 1000 * 1000)
        if self._last is not None and reading <= self._last:
            reading = self._last + _MILLISECOND
        self._last = reading
        return reading


class FrozenClock:
    """Clock pinned to one instant until :meth:`advance` moves it."""

    def __init__(self, fixed: datetime) -> None:
        self._fixed = fixed

    def now(self) -> datetime:
        return self._fixed

    def advance(self, **kwargs: int | float) -> None:
        """Move the pinned instant forward by ``timedelta(**kwargs)``."""
        self._fixed += timedelta(**kwargs)


def utc_now() -> datetime:
    return datetime.now(UTC)


__all__ = ["Clock", "FrozenClock", "MillisecondClock", "SystemClock", "utc_now"]
