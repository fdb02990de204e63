"""Denormalization – per-snapshot single-writer locks."""

from __future__ import annotations

import asyncio
import contextlib
import weakref
from collections.abc import AsyncIterator

from lesson_snapshots.application.denormalization.events import EntityKind

_Key = tuple[EntityKind, str]


class WriterLocks:
    """One :class:`asyncio.Lock` per (entity kind, domain id).

    Folds that extend the same snapshot chain queue up behind each other
    inside this process; folds for different ids run independently.
    Locks nobody holds or waits on are dropped automatically.

    A task that already holds a key may enter :meth:`hold` for it again:
    the engine takes every lock an event needs up front, and the builders
    it calls take the same locks again.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[_Key, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._owners: dict[_Key, asyncio.Task] = {}

    def _lock_for(self, key: _Key) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @contextlib.asynccontextmanager
    async def hold(self, entity: EntityKind, domain_id: str) -> AsyncIterator[None]:
        key = (entity, domain_id)
        task = asyncio.current_task()
        if task is not None and self._owners.get(key) is task:
            yield
            return
        lock = self._lock_for(key)
        async with lock:
            if task is not None:
                self._owners[key] = task
            try:
                yield
            finally:
                self._owners.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


__all__ = ["WriterLocks"]
