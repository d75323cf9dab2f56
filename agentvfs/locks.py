"""Concurrency primitives — reader/writer lock, per-key locks, namespace gate.

Every subsystem runs on a single asyncio event loop; these primitives order
the coroutines that touch shared state.

Lock ordering (always acquire left to right, never the reverse)::

    KeyedLocks[key]  →  ConsistencyGate.writer()

The gate has four modes:

    reader()     state shared             reads and listings
    writer()     write-gate shared,       mutations; writers run concurrently
                 then state shared        with each other and with readers
    capture()    write-gate exclusive     snapshot create: waits for in-flight
                                          writers, blocks new ones, readers go on
    exclusive()  write-gate exclusive,    rollback: nothing else runs
                 then state exclusive

Usage::

    gate = ConsistencyGate()
    async with keyed.acquire("memory/notes/a"):
        async with gate.writer():
            store._apply(...)
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class AsyncRWLock:
    """Many readers or one writer.  Writer-preferring: once a writer is
    waiting, new readers queue behind it so captures cannot starve."""

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def locked(self) -> bool:
        return self._writer

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(
                lambda: not self._writer and self._waiting_writers == 0
            )
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            self._waiting_writers += 1
            try:
                await self._cond.wait_for(
                    lambda: not self._writer and self._readers == 0
                )
            except BaseException:
                self._waiting_writers -= 1
                self._cond.notify_all()
                raise
            self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class KeyedLocks:
    """Lazily created ``asyncio.Lock`` per key (memory key or skill name)."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def _get_lock(self, key: str) -> asyncio.Lock:
        """Return (or lazily create) the lock for *key*."""
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        lock = self._get_lock(key)
        await lock.acquire()
        try:
            yield
        finally:
            lock.release()

    def status(self) -> dict[str, bool]:
        """Return which keys are currently held, for monitoring."""
        return {key: lock.locked() for key, lock in self._locks.items()}


class ConsistencyGate:
    """Namespace-wide gate shared by the memory store, skill registry and
    snapshot manager of one ``VirtualFileSystem``."""

    def __init__(self) -> None:
        self._write_gate = AsyncRWLock()
        self._state = AsyncRWLock()

    @asynccontextmanager
    async def reader(self) -> AsyncIterator[None]:
        async with self._state.read():
            yield

    @asynccontextmanager
    async def writer(self) -> AsyncIterator[None]:
        async with self._write_gate.read():
            async with self._state.read():
                yield

    @asynccontextmanager
    async def capture(self) -> AsyncIterator[None]:
        async with self._write_gate.write():
            yield

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        async with self._write_gate.write():
            async with self._state.write():
                yield
