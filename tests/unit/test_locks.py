"""Unit tests — locks.py (AsyncRWLock, KeyedLocks, ConsistencyGate)."""

from __future__ import annotations

import asyncio

import pytest

from agentvfs.locks import AsyncRWLock, ConsistencyGate, KeyedLocks


@pytest.mark.unit
class TestAsyncRWLock:
    async def test_readers_share(self) -> None:
        lock = AsyncRWLock()
        async with lock.read():
            async with lock.read():
                assert lock.readers == 2
        assert lock.readers == 0

    async def test_writer_excludes_readers(self) -> None:
        lock = AsyncRWLock()
        order: list[str] = []

        async def writer() -> None:
            async with lock.write():
                order.append("w-start")
                await asyncio.sleep(0.01)
                order.append("w-end")

        async def reader() -> None:
            await asyncio.sleep(0)
            async with lock.read():
                order.append("r")

        await asyncio.gather(writer(), reader())
        assert order == ["w-start", "w-end", "r"]

    async def test_waiting_writer_blocks_new_readers(self) -> None:
        lock = AsyncRWLock()
        order: list[str] = []
        first_reader_in = asyncio.Event()
        release = asyncio.Event()

        async def first_reader() -> None:
            async with lock.read():
                first_reader_in.set()
                await release.wait()
                order.append("r1")

        async def writer() -> None:
            await first_reader_in.wait()
            async with lock.write():
                order.append("w")

        async def late_reader() -> None:
            await first_reader_in.wait()
            await asyncio.sleep(0.01)
            async with lock.read():
                order.append("r2")

        async def releaser() -> None:
            await asyncio.sleep(0.02)
            release.set()

        await asyncio.gather(first_reader(), writer(), late_reader(), releaser())
        assert order == ["r1", "w", "r2"]

    async def test_cancelled_writer_does_not_block_readers(self) -> None:
        lock = AsyncRWLock()
        async with lock.read():
            task = asyncio.create_task(lock.write().__aenter__())
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
        async with lock.read():
            assert lock.readers == 1


@pytest.mark.unit
class TestKeyedLocks:
    async def test_same_key_serialised(self) -> None:
        locks = KeyedLocks()
        active = 0
        peak = 0

        async def worker() -> None:
            nonlocal active, peak
            async with locks.acquire("k"):
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0)
                active -= 1

        await asyncio.gather(*(worker() for _ in range(5)))
        assert peak == 1

    async def test_status(self) -> None:
        locks = KeyedLocks()
        async with locks.acquire("a"):
            assert locks.status() == {"a": True}
        assert locks.status() == {"a": False}


@pytest.mark.unit
class TestConsistencyGate:
    async def test_writers_run_concurrently(self) -> None:
        gate = ConsistencyGate()
        async with gate.writer():
            async with gate.writer():
                pass

    async def test_capture_waits_for_writers_but_not_readers(self) -> None:
        gate = ConsistencyGate()
        order: list[str] = []
        writer_in = asyncio.Event()
        release = asyncio.Event()

        async def writer() -> None:
            async with gate.writer():
                writer_in.set()
                await release.wait()
                order.append("write-done")

        async def capture() -> None:
            await writer_in.wait()
            async with gate.capture():
                order.append("captured")

        async def reader() -> None:
            await writer_in.wait()
            await asyncio.sleep(0.01)
            async with gate.reader():
                order.append("read")
            release.set()

        await asyncio.gather(writer(), capture(), reader())
        assert order == ["read", "write-done", "captured"]

    async def test_exclusive_blocks_readers(self) -> None:
        gate = ConsistencyGate()
        order: list[str] = []
        inside = asyncio.Event()

        async def rollback() -> None:
            async with gate.exclusive():
                inside.set()
                await asyncio.sleep(0.01)
                order.append("rollback")

        async def reader() -> None:
            await inside.wait()
            async with gate.reader():
                order.append("read")

        await asyncio.gather(rollback(), reader())
        assert order == ["rollback", "read"]
