"""Unit tests — events/bus.py (EventBus backends)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from agentvfs.events.bus import (
    TOPIC_OPERATIONS,
    TOPIC_SNAPSHOTS,
    EventBus,
    FanoutEventBus,
    LogEventBus,
    MemoryEventBus,
    NullEventBus,
)


class _BrokenBus(EventBus):
    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        raise RuntimeError("backend down")


@pytest.mark.unit
class TestMemoryEventBus:
    async def test_stamps_and_keeps_order(self) -> None:
        bus = MemoryEventBus()
        await bus.emit(TOPIC_OPERATIONS, {"event": "a"})
        await bus.emit(TOPIC_SNAPSHOTS, {"event": "b"})
        assert [e["event"] for e in bus.events] == ["a", "b"]
        assert bus.events[0]["_topic"] == TOPIC_OPERATIONS
        assert "_timestamp" in bus.events[0]
        assert [e["event"] for e in bus.by_topic(TOPIC_SNAPSHOTS)] == ["b"]
        assert len(bus.by_event("a")) == 1

    async def test_max_events(self) -> None:
        bus = MemoryEventBus(max_events=2)
        for i in range(5):
            await bus.emit(TOPIC_OPERATIONS, {"event": str(i)})
        assert [e["event"] for e in bus.events] == ["3", "4"]

    async def test_clear(self) -> None:
        bus = MemoryEventBus()
        await bus.emit(TOPIC_OPERATIONS, {"event": "a"})
        bus.clear()
        assert bus.events == []


@pytest.mark.unit
class TestLogEventBus:
    async def test_appends_ndjson(self, tmp_path: Path) -> None:
        bus = LogEventBus(tmp_path / "events.ndjson")
        await bus.emit(TOPIC_OPERATIONS, {"event": "a", "path": Path("/x")})
        await bus.emit(TOPIC_OPERATIONS, {"event": "b"})
        lines = (tmp_path / "events.ndjson").read_text().splitlines()
        first = json.loads(lines[0])
        assert first["event"] == "a"
        assert first["path"] == "/x"
        assert len(lines) == 2

    async def test_without_file_is_noop(self) -> None:
        bus = LogEventBus()
        assert bus.path is None
        await bus.emit(TOPIC_OPERATIONS, {"event": "a"})

    async def test_write_failure_is_swallowed(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("")
        bus = LogEventBus(blocker / "events.ndjson")
        await bus.emit(TOPIC_OPERATIONS, {"event": "a"})


@pytest.mark.unit
class TestFanoutEventBus:
    async def test_broadcasts_copies(self) -> None:
        a, b = MemoryEventBus(), MemoryEventBus()
        await FanoutEventBus([a, b]).emit(TOPIC_OPERATIONS, {"event": "x"})
        assert a.events[0]["event"] == b.events[0]["event"] == "x"
        assert a.events[0] is not b.events[0]

    async def test_backend_failure_isolated(self) -> None:
        good = MemoryEventBus()
        await FanoutEventBus([_BrokenBus(), good]).emit(TOPIC_OPERATIONS, {"event": "x"})
        assert len(good.events) == 1

    async def test_null_bus(self) -> None:
        await NullEventBus().emit(TOPIC_OPERATIONS, {"event": "x"})
