"""Event streaming infrastructure — EventBus protocol and implementations.

Every significant occurrence in a namespace (a read, a write, a denied
access, a snapshot, a skill registration) is emitted as a structured dict to
a topic.  Producers never know which backend receives it.

Backends:
  - NullEventBus    → default (no-op, zero overhead)
  - LogEventBus     → NDJSON append-only file
  - MemoryEventBus  → in-process list, for tests and embedding hosts
  - FanoutEventBus  → several of the above at once

Standard topic names:
  TOPIC_OPERATIONS = "agentvfs.operations" — read / write / list / execute ...
  TOPIC_SECURITY   = "agentvfs.security"   — access denials
  TOPIC_SNAPSHOTS  = "agentvfs.snapshots"  — create / rollback / delete
  TOPIC_SKILLS     = "agentvfs.skills"     — skill registration
"""

from __future__ import annotations

import asyncio
import json
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from agentvfs.logging import get_logger

log = get_logger(__name__)

# ---------------------------------------------------------------------------
# Standard topic constants
# ---------------------------------------------------------------------------

TOPIC_OPERATIONS = "agentvfs.operations"
TOPIC_SECURITY = "agentvfs.security"
TOPIC_SNAPSHOTS = "agentvfs.snapshots"
TOPIC_SKILLS = "agentvfs.skills"


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------


class EventBus(ABC):
    """Abstract event bus.  All implementations must be safe for concurrent async use.

    An event is a plain dict.  The bus adds a ``_topic`` key and a
    ``_timestamp`` (Unix epoch float) before forwarding to the backend.
    """

    @abstractmethod
    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        """Publish *event* to *topic*.

        Must not raise: backend failures are logged so that an audit outage
        never fails a namespace operation.
        """

    def _stamp(self, topic: str, event: dict[str, Any]) -> dict[str, Any]:
        """Add metadata fields to *event* in-place and return it."""
        event.setdefault("_topic", topic)
        event.setdefault("_timestamp", time.time())
        return event


# ---------------------------------------------------------------------------
# NullEventBus
# ---------------------------------------------------------------------------


class NullEventBus(EventBus):
    """Discards all events."""

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        pass


# ---------------------------------------------------------------------------
# LogEventBus: NDJSON file
# ---------------------------------------------------------------------------


class LogEventBus(EventBus):
    """Writes events as NDJSON to a file — one line per event, append-only.

    Usage::

        bus = LogEventBus(Path("~/.agentvfs/audit.ndjson"))
        await bus.emit(TOPIC_OPERATIONS, {"event": "memory_written", "path": "memory/a"})
    """

    def __init__(self, log_file: Path | None = None) -> None:
        self._file = log_file.expanduser() if log_file else None
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path | None:
        return self._file

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        self._stamp(topic, event)
        log.debug("event_bus_emit", topic=topic, event_type=event.get("event"))
        if self._file is None:
            return
        line = json.dumps(event, default=str) + "\n"
        async with self._lock:
            try:
                self._file.parent.mkdir(parents=True, exist_ok=True)
                with self._file.open("a", encoding="utf-8") as f:
                    f.write(line)
            except OSError as exc:
                log.error("event_bus_write_failed", topic=topic, error=str(exc))


# ---------------------------------------------------------------------------
# MemoryEventBus: in-process capture
# ---------------------------------------------------------------------------


class MemoryEventBus(EventBus):
    """Keeps every event in a list, oldest first.

    Usage::

        bus = MemoryEventBus()
        vfs = VirtualFileSystem(bus=bus)
        ...
        denied = bus.by_topic(TOPIC_SECURITY)
    """

    def __init__(self, max_events: int | None = None) -> None:
        self._events: list[dict[str, Any]] = []
        self._max = max_events

    @property
    def events(self) -> list[dict[str, Any]]:
        return list(self._events)

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        self._events.append(self._stamp(topic, event))
        if self._max is not None and len(self._events) > self._max:
            del self._events[: len(self._events) - self._max]

    def by_topic(self, topic: str) -> list[dict[str, Any]]:
        return [e for e in self._events if e.get("_topic") == topic]

    def by_event(self, name: str) -> list[dict[str, Any]]:
        return [e for e in self._events if e.get("event") == name]

    def clear(self) -> None:
        self._events.clear()


# ---------------------------------------------------------------------------
# FanoutEventBus: broadcast to multiple backends simultaneously
# ---------------------------------------------------------------------------


class FanoutEventBus(EventBus):
    """Routes each event to multiple EventBus backends in parallel.

    Usage::

        bus = FanoutEventBus([LogEventBus(Path("audit.ndjson")), MemoryEventBus()])
    """

    def __init__(self, backends: list[EventBus]) -> None:
        self._backends = backends

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        self._stamp(topic, event)
        results = await asyncio.gather(
            *(b.emit(topic, dict(event)) for b in self._backends),
            return_exceptions=True,
        )
        for backend, result in zip(self._backends, results):
            if isinstance(result, Exception):
                log.error(
                    "event_bus_backend_failed",
                    backend=type(backend).__name__,
                    topic=topic,
                    error=str(result),
                )
