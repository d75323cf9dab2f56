"""Security layer — Audit logger.

Writes one append-only audit record per session operation, carrying:

    session_id, operation, path, success, error,
    bytes_read, bytes_written, access_denied

plus records for snapshots and skill registrations.

The AuditLogger is a thin semantic layer on top of the EventBus.  It
converts typed ``AuditEvent`` values and keyword arguments into structured
dicts and publishes them on the matching topic.  Swapping the backend is
done entirely at the EventBus level:

    AuditLogger(audit_file=Path("~/.agentvfs/audit.ndjson"))
    AuditLogger(bus=MemoryEventBus())
    AuditLogger(bus=FanoutEventBus([LogEventBus(...), MemoryEventBus()]))
"""

from __future__ import annotations

import time
from enum import Enum
from pathlib import Path
from typing import Any

from agentvfs.events.bus import (
    TOPIC_OPERATIONS,
    TOPIC_SECURITY,
    TOPIC_SKILLS,
    TOPIC_SNAPSHOTS,
    EventBus,
    LogEventBus,
    NullEventBus,
)
from agentvfs.logging import get_logger

log = get_logger(__name__)


class AuditEvent(str, Enum):
    MEMORY_READ = "memory_read"
    MEMORY_WRITTEN = "memory_written"
    MEMORY_DELETED = "memory_deleted"
    PATH_LISTED = "path_listed"
    PATH_STAT = "path_stat"
    SKILL_MANIFEST_READ = "skill_manifest_read"
    SKILL_EXECUTED = "skill_executed"
    SEARCH_QUERIED = "search_queried"
    OPERATION_FAILED = "operation_failed"
    ACCESS_DENIED = "access_denied"
    SNAPSHOT_CREATED = "snapshot_created"
    SNAPSHOT_ROLLED_BACK = "snapshot_rolled_back"
    SNAPSHOT_DELETED = "snapshot_deleted"
    SKILL_REGISTERED = "skill_registered"


# Map each AuditEvent to the EventBus topic it should be published on.
_EVENT_TOPIC: dict[AuditEvent, str] = {
    AuditEvent.MEMORY_READ: TOPIC_OPERATIONS,
    AuditEvent.MEMORY_WRITTEN: TOPIC_OPERATIONS,
    AuditEvent.MEMORY_DELETED: TOPIC_OPERATIONS,
    AuditEvent.PATH_LISTED: TOPIC_OPERATIONS,
    AuditEvent.PATH_STAT: TOPIC_OPERATIONS,
    AuditEvent.SKILL_MANIFEST_READ: TOPIC_OPERATIONS,
    AuditEvent.SKILL_EXECUTED: TOPIC_OPERATIONS,
    AuditEvent.SEARCH_QUERIED: TOPIC_OPERATIONS,
    AuditEvent.OPERATION_FAILED: TOPIC_OPERATIONS,
    AuditEvent.ACCESS_DENIED: TOPIC_SECURITY,
    AuditEvent.SNAPSHOT_CREATED: TOPIC_SNAPSHOTS,
    AuditEvent.SNAPSHOT_ROLLED_BACK: TOPIC_SNAPSHOTS,
    AuditEvent.SNAPSHOT_DELETED: TOPIC_SNAPSHOTS,
    AuditEvent.SKILL_REGISTERED: TOPIC_SKILLS,
}

# Successful namespace operations and the event recorded for each.
_OPERATION_EVENT: dict[str, AuditEvent] = {
    "read": AuditEvent.MEMORY_READ,
    "read_manifest": AuditEvent.SKILL_MANIFEST_READ,
    "write": AuditEvent.MEMORY_WRITTEN,
    "delete": AuditEvent.MEMORY_DELETED,
    "list": AuditEvent.PATH_LISTED,
    "stat": AuditEvent.PATH_STAT,
    "execute": AuditEvent.SKILL_EXECUTED,
    "query": AuditEvent.SEARCH_QUERIED,
    "snapshot_create": AuditEvent.SNAPSHOT_CREATED,
    "snapshot_rollback": AuditEvent.SNAPSHOT_ROLLED_BACK,
    "snapshot_delete": AuditEvent.SNAPSHOT_DELETED,
}


class AuditLogger:
    """Async-safe audit logger backed by an EventBus.

    If both ``audit_file`` and ``bus`` are provided, ``bus`` takes precedence.
    If neither is provided, a ``NullEventBus`` is used (no output).
    """

    def __init__(
        self,
        audit_file: Path | None = None,
        bus: EventBus | None = None,
    ) -> None:
        if bus is not None:
            self._bus: EventBus = bus
        elif audit_file is not None:
            self._bus = LogEventBus(audit_file)
        else:
            self._bus = NullEventBus()

    @property
    def bus(self) -> EventBus:
        return self._bus

    async def log(
        self,
        event: AuditEvent,
        session_id: str | None = None,
        **data: Any,
    ) -> None:
        """Publish an audit event to the appropriate EventBus topic."""
        record = self._build_record(event, session_id, data)
        topic = _EVENT_TOPIC.get(event, TOPIC_OPERATIONS)
        log.debug("audit_event", audit_event=event.value, session_id=session_id)
        await self._bus.emit(topic, record)

    async def operation(
        self,
        session_id: str,
        operation: str,
        path: str,
        success: bool = True,
        error: str | None = None,
        bytes_read: int = 0,
        bytes_written: int = 0,
        access_denied: bool = False,
        **data: Any,
    ) -> None:
        """Record one namespace operation performed by a session."""
        if access_denied:
            event = AuditEvent.ACCESS_DENIED
        elif not success:
            event = AuditEvent.OPERATION_FAILED
        else:
            event = _OPERATION_EVENT.get(operation, AuditEvent.OPERATION_FAILED)
        await self.log(
            event,
            session_id=session_id,
            operation=operation,
            path=path,
            success=success,
            error=error,
            bytes_read=bytes_read,
            bytes_written=bytes_written,
            access_denied=access_denied,
            **data,
        )

    @staticmethod
    def _build_record(
        event: AuditEvent,
        session_id: str | None,
        data: dict[str, Any],
    ) -> dict[str, Any]:
        record: dict[str, Any] = {
            "event": event.value,
            "timestamp": time.time(),
        }
        if session_id is not None:
            record["session_id"] = session_id
        record.update(data)
        return record
