"""Event layer — pluggable event bus backends."""

from agentvfs.events.bus import (
    TOPIC_OPERATIONS,
    TOPIC_SECURITY,
    TOPIC_SKILLS,
    TOPIC_SNAPSHOTS,
    EventBus,
    FanoutEventBus,
    LogEventBus,
    MemoryEventBus,
    NullEventBus,
)

__all__ = [
    "TOPIC_OPERATIONS",
    "TOPIC_SECURITY",
    "TOPIC_SKILLS",
    "TOPIC_SNAPSHOTS",
    "EventBus",
    "FanoutEventBus",
    "LogEventBus",
    "MemoryEventBus",
    "NullEventBus",
]
