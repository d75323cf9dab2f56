"""agentvfs — Structured logging.

structlog renders every record from every layer through one processor
chain, so a namespace's events share key names whether they come from the
store, the registry or the facade:

    timestamp   ISO-8601
    level       debug ... critical
    logger      module name (``agentvfs.memory.store``)
    session_id  the session being served, when inside an operation
    skill       the skill being executed, when inside ``execute``

``session_id`` and ``skill`` come from context variables scoped with
``session_context``; they are restored when the block exits, so records
logged afterwards in the same task carry no stale caller.

Usage::

    configure_logging("debug", "json", "/var/log/agentvfs.log")
    log = get_logger(__name__)
    with session_context(session_id="agent-1"):
        log.info("memory_entry_written", key="memory/notes/a", version=3)
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Iterator

import structlog
from structlog.types import EventDict, WrappedLogger

_session_id: ContextVar[str | None] = ContextVar("agentvfs_session_id", default=None)
_skill: ContextVar[str | None] = ContextVar("agentvfs_skill", default=None)


@contextmanager
def session_context(session_id: str | None = None, skill: str | None = None) -> Iterator[None]:
    """Tag records logged inside the block with *session_id* and *skill*.

    Fields left as ``None`` keep whatever an enclosing block set.
    """
    tokens = []
    if session_id is not None:
        tokens.append((_session_id, _session_id.set(session_id)))
    if skill is not None:
        tokens.append((_skill, _skill.set(skill)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def current_log_context() -> dict[str, str]:
    """The caller fields that would be added to a record logged now."""
    fields = {"session_id": _session_id.get(), "skill": _skill.get()}
    return {key: value for key, value in fields.items() if value is not None}


def _add_caller(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    for key, value in current_log_context().items():
        event_dict.setdefault(key, value)
    return event_dict


_SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    _add_caller,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
]


def configure_logging(
    level: str = "info",
    format: str = "console",
    log_file: str | Path | None = None,
) -> None:
    """Route structlog through stdlib logging to stderr and *log_file*.

    Args:
        level:    debug, info, warning, error or critical.
        format:   ``"console"`` (coloured when stderr is a terminal) or
                  ``"json"`` (one object per line).
        log_file: Extra destination; parent directories are created.
    """
    if format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*_SHARED_PROCESSORS, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )

    # stdout stays free for a FUSE adapter or a pipe consumer.
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path))
    for handler in handlers:
        handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = handlers
    root.setLevel(level.upper())
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
