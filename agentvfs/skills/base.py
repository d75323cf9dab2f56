"""Skill layer — Skill records, lifecycle and the implementation contract.

A skill implementation is any object exposing:

    name: str
    version: str
    init(config: dict) -> None        (sync or async)
    execute(input: bytes) -> bytes    (sync or async)
    document() -> str                 (optional, sync or async)

Conformance is checked by capability, not by inheritance.  ``BaseSkill`` is
a convenience for authors who prefer subclassing; the registry never
requires it.

Lifecycle::

    registered ──init ok──► initialized ──mount──► mounted
        │                      ▲   │                 │
        │                      └───┼────unmount──────┘
        └──init fails──► failed ◄──┴──mount fails

``failed`` is terminal: unregister and register again.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from agentvfs.exceptions import InvalidArgumentError
from agentvfs.namespace.path import VirtualPath
from agentvfs.skills.manifest import SkillDocument

if TYPE_CHECKING:
    from agentvfs.security.session import Session


class SkillType(str, Enum):
    CODE = "code"
    BUILTIN = "builtin"
    FILESYSTEM = "filesystem"


class SkillState(str, Enum):
    REGISTERED = "registered"
    INITIALIZED = "initialized"
    MOUNTED = "mounted"
    FAILED = "failed"

    @property
    def can_execute(self) -> bool:
        return self in (SkillState.INITIALIZED, SkillState.MOUNTED)


@runtime_checkable
class SkillImplementation(Protocol):
    name: str
    version: str

    def init(self, config: dict[str, Any]) -> Any: ...

    def execute(self, input: bytes) -> Any: ...


def check_implementation(implementation: Any) -> None:
    """Raise ``InvalidArgumentError`` unless *implementation* has the
    required capabilities."""
    if not isinstance(implementation, SkillImplementation):
        raise InvalidArgumentError(
            f"{type(implementation).__name__} is not a skill implementation "
            "(needs name, version, init and execute)"
        )
    for attr in ("init", "execute"):
        if not callable(getattr(implementation, attr, None)):
            raise InvalidArgumentError(f"Skill implementation '{attr}' is not callable")
    name = getattr(implementation, "name", None)
    if not isinstance(name, str) or not name:
        raise InvalidArgumentError("Skill implementation must have a non-empty string name")
    if "/" in name or name in (".", ".."):
        raise InvalidArgumentError(f"Skill name '{name}' is not a valid path segment")
    if not isinstance(getattr(implementation, "version", None), str):
        raise InvalidArgumentError(f"Skill '{name}' must have a string version")


def has_document(implementation: Any) -> bool:
    return callable(getattr(implementation, "document", None))


@dataclass
class Skill:
    """Registry record for one skill.

    The registry owns the record; ``implementation`` is the caller-supplied
    handle and is never copied.
    """

    name: str
    version: str
    type: SkillType
    mount_path: VirtualPath
    implementation: Any
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    document: SkillDocument | None = None
    state: SkillState = SkillState.REGISTERED
    error: str | None = None
    registered_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "type": self.type.value,
            "mount_path": str(self.mount_path),
            "description": self.description,
            "metadata": dict(self.metadata),
            "state": self.state.value,
            "error": self.error,
        }


@dataclass(frozen=True)
class CallContext:
    """Per-invocation context handed to ``SkillRegistry.execute``.

    ``timeout`` is a duration in seconds; ``deadline`` is an absolute
    ``time.monotonic()`` instant.  When both are set the tighter one wins.
    """

    session: "Session | None" = None
    timeout: float | None = None
    deadline: float | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def session_id(self) -> str | None:
        return self.session.id if self.session is not None else None

    def effective_timeout(self, default: float) -> float:
        candidates = []
        if self.timeout is not None:
            candidates.append(self.timeout)
        if self.deadline is not None:
            candidates.append(self.deadline - time.monotonic())
        if not candidates:
            return default
        return max(min(candidates), 0.0)


class BaseSkill(ABC):
    """Optional base class for skill implementations.

    Subclasses set ``NAME`` and ``VERSION`` and implement :meth:`execute`.
    Override :meth:`init` to validate configuration and :meth:`document`
    (not defined here) to publish a custom manifest.
    """

    NAME: str = ""
    VERSION: str = "0.0.0"

    def __init__(self) -> None:
        self.config: dict[str, Any] = {}

    @property
    def name(self) -> str:
        return self.NAME

    @property
    def version(self) -> str:
        return self.VERSION

    async def init(self, config: dict[str, Any]) -> None:
        self.config = dict(config)

    @abstractmethod
    async def execute(self, input: bytes) -> bytes:
        """Run the skill on *input* and return raw output bytes."""
        ...


# Context of the skill call running in the current task.  Set by the
# registry around ``execute`` so implementations can act on behalf of the
# calling session without widening the ``execute(input)`` contract.
_current_call: ContextVar[CallContext | None] = ContextVar("skill_call_context", default=None)


def current_call_context() -> CallContext | None:
    return _current_call.get()
