"""agentvfs — Exception hierarchy.

Every public operation either returns a value or raises exactly one subclass
of ``VFSError``, so callers (the FUSE adapter, test harnesses) can map the
whole family with a single except clause.

Hierarchy:
    VFSError
    ├── InvalidPathError
    ├── NotFoundError
    ├── DuplicateNameError
    ├── InvalidStateError
    ├── PermissionDeniedError
    ├── InvalidArgumentError
    ├── SkillTimeoutError
    └── InternalError
        └── SkillExecutionError
"""

from __future__ import annotations

from typing import Any


class VFSError(Exception):
    """Base exception for all agentvfs errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


# ---------------------------------------------------------------------------
# Namespace layer
# ---------------------------------------------------------------------------


class InvalidPathError(VFSError):
    """The path is empty, malformed, or escapes the namespace root."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(
            f"Invalid path '{path}': {reason}",
            context={"path": path, "reason": reason},
        )
        self.path = path
        self.reason = reason


class NotFoundError(VFSError):
    """No memory entry, skill, snapshot or session exists under this identifier."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(
            f"{kind.capitalize()} '{identifier}' not found",
            context={"kind": kind, "identifier": identifier},
        )
        self.kind = kind
        self.identifier = identifier


class DuplicateNameError(VFSError):
    """A skill name, mount path or session id is already taken."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(
            f"{kind.capitalize()} '{name}' already exists",
            context={"kind": kind, "name": name},
        )
        self.kind = kind
        self.name = name


class InvalidArgumentError(VFSError):
    """An argument is outside its accepted domain (e.g. ``top_k <= 0``)."""


# ---------------------------------------------------------------------------
# Skill layer
# ---------------------------------------------------------------------------


class InvalidStateError(VFSError):
    """The skill lifecycle does not allow this operation in its current state."""

    def __init__(self, skill: str, state: str, operation: str) -> None:
        super().__init__(
            f"Cannot {operation} skill '{skill}' in state '{state}'",
            context={"skill": skill, "state": state, "operation": operation},
        )
        self.skill = skill
        self.state = state
        self.operation = operation


class SkillTimeoutError(VFSError):
    """A skill invocation exceeded its deadline.

    The underlying implementation call may still be running; implementations
    are responsible for honouring cancellation.
    """

    def __init__(self, skill: str, timeout_seconds: float) -> None:
        super().__init__(
            f"Skill '{skill}' timed out after {timeout_seconds:g}s",
            context={"skill": skill, "timeout_seconds": timeout_seconds},
        )
        self.skill = skill
        self.timeout_seconds = timeout_seconds


# ---------------------------------------------------------------------------
# Security layer
# ---------------------------------------------------------------------------


class PermissionDeniedError(VFSError):
    """The session may not perform this operation.

    Deliberately carries no detail: revealing the reason would leak the
    namespace structure to unauthorised sessions.
    """

    def __init__(self) -> None:
        super().__init__("Permission denied")


# ---------------------------------------------------------------------------
# Internal failures
# ---------------------------------------------------------------------------


class InternalError(VFSError):
    """An unexpected failure in a dependency (scorer, skill implementation...)."""


class SkillExecutionError(InternalError):
    """A skill implementation raised during ``init``, ``execute`` or mounting."""

    def __init__(self, skill: str, operation: str, cause: BaseException) -> None:
        super().__init__(
            f"Skill '{skill}' failed during {operation}: {cause}",
            context={"skill": skill, "operation": operation, "cause": str(cause)},
        )
        self.skill = skill
        self.operation = operation
        self.cause = cause
