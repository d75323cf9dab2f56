"""Security layer — Sessions and access scopes.

A session is one caller's view of the namespace.  Its scope is a set of
path prefixes plus a set of operation kinds; both are frozen at open time,
so every authorisation check is a pure function of immutable data.

Sessions are peers.  The ``SessionManager`` only tracks which ids are open.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Iterable

from agentvfs.exceptions import DuplicateNameError, InvalidArgumentError, NotFoundError
from agentvfs.logging import get_logger
from agentvfs.namespace.path import DEFAULT_ROOT, VirtualPath
from agentvfs.security.models import ALL_OPERATIONS, OperationKind
from agentvfs.security.profiles import SessionProfile, get_profile_config

log = get_logger(__name__)


@dataclass(frozen=True)
class AccessScope:
    prefixes: frozenset[VirtualPath] = frozenset()
    operations: frozenset[OperationKind] = frozenset()

    @classmethod
    def of(
        cls,
        prefixes: Iterable[str | VirtualPath],
        operations: Iterable[OperationKind | str] = ALL_OPERATIONS,
        root: str = DEFAULT_ROOT,
    ) -> "AccessScope":
        return cls(
            prefixes=frozenset(VirtualPath.parse(p, root=root) for p in prefixes),
            operations=frozenset(OperationKind(op) for op in operations),
        )

    @classmethod
    def unrestricted(cls) -> "AccessScope":
        return cls(prefixes=frozenset({VirtualPath.root()}), operations=ALL_OPERATIONS)

    def allows(self, operation: OperationKind) -> bool:
        return operation in self.operations

    def contains(self, path: VirtualPath) -> bool:
        """True when *path* is at or below one of the prefixes."""
        return any(path.is_relative_to(prefix) for prefix in self.prefixes)

    def leads_to(self, path: VirtualPath) -> bool:
        """True when *path* is a strict ancestor of one of the prefixes."""
        return any(
            prefix.is_relative_to(path) and prefix != path for prefix in self.prefixes
        )


@dataclass(frozen=True)
class Session:
    id: str
    scope: AccessScope
    created_at: float = field(default_factory=time.time)
    profile: str | None = None


class SessionManager:
    """Registry of open sessions.

    Usage::

        sessions = SessionManager()
        s = sessions.open("agent-1", allowed_paths=["memory/agent-1"])
        ...
        sessions.close("agent-1")
    """

    def __init__(
        self,
        root: str = DEFAULT_ROOT,
        default_profile: str = "read_write",
    ) -> None:
        self._root = root
        self._default_profile = SessionProfile(default_profile)
        self._sessions: dict[str, Session] = {}

    def open(
        self,
        session_id: str | None = None,
        allowed_paths: Iterable[str | VirtualPath] | None = None,
        profile: str | None = None,
        operations: Iterable[OperationKind | str] | None = None,
    ) -> Session:
        """Open a session.

        Args:
            session_id:    Unique id; generated when omitted.
            allowed_paths: Visible prefixes.  ``None`` means the whole
                           namespace; an empty list means nothing.
            profile:       Operation preset (``readonly``, ``read_write``,
                           ``full``).  Defaults to the configured profile.
            operations:    Explicit operation kinds; overrides *profile*.

        Raises:
            DuplicateNameError:   *session_id* is already open.
            InvalidArgumentError: Unknown profile or operation kind.
        """
        session_id = session_id or uuid.uuid4().hex
        if session_id in self._sessions:
            raise DuplicateNameError("session", session_id)

        try:
            chosen = SessionProfile(profile) if profile is not None else self._default_profile
            ops = (
                frozenset(OperationKind(op) for op in operations)
                if operations is not None
                else get_profile_config(chosen).operations
            )
        except ValueError as exc:
            raise InvalidArgumentError(str(exc)) from exc

        if allowed_paths is None:
            prefixes = frozenset({VirtualPath.root()})
        else:
            prefixes = frozenset(VirtualPath.parse(p, root=self._root) for p in allowed_paths)

        session = Session(
            id=session_id,
            scope=AccessScope(prefixes=prefixes, operations=ops),
            profile=chosen.value,
        )
        self._sessions[session_id] = session
        log.info(
            "session_opened",
            session_id=session_id,
            profile=chosen.value,
            prefixes=sorted(str(p) for p in prefixes),
        )
        return session

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError("session", session_id)
        return session

    def close(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is None:
            raise NotFoundError("session", session_id)
        log.info("session_closed", session_id=session_id)

    def is_open(self, session_id: str) -> bool:
        return session_id in self._sessions

    def list(self) -> list[Session]:
        return [self._sessions[sid] for sid in sorted(self._sessions)]

    def __len__(self) -> int:
        return len(self._sessions)
