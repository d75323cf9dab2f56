"""agentvfs — VirtualFileSystem, the namespace context object.

One ``VirtualFileSystem`` owns one complete namespace: router, memory store,
search index, skill registry, snapshot manager, sessions, guard and audit
trail.  Nothing is process-global, so any number of namespaces can coexist
(one per test, one per tenant...).

Every session operation follows the same path::

    parse path → session open? → AccessGuard.check → route → subsystem → audit

Authorisation happens before any existence lookup, so a denied session
learns nothing about what lies outside its scope.

Usage::

    async with VirtualFileSystem() as vfs:
        s = vfs.open_session("agent-1", allowed_paths=["memory/agent-1"], profile="full")
        await vfs.write(s, "memory/agent-1/notes", b"hello")
        print(await vfs.query(s, "hello"))      # ['memory/agent-1/notes']
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Iterable, Iterator

from agentvfs.config import Settings
from agentvfs.events.bus import EventBus
from agentvfs.exceptions import (
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    VFSError,
)
from agentvfs.locks import ConsistencyGate
from agentvfs.logging import configure_logging, get_logger, session_context
from agentvfs.memory.index import SearchHit, SearchIndex
from agentvfs.memory.scoring import Scorer
from agentvfs.memory.store import MemoryEntry, MemoryStore
from agentvfs.namespace.path import VirtualPath
from agentvfs.namespace.router import NamespaceRouter, Resolution, SegmentOwner
from agentvfs.security.audit import AuditEvent, AuditLogger
from agentvfs.security.guard import AccessGuard
from agentvfs.security.models import OperationKind
from agentvfs.security.session import Session, SessionManager
from agentvfs.skills.base import CallContext, Skill, SkillState, SkillType
from agentvfs.skills.builtin import BUILTIN_SKILLS
from agentvfs.skills.registry import SkillRegistry
from agentvfs.snapshot.manager import Snapshot, SnapshotManager

log = get_logger(__name__)


@dataclass(frozen=True)
class FileInfo:
    """Attributes reported for a path (FUSE ``getattr``)."""

    path: str
    size: int
    modified_at: float
    is_dir: bool
    version: int | None = None


@dataclass
class _OpStats:
    bytes_read: int = 0
    bytes_written: int = 0


class VirtualFileSystem:
    """Path-addressed façade over memory, search, skills, snapshots and sessions."""

    def __init__(
        self,
        settings: Settings | None = None,
        scorer: Scorer | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self.settings = settings or Settings()
        root = self.settings.namespace.root

        self.gate = ConsistencyGate()
        self.router = NamespaceRouter(root)
        self.memory = MemoryStore(self.gate, root=root)
        self.index = SearchIndex(self.memory, scorer)
        self.skills = SkillRegistry(
            self.gate,
            root=root,
            default_timeout=self.settings.skills.default_timeout_seconds,
        )
        self.snapshots = SnapshotManager(self.memory, self.skills, self.gate)
        self.sessions = SessionManager(
            root=root, default_profile=self.settings.sessions.default_profile.value
        )
        self.guard = AccessGuard()
        self.audit = AuditLogger(audit_file=self.settings.logging.audit_file, bus=bus)

        self.router.attach(SegmentOwner.MEMORY, self.memory.keys)
        self.router.attach(SegmentOwner.SKILLS, self.skills.mounted_paths)
        self._initialized = False

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "VirtualFileSystem":
        """Process entry point: configure logging from *settings*, then build.

        Embedders that own logging themselves construct the class directly.
        """
        configure_logging(settings.logging.level, settings.logging.format, settings.logging.file)
        return cls(settings=settings, **kwargs)

    async def init(self) -> None:
        """Register and mount the built-in skills.  Safe to call twice."""
        if self._initialized:
            return
        if self.settings.skills.register_builtins:
            for skill_class in BUILTIN_SKILLS:
                implementation = skill_class(self)
                await self.skills.register(implementation, type=SkillType.BUILTIN)
                await self.skills.initialize(implementation.name, {})
                await self.skills.mount(implementation.name)
        self._initialized = True
        log.info(
            "namespace_ready",
            root=self.router.root,
            builtins=self.settings.skills.register_builtins,
        )

    async def close(self) -> None:
        for session in self.sessions.list():
            self.sessions.close(session.id)
        log.info("namespace_closed", root=self.router.root)

    async def __aenter__(self) -> "VirtualFileSystem":
        await self.init()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Sessions and routing (synchronous)
    # ------------------------------------------------------------------

    def open_session(
        self,
        session_id: str | None = None,
        allowed_paths: Iterable[str | VirtualPath] | None = None,
        profile: str | None = None,
        operations: Iterable[OperationKind | str] | None = None,
    ) -> Session:
        return self.sessions.open(session_id, allowed_paths, profile, operations)

    def close_session(self, session_id: str) -> None:
        self.sessions.close(session_id)

    def get_session(self, session_id: str) -> Session:
        return self.sessions.get(session_id)

    def resolve(self, path: str | VirtualPath) -> Resolution:
        return self.router.resolve(path)

    # ------------------------------------------------------------------
    # Memory and skill paths
    # ------------------------------------------------------------------

    async def read(self, session: Session, path: str | VirtualPath) -> bytes:
        """File content: a memory entry, or a mounted skill's manifest."""
        vpath = self.router.parse(path)
        resolution = self.router.resolve(vpath)
        operation = "read_manifest" if resolution.owner is SegmentOwner.SKILLS else "read"
        async with self._operation(session, operation, vpath, OperationKind.READ) as stats:
            resolution = self.router.resolve_known(vpath)
            if resolution.owner is SegmentOwner.MEMORY and not resolution.remainder.is_root:
                if self._is_memory_dir(vpath):
                    raise InvalidArgumentError(f"'{vpath}' is a directory")
                data = (await self.memory.read(vpath)).content
            elif resolution.owner is SegmentOwner.SKILLS and not resolution.remainder.is_root:
                data = self._read_manifest(vpath)
            else:
                raise InvalidArgumentError(f"'{vpath}' is a directory")
            stats.bytes_read = len(data)
        return data

    async def read_entry(self, session: Session, path: str | VirtualPath) -> MemoryEntry:
        """Full memory entry (content, timestamps, version) for *path*."""
        vpath = self.router.parse(path)
        async with self._operation(session, "read", vpath, OperationKind.READ) as stats:
            entry = await self.memory.read(vpath)
            stats.bytes_read = entry.size
        return entry

    async def write(self, session: Session, path: str | VirtualPath, content: bytes) -> int:
        """Create or replace a memory entry; returns its new version."""
        vpath = self.router.parse(path)
        async with self._operation(session, "write", vpath, OperationKind.WRITE) as stats:
            resolution = self.router.resolve_known(vpath)
            if resolution.owner is SegmentOwner.SKILLS:
                raise InvalidArgumentError(
                    f"'{vpath}' is a skill path; use execute() to invoke skills"
                )
            if resolution.owner is not SegmentOwner.MEMORY or resolution.remainder.is_root:
                raise InvalidArgumentError(f"'{vpath}' is a directory")
            version = await self.memory.write(vpath, content)
            stats.bytes_written = len(content)
        self.snapshots.track_change(str(vpath), "write", session.id)
        return version

    async def delete(self, session: Session, path: str | VirtualPath) -> None:
        vpath = self.router.parse(path)
        async with self._operation(session, "delete", vpath, OperationKind.WRITE):
            resolution = self.router.resolve_known(vpath)
            if resolution.owner is SegmentOwner.SKILLS:
                raise InvalidArgumentError(
                    f"'{vpath}' is a skill path; unregister the skill instead"
                )
            await self.memory.delete(vpath)
        self.snapshots.track_change(str(vpath), "delete", session.id)

    async def list(self, session: Session, path: str | VirtualPath = "/") -> Iterator[str]:
        """Immediate children of *path* visible to *session*, sorted.

        The result is a one-shot iterator over a point-in-time listing.
        """
        vpath = self.router.parse(path)
        async with self._operation(session, "list", vpath, OperationKind.LIST):
            if not vpath.is_root:
                self.router.resolve_known(vpath)
            async with self.gate.reader():
                if self._is_scope_ancestor(session, vpath):
                    names = self.router.children(vpath)
                else:
                    if not self.router.exists(vpath):
                        raise NotFoundError("path", str(vpath))
                    if not self.router.is_directory(vpath):
                        raise InvalidArgumentError(f"'{vpath}' is not a directory")
                    names = self.router.children(vpath)
            visible = self.guard.filter_children(session, vpath, names)
        return iter(visible)

    async def stat(self, session: Session, path: str | VirtualPath) -> FileInfo:
        """Size, modification time, type and version of *path*.

        Allowed wherever listing is allowed, so a session can walk down to
        its own scope.  Ancestors of the scope always report as directories
        whose time is the newest entry the session can see below them.
        """
        vpath = self.router.parse(path)
        async with self._operation(session, "stat", vpath, OperationKind.LIST):
            if not vpath.is_root:
                self.router.resolve_known(vpath)
            async with self.gate.reader():
                if self._is_scope_ancestor(session, vpath):
                    info = self._stat_ancestor(session, vpath)
                else:
                    info = self._stat(vpath)
        return info

    async def execute(
        self,
        session: Session,
        path: str | VirtualPath,
        input: bytes,
        timeout: float | None = None,
        deadline: float | None = None,
    ) -> bytes:
        """Invoke the skill mounted at *path* on behalf of *session*."""
        vpath = self.router.parse(path)
        async with self._operation(session, "execute", vpath, OperationKind.EXECUTE) as stats:
            resolution = self.router.resolve_known(vpath)
            if resolution.owner is not SegmentOwner.SKILLS:
                raise InvalidArgumentError(f"'{vpath}' is not a skill path")
            skill = self.skills.get_by_mount_path(vpath)
            stats.bytes_written = len(input)
            context = CallContext(session=session, timeout=timeout, deadline=deadline)
            output = await self.skills.execute(skill.name, input, context)
            stats.bytes_read = len(output)
        return output

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(
        self, session: Session, text: str, top_k: int | None = None
    ) -> list[SearchHit]:
        """Ranked hits among the entries *session* may read."""
        if top_k is None:
            top_k = self.settings.search.default_top_k
        top_k = min(top_k, self.settings.search.max_top_k)
        scope_root = self.router.parse("memory")
        async with self._operation(session, "query", scope_root, None):
            if not session.scope.allows(OperationKind.READ):
                raise PermissionDeniedError()
            async with self.gate.reader():
                hits = self.index.query(
                    text,
                    top_k,
                    accept=lambda key: self.guard.authorize(session, key, OperationKind.READ),
                )
        return hits

    async def query(self, session: Session, text: str, top_k: int | None = None) -> list[str]:
        """Keys (as namespace paths) of the best matches for *text*."""
        return [str(hit.key) for hit in await self.search(session, text, top_k)]

    # ------------------------------------------------------------------
    # Skills and snapshots
    # ------------------------------------------------------------------

    async def register_skill(
        self,
        implementation: Any,
        mount_path: str | VirtualPath | None = None,
        type: SkillType = SkillType.CODE,
        config: dict[str, Any] | None = None,
        mount: bool = False,
    ) -> Skill:
        """Register a skill; optionally initialize it with *config* and mount it."""
        skill = await self.skills.register(implementation, mount_path, type)
        return await self._activate(skill, config, mount)

    async def load_skills(
        self,
        directory: str | Path,
        config: dict[str, Any] | None = None,
        mount: bool = True,
    ) -> list[Skill]:
        """Register every skill directory under *directory* as a filesystem
        skill, then initialize and mount each one.  Directories that fail to
        register are reported by ``skills.status_report()``."""
        loaded = await self.skills.load_directory(directory)
        return [await self._activate(skill, config, mount) for skill in loaded]

    async def _activate(
        self, skill: Skill, config: dict[str, Any] | None, mount: bool
    ) -> Skill:
        if config is not None or mount:
            skill = await self.skills.initialize(skill.name, config or {})
        if mount:
            skill = await self.skills.mount(skill.name)
        self.snapshots.track_change(str(skill.mount_path), "register")
        await self.audit.log(
            AuditEvent.SKILL_REGISTERED,
            skill=skill.name,
            version=skill.version,
            type=skill.type.value,
            mount_path=str(skill.mount_path),
            state=skill.state.value,
        )
        return skill

    async def create_snapshot(self, session: Session, label: str | None = None) -> Snapshot:
        """Capture the whole namespace.  Requires read access to the root."""
        async with self._operation(
            session, "snapshot_create", VirtualPath.root(), OperationKind.READ
        ):
            snapshot = await self.snapshots.create(label)
        return snapshot

    async def rollback(self, session: Session, snapshot_id: int) -> Snapshot:
        """Restore a snapshot.  Requires write access to the root."""
        async with self._operation(
            session, "snapshot_rollback", VirtualPath.root(), OperationKind.WRITE
        ):
            snapshot = await self.snapshots.rollback(snapshot_id)
        return snapshot

    async def delete_snapshot(self, session: Session, snapshot_id: int) -> None:
        async with self._operation(
            session, "snapshot_delete", VirtualPath.root(), OperationKind.WRITE
        ):
            await self.snapshots.delete(snapshot_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _operation(
        self,
        session: Session,
        operation: str,
        path: VirtualPath,
        kind: OperationKind | None,
    ) -> AsyncIterator[_OpStats]:
        """Authorise, run and audit one session operation."""
        stats = _OpStats()
        with session_context(session_id=session.id):
            try:
                if self.sessions.get(session.id) != session:
                    raise PermissionDeniedError()
                if kind is not None:
                    self.guard.check(session, path, kind)
            except (PermissionDeniedError, NotFoundError):
                log.info("access_denied", session_id=session.id, operation=operation)
                await self.audit.operation(
                    session.id,
                    operation,
                    str(path),
                    success=False,
                    error="Permission denied",
                    access_denied=True,
                )
                raise PermissionDeniedError() from None

            try:
                yield stats
            except VFSError as exc:
                await self.audit.operation(
                    session.id,
                    operation,
                    str(path),
                    success=False,
                    error=exc.message,
                    access_denied=isinstance(exc, PermissionDeniedError),
                    bytes_read=stats.bytes_read,
                    bytes_written=stats.bytes_written,
                )
                raise
            await self.audit.operation(
                session.id,
                operation,
                str(path),
                bytes_read=stats.bytes_read,
                bytes_written=stats.bytes_written,
            )

    def _is_scope_ancestor(self, session: Session, path: VirtualPath) -> bool:
        """True when *path* is reachable only on the way to *session*'s scope.

        Such paths are always directories: whether they exist, and what lies
        in them outside the scope, is not revealed.
        """
        return not session.scope.contains(path)

    def _stat_ancestor(self, session: Session, path: VirtualPath) -> FileInfo:
        below = [
            entry.updated_at
            for entry, _ in self.memory.live_entries()
            if entry.key.is_relative_to(path) and session.scope.contains(entry.key)
        ]
        return FileInfo(path=str(path), size=0, modified_at=max(below, default=0.0), is_dir=True)

    def _is_memory_dir(self, path: VirtualPath) -> bool:
        return any(key.depth > path.depth and key.is_relative_to(path) for key in self.memory.keys())

    def _read_manifest(self, path: VirtualPath) -> bytes:
        skill = self.skills.find_by_mount_path(path)
        if skill is None or skill.state is not SkillState.MOUNTED:
            if self.router.is_directory(path):
                raise InvalidArgumentError(f"'{path}' is a directory")
            raise NotFoundError("path", str(path))
        return self.skills.manifest(skill.name)

    def _stat(self, path: VirtualPath) -> FileInfo:
        resolution = self.router.resolve(path)
        if resolution.owner is SegmentOwner.MEMORY and not resolution.remainder.is_root:
            entry = self.memory.get(path)
            if entry is not None:
                return FileInfo(
                    path=str(path),
                    size=entry.size,
                    modified_at=entry.updated_at,
                    is_dir=False,
                    version=entry.version,
                )
        if resolution.owner is SegmentOwner.SKILLS and not resolution.remainder.is_root:
            skill = self.skills.find_by_mount_path(path)
            if skill is not None and skill.state is SkillState.MOUNTED:
                return FileInfo(
                    path=str(path),
                    size=len(self.skills.manifest(skill.name)),
                    modified_at=skill.registered_at,
                    is_dir=False,
                )
        if self.router.is_directory(path):
            below = [
                entry.updated_at
                for entry, _ in self.memory.live_entries()
                if entry.key.is_relative_to(path)
            ]
            return FileInfo(
                path=str(path),
                size=0,
                modified_at=max(below, default=0.0),
                is_dir=True,
            )
        raise NotFoundError("path", str(path))
