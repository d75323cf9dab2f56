"""Skill layer — Skill registry and execution engine.

The registry is the single point of truth for all registered skills.
It handles:
  - Registration (unique names, unique non-overlapping mount paths)
  - The lifecycle state machine (see ``agentvfs.skills.base``)
  - Invocation with deadlines, sync or async implementations alike
  - Capture and restore of every record for snapshots

Implementation failures never crash the registry.  ``init`` and mount
failures move the skill to ``failed`` and surface a ``SkillExecutionError``;
``execute`` failures are surfaced without touching state.

Locking: lifecycle mutations take the skill's name lock, run any
implementation call, then apply the state change under
``ConsistencyGate.writer()``.  ``execute`` takes no lock at all.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from agentvfs.exceptions import (
    DuplicateNameError,
    InternalError,
    InvalidArgumentError,
    InvalidPathError,
    InvalidStateError,
    NotFoundError,
    SkillExecutionError,
    SkillTimeoutError,
    VFSError,
)
from agentvfs.locks import ConsistencyGate, KeyedLocks
from agentvfs.logging import get_logger, session_context
from agentvfs.namespace.path import DEFAULT_ROOT, VirtualPath
from agentvfs.namespace.router import SKILLS_ROOT
from agentvfs.skills.base import (
    CallContext,
    Skill,
    SkillState,
    SkillType,
    _current_call,
    check_implementation,
    has_document,
)
from agentvfs.skills.filesystem import DirectorySkill, is_skill_directory
from agentvfs.skills.manifest import SkillDocument, parse_skill_document, render_manifest

log = get_logger(__name__)


class SkillExport(BaseModel):
    """One record of ``SkillRegistry.export_json``."""

    name: str
    version: str = ""
    type: SkillType
    mount_path: str
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    base_path: str | None = None


_EXPORTS = TypeAdapter(list[SkillExport])


def _plain(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    return str(value)


async def _invoke(fn: Callable[..., Any], *args: Any) -> Any:
    """Call *fn*; coroutine functions are awaited, plain callables run in a worker thread."""
    if inspect.iscoroutinefunction(fn):
        return await fn(*args)
    result = await asyncio.to_thread(fn, *args)
    if inspect.isawaitable(result):
        result = await result
    return result


class SkillRegistry:
    """Runtime registry for skills.

    Usage::

        registry = SkillRegistry(gate)
        await registry.register(EchoSkill())
        await registry.initialize("echo", {})
        await registry.mount("echo")
        output = await registry.execute("echo", b"ping")
    """

    def __init__(
        self,
        gate: ConsistencyGate | None = None,
        root: str = DEFAULT_ROOT,
        default_timeout: float = 30.0,
    ) -> None:
        self._gate = gate or ConsistencyGate()
        self._root = root
        self._default_timeout = default_timeout
        self._keyed = KeyedLocks()
        self._skills: dict[str, Skill] = {}
        self._mounts: dict[VirtualPath, str] = {}
        self._load_errors: dict[str, str] = {}

    @property
    def default_timeout(self) -> float:
        return self._default_timeout

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register(
        self,
        implementation: Any,
        mount_path: str | VirtualPath | None = None,
        type: SkillType = SkillType.CODE,
    ) -> Skill:
        """Register *implementation*; the new skill starts in ``registered``.

        Raises:
            InvalidArgumentError: Missing capabilities or a malformed document.
            InvalidPathError:     *mount_path* is not under ``skills/``.
            DuplicateNameError:   The name or the mount path is taken.
        """
        check_implementation(implementation)
        name: str = implementation.name
        path = self._mount_path(name, mount_path)
        document = await self._fetch_document(name, implementation, "register")

        async with self._keyed.acquire(name):
            async with self._gate.writer():
                if name in self._skills:
                    raise DuplicateNameError("skill", name)
                self._check_mount_free(path)
                skill = Skill(
                    name=name,
                    version=implementation.version or (document.version if document else ""),
                    type=type,
                    mount_path=path,
                    implementation=implementation,
                    description=self._description(implementation, document),
                    metadata=self._metadata(implementation, document),
                    document=document,
                )
                self._skills[name] = skill
                self._mounts[path] = name

        log.info("skill_registered", skill=name, version=skill.version, mount_path=str(path))
        return skill

    async def unregister(self, name: str) -> None:
        async with self._keyed.acquire(name):
            async with self._gate.writer():
                skill = self._require(name)
                del self._skills[name]
                self._mounts.pop(skill.mount_path, None)
        log.info("skill_unregistered", skill=name)

    # ------------------------------------------------------------------
    # Directory skills
    # ------------------------------------------------------------------

    async def register_directory(
        self,
        base_path: str | Path,
        mount_path: str | VirtualPath | None = None,
    ) -> Skill:
        """Register the skill directory at *base_path* as a ``filesystem`` skill.

        Raises:
            NotFoundError:        The directory or its ``SKILL.md`` is missing.
            InvalidArgumentError: ``SKILL.md`` is malformed or names an
                                  invalid skill.
            DuplicateNameError:   The name or the mount path is taken.
        """
        implementation = await asyncio.to_thread(DirectorySkill, base_path)
        return await self.register(implementation, mount_path, type=SkillType.FILESYSTEM)

    async def load_directory(self, directory: str | Path) -> list[Skill]:
        """Register every skill directory directly under *directory*.

        Subdirectories without a ``SKILL.md`` are skipped.  A subdirectory
        that fails to register is recorded under ``load_errors`` in
        ``status_report`` and does not stop the others.

        Raises:
            NotFoundError: *directory* does not exist.
        """
        root = Path(directory).expanduser()
        if not root.is_dir():
            raise NotFoundError("skill directory", str(root))
        candidates = sorted(p for p in root.iterdir() if p.is_dir() and is_skill_directory(p))

        loaded: list[Skill] = []
        for candidate in candidates:
            try:
                skill = await self.register_directory(candidate)
            except VFSError as exc:
                self._load_errors[str(candidate)] = exc.message
                log.warning("skill_directory_skipped", path=str(candidate), error=exc.message)
                continue
            self._load_errors.pop(str(candidate), None)
            loaded.append(skill)
        log.info("skill_directory_loaded", path=str(root), loaded=len(loaded), skipped=len(candidates) - len(loaded))
        return loaded

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export_json(self) -> bytes:
        """Metadata of every registered skill as a JSON array.

        Records carry no state and no implementation; only ``filesystem``
        skills can be rebuilt from an export.
        """
        records = [
            SkillExport(
                name=skill.name,
                version=skill.version,
                type=skill.type,
                mount_path=str(skill.mount_path),
                description=skill.description,
                metadata=_plain(skill.metadata),
                base_path=self._base_path(skill),
            )
            for skill in self.list()
        ]
        return _EXPORTS.dump_json(records, indent=2)

    async def import_json(self, data: bytes | str) -> list[Skill]:
        """Re-register the ``filesystem`` skills of an ``export_json`` document.

        Records of other types, and filesystem records without a
        ``base_path``, are skipped.  Imported skills start in ``registered``.

        Raises:
            InvalidArgumentError: *data* is not an export document.
        """
        try:
            records = _EXPORTS.validate_json(data)
        except ValidationError as exc:
            raise InvalidArgumentError(f"Invalid skill export: {exc.error_count()} error(s)") from exc

        imported: list[Skill] = []
        for record in records:
            if record.type is not SkillType.FILESYSTEM or not record.base_path:
                log.debug("skill_import_skipped", skill=record.name, type=record.type.value)
                continue
            imported.append(await self.register_directory(record.base_path, record.mount_path))
        log.info("skills_imported", count=len(imported), records=len(records))
        return imported

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self, name: str, config: dict[str, Any] | None = None) -> Skill:
        """Call the implementation's ``init``; ``registered`` → ``initialized``.

        An initialized (but not mounted) skill may be initialized again with
        a new configuration.
        """
        async with self._keyed.acquire(name):
            skill = self._require(name)
            if skill.state not in (SkillState.REGISTERED, SkillState.INITIALIZED):
                raise InvalidStateError(name, skill.state.value, "initialize")

            try:
                await _invoke(skill.implementation.init, dict(config or {}))
            except Exception as exc:
                await self._fail(skill, "init", exc)
                if isinstance(exc, VFSError):
                    raise
                raise SkillExecutionError(name, "init", exc) from exc

            async with self._gate.writer():
                current = self._current(skill)
                current.state = SkillState.INITIALIZED
                current.error = None

        log.info("skill_initialized", skill=name)
        return current

    async def mount(self, name: str) -> Skill:
        """Publish the skill's manifest at its mount path.  Idempotent."""
        async with self._keyed.acquire(name):
            skill = self._require(name)
            if skill.state is SkillState.MOUNTED:
                return skill
            if skill.state is not SkillState.INITIALIZED:
                raise InvalidStateError(name, skill.state.value, "mount")

            try:
                document = await self._fetch_document(name, skill.implementation, "mount")
            except VFSError as exc:
                await self._fail(skill, "mount", exc)
                if isinstance(exc, SkillExecutionError):
                    raise
                raise SkillExecutionError(name, "mount", exc) from exc

            async with self._gate.writer():
                current = self._current(skill)
                if document is not None:
                    current.document = document
                    current.description = self._description(current.implementation, document)
                    current.metadata = self._metadata(current.implementation, document)
                current.state = SkillState.MOUNTED

        log.info("skill_mounted", skill=name, mount_path=str(current.mount_path))
        return current

    async def unmount(self, name: str) -> Skill:
        """``mounted`` → ``initialized``."""
        async with self._keyed.acquire(name):
            async with self._gate.writer():
                skill = self._require(name)
                if skill.state is not SkillState.MOUNTED:
                    raise InvalidStateError(name, skill.state.value, "unmount")
                skill.state = SkillState.INITIALIZED
        log.info("skill_unmounted", skill=name)
        return skill

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        name: str,
        input: bytes,
        context: CallContext | None = None,
    ) -> bytes:
        """Invoke the skill and return its output bytes unchanged.

        Raises:
            NotFoundError:        No skill named *name*.
            InvalidStateError:    The skill is not initialized or mounted.
            SkillTimeoutError:    The deadline expired first.  The call itself
                                  may keep running in the background.
            SkillExecutionError:  The implementation raised a non-VFS error.
            InternalError:        The implementation returned something other
                                  than bytes.
        """
        skill = self._require(name)
        if not skill.state.can_execute:
            raise InvalidStateError(name, skill.state.value, "execute")
        if isinstance(input, (bytearray, memoryview)):
            input = bytes(input)
        if not isinstance(input, bytes):
            raise InvalidArgumentError(f"Skill input must be bytes, got {type(input).__name__}")

        context = context or CallContext()
        timeout = context.effective_timeout(self._default_timeout)
        if timeout <= 0:
            raise SkillTimeoutError(name, 0.0)

        with session_context(session_id=context.session_id, skill=name):
            log.debug("skill_execute_started", input_size=len(input), timeout=timeout)
            token = _current_call.set(context)
            try:
                output = await asyncio.wait_for(
                    _invoke(skill.implementation.execute, input), timeout=timeout
                )
            except asyncio.TimeoutError:
                log.warning("skill_execute_timeout", timeout=timeout)
                raise SkillTimeoutError(name, timeout) from None
            except VFSError:
                raise
            except Exception as exc:
                log.warning("skill_execute_failed", error=str(exc))
                raise SkillExecutionError(name, "execute", exc) from exc
            finally:
                _current_call.reset(token)

            if not isinstance(output, bytes):
                raise InternalError(
                    f"Skill '{name}' returned {type(output).__name__}, expected bytes",
                    context={"skill": name},
                )
            log.debug("skill_execute_completed", output_size=len(output))
        return output

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, name: str) -> Skill:
        return self._require(name)

    def get_by_mount_path(self, path: str | VirtualPath) -> Skill:
        vpath = VirtualPath.parse(path, root=self._root)
        name = self._mounts.get(vpath)
        if name is None:
            raise NotFoundError("skill", str(vpath))
        return self._skills[name]

    def find_by_mount_path(self, path: VirtualPath) -> Skill | None:
        name = self._mounts.get(path)
        return self._skills.get(name) if name is not None else None

    def list(self, type_filter: SkillType | None = None) -> list[Skill]:
        """All registered skills ordered by name, optionally filtered by type."""
        return [
            self._skills[name]
            for name in sorted(self._skills)
            if type_filter is None or self._skills[name].type is type_filter
        ]

    def mounted_paths(self) -> list[VirtualPath]:
        """Mount paths published in the namespace (``mounted`` skills only)."""
        return [
            skill.mount_path
            for skill in self._skills.values()
            if skill.state is SkillState.MOUNTED
        ]

    def manifest(self, name: str) -> bytes:
        """Document text for *name*: verbatim when the implementation
        supplies one, synthesised otherwise."""
        skill = self._require(name)
        if skill.document is not None:
            return skill.document.raw.encode("utf-8")
        text = render_manifest(skill.name, skill.version, skill.description, skill.metadata)
        return text.encode("utf-8")

    def __len__(self) -> int:
        return len(self._skills)

    def __contains__(self, name: object) -> bool:
        return name in self._skills

    def status_report(self) -> dict[str, list[str] | dict[str, str]]:
        """Skill names grouped by lifecycle state, plus failure reasons and
        directories ``load_directory`` could not register."""
        report: dict[str, list[str] | dict[str, str]] = {
            state.value: [s.name for s in self.list() if s.state is state] for state in SkillState
        }
        report["errors"] = {s.name: s.error for s in self.list() if s.error}
        report["load_errors"] = dict(self._load_errors)
        return report

    # ------------------------------------------------------------------
    # Snapshot support
    # ------------------------------------------------------------------

    def capture(self) -> dict[str, Skill]:
        """Detached copies of every record.  Implementations are shared."""
        return {name: self._copy(skill) for name, skill in self._skills.items()}

    def plan_restore(self, captured: dict[str, Skill]) -> dict[str, Skill]:
        return {name: self._copy(skill) for name, skill in captured.items()}

    def apply_restore(self, plan: dict[str, Skill]) -> None:
        """Replace every record.  Synchronous; callers hold the gate exclusively."""
        self._skills = plan
        self._mounts = {skill.mount_path: name for name, skill in plan.items()}
        log.debug("skills_restored", count=len(plan))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _copy(skill: Skill) -> Skill:
        return replace(skill, metadata=dict(skill.metadata))

    @staticmethod
    def _base_path(skill: Skill) -> str | None:
        if skill.type is not SkillType.FILESYSTEM:
            return None
        base = getattr(skill.implementation, "base_path", None)
        return str(base) if base is not None else None

    def _require(self, name: str) -> Skill:
        skill = self._skills.get(name)
        if skill is None:
            raise NotFoundError("skill", name)
        return skill

    def _current(self, skill: Skill) -> Skill:
        """The live record for *skill*, which a rollback may have replaced
        while an implementation call was in flight."""
        current = self._skills.get(skill.name)
        if current is None or current.implementation is not skill.implementation:
            raise InvalidStateError(skill.name, "replaced", "update")
        return current

    async def _fail(self, skill: Skill, operation: str, exc: BaseException) -> None:
        async with self._gate.writer():
            current = self._skills.get(skill.name)
            if current is not None and current.implementation is skill.implementation:
                current.state = SkillState.FAILED
                current.error = str(exc)
        log.error("skill_failed", skill=skill.name, operation=operation, error=str(exc))

    def _mount_path(self, name: str, mount_path: str | VirtualPath | None) -> VirtualPath:
        if mount_path is None:
            return SKILLS_ROOT.child(name)
        path = VirtualPath.parse(mount_path, root=self._root)
        if not path.is_relative_to(SKILLS_ROOT) or path.depth < 2:
            raise InvalidPathError(str(path), "skills mount under 'skills/<name>'")
        return path

    def _check_mount_free(self, path: VirtualPath) -> None:
        for existing in self._mounts:
            if path.is_relative_to(existing) or existing.is_relative_to(path):
                raise DuplicateNameError("mount path", str(path))

    async def _fetch_document(
        self, name: str, implementation: Any, operation: str
    ) -> SkillDocument | None:
        if not has_document(implementation):
            return None
        try:
            text = await _invoke(implementation.document)
        except Exception as exc:
            raise SkillExecutionError(name, operation, exc) from exc
        if not text:
            return None
        if not isinstance(text, str):
            raise InvalidArgumentError(f"Skill '{name}' document must be text")
        return parse_skill_document(text)

    @staticmethod
    def _description(implementation: Any, document: SkillDocument | None) -> str:
        if document is not None and document.description:
            return document.description
        return str(getattr(implementation, "description", "") or "")

    @staticmethod
    def _metadata(implementation: Any, document: SkillDocument | None) -> dict[str, Any]:
        metadata = dict(getattr(implementation, "metadata", None) or {})
        if document is not None:
            metadata.update(document.metadata)
        return metadata
