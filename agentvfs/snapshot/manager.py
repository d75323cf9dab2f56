"""Snapshot layer — capture and rollback of memory and skills.

A snapshot is a pinned memory sequence number plus detached copies of
every skill record.  Memory content is never copied: the store keeps the
records visible at each pinned sequence until the snapshot is deleted.

Consistency:
  - ``create`` runs under ``ConsistencyGate.capture()``.  In-flight writers
    finish, new writers wait, readers keep going.
  - ``rollback`` runs under ``ConsistencyGate.exclusive()``.  Every change
    is planned and every search projection computed before anything is
    applied, so a failure leaves the namespace as it was.
  - ``delete`` also runs under ``capture()``, serialised against rollback.

The manager also tracks which paths changed since the current snapshot
(the most recently created or restored one).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from agentvfs.exceptions import InvalidArgumentError, NotFoundError
from agentvfs.locks import ConsistencyGate
from agentvfs.logging import get_logger
from agentvfs.memory.store import MemoryEntry, MemoryStore
from agentvfs.namespace.path import VirtualPath
from agentvfs.skills.base import Skill
from agentvfs.skills.registry import SkillRegistry

log = get_logger(__name__)


@dataclass(frozen=True)
class Snapshot:
    id: int
    created_at: float
    memory_seq: int
    entry_count: int
    total_bytes: int
    skill_count: int
    label: str | None = None
    skills: Mapping[str, Skill] = field(default_factory=dict, repr=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at,
            "label": self.label,
            "entry_count": self.entry_count,
            "total_bytes": self.total_bytes,
            "skill_count": self.skill_count,
            "skills": {name: skill.state.value for name, skill in self.skills.items()},
        }


@dataclass(frozen=True)
class ChangeRecord:
    path: str
    operation: str
    timestamp: float
    session_id: str | None = None


class SnapshotManager:
    """Creates, restores and retires snapshots for one namespace.

    Usage::

        snapshots = SnapshotManager(store, registry, gate)
        snap = await snapshots.create("before-import")
        ...
        await snapshots.rollback(snap.id)
    """

    def __init__(
        self,
        memory: MemoryStore,
        skills: SkillRegistry,
        gate: ConsistencyGate,
    ) -> None:
        self._memory = memory
        self._skills = skills
        self._gate = gate
        self._snapshots: dict[int, Snapshot] = {}
        self._changes: dict[int, list[ChangeRecord]] = {}
        self._next_id = 1
        self._current: int | None = None

    @property
    def current_id(self) -> int | None:
        return self._current

    # ------------------------------------------------------------------
    # Create / rollback
    # ------------------------------------------------------------------

    async def create(self, label: str | None = None) -> Snapshot:
        async with self._gate.capture():
            seq = self._memory.current_seq
            captured = self._skills.capture()
            snapshot = Snapshot(
                id=self._next_id,
                created_at=time.time(),
                memory_seq=seq,
                entry_count=len(self._memory),
                total_bytes=self._memory.total_bytes,
                skill_count=len(captured),
                label=label,
                skills=MappingProxyType(captured),
            )
            self._memory.pin(seq)
            self._next_id += 1
            self._snapshots[snapshot.id] = snapshot
            self._changes[snapshot.id] = []
            self._current = snapshot.id

        log.info(
            "snapshot_created",
            snapshot_id=snapshot.id,
            label=label,
            entries=snapshot.entry_count,
            skills=snapshot.skill_count,
        )
        return snapshot

    async def rollback(self, snapshot_id: int) -> Snapshot:
        """Replace memory and skills with the state captured in *snapshot_id*.

        Destructive: entries and skills created after the snapshot vanish.
        """
        async with self._gate.exclusive():
            snapshot = self.get(snapshot_id)
            memory_plan = self._memory.plan_restore(snapshot.memory_seq)
            skills_plan = self._skills.plan_restore(dict(snapshot.skills))
            # Nothing above mutates state; everything below cannot fail.
            self._memory.apply_restore(memory_plan)
            self._skills.apply_restore(skills_plan)
            self._current = snapshot.id
            self._changes[snapshot.id] = []

        log.info(
            "snapshot_rolled_back",
            snapshot_id=snapshot.id,
            restored=len(memory_plan.restored),
            removed=len(memory_plan.removed),
        )
        return snapshot

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get(self, snapshot_id: int) -> Snapshot:
        snapshot = self._snapshots.get(snapshot_id)
        if snapshot is None:
            raise NotFoundError("snapshot", str(snapshot_id))
        return snapshot

    def list(self) -> list[Snapshot]:
        return [self._snapshots[sid] for sid in sorted(self._snapshots)]

    def entries(self, snapshot_id: int) -> dict[VirtualPath, MemoryEntry]:
        """Memory entries as captured by *snapshot_id*."""
        return self._memory.entries_at(self.get(snapshot_id).memory_seq)

    async def delete(self, snapshot_id: int) -> None:
        """Forget a snapshot and release the memory records it pinned.

        Runs under ``capture()`` so no rollback can make *snapshot_id*
        current between the check and the removal.
        """
        async with self._gate.capture():
            snapshot = self.get(snapshot_id)
            if snapshot_id == self._current:
                raise InvalidArgumentError(f"Cannot delete the current snapshot {snapshot_id}")
            del self._snapshots[snapshot_id]
            self._changes.pop(snapshot_id, None)
            self._memory.unpin(snapshot.memory_seq)
        log.info("snapshot_deleted", snapshot_id=snapshot_id)

    # ------------------------------------------------------------------
    # Change tracking
    # ------------------------------------------------------------------

    def track_change(self, path: str, operation: str, session_id: str | None = None) -> None:
        """Record a mutation against the current snapshot, if any."""
        changes = self._changes.get(self._current) if self._current is not None else None
        if changes is None:
            return
        changes.append(
            ChangeRecord(path=path, operation=operation, timestamp=time.time(), session_id=session_id)
        )

    def changes(self, snapshot_id: int) -> list[ChangeRecord]:
        """Mutations recorded since *snapshot_id* became current."""
        self.get(snapshot_id)
        return list(self._changes.get(snapshot_id, []))
