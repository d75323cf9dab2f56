"""Memory layer — Versioned in-memory key/value store.

Holds the byte content published under ``memory/<key...>``.  Storage is an
arena of immutable records per key, each stamped with a store-wide logical
sequence number:

    history["memory/notes/a"] = [Record(seq=3, v1), Record(seq=7, v2), Record(seq=9, tombstone)]

The live view is the last record of each history.  A snapshot pins a
sequence number S; the state "as of S" is, for every key, the last record
with ``seq <= S``.  Records nobody can see any more (neither the live view
nor a pinned sequence) are pruned after each mutation, so capture costs
nothing and memory use is bounded by what snapshots still reference.

Versions are counted per key and survive deletes and rollbacks: a key that
is written, deleted and written again goes v1 → v2, never back to v1.

Usage::

    store = MemoryStore(gate)
    version = await store.write("memory/notes/a", b"hello")
    entry = await store.read("memory/notes/a")
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Iterable, Iterator

from agentvfs.exceptions import InvalidArgumentError, InvalidPathError, NotFoundError
from agentvfs.locks import ConsistencyGate, KeyedLocks
from agentvfs.logging import get_logger
from agentvfs.namespace.path import DEFAULT_ROOT, VirtualPath
from agentvfs.namespace.router import MEMORY_ROOT

if TYPE_CHECKING:
    from agentvfs.memory.index import SearchIndex

log = get_logger(__name__)


@dataclass(frozen=True)
class MemoryEntry:
    key: VirtualPath
    content: bytes
    created_at: float
    updated_at: float
    version: int

    @property
    def size(self) -> int:
        return len(self.content)

    def text(self) -> str:
        """Content decoded as UTF-8; undecodable bytes are replaced."""
        return self.content.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class _Record:
    seq: int
    entry: MemoryEntry | None  # None marks a delete

    @property
    def is_tombstone(self) -> bool:
        return self.entry is None


@dataclass
class RestorePlan:
    """Changes needed to bring the live view back to a pinned sequence.

    Built without touching the store; ``MemoryStore.apply_restore`` commits
    it in one synchronous step.
    """

    seq: int
    restored: dict[VirtualPath, MemoryEntry] = field(default_factory=dict)
    removed: list[VirtualPath] = field(default_factory=list)
    unchanged: int = 0
    features: dict[VirtualPath, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.restored and not self.removed


def _coerce_content(content: Any) -> bytes:
    if isinstance(content, bytes):
        return content
    if isinstance(content, (bytearray, memoryview)):
        return bytes(content)
    raise InvalidArgumentError(
        f"Memory content must be bytes, got {type(content).__name__}"
    )


class MemoryStore:
    """Arena-backed versioned store for ``memory/`` entries."""

    def __init__(
        self,
        gate: ConsistencyGate | None = None,
        root: str = DEFAULT_ROOT,
    ) -> None:
        self._gate = gate or ConsistencyGate()
        self._root = root
        self._keyed = KeyedLocks()
        self._history: dict[VirtualPath, list[_Record]] = {}
        self._live: dict[VirtualPath, MemoryEntry] = {}
        self._live_seq: dict[VirtualPath, int] = {}
        self._versions: dict[VirtualPath, int] = {}
        self._seq = 0
        self._pins: Counter[int] = Counter()
        self._index: SearchIndex | None = None

    def attach_index(self, index: "SearchIndex") -> None:
        """Route every mutation to *index* before it is considered complete."""
        self._index = index

    # ------------------------------------------------------------------
    # Key handling
    # ------------------------------------------------------------------

    def key(self, raw: str | VirtualPath) -> VirtualPath:
        """Parse and validate a memory key: ``memory/<at least one segment>``."""
        path = VirtualPath.parse(raw, root=self._root)
        if not path.is_relative_to(MEMORY_ROOT) or path.depth < 2:
            raise InvalidPathError(str(path), "memory keys live under 'memory/<key>'")
        return path

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def write(self, key: str | VirtualPath, content: bytes) -> int:
        """Create or replace *key*; returns the new version.

        Raises ``InvalidArgumentError`` when *key* is a directory or lies
        below an existing entry.  The check is part of the commit.
        """
        path = self.key(key)
        data = _coerce_content(content)
        # Computed before commit: a scorer failure leaves the prior entry intact.
        features = self._index.project(data) if self._index is not None else None

        async with self._keyed.acquire(str(path)):
            async with self._gate.writer():
                entry = self._commit_write(path, data, features)

        log.debug("memory_entry_written", key=str(path), version=entry.version, size=entry.size)
        return entry.version

    async def read(self, key: str | VirtualPath) -> MemoryEntry:
        path = self.key(key)
        async with self._gate.reader():
            entry = self._live.get(path)
        if entry is None:
            raise NotFoundError("memory entry", str(path))
        return entry

    async def delete(self, key: str | VirtualPath) -> None:
        path = self.key(key)
        async with self._keyed.acquire(str(path)):
            async with self._gate.writer():
                if path not in self._live:
                    raise NotFoundError("memory entry", str(path))
                self._commit_delete(path)
        log.debug("memory_entry_deleted", key=str(path))

    async def list(self, prefix: str | VirtualPath = MEMORY_ROOT) -> Iterator[VirtualPath]:
        """Keys at or below *prefix*, sorted.  Point-in-time, one-shot."""
        path = VirtualPath.parse(prefix, root=self._root)
        async with self._gate.reader():
            keys = sorted(k for k in self._live if k.is_relative_to(path))
        return iter(keys)

    # ------------------------------------------------------------------
    # Synchronous views (no awaits: atomic on the event loop)
    # ------------------------------------------------------------------

    def get(self, key: str | VirtualPath) -> MemoryEntry | None:
        return self._live.get(self.key(key))

    def keys(self) -> list[VirtualPath]:
        return list(self._live)

    def live_entries(self) -> list[tuple[MemoryEntry, int]]:
        """Every live entry with the sequence number of its record."""
        return [(entry, self._live_seq[key]) for key, entry in self._live.items()]

    def version_of(self, key: str | VirtualPath) -> int:
        """Highest version ever assigned to *key* (0 if never written)."""
        return self._versions.get(self.key(key), 0)

    def __len__(self) -> int:
        return len(self._live)

    @property
    def total_bytes(self) -> int:
        return sum(entry.size for entry in self._live.values())

    @property
    def current_seq(self) -> int:
        return self._seq

    def record_count(self) -> int:
        """Records held in the arena, live or pinned.  For monitoring."""
        return sum(len(records) for records in self._history.values())

    # ------------------------------------------------------------------
    # Snapshot support
    # ------------------------------------------------------------------

    def pin(self, seq: int) -> None:
        self._pins[seq] += 1

    def unpin(self, seq: int) -> None:
        if self._pins[seq] <= 1:
            del self._pins[seq]
        else:
            self._pins[seq] -= 1
        for key in list(self._history):
            self._prune(key)

    def entries_at(self, seq: int) -> dict[VirtualPath, MemoryEntry]:
        """The live view as it was right after sequence number *seq*."""
        result: dict[VirtualPath, MemoryEntry] = {}
        for key, records in self._history.items():
            record = self._visible(records, seq)
            if record is not None and record.entry is not None:
                result[key] = record.entry
        return result

    def plan_restore(self, seq: int) -> RestorePlan:
        """Compute (without applying) the changes that restore state at *seq*.

        Restored entries keep their captured content and timestamps; their
        version is bumped past the key's high-water mark unless the live
        record is already the captured one.
        """
        plan = RestorePlan(seq=seq)
        for key in set(self._history):
            records = self._history[key]
            target = self._visible(records, seq)
            current = records[-1]
            if target is None or target.entry is None:
                if not current.is_tombstone:
                    plan.removed.append(key)
                continue
            if target is current:
                plan.unchanged += 1
                continue
            plan.restored[key] = replace(target.entry, version=self._versions[key] + 1)

        if self._index is not None:
            for key, entry in plan.restored.items():
                plan.features[key] = self._index.project(entry.content)
        return plan

    def apply_restore(self, plan: RestorePlan) -> None:
        """Commit *plan*.  Synchronous; callers hold the gate exclusively."""
        for key in plan.removed:
            self._commit_delete(key)
        for key, entry in plan.restored.items():
            self._append(key, entry, plan.features.get(key))
        log.debug(
            "memory_restored",
            seq=plan.seq,
            restored=len(plan.restored),
            removed=len(plan.removed),
            unchanged=plan.unchanged,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    def _check_shape(self, key: VirtualPath) -> None:
        """A memory path is either an entry or a directory, never both."""
        if any(k.depth > key.depth and k.is_relative_to(key) for k in self._live):
            raise InvalidArgumentError(f"'{key}' is a directory")
        ancestor = key.parent
        while ancestor.depth > 1:
            if ancestor in self._live:
                raise InvalidArgumentError(f"'{ancestor}' is a file, not a directory")
            ancestor = ancestor.parent

    def _commit_write(self, key: VirtualPath, data: bytes, features: Any) -> MemoryEntry:
        self._check_shape(key)
        now = time.time()
        previous = self._live.get(key)
        entry = MemoryEntry(
            key=key,
            content=data,
            created_at=previous.created_at if previous else now,
            updated_at=now,
            version=self._versions.get(key, 0) + 1,
        )
        self._append(key, entry, features)
        return entry

    def _append(self, key: VirtualPath, entry: MemoryEntry, features: Any) -> None:
        seq = self._next_seq()
        self._history.setdefault(key, []).append(_Record(seq, entry))
        self._live[key] = entry
        self._live_seq[key] = seq
        self._versions[key] = max(self._versions.get(key, 0), entry.version)
        if self._index is not None:
            self._index.install(entry, seq, features)
        self._prune(key)

    def _commit_delete(self, key: VirtualPath) -> None:
        seq = self._next_seq()
        self._history.setdefault(key, []).append(_Record(seq, None))
        self._live.pop(key, None)
        self._live_seq.pop(key, None)
        if self._index is not None:
            self._index.invalidate(key)
        self._prune(key)

    @staticmethod
    def _visible(records: Iterable[_Record], seq: int) -> _Record | None:
        visible = None
        for record in records:
            if record.seq > seq:
                break
            visible = record
        return visible

    def _prune(self, key: VirtualPath) -> None:
        records = self._history.get(key)
        if not records:
            return
        keep = {records[-1].seq}
        for pinned in self._pins:
            record = self._visible(records, pinned)
            if record is not None:
                keep.add(record.seq)
        kept = [r for r in records if r.seq in keep]
        if all(r.is_tombstone for r in kept):
            del self._history[key]
        else:
            self._history[key] = kept
