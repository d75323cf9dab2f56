"""Namespace layer — Router.

Classifies a VirtualPath into the subsystem that owns it and merges the
paths published by those subsystems into directory listings.

Layout::

    /toolfs/
      memory/<key...>      Memory Store entries
      skills/<name>        Skill mount points

Any other top-level segment is reserved and resolves to ``UNKNOWN``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Iterator

from agentvfs.exceptions import InvalidPathError
from agentvfs.logging import get_logger
from agentvfs.namespace.path import DEFAULT_ROOT, VirtualPath

log = get_logger(__name__)

MEMORY_SEGMENT = "memory"
SKILLS_SEGMENT = "skills"
RESERVED_SEGMENTS: tuple[str, ...] = (MEMORY_SEGMENT, SKILLS_SEGMENT)

MEMORY_ROOT = VirtualPath((MEMORY_SEGMENT,))
SKILLS_ROOT = VirtualPath((SKILLS_SEGMENT,))

PathSource = Callable[[], Iterable[VirtualPath]]


class SegmentOwner(str, Enum):
    ROOT = "root"
    MEMORY = "memory"
    SKILLS = "skills"
    UNKNOWN = "unknown"


_OWNERS: dict[str, SegmentOwner] = {
    MEMORY_SEGMENT: SegmentOwner.MEMORY,
    SKILLS_SEGMENT: SegmentOwner.SKILLS,
}


@dataclass(frozen=True)
class Resolution:
    owner: SegmentOwner
    path: VirtualPath
    remainder: VirtualPath

    @property
    def is_subsystem_root(self) -> bool:
        """True for ``memory`` or ``skills`` themselves."""
        return self.owner in (SegmentOwner.MEMORY, SegmentOwner.SKILLS) and self.remainder.is_root


class NamespaceRouter:
    """Pure routing: no state besides the registered path sources."""

    def __init__(self, root: str = DEFAULT_ROOT) -> None:
        self._root = root
        self._sources: dict[SegmentOwner, PathSource] = {}

    @property
    def root(self) -> str:
        return self._root

    def parse(self, raw: str | VirtualPath) -> VirtualPath:
        return VirtualPath.parse(raw, root=self._root)

    def attach(self, owner: SegmentOwner, source: PathSource) -> None:
        """Register *source* as the live path provider for *owner*."""
        if owner not in _OWNERS.values():
            raise ValueError(f"Cannot attach a path source to '{owner.value}'")
        self._sources[owner] = source
        log.debug("namespace_source_attached", owner=owner.value)

    def resolve(self, raw: str | VirtualPath) -> Resolution:
        path = self.parse(raw)
        if path.is_root:
            return Resolution(SegmentOwner.ROOT, path, path)
        owner = _OWNERS.get(path.segments[0], SegmentOwner.UNKNOWN)
        return Resolution(owner, path, VirtualPath(path.segments[1:]))

    def resolve_known(self, raw: str | VirtualPath) -> Resolution:
        """Like ``resolve`` but rejects reserved, unowned top-level segments."""
        resolution = self.resolve(raw)
        if resolution.owner is SegmentOwner.UNKNOWN:
            raise InvalidPathError(str(resolution.path), "no subsystem owns this path")
        return resolution

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def _all_paths(self) -> Iterator[VirtualPath]:
        for segment in RESERVED_SEGMENTS:
            yield VirtualPath((segment,))
        for source in self._sources.values():
            yield from source()

    def children(self, raw: str | VirtualPath) -> list[str]:
        """Materialise the sorted, deduplicated child names under *raw*."""
        prefix = self.parse(raw)
        depth = prefix.depth
        names: set[str] = set()
        for path in self._all_paths():
            if path.depth > depth and path.is_relative_to(prefix):
                names.add(path.segments[depth])
        return sorted(names)

    def exists(self, raw: str | VirtualPath) -> bool:
        """True when *raw* is a live path or an ancestor of one."""
        prefix = self.parse(raw)
        if prefix.is_root:
            return True
        return any(path.is_relative_to(prefix) for path in self._all_paths())

    def is_directory(self, raw: str | VirtualPath) -> bool:
        """True for the root, the reserved segments, and any path with a
        live path strictly below it."""
        prefix = self.parse(raw)
        if prefix.is_root or (prefix.depth == 1 and prefix.name in RESERVED_SEGMENTS):
            return True
        depth = prefix.depth
        return any(
            path.depth > depth and path.is_relative_to(prefix) for path in self._all_paths()
        )

    def list(self, raw: str | VirtualPath) -> Iterator[str]:
        """Immediate child segments under *raw*.

        The merge is taken at call time; the returned iterator is a one-shot
        view of that point-in-time result.
        """
        return iter(self.children(raw))
