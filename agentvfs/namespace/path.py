"""Namespace layer — VirtualPath.

A VirtualPath is an immutable tuple of non-empty segments relative to the
namespace root.  Two paths are equal iff their segment tuples are equal.

Parsing rules:
  - A leading ``/`` and the configured root prefix (``/toolfs`` by default)
    are stripped, so ``/toolfs/memory/a``, ``/memory/a`` and ``memory/a``
    name the same path.
  - Repeated separators and ``.`` segments are dropped.
  - ``..`` is rejected: paths never escape the root.
  - Segments containing NUL, ASCII control characters or ``\\`` are rejected.
  - Matching is case-sensitive.  There are no symbolic links.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from agentvfs.exceptions import InvalidPathError

DEFAULT_ROOT = "/toolfs"
SEPARATOR = "/"


def _validate_segment(raw: str, segment: str) -> None:
    if segment == "..":
        raise InvalidPathError(raw, "parent traversal is not allowed")
    if "\\" in segment:
        raise InvalidPathError(raw, "backslash in path segment")
    for ch in segment:
        if ord(ch) < 0x20 or ord(ch) == 0x7F:
            raise InvalidPathError(raw, "control character in path segment")


@dataclass(frozen=True, order=True)
class VirtualPath:
    segments: tuple[str, ...] = ()

    @classmethod
    def parse(cls, raw: "str | VirtualPath", root: str = DEFAULT_ROOT) -> "VirtualPath":
        """Parse *raw* into a VirtualPath, stripping *root* when present."""
        if isinstance(raw, VirtualPath):
            return raw
        if not isinstance(raw, str):
            raise InvalidPathError(repr(raw), "path must be a string")
        if raw == "":
            raise InvalidPathError(raw, "empty path")

        text = raw
        root = root.rstrip(SEPARATOR)
        if root and (text == root or text.startswith(root + SEPARATOR)):
            text = text[len(root):]

        segments: list[str] = []
        for segment in text.split(SEPARATOR):
            if segment in ("", "."):
                continue
            _validate_segment(raw, segment)
            segments.append(segment)
        return cls(tuple(segments))

    @classmethod
    def root(cls) -> "VirtualPath":
        return cls(())

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    @property
    def is_root(self) -> bool:
        return not self.segments

    @property
    def name(self) -> str:
        return self.segments[-1] if self.segments else ""

    @property
    def parent(self) -> "VirtualPath":
        return VirtualPath(self.segments[:-1])

    @property
    def depth(self) -> int:
        return len(self.segments)

    def child(self, segment: str) -> "VirtualPath":
        if segment in ("", ".") or SEPARATOR in segment:
            raise InvalidPathError(segment, "not a single path segment")
        _validate_segment(segment, segment)
        return VirtualPath(self.segments + (segment,))

    def joinpath(self, other: "VirtualPath") -> "VirtualPath":
        return VirtualPath(self.segments + other.segments)

    def is_relative_to(self, prefix: "VirtualPath") -> bool:
        """Segment-wise prefix test: ``memory/no`` is not a prefix of ``memory/notes``."""
        n = len(prefix.segments)
        return self.segments[:n] == prefix.segments

    def relative_to(self, prefix: "VirtualPath") -> "VirtualPath":
        if not self.is_relative_to(prefix):
            raise InvalidPathError(str(self), f"not under '{prefix}'")
        return VirtualPath(self.segments[len(prefix.segments):])

    def __iter__(self) -> Iterator[str]:
        return iter(self.segments)

    def __str__(self) -> str:
        if not self.segments:
            return SEPARATOR
        return SEPARATOR.join(self.segments)

    def absolute(self, root: str = DEFAULT_ROOT) -> str:
        """Render under the namespace root, e.g. ``/toolfs/memory/a``."""
        root = root.rstrip(SEPARATOR)
        if not self.segments:
            return root or SEPARATOR
        return f"{root}{SEPARATOR}{SEPARATOR.join(self.segments)}"
