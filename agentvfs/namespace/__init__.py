"""Namespace layer — path parsing and subsystem routing."""

from agentvfs.namespace.path import DEFAULT_ROOT, VirtualPath
from agentvfs.namespace.router import (
    MEMORY_ROOT,
    SKILLS_ROOT,
    NamespaceRouter,
    Resolution,
    SegmentOwner,
)

__all__ = [
    "DEFAULT_ROOT",
    "MEMORY_ROOT",
    "SKILLS_ROOT",
    "NamespaceRouter",
    "Resolution",
    "SegmentOwner",
    "VirtualPath",
]
