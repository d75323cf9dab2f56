"""agentvfs — A path-addressed virtual filesystem for agent tools.

agentvfs exposes memory entries, executable skills and point-in-time
snapshots as one POSIX-like namespace, so external tools (a FUSE mount, a
test harness, an agent runtime) can read, write, list and invoke them with
ordinary path operations.

Architecture layers (bottom to top):
    1. Namespace — VirtualPath parsing, segment routing, merged listings
    2. Memory    — Versioned arena store, similarity search index
    3. Skills    — Registry, lifecycle state machine, execution with deadlines
    4. Snapshot  — Capture barrier, all-or-nothing rollback, change tracking
    5. Security  — Sessions, scope profiles, access guard, audit trail
    6. VFS       — The namespace context object tying the layers together
"""

__version__ = "0.1.0"
__author__ = "agentvfs Contributors"
__license__ = "Apache-2.0"

from agentvfs.vfs import FileInfo, VirtualFileSystem

__all__ = [
    "__version__",
    "FileInfo",
    "VirtualFileSystem",
]
