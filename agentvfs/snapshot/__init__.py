"""Snapshot layer — point-in-time capture and rollback."""

from agentvfs.snapshot.manager import ChangeRecord, Snapshot, SnapshotManager

__all__ = ["ChangeRecord", "Snapshot", "SnapshotManager"]
