"""Security layer — Shared vocabulary for scopes and profiles."""

from __future__ import annotations

from enum import Enum


class OperationKind(str, Enum):
    READ = "read"
    WRITE = "write"
    LIST = "list"
    EXECUTE = "execute"


ALL_OPERATIONS: frozenset[OperationKind] = frozenset(OperationKind)
