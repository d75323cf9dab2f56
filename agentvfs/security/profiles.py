"""Security layer — Session profiles.

Three built-in profiles (from least to most permissive):

    readonly      read + list.  Observers and auditors.
    read_write    Default.  read + write + list.  No skill execution.
    full          Everything, including skill execution.

A profile only selects operation kinds.  Which paths a session sees is
decided separately by its ``allowed_paths``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from agentvfs.security.models import OperationKind


class SessionProfile(str, Enum):
    READONLY = "readonly"
    READ_WRITE = "read_write"
    FULL = "full"


@dataclass(frozen=True)
class SessionProfileConfig:
    """Resolved operation set for a profile."""

    profile: SessionProfile
    operations: frozenset[OperationKind]

    def is_allowed(self, operation: OperationKind) -> bool:
        return operation in self.operations


BUILTIN_PROFILES: dict[SessionProfile, SessionProfileConfig] = {
    SessionProfile.READONLY: SessionProfileConfig(
        profile=SessionProfile.READONLY,
        operations=frozenset({OperationKind.READ, OperationKind.LIST}),
    ),
    SessionProfile.READ_WRITE: SessionProfileConfig(
        profile=SessionProfile.READ_WRITE,
        operations=frozenset({OperationKind.READ, OperationKind.WRITE, OperationKind.LIST}),
    ),
    SessionProfile.FULL: SessionProfileConfig(
        profile=SessionProfile.FULL,
        operations=frozenset(OperationKind),
    ),
}


def get_profile_config(profile: SessionProfile) -> SessionProfileConfig:
    return BUILTIN_PROFILES[profile]
