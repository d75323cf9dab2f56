"""Security layer — sessions, profiles, access guard, audit."""

from agentvfs.security.audit import AuditEvent, AuditLogger
from agentvfs.security.guard import AccessGuard
from agentvfs.security.models import ALL_OPERATIONS, OperationKind
from agentvfs.security.profiles import (
    BUILTIN_PROFILES,
    SessionProfile,
    SessionProfileConfig,
    get_profile_config,
)
from agentvfs.security.session import (
    AccessScope,
    Session,
    SessionManager,
)

__all__ = [
    "ALL_OPERATIONS",
    "BUILTIN_PROFILES",
    "AccessGuard",
    "AccessScope",
    "AuditEvent",
    "AuditLogger",
    "OperationKind",
    "Session",
    "SessionManager",
    "SessionProfile",
    "SessionProfileConfig",
    "get_profile_config",
]
