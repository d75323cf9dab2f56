"""Security layer — Access guard.

The AccessGuard is the single enforcement point for session scopes.
``VirtualFileSystem`` calls it before every operation, before looking up
whether the target even exists, so a denied session cannot probe the
namespace through the difference between "denied" and "not found".

Rules:
  1. The operation kind must be in the session's scope.
  2. ``list`` is allowed on a path inside the scope, or on an ancestor of a
     scope prefix (so ``/`` can be listed to reach ``memory/agent-1``).
  3. Every other operation requires the path to be inside the scope.
  4. Listings only return children that are inside the scope or on the
     way to it.
"""

from __future__ import annotations

from typing import Iterable

from agentvfs.exceptions import PermissionDeniedError
from agentvfs.namespace.path import VirtualPath
from agentvfs.security.models import OperationKind
from agentvfs.security.session import Session


class AccessGuard:
    """Stateless predicate evaluator over immutable session scopes.

    Usage::

        guard = AccessGuard()
        guard.check(session, path, OperationKind.WRITE)     # raises on deny
        names = guard.filter_children(session, parent, names)
    """

    def authorize(self, session: Session, path: VirtualPath, operation: OperationKind) -> bool:
        scope = session.scope
        if not scope.allows(operation):
            return False
        if scope.contains(path):
            return True
        return operation is OperationKind.LIST and scope.leads_to(path)

    def check(self, session: Session, path: VirtualPath, operation: OperationKind) -> None:
        """Raise ``PermissionDeniedError`` unless *session* may perform *operation*."""
        if not self.authorize(session, path, operation):
            raise PermissionDeniedError()

    def can_see(self, session: Session, path: VirtualPath) -> bool:
        """True when *path* may appear in a listing for *session*."""
        scope = session.scope
        return scope.contains(path) or scope.leads_to(path)

    def filter_children(
        self, session: Session, parent: VirtualPath, names: Iterable[str]
    ) -> list[str]:
        return [name for name in names if self.can_see(session, parent.child(name))]

    def filter_paths(
        self,
        session: Session,
        paths: Iterable[VirtualPath],
        operation: OperationKind = OperationKind.READ,
    ) -> list[VirtualPath]:
        return [path for path in paths if self.authorize(session, path, operation)]
