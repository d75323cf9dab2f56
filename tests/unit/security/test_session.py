"""Unit tests — security/session.py and security/profiles.py."""

from __future__ import annotations

import pytest

from agentvfs.exceptions import DuplicateNameError, InvalidArgumentError, NotFoundError
from agentvfs.namespace.path import VirtualPath
from agentvfs.security.models import OperationKind
from agentvfs.security.profiles import (
    BUILTIN_PROFILES,
    SessionProfile,
    get_profile_config,
)
from agentvfs.security.session import AccessScope, SessionManager

pytestmark = pytest.mark.unit


def _p(raw: str) -> VirtualPath:
    return VirtualPath.parse(raw)


class TestAccessScope:
    def test_contains_is_segment_wise(self) -> None:
        scope = AccessScope.of(["memory/agent-1"])
        assert scope.contains(_p("memory/agent-1"))
        assert scope.contains(_p("memory/agent-1/notes"))
        assert not scope.contains(_p("memory/agent-10"))
        assert not scope.contains(_p("memory"))

    def test_leads_to_strict_ancestors_only(self) -> None:
        scope = AccessScope.of(["memory/agent-1"])
        assert scope.leads_to(_p("/"))
        assert scope.leads_to(_p("memory"))
        assert not scope.leads_to(_p("memory/agent-1"))
        assert not scope.leads_to(_p("skills"))

    def test_unrestricted(self) -> None:
        scope = AccessScope.unrestricted()
        assert scope.contains(_p("skills/echo"))
        assert all(scope.allows(op) for op in OperationKind)

    def test_of_accepts_operation_strings(self) -> None:
        scope = AccessScope.of(["memory"], ["read"])
        assert scope.allows(OperationKind.READ)
        assert not scope.allows(OperationKind.WRITE)


class TestProfiles:
    def test_builtin_operation_sets(self) -> None:
        assert BUILTIN_PROFILES[SessionProfile.READONLY].operations == {
            OperationKind.READ,
            OperationKind.LIST,
        }
        assert not get_profile_config(SessionProfile.READ_WRITE).is_allowed(OperationKind.EXECUTE)
        assert get_profile_config(SessionProfile.FULL).is_allowed(OperationKind.EXECUTE)


class TestSessionManager:
    def test_open_defaults(self) -> None:
        sessions = SessionManager()
        s = sessions.open("s1")
        assert s.id == "s1"
        assert s.profile == "read_write"
        assert s.scope.prefixes == {VirtualPath.root()}
        assert s.scope.operations == get_profile_config(SessionProfile.READ_WRITE).operations

    def test_generated_ids_are_unique(self) -> None:
        sessions = SessionManager()
        assert sessions.open().id != sessions.open().id
        assert len(sessions) == 2

    def test_allowed_paths_parsed_under_root(self) -> None:
        s = SessionManager().open("s1", allowed_paths=["/toolfs/memory/agent-1"])
        assert s.scope.prefixes == {_p("memory/agent-1")}

    def test_empty_allowed_paths_sees_nothing(self) -> None:
        s = SessionManager().open("s1", allowed_paths=[])
        assert not s.scope.contains(VirtualPath.root())
        assert not s.scope.leads_to(VirtualPath.root())

    def test_explicit_operations_override_profile(self) -> None:
        s = SessionManager().open("s1", profile="full", operations=["read"])
        assert s.scope.operations == {OperationKind.READ}

    def test_custom_default_profile(self) -> None:
        s = SessionManager(default_profile="readonly").open("s1")
        assert s.profile == "readonly"

    def test_duplicate_id(self) -> None:
        sessions = SessionManager()
        sessions.open("s1")
        with pytest.raises(DuplicateNameError):
            sessions.open("s1")

    @pytest.mark.parametrize("kwargs", [{"profile": "root"}, {"operations": ["fly"]}])
    def test_invalid_profile_or_operation(self, kwargs: dict) -> None:
        with pytest.raises(InvalidArgumentError):
            SessionManager().open("s1", **kwargs)

    def test_close(self) -> None:
        sessions = SessionManager()
        sessions.open("s1")
        sessions.close("s1")
        assert not sessions.is_open("s1")
        with pytest.raises(NotFoundError):
            sessions.get("s1")
        with pytest.raises(NotFoundError):
            sessions.close("s1")

    def test_list_sorted(self) -> None:
        sessions = SessionManager()
        sessions.open("b")
        sessions.open("a")
        assert [s.id for s in sessions.list()] == ["a", "b"]
