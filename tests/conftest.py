"""Shared pytest fixtures for the agentvfs test suite."""

from __future__ import annotations

from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio

from agentvfs.config import Settings, override_settings
from agentvfs.events.bus import MemoryEventBus
from agentvfs.locks import ConsistencyGate
from agentvfs.memory.index import SearchIndex
from agentvfs.memory.store import MemoryStore
from agentvfs.security.session import Session
from agentvfs.skills.registry import SkillRegistry
from agentvfs.vfs import VirtualFileSystem


# ---------------------------------------------------------------------------
# Skill implementations used across tests
# ---------------------------------------------------------------------------


class EchoSkill:
    """Plain duck-typed skill: returns its input unchanged."""

    name = "echo"
    version = "1.0.0"
    description = "Returns its input unchanged."

    def __init__(self) -> None:
        self.config: dict[str, Any] | None = None
        self.calls = 0

    async def init(self, config: dict[str, Any]) -> None:
        self.config = config

    async def execute(self, input: bytes) -> bytes:
        self.calls += 1
        return input


class SyncUpperSkill:
    """Synchronous capabilities: run in a worker thread."""

    name = "upper"
    version = "0.2.0"

    def init(self, config: dict[str, Any]) -> None:
        pass

    def execute(self, input: bytes) -> bytes:
        return input.upper()

    def document(self) -> str:
        return "---\nname: upper\ndescription: Upper-cases bytes.\nversion: 0.2.0\n---\n# upper\n"


class FailingInitSkill:
    name = "broken"
    version = "1.0.0"

    async def init(self, config: dict[str, Any]) -> None:
        raise RuntimeError("missing credentials")

    async def execute(self, input: bytes) -> bytes:
        return input


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    settings = Settings(
        logging={"level": "debug", "format": "console", "audit_file": None},
        skills={"default_timeout_seconds": 5.0},
    )
    override_settings(settings)
    return settings


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------


@pytest.fixture
def gate() -> ConsistencyGate:
    return ConsistencyGate()


@pytest.fixture
def store(gate: ConsistencyGate) -> MemoryStore:
    return MemoryStore(gate)


@pytest.fixture
def index(store: MemoryStore) -> SearchIndex:
    return SearchIndex(store)


@pytest.fixture
def registry(gate: ConsistencyGate) -> SkillRegistry:
    return SkillRegistry(gate, default_timeout=5.0)


@pytest.fixture
def echo_skill() -> EchoSkill:
    return EchoSkill()


@pytest.fixture
def upper_skill() -> SyncUpperSkill:
    return SyncUpperSkill()


@pytest.fixture
def failing_skill() -> FailingInitSkill:
    return FailingInitSkill()


@pytest.fixture
def bus() -> MemoryEventBus:
    return MemoryEventBus()


@pytest_asyncio.fixture
async def vfs(test_settings: Settings, bus: MemoryEventBus) -> AsyncGenerator[VirtualFileSystem, None]:
    async with VirtualFileSystem(settings=test_settings, bus=bus) as fs:
        yield fs


@pytest.fixture
def admin(vfs: VirtualFileSystem) -> Session:
    return vfs.open_session("admin", profile="full")
