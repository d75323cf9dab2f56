"""Skill layer — Built-in skills.

Two skills ship with every namespace (unless ``skills.register_builtins`` is
off):

  memory   read / write / list / delete memory entries
  search   similarity search over memory content

Both speak JSON.  Input is a ``SkillRequest``, output a ``SkillResponse``::

    {"operation": "write", "path": "notes/a", "data": {"content": "hello"}}
    → {"success": true, "result": {"key": "memory/notes/a", "version": 1}}

They act through the ``VirtualFileSystem`` with the calling session, so
access control applies exactly as if the caller had issued the operation
directly.  Namespace errors are reported in the response body; malformed
requests raise ``InvalidArgumentError``.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Awaitable, Callable
from urllib.parse import parse_qs

from pydantic import BaseModel, Field, ValidationError

from agentvfs.exceptions import InvalidArgumentError, VFSError
from agentvfs.logging import get_logger
from agentvfs.namespace.router import MEMORY_ROOT
from agentvfs.namespace.path import VirtualPath
from agentvfs.skills.base import BaseSkill, current_call_context

if TYPE_CHECKING:
    from agentvfs.security.session import Session
    from agentvfs.vfs import VirtualFileSystem

log = get_logger(__name__)

BUILTIN_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# Request / response envelopes
# ---------------------------------------------------------------------------


class SkillRequest(BaseModel):
    operation: str = Field(min_length=1)
    path: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    options: dict[str, Any] = Field(default_factory=dict)


class SkillResponse(BaseModel):
    success: bool
    result: Any = None
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_bytes(self) -> bytes:
        return self.model_dump_json(exclude_none=True).encode("utf-8")


def parse_request(raw: bytes) -> SkillRequest:
    try:
        return SkillRequest.model_validate_json(raw)
    except ValidationError as exc:
        raise InvalidArgumentError(f"Invalid skill request: {exc.error_count()} error(s)") from exc


# ---------------------------------------------------------------------------
# Shared dispatch
# ---------------------------------------------------------------------------


Handler = Callable[["Session", SkillRequest], Awaitable[Any]]


class _NamespaceSkill(BaseSkill):
    """Dispatches ``operation`` to ``_op_<name>`` handlers with the caller's session."""

    DOCUMENT = ""
    ALIASES: dict[str, str] = {}

    def __init__(self, vfs: "VirtualFileSystem") -> None:
        super().__init__()
        self._vfs = vfs

    def document(self) -> str:
        return self.DOCUMENT

    def _get_handler(self, operation: str) -> Handler | None:
        operation = self.ALIASES.get(operation, operation)
        return getattr(self, f"_op_{operation}", None)

    async def execute(self, input: bytes) -> bytes:
        request = parse_request(input)
        handler = self._get_handler(request.operation)
        if handler is None:
            return SkillResponse(
                success=False, error=f"unknown operation: {request.operation}"
            ).to_bytes()

        context = current_call_context()
        if context is None or context.session is None:
            return SkillResponse(success=False, error="a session is required").to_bytes()

        try:
            result = await handler(context.session, request)
        except VFSError as exc:
            log.debug(
                "builtin_skill_operation_failed",
                skill=self.NAME,
                operation=request.operation,
                error=exc.message,
            )
            return SkillResponse(success=False, error=exc.message).to_bytes()
        return SkillResponse(success=True, result=result).to_bytes()


# ---------------------------------------------------------------------------
# memory
# ---------------------------------------------------------------------------


_MEMORY_DOCUMENT = """---
name: memory
description: Read, write, list and delete memory entries under memory/.
version: 1.0.0
module: memory
operations: [read, write, list, delete]
---
# memory

Key/value storage for session data, conversation context and agent state.

## Requests

    {"operation": "read",   "path": "notes/a"}
    {"operation": "write",  "path": "notes/a", "data": {"content": "hello"}}
    {"operation": "list",   "path": "notes"}
    {"operation": "delete", "path": "notes/a"}

Paths are relative to memory/ unless they already start with it.
"""


class MemorySkill(_NamespaceSkill):
    NAME = "memory"
    VERSION = BUILTIN_VERSION
    DOCUMENT = _MEMORY_DOCUMENT
    ALIASES = {"read_file": "read", "write_file": "write", "list_dir": "list"}

    def _key(self, request: SkillRequest, required: bool = True) -> VirtualPath:
        raw = request.path or str(request.data.get("key") or request.data.get("id") or "")
        if not raw:
            if required:
                raise InvalidArgumentError("memory entry key is required")
            return MEMORY_ROOT
        path = self._vfs.router.parse(raw)
        if path.is_relative_to(MEMORY_ROOT):
            return path
        return MEMORY_ROOT.joinpath(path)

    async def _op_read(self, session: "Session", request: SkillRequest) -> dict[str, Any]:
        key = self._key(request)
        entry = await self._vfs.read_entry(session, key)
        return {
            "key": str(entry.key),
            "content": entry.text(),
            "version": entry.version,
            "created_at": entry.created_at,
            "updated_at": entry.updated_at,
        }

    async def _op_write(self, session: "Session", request: SkillRequest) -> dict[str, Any]:
        key = self._key(request)
        content = request.data.get("content", request.data.get("input"))
        if content is None:
            raise InvalidArgumentError("'data.content' is required")
        if not isinstance(content, str):
            content = json.dumps(content)
        version = await self._vfs.write(session, key, content.encode("utf-8"))
        return {"key": str(key), "version": version}

    async def _op_list(self, session: "Session", request: SkillRequest) -> dict[str, Any]:
        prefix = self._key(request, required=False)
        return {"path": str(prefix), "entries": list(await self._vfs.list(session, prefix))}

    async def _op_delete(self, session: "Session", request: SkillRequest) -> dict[str, Any]:
        key = self._key(request)
        await self._vfs.delete(session, key)
        return {"key": str(key), "deleted": True}


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------


_SEARCH_DOCUMENT = """---
name: search
description: Similarity search over memory entries, best matches first.
version: 1.0.0
module: search
operations: [query]
---
# search

Find memory entries relevant to a text query.

## Requests

    {"operation": "query", "data": {"query": "agent memory", "top_k": 3}}
    {"operation": "query", "path": "query?text=agent+memory&top_k=3"}

Only entries the calling session may read are returned.
"""


class SearchSkill(_NamespaceSkill):
    NAME = "search"
    VERSION = BUILTIN_VERSION
    DOCUMENT = _SEARCH_DOCUMENT
    ALIASES = {"read": "query", "read_file": "query", "search": "query"}

    def _query_args(self, request: SkillRequest) -> tuple[str, int]:
        text = ""
        top_k: Any = None
        if "?" in request.path:
            params = parse_qs(request.path.split("?", 1)[1])
            text = (params.get("text") or params.get("q") or [""])[0]
            top_k = (params.get("top_k") or [None])[0]
        if not text:
            text = str(request.data.get("query") or request.data.get("text") or "")
            top_k = request.data.get("top_k", top_k)
        if not text:
            raise InvalidArgumentError("query text is required")
        if top_k is None:
            return text, self._vfs.settings.search.default_top_k
        try:
            return text, int(top_k)
        except (TypeError, ValueError) as exc:
            raise InvalidArgumentError(f"top_k must be an integer, got {top_k!r}") from exc

    async def _op_query(self, session: "Session", request: SkillRequest) -> dict[str, Any]:
        text, top_k = self._query_args(request)
        hits = await self._vfs.search(session, text, top_k)
        return {
            "query": text,
            "top_k": top_k,
            "results": [{"key": str(hit.key), "score": hit.score} for hit in hits],
        }


BUILTIN_SKILLS: tuple[type[_NamespaceSkill], ...] = (MemorySkill, SearchSkill)
