"""Skill layer — Skills published from directories.

A skill directory holds a ``SKILL.md`` document and, optionally,
``references/`` and ``scripts/``::

    summarise/
      SKILL.md
      references/style.md
      scripts/run.py

The document supplies name, version, description and metadata; the
directory name stands in when the document names nothing.  Executing a
directory skill reads its resources and never runs anything from
``scripts/``.  Requests and responses use the built-in JSON envelopes::

    {"operation": "list"}
    → {"success": true, "result": {"references": ["references/style.md"], "scripts": [...]}}

    {"operation": "read", "path": "references/style.md"}
    → {"success": true, "result": {"path": "references/style.md", "content": "..."}}
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

from agentvfs.exceptions import InvalidArgumentError, NotFoundError, VFSError
from agentvfs.skills.builtin import SkillRequest, SkillResponse, parse_request
from agentvfs.skills.manifest import SkillDocument, parse_skill_document

SKILL_DOCUMENT = "SKILL.md"
RESOURCE_DIRS = ("references", "scripts")


def is_skill_directory(path: str | Path) -> bool:
    return (Path(path) / SKILL_DOCUMENT).is_file()


class DirectorySkill:
    """Skill implementation backed by a directory on the local filesystem.

    Construction reads and parses ``SKILL.md``; it does blocking I/O, so
    async callers build it in a worker thread.

    Raises:
        NotFoundError:        The directory or its ``SKILL.md`` is missing.
        InvalidArgumentError: ``SKILL.md`` is unreadable or malformed.
    """

    def __init__(self, base_path: str | Path) -> None:
        base = Path(base_path).expanduser()
        if not base.is_dir():
            raise NotFoundError("skill directory", str(base))
        document_path = base / SKILL_DOCUMENT
        if not document_path.is_file():
            raise NotFoundError("skill document", str(document_path))
        try:
            text = document_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise InvalidArgumentError(f"Cannot read {document_path}: {exc}") from exc

        self.base_path = base.resolve()
        self._document: SkillDocument = parse_skill_document(text)
        self.name = self._document.name or base.name
        self.version = self._document.version
        self.description = self._document.description
        self.metadata: dict[str, Any] = {"base_path": str(self.base_path)}
        for directory in RESOURCE_DIRS:
            if (self.base_path / directory).is_dir():
                self.metadata[f"has_{directory}"] = True
        self.config: dict[str, Any] = {}

    def init(self, config: dict[str, Any]) -> None:
        self.config = dict(config)

    def document(self) -> str:
        return self._document.raw

    def execute(self, input: bytes) -> bytes:
        request = parse_request(input)
        handler: Callable[[SkillRequest], Any] | None = getattr(
            self, f"_op_{request.operation}", None
        )
        if handler is None:
            return SkillResponse(
                success=False, error=f"unknown operation: {request.operation}"
            ).to_bytes()
        try:
            result = handler(request)
        except VFSError as exc:
            return SkillResponse(success=False, error=exc.message).to_bytes()
        return SkillResponse(success=True, result=result).to_bytes()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def _op_document(self, request: SkillRequest) -> dict[str, Any]:
        return {"name": self.name, "content": self._document.raw}

    def _op_list(self, request: SkillRequest) -> dict[str, list[str]]:
        return {directory: self._resources(directory) for directory in RESOURCE_DIRS}

    def _op_read(self, request: SkillRequest) -> dict[str, Any]:
        target = self._resolve(request.path)
        try:
            content = target.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidArgumentError(f"'{request.path}' is not UTF-8 text") from exc
        return {"path": request.path, "content": content}

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resources(self, directory: str) -> list[str]:
        root = self.base_path / directory
        if not root.is_dir():
            return []
        return sorted(
            path.relative_to(self.base_path).as_posix()
            for path in root.rglob("*")
            if path.is_file()
        )

    def _resolve(self, relative: str) -> Path:
        if not relative:
            raise InvalidArgumentError("'path' is required")
        target = (self.base_path / relative).resolve()
        allowed = [self.base_path / SKILL_DOCUMENT]
        inside = any(target.is_relative_to(self.base_path / d) for d in RESOURCE_DIRS)
        if not inside and target not in allowed:
            raise InvalidArgumentError(f"'{relative}' is not a resource of skill '{self.name}'")
        if not target.is_file():
            raise NotFoundError("skill resource", relative)
        return target
