"""Unit tests — skills/filesystem.py and the registry's directory loading,
export and import."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from agentvfs.exceptions import DuplicateNameError, InvalidArgumentError, NotFoundError
from agentvfs.security.session import Session
from agentvfs.skills.base import SkillState, SkillType
from agentvfs.skills.filesystem import DirectorySkill
from agentvfs.skills.registry import SkillRegistry
from agentvfs.vfs import VirtualFileSystem


def _skill_dir(root: Path, dirname: str, document: str, **resources: str) -> Path:
    base = root / dirname
    base.mkdir(parents=True)
    (base / "SKILL.md").write_text(document)
    for relative, content in resources.items():
        target = base / relative.replace("__", "/")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
    return base


SUMMARISE = "---\nname: summarise\ndescription: Summarises notes.\nversion: 1.2.0\nauthor: ops\n---\n# summarise\n"


def _call(implementation: DirectorySkill, **request: Any) -> dict[str, Any]:
    return json.loads(implementation.execute(json.dumps(request).encode()))


@pytest.mark.unit
class TestDirectorySkill:
    def test_reads_document_fields(self, tmp_path: Path) -> None:
        base = _skill_dir(tmp_path, "summarise", SUMMARISE, references__style="Be brief.")
        skill = DirectorySkill(base)
        assert skill.name == "summarise"
        assert skill.version == "1.2.0"
        assert skill.description == "Summarises notes."
        assert skill.metadata == {"base_path": str(base.resolve()), "has_references": True}
        assert skill.document() == SUMMARISE

    def test_directory_name_when_document_names_nothing(self, tmp_path: Path) -> None:
        base = _skill_dir(tmp_path, "plain", "Just some instructions.\n")
        assert DirectorySkill(base).name == "plain"

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(NotFoundError):
            DirectorySkill(tmp_path / "absent")

    def test_missing_document(self, tmp_path: Path) -> None:
        (tmp_path / "empty").mkdir()
        with pytest.raises(NotFoundError, match="SKILL.md"):
            DirectorySkill(tmp_path / "empty")

    def test_malformed_document(self, tmp_path: Path) -> None:
        base = _skill_dir(tmp_path, "bad", "---\n- a\n- b\n---\n")
        with pytest.raises(InvalidArgumentError):
            DirectorySkill(base)

    def test_list_and_read_resources(self, tmp_path: Path) -> None:
        base = _skill_dir(
            tmp_path, "summarise", SUMMARISE,
            references__style="Be brief.", scripts__run="print('hi')",
        )
        skill = DirectorySkill(base)
        listing = _call(skill, operation="list")
        assert listing["result"] == {"references": ["references/style"], "scripts": ["scripts/run"]}
        read = _call(skill, operation="read", path="references/style")
        assert read["success"] is True
        assert read["result"] == {"path": "references/style", "content": "Be brief."}

    @pytest.mark.parametrize("path", ["../outside", "other.txt", "references/missing", ""])
    def test_read_outside_resources_fails(self, tmp_path: Path, path: str) -> None:
        (tmp_path / "outside").write_text("secret")
        base = _skill_dir(tmp_path, "summarise", SUMMARISE, **{"other.txt": "x"})
        response = _call(DirectorySkill(base), operation="read", path=path)
        assert response["success"] is False
        assert "secret" not in json.dumps(response)

    def test_unknown_operation(self, tmp_path: Path) -> None:
        base = _skill_dir(tmp_path, "summarise", SUMMARISE)
        response = _call(DirectorySkill(base), operation="run")
        assert response == {"success": False, "error": "unknown operation: run", "metadata": {}}


@pytest.mark.unit
class TestLoadDirectory:
    async def test_registers_first_level_skill_directories(self, registry: SkillRegistry, tmp_path: Path) -> None:
        _skill_dir(tmp_path, "summarise", SUMMARISE)
        _skill_dir(tmp_path, "plain", "# plain\n")
        (tmp_path / "notes").mkdir()
        _skill_dir(tmp_path / "notes", "nested", "# nested\n")

        loaded = await registry.load_directory(tmp_path)
        assert [s.name for s in loaded] == ["plain", "summarise"]
        assert all(s.type is SkillType.FILESYSTEM for s in loaded)
        assert all(s.state is SkillState.REGISTERED for s in loaded)
        assert registry.get("summarise").metadata["author"] == "ops"
        assert "nested" not in registry

    async def test_failures_are_recorded_and_do_not_stop_loading(self, registry: SkillRegistry, tmp_path: Path) -> None:
        _skill_dir(tmp_path, "bad", "---\n- a\n---\n")
        _skill_dir(tmp_path, "good", "# good\n")
        loaded = await registry.load_directory(tmp_path)
        assert [s.name for s in loaded] == ["good"]
        errors = registry.status_report()["load_errors"]
        assert list(errors) == [str(tmp_path / "bad")]

    async def test_missing_root(self, registry: SkillRegistry, tmp_path: Path) -> None:
        with pytest.raises(NotFoundError):
            await registry.load_directory(tmp_path / "absent")

    async def test_register_directory_duplicate_name(self, registry: SkillRegistry, tmp_path: Path) -> None:
        await registry.register_directory(_skill_dir(tmp_path, "one", "---\nname: same\n---\n"))
        with pytest.raises(DuplicateNameError):
            await registry.register_directory(_skill_dir(tmp_path, "two", "---\nname: same\n---\n"))

    async def test_execute_through_registry(self, registry: SkillRegistry, tmp_path: Path) -> None:
        await registry.register_directory(_skill_dir(tmp_path, "summarise", SUMMARISE, references__style="Be brief."))
        await registry.initialize("summarise", {})
        output = await registry.execute("summarise", b'{"operation": "read", "path": "references/style"}')
        assert json.loads(output)["result"]["content"] == "Be brief."


@pytest.mark.unit
class TestExportImport:
    async def test_export_lists_every_skill(self, registry: SkillRegistry, echo_skill: Any, tmp_path: Path) -> None:
        await registry.register(echo_skill)
        base = _skill_dir(tmp_path, "summarise", SUMMARISE)
        await registry.register_directory(base)

        records = json.loads(registry.export_json())
        assert [r["name"] for r in records] == ["echo", "summarise"]
        echo, summarise = records
        assert echo["type"] == "code"
        assert echo["base_path"] is None
        assert summarise["type"] == "filesystem"
        assert summarise["base_path"] == str(base.resolve())
        assert summarise["mount_path"] == "skills/summarise"
        assert "state" not in summarise

    async def test_import_rebuilds_filesystem_skills_only(
        self, registry: SkillRegistry, gate: Any, echo_skill: Any, tmp_path: Path
    ) -> None:
        await registry.register(echo_skill)
        await registry.register_directory(_skill_dir(tmp_path, "summarise", SUMMARISE), "skills/tools/summarise")
        exported = registry.export_json()

        fresh = SkillRegistry(gate)
        imported = await fresh.import_json(exported)
        assert [s.name for s in imported] == ["summarise"]
        assert str(fresh.get("summarise").mount_path) == "skills/tools/summarise"
        assert "echo" not in fresh

    @pytest.mark.parametrize("data", [b"not json", b'{"name": "x"}', b'[{"name": "x"}]'])
    async def test_import_rejects_malformed_documents(self, registry: SkillRegistry, data: bytes) -> None:
        with pytest.raises(InvalidArgumentError):
            await registry.import_json(data)


@pytest.mark.unit
class TestLoadSkills:
    async def test_loaded_skills_are_mounted_and_readable(
        self, vfs: VirtualFileSystem, admin: Session, tmp_path: Path
    ) -> None:
        _skill_dir(tmp_path, "summarise", SUMMARISE, references__style="Be brief.")
        loaded = await vfs.load_skills(tmp_path)
        assert [s.state for s in loaded] == [SkillState.MOUNTED]
        assert "summarise" in list(await vfs.list(admin, "skills"))
        assert await vfs.read(admin, "skills/summarise") == SUMMARISE.encode()
        output = await vfs.execute(admin, "skills/summarise", b'{"operation": "list"}')
        assert json.loads(output)["result"]["references"] == ["references/style"]
