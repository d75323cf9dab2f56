"""Skill layer — skill records, documents, registry and built-in skills."""

from agentvfs.skills.base import (
    BaseSkill,
    CallContext,
    Skill,
    SkillImplementation,
    SkillState,
    SkillType,
    current_call_context,
)
from agentvfs.skills.filesystem import DirectorySkill
from agentvfs.skills.manifest import SkillDocument, parse_skill_document, render_manifest
from agentvfs.skills.registry import SkillExport, SkillRegistry

__all__ = [
    "BaseSkill",
    "CallContext",
    "DirectorySkill",
    "Skill",
    "SkillDocument",
    "SkillExport",
    "SkillImplementation",
    "SkillRegistry",
    "SkillState",
    "SkillType",
    "current_call_context",
    "parse_skill_document",
    "render_manifest",
]
