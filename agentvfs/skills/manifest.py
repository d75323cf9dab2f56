"""Skill layer — Skill documents (``SKILL.md`` manifests).

A skill document is text with an optional ``---`` delimited YAML header
followed by a free-form body::

    ---
    name: echo
    description: Returns its input unchanged.
    version: 1.0.0
    author: tools-team
    ---
    # echo

    Send any bytes, get the same bytes back.

Only ``name``, ``description`` and ``version`` are interpreted.  Every other
header key lands in ``metadata``; ``metadata.version`` is accepted when the
top-level ``version`` is absent.  When the header has no ``name`` the first
``# `` heading is used.  The body is opaque and reads return the whole
document verbatim.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import yaml

from agentvfs.exceptions import InvalidArgumentError

HEADER_DELIMITER = "---"


@dataclass
class SkillDocument:
    """Parsed view of a skill document."""

    name: str = ""
    description: str = ""
    version: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    body: str = ""
    raw: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "metadata": dict(self.metadata),
        }


def _split_header(text: str) -> tuple[str | None, str]:
    lines = text.split("\n")
    if not lines or lines[0].strip() != HEADER_DELIMITER:
        return None, text
    for i in range(1, len(lines)):
        if lines[i].strip() == HEADER_DELIMITER:
            return "\n".join(lines[1:i]), "\n".join(lines[i + 1 :])
    # An opening delimiter with no closing one is treated as plain body.
    return None, text


def _first_heading(text: str) -> str:
    for line in text.split("\n"):
        if line.startswith("# "):
            return line[2:].strip()
    return ""


def parse_skill_document(text: str) -> SkillDocument:
    """Parse *text* into a ``SkillDocument``.

    Raises:
        InvalidArgumentError: The header is not a YAML mapping.
    """
    header, body = _split_header(text)
    fields: dict[str, Any] = {}
    if header is not None:
        try:
            loaded = yaml.safe_load(header)
        except yaml.YAMLError as exc:
            raise InvalidArgumentError(f"Malformed skill document header: {exc}") from exc
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise InvalidArgumentError("Skill document header must be a mapping")
        fields = {str(k): v for k, v in loaded.items()}

    name = fields.pop("name", None)
    description = fields.pop("description", None)
    version = fields.pop("version", None)
    metadata: dict[str, Any] = fields
    nested = metadata.get("metadata")
    if version is None and isinstance(nested, dict) and "version" in nested:
        version = nested["version"]

    return SkillDocument(
        name=str(name).strip() if name is not None else _first_heading(text),
        description=str(description).strip() if description is not None else "",
        version=str(version).strip() if version is not None else "",
        metadata=metadata,
        body=body,
        raw=text,
    )


def render_manifest(
    name: str,
    version: str,
    description: str,
    metadata: dict[str, Any] | None = None,
) -> str:
    """Synthesise a document for skills whose implementation provides none."""
    header: dict[str, Any] = {"name": name, "description": description, "version": version}
    if metadata:
        header["metadata"] = {
            str(k): v if isinstance(v, (str, int, float, bool, list, dict)) or v is None else str(v)
            for k, v in metadata.items()
        }
    dumped = yaml.safe_dump(header, sort_keys=False, default_flow_style=False)
    return f"{HEADER_DELIMITER}\n{dumped}{HEADER_DELIMITER}\n# {name}\n\n{description}\n"
