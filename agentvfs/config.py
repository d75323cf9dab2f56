"""agentvfs — Configuration.

Configuration is loaded from (in order of increasing priority):
    1. Built-in defaults (this file)
    2. System config: /etc/agentvfs/config.yaml
    3. User config:   ~/.agentvfs/config.yaml
    4. An explicit config file passed to ``Settings.load()``
    5. Environment variables prefixed with AGENTVFS_

All settings are immutable after load.  Call ``Settings.load()`` once at
startup and hand the instance to ``VirtualFileSystem.from_settings()``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from agentvfs.security.profiles import SessionProfile


# ---------------------------------------------------------------------------
# Sub-configuration blocks
# ---------------------------------------------------------------------------


class NamespaceConfig(BaseModel):
    root: str = Field(
        default="/toolfs",
        description=(
            "Absolute prefix under which the namespace is exposed. Incoming paths "
            "may include or omit it."
        ),
    )

    @field_validator("root")
    @classmethod
    def _root_is_absolute(cls, v: str) -> str:
        v = v.rstrip("/")
        if v and not v.startswith("/"):
            raise ValueError("namespace root must be absolute (start with '/')")
        return v


class SearchConfig(BaseModel):
    default_top_k: Annotated[int, Field(ge=1, le=1000)] = 5
    max_top_k: Annotated[int, Field(ge=1, le=10_000)] = Field(
        default=100,
        description="Upper bound applied to every query's top_k.",
    )


class SkillConfig(BaseModel):
    default_timeout_seconds: Annotated[float, Field(gt=0, le=3600)] = Field(
        default=30.0,
        description="Deadline applied to execute() when the call context sets none.",
    )
    register_builtins: bool = Field(
        default=True,
        description="Register and mount the built-in 'memory' and 'search' skills.",
    )


class SessionConfig(BaseModel):
    default_profile: SessionProfile = Field(
        default=SessionProfile.READ_WRITE,
        description="Profile applied by open_session() when no scope is given.",
    )


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "console"] = "console"
    file: Path | None = None
    audit_file: Path | None = None


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AGENTVFS_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    namespace: NamespaceConfig = Field(default_factory=NamespaceConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    skills: SkillConfig = Field(default_factory=SkillConfig)
    sessions: SessionConfig = Field(default_factory=SessionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("logging", mode="before")
    @classmethod
    def expand_logging_paths(cls, v: object) -> object:
        if isinstance(v, dict):
            for key in ("file", "audit_file"):
                if key in v and isinstance(v[key], str):
                    v[key] = Path(v[key]).expanduser()
        return v

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """Load settings from file + environment variables."""
        data: dict[str, object] = {}

        candidates = [
            Path("/etc/agentvfs/config.yaml"),
            Path.home() / ".agentvfs" / "config.yaml",
        ]
        if config_file:
            candidates.append(config_file)

        for path in candidates:
            if path.exists():
                with path.open() as f:
                    loaded = yaml.safe_load(f) or {}
                    data.update(loaded)

        return cls(**data)


# Module-level singleton; replaced by ``Settings.load()`` at startup.
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def override_settings(settings: Settings) -> None:
    """Replace the module-level singleton. Used in tests."""
    global _settings
    _settings = settings
