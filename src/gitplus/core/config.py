"""Application configuration and runtime state."""

from __future__ import annotations

import os
import re
from enum import Enum
from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from gitplus.core.base import BaseConfig, BaseState
from gitplus.core.log import Logger
from gitplus.core.yaml_settings import (
    APP_NAME,
    CONFIG_FILENAME,
    PackageDefaultsSettingsSource,
    YamlWithIncludesSettingsSource,
)

# Names usable in {...} templates inside YAML values,
# e.g. {platformdirs.user_state_dir} or {Path.home}
TEMPLATE_NAMESPACE = {
    'os': os,
    'platformdirs': platformdirs,
    'Path': Path,
}


class SecurityLevel(str, Enum):
    """How strictly path violations are enforced."""

    STRICT = "strict"
    MODERATE = "moderate"
    PERMISSIVE = "permissive"


class ResolutionMode(str, Enum):
    """Confidence gate applied to backend proposals."""

    SMART = "smart"
    SAFE = "safe"
    REVIEW = "review"


# ============================================================
# CONFIG MODELS (loaded from YAML/env/CLI)
# ============================================================

class RepositoryConfig(BaseConfig):
    """Which repository to operate on."""

    workdir: Path = Field(
        default=Path("."),
        description="Working directory of the git repository",
    )


class ExecConfig(BaseConfig):
    """Subprocess execution limits for version-control calls."""

    git_command: str = Field(
        default="git", description="Version-control executable"
    )
    timeout: float = Field(
        default=60.0,
        gt=0,
        description="Seconds before a git subprocess is terminated",
    )
    max_output_bytes: int = Field(
        default=10 * 1024 * 1024,
        gt=0,
        description="Captured stdout/stderr is cut at this many bytes",
    )


class SecurityConfig(BaseConfig):
    """Path security validator settings."""

    level: SecurityLevel = Field(
        default=SecurityLevel.STRICT,
        description="strict, moderate or permissive",
    )
    blocked_paths: list[str] = Field(
        default_factory=lambda: [
            "/etc", "/usr", "/bin", "/sbin", "/boot", "/sys", "/proc",
            "/dev", "C:\\Windows", "C:\\Program Files",
            "C:\\System Volume Information",
        ],
        description="Directories no path may resolve into",
    )
    allow_symlinks: bool = Field(
        default=False,
        description="Accept symlinked paths under the strict level",
    )
    max_depth: int = Field(
        default=50, gt=0, description="Maximum canonical path depth"
    )
    log_capacity: int = Field(
        default=1000,
        ge=10,
        description="Security events kept in memory (ring buffer)",
    )
    audit: bool = Field(
        default=False,
        description="Flush security events to the audit directory on exit",
    )


class BackendConfig(BaseConfig):
    """External reasoning backend invocation."""

    command: str = Field(
        default="claude", description="Backend executable"
    )
    model: Literal["sonnet", "haiku", "opus"] = Field(
        default="sonnet", description="Model passed with --model"
    )
    output_format: str = Field(
        default="json", description="Value passed with --output-format"
    )
    prompt_via_stdin: bool = Field(
        default=True,
        description="Send the prompt on stdin instead of as an argument",
    )
    timeout: float = Field(
        default=120.0,
        ge=1,
        le=600,
        description="Seconds per backend call",
    )
    max_retries: int = Field(
        default=3, ge=0, le=10, description="Retries after the first call"
    )
    base_delay: float = Field(
        default=1.0,
        ge=0.1,
        le=10,
        description="First backoff delay in seconds",
    )
    max_delay: float = Field(
        default=30.0, gt=0, description="Backoff delay cap in seconds"
    )
    backoff_base: float = Field(
        default=2.0, ge=1, description="Exponential backoff base"
    )
    jitter: float = Field(
        default=0.25,
        ge=0,
        lt=1,
        description="Jitter factor is drawn from [1-jitter, 1+jitter]",
    )
    max_output_bytes: int = Field(
        default=2 * 1024 * 1024,
        gt=0,
        description="Captured backend output is cut at this many bytes",
    )


class LimitsConfig(BaseConfig):
    """Size caps for everything sent to or read from the backend."""

    max_prompt_length: int = Field(default=50000, gt=0)
    max_section_length: int = Field(
        default=2000, gt=0, description="Per ours/theirs/base field"
    )
    max_context_length: int = Field(default=500, gt=0)
    context_lines: int = Field(
        default=5, ge=0, description="Lines captured around a conflict"
    )
    max_diff_length: int = Field(default=3000, gt=0)
    max_file_name_length: int = Field(default=255, gt=0)
    max_commit_message_length: int = Field(default=500, gt=0)
    max_branch_length: int = Field(default=100, gt=0)
    max_file_list_length: int = Field(default=50, gt=0)
    max_files: int = Field(default=20, gt=0)
    max_file_types: int = Field(default=10, gt=0)
    max_sections: int = Field(default=10, gt=0)
    max_commits: int = Field(default=5, ge=0)
    max_resolved_content: int = Field(
        default=50000,
        gt=0,
        description="Proposed file content above this is refused",
    )
    max_reasoning_length: int = Field(default=2000, gt=0)
    max_file_reasoning_length: int = Field(default=1000, gt=0)
    max_warning_length: int = Field(default=500, gt=0)


class ResolutionConfig(BaseConfig):
    """Confidence-gated conflict resolution policy."""

    mode: ResolutionMode = Field(
        default=ResolutionMode.SAFE,
        description="smart, safe or review",
    )
    smart_threshold: float = Field(
        default=70, ge=0, le=100,
        description="Minimum confidence to auto-apply in smart mode",
    )
    safe_threshold: float = Field(
        default=85, ge=0, le=100,
        description="Minimum confidence to auto-apply in safe mode",
    )
    escalation_floor: float = Field(
        default=50, ge=0, le=100,
        description="Below this confidence every mode escalates",
    )
    continue_merge: bool = Field(
        default=False,
        description=(
            "Commit the merge once every conflict has been applied"
        ),
    )


class Config(BaseConfig):
    """All configuration sections."""

    logger: Logger = Field(
        default=None, description="Logger sinks and levels"
    )
    repository: RepositoryConfig = Field(
        default_factory=RepositoryConfig, description="Target repository"
    )
    exec: ExecConfig = Field(
        default_factory=ExecConfig, description="Subprocess limits"
    )
    security: SecurityConfig = Field(
        default_factory=SecurityConfig, description="Path security"
    )
    backend: BackendConfig = Field(
        default_factory=BackendConfig, description="Reasoning backend"
    )
    limits: LimitsConfig = Field(
        default_factory=LimitsConfig, description="Prompt size caps"
    )
    resolution: ResolutionConfig = Field(
        default_factory=ResolutionConfig, description="Resolution policy"
    )
    log_level: str = Field(
        default="info",
        alias="log-level",
        description="Console level: trace, debug, info, warn, error",
    )
    log_root: Path = Field(
        default_factory=(
            lambda: Path(platformdirs.user_state_dir(APP_NAME)) / "log"
        ),
        description="Root directory for log files",
    )
    audit_root: Path = Field(
        default_factory=(
            lambda: Path(platformdirs.user_state_dir(APP_NAME)) / "audit"
        ),
        description="Root directory for security audit flushes",
    )

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode='after')
    def _setup_logger(self) -> Config:
        """Configure the global logger from the loaded settings."""
        from gitplus.core.log import setup_logger
        from gitplus.core.yaml_settings import _cleanup_bootstrap_logger

        if self.logger is None:
            self.logger = Logger(level=self.log_level)

        setup_logger(
            log_root=self.log_root,
            session=self.repository.workdir.resolve().name or APP_NAME,
            console=self.logger.console,
            otlp=self.logger.otlp,
            file=self.logger.file,
            logfire=self.logger.logfire,
            level=self.logger.level,
        )
        _cleanup_bootstrap_logger()
        return self

    def close(self):
        """Close the global logger, then the sections."""
        from gitplus.core.log import logger
        logger.close()
        super().close()


# ============================================================
# RUNTIME STATE MODELS (mutable during workflow execution)
# ============================================================

class ResolveState(BaseState):
    """State of one conflict-resolution run."""

    handle: Any = Field(
        default=None, description="RepositoryHandle for this run"
    )
    mode: ResolutionMode | None = Field(
        default=None, description="Overrides config.resolution.mode"
    )
    side: Literal["ours", "theirs"] | None = Field(
        default=None,
        description="Keep one side of every conflict instead of asking",
    )
    commit: str | None = Field(
        default=None, description="Merge commit, when one was made"
    )
    conflicted_files: list[str] = Field(
        default_factory=list,
        description="Files with conflicts when the run started",
    )
    resolution: Any = Field(
        default=None, description="Final ConflictResolution"
    )
    applied_files: list[str] = Field(
        default_factory=list, description="Files written and staged"
    )
    merge_concluded: bool = Field(
        default=False, description="Whether the merge commit was made"
    )
    status: str = Field(
        default="pending",
        description="pending, running, clean, resolved, unresolved",
    )

    model_config = ConfigDict(arbitrary_types_allowed=True)


class Runtime(BaseModel):
    """Runtime state grouped by command."""

    resolve: ResolveState = Field(
        default_factory=ResolveState,
        description="Conflict resolution workflow state",
    )


# ============================================================
# STATE (config + runtime combined)
# ============================================================

class State(BaseSettings):
    """Configuration plus runtime state for one invocation.

    Built once at the CLI entry point from YAML files, .env,
    GITPLUS_* environment variables and command-line flags. Nothing
    else in gitplus reads the environment.
    """

    config: Config = Field(
        default_factory=Config,
        description="Configuration (from YAML/env/CLI)",
    )
    runtime: Runtime = Field(
        default_factory=Runtime,
        description="Runtime state",
    )
    include: list[str] | None = Field(
        default=None,
        description="Extra YAML files to merge over the configuration",
    )

    model_config = SettingsConfigDict(
        yaml_file=CONFIG_FILENAME,
        env_file=".env",
        env_prefix="GITPLUS_",
        env_nested_delimiter="__",
        cli_implicit_flags=True,
        cli_use_class_docs_for_groups=True,
        arbitrary_types_allowed=True,
        extra='ignore',
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority, highest first: init (CLI) > YAML layers > .env >
        environment > package defaults > secrets."""
        return (
            init_settings,
            YamlWithIncludesSettingsSource(settings_cls),
            dotenv_settings,
            env_settings,
            PackageDefaultsSettingsSource(settings_cls),
            file_secret_settings,
        )

    @model_validator(mode="after")
    def substitute_templates(self) -> State:
        """Expand {config.a.b} and {platformdirs.x} in string values."""
        self._substitute_recursive(self)
        return self

    def _substitute_recursive(self, obj: Any) -> None:
        if isinstance(obj, BaseModel):
            for name in obj.__class__.model_fields:
                value = getattr(obj, name)
                new_value = self._substitute_value(value)
                if new_value is not value:
                    setattr(obj, name, new_value)
        elif isinstance(obj, dict):
            for key in obj:
                obj[key] = self._substitute_value(obj[key])
        elif isinstance(obj, list):
            for i, item in enumerate(obj):
                obj[i] = self._substitute_value(item)

    def _substitute_value(self, value: Any) -> Any:
        if isinstance(value, Enum):
            return value
        if isinstance(value, str):
            substituted = self._substitute_string(value)
            return value if substituted == value else substituted
        if isinstance(value, Path):
            substituted = self._substitute_string(str(value))
            return value if substituted == str(value) else Path(substituted)
        if isinstance(value, (BaseModel, dict, list)):
            self._substitute_recursive(value)
        return value

    def _substitute_string(self, value: str) -> str:
        """Replace each {dotted.name} that resolves; leave the rest.

        Examples:
            "{config.repository.workdir}/build" -> "/home/me/repo/build"
            "{platformdirs.user_log_dir}" -> "~/.local/state/gitplus/log"
        """
        def replace(match):
            parts = match.group(1).split(".")
            if parts[0] in TEMPLATE_NAMESPACE:
                obj = TEMPLATE_NAMESPACE[parts[0]]
                parts = parts[1:]
            else:
                obj = self
            try:
                for part in parts:
                    obj = getattr(obj, part)
                if callable(obj):
                    obj = (
                        obj(APP_NAME, appauthor=False)
                        if getattr(obj, "__module__", "").startswith(
                            "platformdirs"
                        )
                        else obj()
                    )
                return str(obj)
            except (AttributeError, TypeError):
                return match.group(0)

        return re.sub(r'\{([A-Za-z._]+)\}', replace, value)


__all__ = [
    "BackendConfig",
    "Config",
    "ExecConfig",
    "LimitsConfig",
    "RepositoryConfig",
    "ResolutionConfig",
    "ResolutionMode",
    "ResolveState",
    "SecurityConfig",
    "SecurityLevel",
    "State",
]
