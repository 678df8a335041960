"""Path security validation.

Every filesystem path gitplus touches on behalf of a repository passes
through PathSecurity.validate_path first. The validator canonicalizes
the path and records each problem it finds as a typed violation or an
advisory warning. Whether the path is acceptable is derived from the
violations and the active SecurityLevel, never stored separately.
"""

from __future__ import annotations

import ntpath
import os
import platform
import posixpath
import re
from collections import deque
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

from gitplus.core.config import SecurityConfig, SecurityLevel
from gitplus.core.errors import SecurityViolation, safe_preview
from gitplus.core.log import logger


def get_platform_key() -> str:
    """Return 'windows' or 'posix' for the running interpreter."""
    return 'windows' if platform.system() == 'Windows' else 'posix'


# ============================================================
# RESULT MODELS
# ============================================================

class ViolationKind(str, Enum):
    PATTERN = "pattern"
    SYMLINK = "symlink"
    DEPTH = "depth"
    BLOCKED_PATH = "blocked_path"
    REPOSITORY_BOUNDARY = "repository_boundary"
    SYSTEM_FILESYSTEM = "system_filesystem"
    SENSITIVE_DIRECTORY = "sensitive_directory"
    DRIVE_ROOT = "drive_root"


# Violation kinds that make a path invalid at each level
FATAL_KINDS: dict[SecurityLevel, frozenset[ViolationKind]] = {
    SecurityLevel.STRICT: frozenset(ViolationKind),
    SecurityLevel.MODERATE: frozenset(ViolationKind) - {
        ViolationKind.REPOSITORY_BOUNDARY
    },
    SecurityLevel.PERMISSIVE: frozenset({
        ViolationKind.PATTERN,
        ViolationKind.BLOCKED_PATH,
        ViolationKind.SYSTEM_FILESYSTEM,
    }),
}


class Violation(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ViolationKind
    message: str


class SecurityValidationResult(BaseModel):
    """Outcome of validating one path."""

    input_path: str = Field(description="Escaped preview of the input")
    canonical_path: str | None = Field(
        default=None, description="Resolved absolute path"
    )
    level: SecurityLevel
    violations: list[Violation] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    is_symlink: bool = False
    symlink_target: str | None = None

    @computed_field
    @property
    def is_valid(self) -> bool:
        fatal = FATAL_KINDS[self.level]
        return not any(v.kind in fatal for v in self.violations)

    @property
    def fatal_violations(self) -> list[Violation]:
        fatal = FATAL_KINDS[self.level]
        return [v for v in self.violations if v.kind in fatal]

    def raise_if_invalid(self) -> None:
        """Raise SecurityViolation listing the fatal violations."""
        if self.is_valid:
            return
        messages = [v.message for v in self.fatal_violations]
        raise SecurityViolation(
            f"Path {self.input_path!r} rejected: {'; '.join(messages)}",
            messages,
        )


# ============================================================
# SECURITY EVENT LOG
# ============================================================

class SecurityEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=datetime.now)
    severity: Literal["info", "warning", "critical"]
    message: str
    path: str | None = None


class SecurityEventLog:
    """Bounded in-memory record of security decisions.

    Old events fall off the front once capacity is reached. Every
    event is also sent to the logger; critical ones at error level.
    """

    def __init__(self, capacity: int = 1000):
        self._events: deque[SecurityEvent] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._events.maxlen

    def record(
        self,
        severity: Literal["info", "warning", "critical"],
        message: str,
        path: str | None = None,
    ) -> SecurityEvent:
        event = SecurityEvent(severity=severity, message=message, path=path)
        self._events.append(event)
        if severity == "critical":
            logger.error(
                "Security violation: {message}",
                message=message,
                path=path,
                security_event=True,
            )
        elif severity == "warning":
            logger.warn(
                "Security warning: {message}", message=message, path=path
            )
        else:
            logger.debug(
                "Security check: {message}", message=message, path=path
            )
        return event

    def events(self) -> list[SecurityEvent]:
        return list(self._events)

    def clear(self) -> None:
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)


# ============================================================
# VALIDATOR
# ============================================================

_DANGEROUS_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"(^|[\\/])\.\.([\\/]|$)"), "directory traversal"),
    (re.compile(r"[\x00-\x1f\x7f]"), "control character"),
    (re.compile(r"[;&|`$(){}\[\]<>]"), "shell metacharacter"),
    (re.compile(r'[*?"]'), "wildcard or quote character"),
    (re.compile(r"^-"), "leading dash"),
    (
        re.compile(r"\s+(rm|del|format|config|init)\s*$", re.IGNORECASE),
        "trailing command word",
    ),
]

_RESERVED_NAME = re.compile(
    r"^(CON|PRN|AUX|NUL|COM[1-9]|LPT[1-9])$", re.IGNORECASE
)

_SENSITIVE_DIRS = frozenset({".ssh", ".gnupg", ".aws", ".kube"})
_SENSITIVE_FILES = frozenset({".git-credentials", ".netrc"})
_SYSTEM_FILESYSTEMS = ("/proc", "/sys")
_DRIVE_ROOT = re.compile(r"^[A-Za-z]:[\\/]?$")


class PathSecurity:
    """Canonicalizes paths and checks them against security rules.

    Args:
        config: Security settings; defaults when omitted
        events: Event log to record into; a new one when omitted
        platform_key: 'posix' or 'windows'; the host's when omitted
    """

    def __init__(
        self,
        config: SecurityConfig | None = None,
        events: SecurityEventLog | None = None,
        platform_key: str | None = None,
    ):
        self.config = config or SecurityConfig()
        self.events = (
            events if events is not None
            else SecurityEventLog(self.config.log_capacity)
        )
        self.platform_key = platform_key or get_platform_key()
        self._native = self.platform_key == get_platform_key()
        self._path = ntpath if self.platform_key == 'windows' else posixpath

    def update_config(self, **changes) -> SecurityConfig:
        """Replace selected settings; returns the new config."""
        self.config = self.config.model_copy(update=changes)
        return self.config

    @property
    def level(self) -> SecurityLevel:
        return self.config.level

    def validate_path(
        self,
        path: str | os.PathLike,
        repository_root: str | os.PathLike | None = None,
    ) -> SecurityValidationResult:
        """Validate one path, optionally against a repository root.

        Relative paths are taken relative to ``repository_root`` when
        one is given, otherwise to the current directory.
        """
        raw = os.fspath(path) if path is not None else ""
        preview = safe_preview(raw)
        result = SecurityValidationResult(
            input_path=preview, level=self.level
        )

        def violate(kind: ViolationKind, message: str) -> None:
            result.violations.append(Violation(kind=kind, message=message))
            self.events.record("critical", message, preview)

        def warn(message: str) -> None:
            result.warnings.append(message)
            self.events.record("warning", message, preview)

        if not raw.strip():
            violate(ViolationKind.PATTERN, "Path is empty")
            return result

        # 1. Dangerous patterns in the raw input
        for pattern, name in _DANGEROUS_PATTERNS:
            if pattern.search(raw):
                violate(
                    ViolationKind.PATTERN,
                    f"Path contains dangerous pattern: {name}",
                )
        # Windows also reserves the names with any extension
        reserved = [
            part for part in re.split(r"[\\/]", raw)
            if _RESERVED_NAME.match(
                part.split(".", 1)[0]
                if self.platform_key == 'windows'
                else part
            )
        ]
        if reserved:
            violate(
                ViolationKind.PATTERN,
                "Path contains a reserved device name: "
                + safe_preview(reserved[0]),
            )
        if result.violations:
            return result

        # 2. Canonicalize
        root = (
            self._canonicalize(os.fspath(repository_root))
            if repository_root is not None
            else None
        )
        target = raw
        if root is not None and not self._path.isabs(raw):
            target = self._path.join(root, raw)
        canonical = self._canonicalize(target)
        result.canonical_path = canonical

        # 3. Symlinks
        if self._native and os.path.islink(self._path.normpath(target)):
            result.is_symlink = True
            result.symlink_target = canonical
            if not self.config.allow_symlinks:
                if self.level is SecurityLevel.STRICT:
                    violate(
                        ViolationKind.SYMLINK,
                        "Symlinks are not allowed in strict mode",
                    )
                else:
                    warn(f"Path is a symlink to {canonical}")

        # 4. Depth
        depth = len(self._parts(canonical))
        if depth > self.config.max_depth:
            violate(
                ViolationKind.DEPTH,
                f"Path depth ({depth}) exceeds maximum allowed "
                f"({self.config.max_depth})",
            )

        # 5. Blocked roots
        for blocked in self.config.blocked_paths:
            if self._is_blocked(canonical, blocked):
                violate(
                    ViolationKind.BLOCKED_PATH,
                    f"Path is within blocked directory: {blocked}",
                )
                break

        # 6. Repository boundary
        if root is not None and not self._is_within(canonical, root):
            message = "Path is outside repository boundaries"
            if self.level is SecurityLevel.STRICT:
                violate(ViolationKind.REPOSITORY_BOUNDARY, message)
            else:
                warn(message)

        # 7. Platform specific
        if self.platform_key == 'windows':
            self._windows_checks(canonical, violate, warn)
        else:
            self._posix_checks(canonical, violate)
        if (
            self.level is SecurityLevel.STRICT
            and "node_modules" in self._parts(canonical)
        ):
            warn("Path is inside node_modules")

        if result.is_valid:
            self.events.record("info", "Path validated", preview)
        return result

    def require(
        self,
        path: str | os.PathLike,
        repository_root: str | os.PathLike | None = None,
    ) -> Path:
        """Validate and return the canonical path.

        Raises:
            SecurityViolation: The path is invalid at the active level
        """
        result = self.validate_path(path, repository_root)
        result.raise_if_invalid()
        return Path(result.canonical_path)

    # -- helpers ---------------------------------------------------------

    def _canonicalize(self, path: str) -> str:
        if self._native:
            # realpath resolves the existing prefix and keeps the rest
            return os.path.realpath(os.path.normpath(os.path.abspath(path)))
        return self._path.normpath(path)

    def _parts(self, path: str) -> list[str]:
        _drive, rest = self._path.splitdrive(path)
        return [p for p in re.split(r"[\\/]", rest) if p]

    def _is_within(self, child: str, parent: str) -> bool:
        try:
            relative = self._path.relpath(child, parent)
        except ValueError:
            # Different drives
            return False
        return not (
            relative == ".."
            or relative.startswith(".." + self._path.sep)
            or self._path.isabs(relative)
        )

    def _is_blocked(self, canonical: str, blocked: str) -> bool:
        is_windows_path = bool(ntpath.splitdrive(blocked)[0])
        if is_windows_path != (self.platform_key == 'windows'):
            return False
        candidates = {self._path.normpath(blocked)}
        if self._native:
            candidates.add(os.path.realpath(blocked))
        if self.platform_key == 'windows':
            canonical = canonical.lower()
            candidates = {c.lower() for c in candidates}
        return any(self._is_within(canonical, c) for c in candidates)

    def _posix_checks(self, canonical: str, violate) -> None:
        for system_root in _SYSTEM_FILESYSTEMS:
            if canonical == system_root or canonical.startswith(
                system_root + "/"
            ):
                violate(
                    ViolationKind.SYSTEM_FILESYSTEM,
                    "Access to system filesystem is not allowed",
                )
                break
        parts = self._parts(canonical)
        if _SENSITIVE_DIRS.intersection(parts) or (
            parts and parts[-1] in _SENSITIVE_FILES
        ):
            violate(
                ViolationKind.SENSITIVE_DIRECTORY,
                "Access to sensitive user directories is not allowed",
            )

    def _windows_checks(self, canonical: str, violate, warn) -> None:
        if _DRIVE_ROOT.match(canonical):
            violate(
                ViolationKind.DRIVE_ROOT,
                "Direct access to drive root is not allowed",
            )
        if canonical.startswith("\\\\"):
            warn("UNC network path detected")
        if "$recycle.bin" in canonical.lower():
            warn("Path is inside the recycle bin")


def validate_git_path(path, repository_root, events=None) -> SecurityValidationResult:
    """Strict validation with symlinks refused."""
    security = PathSecurity(
        SecurityConfig(level=SecurityLevel.STRICT, allow_symlinks=False),
        events,
    )
    return security.validate_path(path, repository_root)


def validate_path_moderate(path, repository_root=None, events=None) -> SecurityValidationResult:
    """Moderate validation with symlinks allowed."""
    security = PathSecurity(
        SecurityConfig(level=SecurityLevel.MODERATE, allow_symlinks=True),
        events,
    )
    return security.validate_path(path, repository_root)
