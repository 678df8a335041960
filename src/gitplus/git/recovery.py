"""Classify failed git calls and suggest how to recover.

Git reports corruption, stale locks and similar trouble only in its
stderr text. The patterns here map that text to a category, a severity
and a short hint a human can act on. Nothing in this module touches the
repository: it only reads error messages.
"""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict

from gitplus.core.errors import CommandTimeout, ExecError


class ErrorCategory(str, Enum):
    CORRUPT_INDEX = "corrupt_index"
    CORRUPT_OBJECT = "corrupt_object"
    CORRUPT_REF = "corrupt_ref"
    CORRUPT_PACK = "corrupt_pack"
    LOCK = "lock"
    MERGE_CONFLICT = "merge_conflict"
    REBASE_CONFLICT = "rebase_conflict"
    PERMISSION = "permission"
    DISK_FULL = "disk_full"
    REMOTE = "remote"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecoveryAdvice(BaseModel):
    """What a failed git call most likely means."""

    model_config = ConfigDict(frozen=True)

    category: ErrorCategory
    severity: Severity
    is_corruption: bool = False
    data_loss_risk: bool = False
    hint: str
    quick_fixes: tuple[str, ...] = ()

    def log_fields(self) -> dict:
        """Attributes to attach to a refusal log record."""
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "corruption": self.is_corruption,
            "hint": self.hint,
        }


# First match wins; lock messages mention index.lock, so they are
# checked before index corruption.
_PATTERNS: list[tuple[re.Pattern[str], RecoveryAdvice]] = [
    (
        re.compile(
            r"another git process|index\.lock|unable to create .*\.lock",
            re.IGNORECASE,
        ),
        RecoveryAdvice(
            category=ErrorCategory.LOCK,
            severity=Severity.LOW,
            hint="A lock file from an interrupted git process blocks the "
            "repository. Remove it once no git process is running.",
            quick_fixes=(
                "Check for running git processes: ps aux | grep git",
                "Remove stale lock files: rm .git/index.lock",
            ),
        ),
    ),
    (
        re.compile(r"index file corrupt|invalid index|bad index", re.IGNORECASE),
        RecoveryAdvice(
            category=ErrorCategory.CORRUPT_INDEX,
            severity=Severity.MEDIUM,
            is_corruption=True,
            hint="The index is damaged. Rebuild it from HEAD; the working "
            "tree is not touched.",
            quick_fixes=(
                "Remove the damaged index: rm .git/index",
                "Rebuild it: git reset --mixed HEAD",
            ),
        ),
    ),
    (
        re.compile(
            r"bad object|corrupt object|missing blob|loose object|"
            r"unable to read [0-9a-f]{7,}",
            re.IGNORECASE,
        ),
        RecoveryAdvice(
            category=ErrorCategory.CORRUPT_OBJECT,
            severity=Severity.HIGH,
            is_corruption=True,
            data_loss_risk=True,
            hint="The object database has corrupt or missing objects. "
            "Back up the repository before any repair.",
            quick_fixes=(
                "Find the damage: git fsck --full --strict",
                "Fetch a fresh clone and copy uncommitted work over",
            ),
        ),
    ),
    (
        re.compile(r"invalid ref|bad ref|corrupt ref", re.IGNORECASE),
        RecoveryAdvice(
            category=ErrorCategory.CORRUPT_REF,
            severity=Severity.HIGH,
            is_corruption=True,
            data_loss_risk=True,
            hint="A reference is corrupt or points nowhere. Back up the "
            "repository, then restore the ref from the reflog.",
            quick_fixes=(
                "Inspect references: git show-ref",
                "Recover a branch tip: git reflog",
            ),
        ),
    ),
    (
        re.compile(r"pack.*corrupt|bad pack|pack-objects failed", re.IGNORECASE),
        RecoveryAdvice(
            category=ErrorCategory.CORRUPT_PACK,
            severity=Severity.HIGH,
            is_corruption=True,
            data_loss_risk=True,
            hint="A packfile is corrupt. Back up the repository and "
            "re-fetch the objects from a remote.",
            quick_fixes=(
                "Verify packs: git verify-pack -v .git/objects/pack/*.idx",
                "Fetch a fresh clone and copy uncommitted work over",
            ),
        ),
    ),
    (
        re.compile(r"rebase.*conflict|cannot continue rebase", re.IGNORECASE),
        RecoveryAdvice(
            category=ErrorCategory.REBASE_CONFLICT,
            severity=Severity.MEDIUM,
            hint="A rebase stopped on conflicts. Finish or abort it "
            "before resolving anything else.",
            quick_fixes=(
                "Continue: git rebase --continue",
                "Abort: git rebase --abort",
            ),
        ),
    ),
    (
        re.compile(r"merge conflict|automatic merge failed", re.IGNORECASE),
        RecoveryAdvice(
            category=ErrorCategory.MERGE_CONFLICT,
            severity=Severity.MEDIUM,
            hint="The merge stopped on conflicts that need resolving.",
            quick_fixes=(
                "List conflicted files: git status",
                "Abort: git merge --abort",
            ),
        ),
    ),
    (
        re.compile(
            r"permission denied|access denied|operation not permitted",
            re.IGNORECASE,
        ),
        RecoveryAdvice(
            category=ErrorCategory.PERMISSION,
            severity=Severity.MEDIUM,
            hint="Git could not read or write files in the repository. "
            "Check ownership and permissions of the .git directory.",
            quick_fixes=("Check ownership: ls -la .git",),
        ),
    ),
    (
        re.compile(r"no space left|disk full|quota exceeded", re.IGNORECASE),
        RecoveryAdvice(
            category=ErrorCategory.DISK_FULL,
            severity=Severity.CRITICAL,
            hint="The disk is full. Free space before retrying; a "
            "partial write may have left a lock file behind.",
            quick_fixes=("Check free space: df -h .",),
        ),
    ),
    (
        re.compile(
            r"remote.*rejected|failed to push|authentication failed|"
            r"connection.*refused|could not read from remote",
            re.IGNORECASE,
        ),
        RecoveryAdvice(
            category=ErrorCategory.REMOTE,
            severity=Severity.LOW,
            hint="The remote refused the connection or the credentials.",
            quick_fixes=(
                "Verify the remote URL: git remote -v",
                "Check access: git ls-remote origin",
            ),
        ),
    ),
]

_CORRUPTION_WORDS = (
    "corrupt",
    "bad object",
    "missing blob",
    "broken",
    "damaged",
    "unable to read",
)

_TIMEOUT = RecoveryAdvice(
    category=ErrorCategory.TIMEOUT,
    severity=Severity.LOW,
    hint="Git did not finish in time. A large repository or a slow "
    "disk may need a longer exec timeout.",
    quick_fixes=("Raise exec.timeout in the configuration",),
)


def classify_git_error(message: str) -> RecoveryAdvice:
    """Map git error text to a category and a recovery hint."""
    for pattern, advice in _PATTERNS:
        if pattern.search(message):
            return advice

    lowered = message.lower()
    if any(word in lowered for word in _CORRUPTION_WORDS):
        return RecoveryAdvice(
            category=ErrorCategory.UNKNOWN,
            severity=Severity.MEDIUM,
            is_corruption=True,
            hint="The error suggests repository damage. Run git fsck "
            "before making further changes.",
            quick_fixes=("Check integrity: git fsck --full",),
        )
    return RecoveryAdvice(
        category=ErrorCategory.UNKNOWN,
        severity=Severity.LOW,
        hint="Check the repository with git status and retry.",
        quick_fixes=("Check repository status: git status",),
    )


def advise(error: BaseException) -> RecoveryAdvice | None:
    """Recovery advice for a failed git call, or None for other errors.

    Only process failures carry git's own diagnosis; validation and
    security refusals already say what was wrong.
    """
    if isinstance(error, CommandTimeout):
        return _TIMEOUT
    if isinstance(error, ExecError):
        return classify_git_error(f"{error.stderr}\n{error}")
    return None


def refusal_fields(error: BaseException) -> dict:
    """Log attributes for a refused command, with advice when known."""
    fields = {"reason": str(error)}
    advice = advise(error)
    if advice is not None:
        fields.update(advice.log_fields())
    return fields
