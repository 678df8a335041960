"""Read-only queries about repository state.

Every query runs git afresh; nothing is cached, so callers must query
again right before acting on the answer.
"""

from __future__ import annotations

import os
import re
import shutil
import time
from pathlib import Path
from urllib.parse import urlparse

from gitplus.core.errors import ExecError, GitplusError
from gitplus.core.log import logger
from gitplus.git.models import (
    CommitInfo,
    Operation,
    Platform,
    RepositoryStatus,
    RepositoryValidation,
    SyncStatus,
)
from gitplus.git.repository import RepositoryHandle
from gitplus.security.sanitizer import validate_branch_name

# Marker files or directories in the git dir, checked in this order
OPERATION_MARKERS: tuple[tuple[Operation, tuple[str, ...]], ...] = (
    (Operation.REBASE, ("rebase-merge", "rebase-apply", "REBASE_HEAD")),
    (Operation.MERGE, ("MERGE_HEAD",)),
    (Operation.CHERRY_PICK, ("CHERRY_PICK_HEAD",)),
    (Operation.REVERT, ("REVERT_HEAD",)),
)

# Lock files and the age in seconds after which they count as stale
LOCK_FILES = {"index.lock": 60, "HEAD.lock": 60, "config.lock": 60}
REF_LOCK_MAX_AGE = 300
MIN_FREE_BYTES = 100 * 1024 * 1024

# git emits the separator itself from %x1f; options may not carry
# control characters
_LOG_FIELD_SEP = "\x1f"
_LOG_FORMAT = "--pretty=format:" + "%x1f".join(
    ("%H", "%h", "%s", "%an", "%aI")
)
_SSH_REMOTE = re.compile(r"^(?:[\w.-]+@)?(?P<host>[\w.-]+):(?P<path>[^/].*)$")


def detect_platform(remote_url: str | None) -> Platform:
    """Classify a remote URL by forge.

    Handles both URL forms and scp-like ``git@host:owner/repo``.
    """
    if not remote_url:
        return Platform.LOCAL
    url = remote_url.strip()
    if url.startswith("file://"):
        return Platform.LOCAL
    host = None
    if "://" in url:
        host = urlparse(url).hostname
    else:
        match = _SSH_REMOTE.match(url)
        if match:
            host = match.group("host")
        elif os.path.isabs(url) or url.startswith("."):
            return Platform.LOCAL
    if not host:
        return Platform.UNKNOWN
    host = host.lower()
    if host == "github.com" or host.endswith(".github.com"):
        return Platform.GITHUB
    if host == "gitlab.com" or host.endswith(".gitlab.com"):
        return Platform.GITLAB
    return Platform.UNKNOWN


def parse_porcelain(output: str) -> dict[str, list[str]]:
    """Split ``status --porcelain=v1 -z`` output into file groups.

    Returns:
        Dict with staged, unstaged, untracked and conflicted lists
    """
    groups: dict[str, list[str]] = {
        "staged": [], "unstaged": [], "untracked": [], "conflicted": []
    }
    entries = output.split("\0")
    i = 0
    while i < len(entries):
        entry = entries[i]
        i += 1
        if len(entry) < 4:
            continue
        index, worktree, path = entry[0], entry[1], entry[3:]
        if index in "RC":
            # Renames and copies are followed by the source path
            i += 1
        if index == "?" and worktree == "?":
            groups["untracked"].append(path)
            continue
        if index == "!":
            continue
        if "U" in (index, worktree) or (index, worktree) in (
            ("A", "A"), ("D", "D")
        ):
            groups["conflicted"].append(path)
            continue
        if index != " ":
            groups["staged"].append(path)
        if worktree != " ":
            groups["unstaged"].append(path)
    return groups


class RepositoryInspector:
    """Answers questions about one repository."""

    def __init__(self, handle: RepositoryHandle):
        self.handle = handle

    # -- branches --------------------------------------------------------

    def get_current_branch(self) -> str | None:
        """Current branch name, or None when HEAD is detached."""
        result = self.handle.git(
            "symbolic-ref", options=["--quiet", "--short", "HEAD"],
            check=False,
        )
        return result.stdout.strip() or None if result.success else None

    def get_upstream(self) -> str | None:
        result = self.handle.git(
            "rev-parse",
            options=["--abbrev-ref", "--symbolic-full-name", "@{upstream}"],
            check=False,
        )
        return result.stdout.strip() or None if result.success else None

    def get_base_branch(self) -> str | None:
        """Default branch of origin, else local main, else master."""
        result = self.handle.git(
            "symbolic-ref",
            options=["--quiet", "refs/remotes/origin/HEAD"],
            check=False,
        )
        ref = result.stdout.strip()
        if result.success and ref.startswith("refs/remotes/origin/"):
            return ref[len("refs/remotes/origin/"):]
        for candidate in ("main", "master"):
            if self._ref_exists(f"refs/heads/{candidate}"):
                return candidate
        return None

    def get_remote_url(self, remote: str = "origin") -> str | None:
        result = self.handle.git(
            "remote", remote, options=["get-url"], check=False
        )
        return result.stdout.strip() or None if result.success else None

    def _ref_exists(self, ref: str) -> bool:
        return self.handle.git(
            "show-ref", ref, options=["--verify", "--quiet"], check=False
        ).success

    def _count_left_right(self, range_spec: str) -> tuple[int, int] | None:
        """(left, right) commit counts for ``a...b``, None if unknown."""
        result = self.handle.git(
            "rev-list",
            options=["--count", "--left-right", range_spec],
            check=False,
        )
        parts = result.stdout.split()
        if not result.success or len(parts) != 2:
            return None
        try:
            return int(parts[0]), int(parts[1])
        except ValueError:
            return None

    # -- status ----------------------------------------------------------

    def get_status(self) -> RepositoryStatus:
        """Fresh RepositoryStatus snapshot.

        Raises:
            ExecError: git status itself failed
        """
        with logger.span("Repository status", root=str(self.handle.root)):
            output = self.handle.git(
                "status", options=["--porcelain=v1", "-z"]
            ).stdout
            groups = parse_porcelain(output)

            upstream = self.get_upstream()
            ahead = behind = None
            if upstream:
                counts = self._count_left_right("@{upstream}...HEAD")
                if counts is not None:
                    behind, ahead = counts

            remote_url = self.get_remote_url()
            return RepositoryStatus(
                branch=self.get_current_branch(),
                upstream=upstream,
                base_branch=self.get_base_branch(),
                ahead=ahead,
                behind=behind,
                staged=tuple(groups["staged"]),
                unstaged=tuple(groups["unstaged"]),
                untracked=tuple(groups["untracked"]),
                conflicted=tuple(groups["conflicted"]),
                remote_url=remote_url,
                platform=detect_platform(remote_url),
            )

    def get_sync_status(
        self, branch: str | None = None, remote: str = "origin"
    ) -> SyncStatus:
        """Compare a local branch with ``<remote>/<branch>``.

        Args:
            branch: Local branch; the current branch when omitted

        Raises:
            GitplusError: No branch given and HEAD is detached
            ValidationError: The branch or remote name is invalid
        """
        branch = branch or self.get_current_branch()
        if branch is None:
            raise GitplusError("HEAD is detached; name a branch to compare")
        validate_branch_name(branch)
        validate_branch_name(remote, field="remote")
        remote_branch = f"{remote}/{branch}"

        if not self._ref_exists(f"refs/remotes/{remote_branch}"):
            return SyncStatus(local_branch=branch, remote_branch=remote_branch)

        counts = self._count_left_right(
            f"refs/remotes/{remote_branch}...refs/heads/{branch}"
        )
        if counts is None:
            return SyncStatus(
                local_branch=branch,
                remote_branch=remote_branch,
                has_upstream=True,
            )
        behind, ahead = counts
        return SyncStatus(
            local_branch=branch,
            remote_branch=remote_branch,
            ahead=ahead,
            behind=behind,
            has_upstream=True,
        )

    # -- conflicts and ongoing operations --------------------------------

    def get_conflicted_files(self) -> list[str]:
        """Paths with unmerged index entries.

        Raises:
            ExecError: git diff failed
        """
        output = self.handle.git(
            "diff", options=["--name-only", "--diff-filter=U", "-z"]
        ).stdout
        return sorted({name for name in output.split("\0") if name})

    def has_conflicts(self) -> bool:
        return bool(self.get_conflicted_files())

    def get_ongoing_operation(self) -> Operation | None:
        """Operation whose marker is present in the git dir, if any."""
        git_dir = self.handle.git_dir
        for operation, markers in OPERATION_MARKERS:
            if any((git_dir / marker).exists() for marker in markers):
                return operation
        return None

    def is_merge_in_progress(self) -> bool:
        return (self.handle.git_dir / "MERGE_HEAD").exists()

    def is_rebase_in_progress(self) -> bool:
        git_dir = self.handle.git_dir
        return any(
            (git_dir / marker).exists()
            for marker in ("rebase-merge", "rebase-apply", "REBASE_HEAD")
        )

    def is_cherry_pick_in_progress(self) -> bool:
        return (self.handle.git_dir / "CHERRY_PICK_HEAD").exists()

    # -- history ---------------------------------------------------------

    def get_commit_history(self, limit: int = 10) -> list[CommitInfo]:
        """Most recent commits on HEAD, newest first.

        Args:
            limit: Number of commits, 1 to 1000
        """
        if not 1 <= limit <= 1000:
            raise ValueError("limit must be between 1 and 1000")
        result = self.handle.git(
            "log",
            options=[f"--max-count={limit}", _LOG_FORMAT],
            check=False,
        )
        if not result.success:
            # No commits yet
            return []
        commits = []
        for line in result.stdout.splitlines():
            fields = line.split(_LOG_FIELD_SEP)
            if len(fields) != 5:
                continue
            commits.append(CommitInfo(
                sha=fields[0],
                short_sha=fields[1],
                subject=fields[2],
                author=fields[3],
                date=fields[4],
            ))
        return commits

    def get_diff(self, staged: bool = False, context_lines: int = 3) -> str:
        if not 0 <= context_lines <= 100:
            raise ValueError("context_lines must be between 0 and 100")
        options = [f"--unified={context_lines}"]
        if staged:
            options.append("--cached")
        return self.handle.git("diff", options=options).stdout

    # -- health ----------------------------------------------------------

    def validate_repository(self) -> RepositoryValidation:
        """Check whether the repository is fit for automation."""
        report = RepositoryValidation()
        with logger.span("Validate repository", root=str(self.handle.root)):
            try:
                git_dir = self.handle.git_dir
            except GitplusError as e:
                report.issues.append(f"Not a git repository: {e}")
                return report

            self._check_integrity(report)
            self._check_locks(git_dir, report)
            self._check_filesystem(git_dir, report)

            try:
                conflicted = self.get_conflicted_files()
            except ExecError as e:
                report.issues.append(f"Could not list conflicts: {e}")
                conflicted = []
            if conflicted:
                report.issues.append(
                    f"Repository has {len(conflicted)} conflicted file(s)"
                )

            operation = self.get_ongoing_operation()
            if operation is not None:
                report.warnings.append(f"A {operation.value} is in progress")

            try:
                if self.get_status().is_dirty:
                    report.warnings.append(
                        "Working tree has uncommitted changes"
                    )
            except ExecError as e:
                report.issues.append(f"Status unavailable: {e}")

        logger.info(
            "Repository validation finished",
            valid=report.is_valid,
            issues=len(report.issues),
            warnings=len(report.warnings),
        )
        return report

    def _check_integrity(self, report: RepositoryValidation) -> None:
        checks = (
            ("ls-files", ["--stage"], "Index is unreadable"),
            ("for-each-ref", ["--count=1"], "References are unreadable"),
            (
                "fsck",
                ["--connectivity-only", "--no-dangling", "--no-progress"],
                "Object store integrity check failed",
            ),
        )
        for subcommand, options, message in checks:
            try:
                self.handle.git(subcommand, options=options)
            except GitplusError as e:
                report.issues.append(f"{message}: {e}")

    def _check_locks(self, git_dir: Path, report: RepositoryValidation) -> None:
        now = time.time()

        def check(lock: Path, max_age: float) -> None:
            try:
                age = now - lock.stat().st_mtime
            except OSError:
                return
            name = lock.relative_to(git_dir).as_posix()
            if age > max_age:
                report.issues.append(
                    f"Stale lock file {name} ({int(age)}s old)"
                )
            else:
                report.warnings.append(
                    f"Lock file {name} present; another git process "
                    f"may be running"
                )

        for name, max_age in LOCK_FILES.items():
            check(git_dir / name, max_age)
        refs = git_dir / "refs"
        if refs.is_dir():
            for lock in refs.rglob("*.lock"):
                check(lock, REF_LOCK_MAX_AGE)

    def _check_filesystem(
        self, git_dir: Path, report: RepositoryValidation
    ) -> None:
        if not os.access(git_dir, os.R_OK | os.W_OK):
            report.issues.append("Git directory is not readable and writable")
        if not os.access(self.handle.root, os.R_OK | os.W_OK):
            report.issues.append("Working tree is not readable and writable")
        try:
            free = shutil.disk_usage(self.handle.root).free
        except OSError as e:
            report.warnings.append(f"Free space unknown: {e}")
            return
        if free < MIN_FREE_BYTES:
            report.warnings.append(
                f"Low disk space: {free // (1024 * 1024)} MiB free"
            )
