"""RepositoryHandle: the root every repository operation is scoped to."""

from __future__ import annotations

import os
import re
from collections.abc import Sequence
from pathlib import Path

from gitplus.core.config import ExecConfig
from gitplus.core.errors import (
    RepositoryStateError,
    SecurityViolation,
    ValidationError,
)
from gitplus.core.log import logger
from gitplus.core.result import ExecResult
from gitplus.core.runner import ExitPolicy, Runner
from gitplus.security.paths import PathSecurity
from gitplus.security.sanitizer import (
    Context,
    validate,
    validate_git_subcommand,
)

# Environment for every git call: no prompts, stable output, and no
# opportunistic index refresh from read-only commands
GIT_ENV = {
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_OPTIONAL_LOCKS": "0",
    "LC_ALL": "C",
}

_OPTION_FORBIDDEN = re.compile(r"[\x00-\x1f\x7f]")


class RepositoryHandle:
    """A security-validated repository root plus the means to run git
    inside it.

    Every path handed to ``resolve`` or ``git(paths=...)`` is checked
    by the sanitizer and the path validator against the canonical root
    before use.

    Args:
        root: Working directory of the repository
        security: Path validator; strict defaults when omitted
        exec_config: Git executable, timeout and output cap
        runner: Subprocess runner; built from exec_config when omitted

    Raises:
        SecurityViolation: The root itself fails path validation
        RepositoryStateError: The root is not a directory
    """

    def __init__(
        self,
        root: str | os.PathLike,
        *,
        security: PathSecurity | None = None,
        exec_config: ExecConfig | None = None,
        runner: Runner | None = None,
    ):
        self.security = security or PathSecurity()
        exec_config = exec_config or ExecConfig()
        self.git_command = exec_config.git_command
        self.runner = runner or Runner(
            timeout=exec_config.timeout,
            max_output_bytes=exec_config.max_output_bytes,
            policy=ExitPolicy.STRICT,
            env=GIT_ENV,
        )
        self.root = self.security.require(root)
        if not self.root.is_dir():
            raise RepositoryStateError(f"Not a directory: {self.root}")
        self._git_dir: Path | None = None

    def __repr__(self) -> str:
        return f"RepositoryHandle({str(self.root)!r})"

    # -- paths -----------------------------------------------------------

    def resolve(self, path: str | os.PathLike) -> Path:
        """Validate a path inside the repository and return it canonical.

        Raises:
            ValidationError: The path text breaks a sanitizer rule
            SecurityViolation: The canonical path fails a security check
        """
        validate(os.fspath(path), Context.FILEPATH, field="path")
        canonical = self.security.require(path, self.root)
        # Lower security levels only warn at the boundary
        if not canonical.is_relative_to(self.root):
            raise SecurityViolation(
                f"Path is outside the repository: {canonical}",
                ["outside_repository"],
            )
        return canonical

    def relative(self, path: str | os.PathLike) -> str:
        """Repository-relative POSIX form of a validated path.

        Raises:
            SecurityViolation: The path is outside the repository
        """
        return self.resolve(path).relative_to(self.root).as_posix()

    @property
    def git_dir(self) -> Path:
        """Absolute git directory, validated without the root boundary
        since linked worktrees keep it elsewhere."""
        if self._git_dir is None:
            out = self.git(
                "rev-parse", options=["--absolute-git-dir"]
            ).stdout.strip()
            self._git_dir = self.security.require(out)
        return self._git_dir

    # -- execution -------------------------------------------------------

    def git(
        self,
        subcommand: str,
        *values: str,
        options: Sequence[str] = (),
        paths: Sequence[str | os.PathLike] = (),
        check: bool = True,
        input: str | None = None,  # noqa: A002
        timeout: float | None = None,
    ) -> ExecResult:
        """Run one git subcommand in the repository.

        The argument vector is ``subcommand options... values... --
        paths...``.

        Args:
            subcommand: An allowlisted git subcommand
            *values: Externally sourced arguments (branch names, SHAs);
                validated in the argument context
            options: Flags written in gitplus source, never user data
            paths: Repository paths, validated and relativized
            check: Raise ExecError on failure (see Runner.run)
            input: Text written to stdin
            timeout: Per-call override of the configured timeout

        Raises:
            ValidationError: A value or path broke a sanitizer rule
            SecurityViolation: A path failed path validation
            CommandTimeout: git exceeded its deadline
            ExecError: git failed
        """
        validate_git_subcommand(subcommand)
        for option in options:
            if not option or _OPTION_FORBIDDEN.search(option):
                raise ValidationError(
                    "option_format", "git option", Context.ARGUMENT.value
                )
        args = [subcommand, *options]
        args.extend(
            validate(value, Context.ARGUMENT, field=f"git {subcommand} value")
            for value in values
        )
        if paths:
            args.append("--")
            args.extend(self.relative(p) for p in paths)

        logger.trace("git", subcommand=subcommand, argc=len(args))
        return self.runner.run(
            self.git_command,
            ["-c", "core.quotepath=off", *args],
            cwd=self.root,
            input=input,
            timeout=timeout,
            check=check,
        )
