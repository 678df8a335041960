"""Error taxonomy.

Every failure raised by gitplus derives from GitplusError so a caller
can separate "input was refused" from "the outside world misbehaved":

- ValidationError: input rejected before any external call
- SecurityViolation: a path or argument failed a security check
- CommandTimeout: a subprocess exceeded its deadline
- ExecError: a subprocess failed without usable output
- ParseError: structured output from a tool could not be trusted
- BackendError: the reasoning backend failed after all retries
- RepositoryStateError: the repository is not in a state to proceed
"""

from __future__ import annotations

import re

_UNPRINTABLE = re.compile(r"[\x00-\x1f\x7f]")


def safe_preview(value: object, limit: int = 80) -> str:
    """Render an untrusted value for messages and logs.

    Control characters are escaped and long values are shortened, so
    a tainted value never reaches a terminal or log verbatim.
    """
    text = str(value)
    text = _UNPRINTABLE.sub(lambda m: f"\\x{ord(m.group()):02x}", text)
    if len(text) > limit:
        text = text[:limit] + "..."
    return text


class GitplusError(Exception):
    """Base class for all gitplus errors."""


class ValidationError(GitplusError, ValueError):
    """An input value violated a sanitizer rule."""

    def __init__(self, rule: str, field: str, context: str, detail: str = ""):
        self.rule = rule
        self.field = field
        self.context = context
        self.detail = detail
        message = f"{field}: rejected by rule '{rule}' ({context})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class PromptTooLargeError(ValidationError):
    """The assembled backend prompt exceeds its length ceiling."""

    def __init__(self, length: int, limit: int):
        self.length = length
        self.limit = limit
        super().__init__(
            "max_prompt_length",
            "prompt",
            "backend",
            f"{length} characters exceeds limit of {limit}",
        )


class PromptInjectionError(ValidationError):
    """Data bound for the backend matched a prompt-injection rule."""

    def __init__(self, hits: dict[str, list[str]]):
        self.hits = hits
        fields = ", ".join(sorted(hits))
        super().__init__(
            "prompt_injection", fields, "backend",
            "possible prompt injection detected",
        )


class SecurityViolation(GitplusError):
    """A path or argument failed canonicalization or boundary checks."""

    def __init__(self, message: str, violations: list[str] | None = None):
        self.violations = list(violations or [])
        super().__init__(message)


class CommandTimeout(GitplusError, TimeoutError):
    """A subprocess was terminated after exceeding its timeout."""

    def __init__(self, command: str, timeout: float):
        self.command = command
        self.timeout = timeout
        super().__init__(f"{command} timed out after {timeout:g}s")


class ExecError(GitplusError):
    """A subprocess failed and produced nothing usable."""

    def __init__(
        self,
        command: str,
        message: str,
        returncode: int | None = None,
        stderr: str = "",
    ):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"{command}: {message}")


class ParseError(GitplusError):
    """Output from an external tool was malformed or incomplete."""


class BackendError(GitplusError):
    """The reasoning backend failed after all of its retries."""

    def __init__(self, message: str, attempts: int, kind: str):
        self.attempts = attempts
        self.kind = kind
        super().__init__(message)


class RepositoryStateError(GitplusError):
    """The repository is mid-operation or otherwise not ready."""


__all__ = [
    "BackendError",
    "CommandTimeout",
    "ExecError",
    "GitplusError",
    "ParseError",
    "PromptInjectionError",
    "PromptTooLargeError",
    "RepositoryStateError",
    "SecurityViolation",
    "ValidationError",
    "safe_preview",
]
