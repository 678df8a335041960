"""Validation of every external string before it reaches a subprocess.

``validate`` never repairs input: a value either passes unchanged or
is refused with a ValidationError naming the rule it broke.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from gitplus.core.errors import ValidationError


class Context(str, Enum):
    """Where a value is headed; selects rules and maximum length."""

    COMMAND = "command"
    ARGUMENT = "argument"
    FILEPATH = "filepath"
    MESSAGE = "message"


MAX_LENGTH = {
    Context.COMMAND: 50,
    Context.ARGUMENT: 255,
    Context.FILEPATH: 4096,
    Context.MESSAGE: 2048,
}

SHELL_METACHARACTERS = frozenset(";&|`$(){}[]<>")

_CONTROL = re.compile(r"[\x00-\x08\x0e-\x1f\x7f]")
# Tab, vertical tab and form feed are whitespace in free text only
_TEXT_WHITESPACE = re.compile(r"[\t\x0b\x0c]")
_LINE_BREAK = re.compile(r"[\r\n]")
_TRAVERSAL = re.compile(r"(^|[\\/])\.\.([\\/]|$)")

GIT_SUBCOMMANDS = frozenset({
    "add", "branch", "checkout", "cherry-pick", "clean", "commit",
    "config", "count-objects", "diff", "fetch", "for-each-ref", "fsck",
    "init", "log", "ls-files", "merge", "pull", "push", "rebase",
    "reflog", "remote", "reset", "rev-list", "rev-parse", "show-ref",
    "stash", "status", "symbolic-ref", "tag",
})


def validate(
    value: object,
    context: Context | str,
    *,
    field: str | None = None,
    required: bool = True,
) -> str:
    """Check ``value`` against the rules for ``context``.

    Rules, in order: type, empty, maximum length, NUL byte, control
    characters, shell metacharacters, then per context: line breaks
    (all but message), traversal (filepath), leading dash (argument).

    Args:
        value: Candidate value
        context: command, argument, filepath or message
        field: Name reported in the error; defaults to the context
        required: Whether an empty string is refused

    Returns:
        The value, unchanged

    Raises:
        ValidationError: The first rule the value violates
    """
    context = Context(context)
    field = field or context.value

    def fail(rule: str, detail: str = "") -> ValidationError:
        return ValidationError(rule, field, context.value, detail)

    if not isinstance(value, str):
        raise fail("type", f"expected string, got {type(value).__name__}")
    if not value:
        if required:
            raise fail("empty", "a value is required")
        return value
    limit = MAX_LENGTH[context]
    if len(value) > limit:
        raise fail("max_length", f"{len(value)} > {limit} characters")
    if "\x00" in value:
        raise fail("null_byte")
    match = _CONTROL.search(value)
    if not match and context is not Context.MESSAGE:
        match = _TEXT_WHITESPACE.search(value)
    if match:
        raise fail(
            "control_character", f"0x{ord(match.group()):02x} not allowed"
        )
    bad = sorted(SHELL_METACHARACTERS.intersection(value))
    if bad:
        raise fail("shell_metacharacter", "found " + " ".join(bad))
    if context is not Context.MESSAGE and _LINE_BREAK.search(value):
        raise fail("line_break")
    if context is Context.FILEPATH and _TRAVERSAL.search(value):
        raise fail("path_traversal")
    if context is Context.ARGUMENT and value.startswith("-"):
        raise fail("option_injection", "values may not start with '-'")
    if required and not value.strip():
        raise fail("empty", "only whitespace")
    return value


def is_valid(value: object, context: Context | str) -> bool:
    try:
        validate(value, context)
    except ValidationError:
        return False
    return True


# ============================================================
# TYPED HELPERS
# ============================================================

_SHA = re.compile(r"^[0-9a-fA-F]{4,64}$")
_SLUG = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9._-]{0,99})/[A-Za-z0-9._-]{1,100}$")
_BRANCH_FORBIDDEN = re.compile(r"[\s~^:?*\\]|\.\.|@\{|//")


def validate_git_subcommand(name: str) -> str:
    """Accept only allowlisted git subcommands."""
    validate(name, Context.COMMAND, field="git subcommand")
    if name not in GIT_SUBCOMMANDS:
        raise ValidationError(
            "allowlist", "git subcommand", Context.COMMAND.value,
            "subcommand is not permitted",
        )
    return name


def validate_branch_name(name: str, field: str = "branch") -> str:
    """Argument rules plus git's ref-name format rules."""
    validate(name, Context.ARGUMENT, field=field)

    def fail(detail: str) -> ValidationError:
        return ValidationError(
            "ref_format", field, Context.ARGUMENT.value, detail
        )

    if _BRANCH_FORBIDDEN.search(name):
        raise fail("contains a character sequence git refuses")
    if name.endswith((".", "/", ".lock")) or name.startswith("/"):
        raise fail("invalid start or end")
    if name == "@":
        raise fail("'@' alone is not a branch")
    if any(part.startswith(".") for part in name.split("/")):
        raise fail("path components may not start with '.'")
    return name


def validate_sha(sha: str, field: str = "sha") -> str:
    validate(sha, Context.ARGUMENT, field=field)
    if not _SHA.match(sha):
        raise ValidationError(
            "sha_format", field, Context.ARGUMENT.value,
            "expected 4-64 hexadecimal characters",
        )
    return sha.lower()


def validate_repo_slug(slug: str, field: str = "repository") -> str:
    """``owner/name`` as used by forges."""
    validate(slug, Context.ARGUMENT, field=field)
    if not _SLUG.match(slug) or slug.endswith((".", ".git")):
        raise ValidationError(
            "slug_format", field, Context.ARGUMENT.value,
            "expected owner/name",
        )
    return slug


def validate_pr_number(number: object, field: str = "pull request") -> int:
    if isinstance(number, bool):
        number = None
    try:
        value = int(str(number), 10)
    except (TypeError, ValueError):
        raise ValidationError(
            "pr_number", field, Context.ARGUMENT.value,
            "expected a positive integer",
        ) from None
    if not 0 < value < 10**9:
        raise ValidationError(
            "pr_number", field, Context.ARGUMENT.value, "out of range"
        )
    return value


def validate_commit_message(message: str) -> str:
    return validate(message, Context.MESSAGE, field="commit message")


class PullRequestFields(BaseModel):
    """Strings handed to the forge CLI, each already validated."""

    model_config = ConfigDict(frozen=True)

    title: str
    body: str = ""
    head: str
    base: str
    labels: tuple[str, ...] = Field(default_factory=tuple)

    @classmethod
    def build(
        cls,
        title: str,
        head: str,
        base: str,
        body: str = "",
        labels: Iterable[str] = (),
    ) -> PullRequestFields:
        """Validate every field and return the frozen bundle.

        Raises:
            ValidationError: The first field that fails
        """
        return cls(
            title=validate(title, Context.MESSAGE, field="title"),
            body=validate(body, Context.MESSAGE, field="body", required=False),
            head=validate_branch_name(head, field="head branch"),
            base=validate_branch_name(base, field="base branch"),
            labels=tuple(
                validate(label, Context.ARGUMENT, field="label")
                for label in labels
            ),
        )
