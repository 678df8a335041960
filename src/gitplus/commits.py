"""Conventional commit messages: parse, format and validate.

A message is ``type(scope)!: description``, optionally followed by a
blank line and a body, and by another blank line and a footer such as
``BREAKING CHANGE: ...`` or ``Refs: #12``.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict, Field

COMMIT_TYPES: dict[str, str] = {
    "feat": "A new feature",
    "fix": "A bug fix",
    "docs": "Documentation only changes",
    "style": "Formatting changes that do not affect meaning",
    "refactor": "A change that neither fixes a bug nor adds a feature",
    "perf": "A change that improves performance",
    "test": "Adding or correcting tests",
    "build": "Build system or dependency changes",
    "ci": "CI configuration changes",
    "chore": "Other changes that don't modify source or tests",
}

HEADER_PATTERN = re.compile(r"^([a-z]+)(\([a-z0-9\-]+\))?(!)?: (.+)$")
FOOTER_PATTERN = re.compile(
    r"^(BREAKING CHANGE|BREAKING-CHANGE|[A-Za-z][\w-]*)(: | #)\S"
)

MAX_DESCRIPTION = 50
MAX_LINE = 72

_NON_IMPERATIVE = re.compile(
    r"^(added|adds|adding|fixed|fixes|fixing|updated|updates|updating"
    r"|removed|removes|removing|changed|changes|changing"
    r"|implemented|implements|implementing"
    r"|refactored|refactors|refactoring)$"
)

# Checked in order; the first pattern a file matches counts for it
SCOPE_PATTERNS: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"(^|/)tests?/|(^|/)test_[^/]*\.py$|_test\.py$"), "test"),
    (re.compile(r"^docs?/"), "docs"),
    (re.compile(r"^\.github/|^\.gitlab"), "ci"),
    (re.compile(r"^pyproject\.toml$|^setup\.(py|cfg)$|requirements"), "deps"),
    (re.compile(r"dockerfile|docker-compose", re.IGNORECASE), "docker"),
    (re.compile(r"^src/[^/]+/([^/]+)/"), ""),
)


class CommitParts(BaseModel):
    """The pieces of a conventional commit message."""

    model_config = ConfigDict(frozen=True)

    type: str
    scope: str | None = None
    breaking: bool = False
    description: str
    body: str | None = None
    footer: str | None = None


class CommitValidation(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    parts: CommitParts | None = None


def parse_commit(message: str) -> CommitParts | None:
    """Split a message into its parts, or None if the header is not
    in conventional form."""
    header, _, rest = message.partition("\n")
    match = HEADER_PATTERN.match(header)
    if not match:
        return None
    type_, scope, bang, description = match.groups()

    body = footer = None
    if rest.startswith("\n"):
        paragraphs = rest[1:].split("\n\n")
        if len(paragraphs) > 1 and FOOTER_PATTERN.match(paragraphs[-1]):
            footer = paragraphs.pop()
        body = "\n\n".join(paragraphs) or None
    return CommitParts(
        type=type_,
        scope=scope[1:-1] if scope else None,
        breaking=bool(bang),
        description=description,
        body=body,
        footer=footer,
    )


def format_commit(parts: CommitParts) -> str:
    message = parts.type
    if parts.scope:
        message += f"({parts.scope})"
    if parts.breaking:
        message += "!"
    message += f": {parts.description}"
    if parts.body:
        message += f"\n\n{parts.body}"
    if parts.footer:
        message += f"\n\n{parts.footer}"
    return message


def is_imperative(description: str) -> bool:
    """Rough check that the first word is not past tense or -ing."""
    words = description.lower().split()
    return not words or not _NON_IMPERATIVE.match(words[0])


def validate_commit(message: str) -> CommitValidation:
    """Check a message, separating hard errors from style warnings."""
    if not message or not message.strip():
        return CommitValidation(valid=False, errors=["Commit message is empty"])

    header, newline, rest = message.partition("\n")
    parts = parse_commit(message)
    if parts is None:
        return CommitValidation(
            valid=False,
            errors=[
                "Message does not follow conventional commit format: "
                "<type>[optional scope]: <description>"
            ],
        )

    errors: list[str] = []
    warnings: list[str] = []
    if parts.type not in COMMIT_TYPES:
        errors.append(
            f'Invalid commit type "{parts.type}". '
            f"Valid types: {', '.join(COMMIT_TYPES)}"
        )
    if newline and not rest:
        errors.append("Header must not end with a bare newline")
    if rest and not rest.startswith("\n"):
        errors.append("Header must be followed by a blank line")
    if rest.startswith("\n") and not rest.strip():
        errors.append("Body is empty after the blank line")

    description = parts.description
    if not description.strip():
        errors.append("Description is required")
    elif description != description.strip():
        errors.append("Description has leading or trailing whitespace")
    else:
        if len(description) > MAX_DESCRIPTION:
            warnings.append(
                f"Description should be under {MAX_DESCRIPTION} characters"
            )
        if description[0] != description[0].lower():
            warnings.append("Description should start with a lowercase letter")
        if description.endswith("."):
            warnings.append("Description should not end with a period")
        if not is_imperative(description):
            warnings.append(
                'Description should use imperative mood (e.g. "add" not '
                '"added" or "adds")'
            )

    if len(header) > MAX_LINE:
        warnings.append(f"First line should be under {MAX_LINE} characters")
    for text in (parts.body, parts.footer):
        if text and any(len(line) > MAX_LINE for line in text.splitlines()):
            warnings.append(
                f"Body lines should wrap at {MAX_LINE} characters"
            )
            break

    return CommitValidation(
        valid=not errors, errors=errors, warnings=warnings, parts=parts
    )


def suggest_scope(files: Sequence[str]) -> str | None:
    """Most common scope among changed files, if any file suggests one."""
    counts: Counter[str] = Counter()
    for name in files:
        for pattern, scope in SCOPE_PATTERNS:
            match = pattern.search(name)
            if match:
                scope = scope or match.group(1)
                counts[scope.lower()] += 1
                break
    if not counts:
        return None
    return counts.most_common(1)[0][0]
