"""Hygiene for text embedded in reasoning-backend prompts.

Two levels of treatment:

- ``scrub_text`` keeps content byte-for-byte apart from unprintable
  characters and prompt delimiters. Used for file content, where any
  other rewrite would corrupt what the backend is asked to merge.
- ``sanitize_input`` additionally neutralizes role markers, template
  syntax and fence runs. Used for free text such as commit messages.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Final

TRUNCATION_MARKER: Final[str] = "... [truncated]"
DIFF_TRUNCATION_MARKER: Final[str] = "\n... [diff truncated for security]"
REDACTED: Final[str] = "[REDACTED]"

# Phrases that delimit the prompt sections; never allowed in data
DELIMITERS: Final[tuple[str, ...]] = (
    "=== SYSTEM INSTRUCTIONS ===",
    "=== USER DATA START ===",
    "=== USER DATA END ===",
)

_UNPRINTABLE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_DELIMITER = re.compile(
    r"={3,}\s*(SYSTEM\s+INSTRUCTIONS|USER\s+DATA\s+(START|END))\s*={3,}",
    re.IGNORECASE,
)
_BLANK_RUN = re.compile(r"\n\s*\n\s*\n")

_INPUT_REWRITES: Final[tuple[tuple[re.Pattern, str], ...]] = (
    (re.compile(r"`+"), "`"),
    (re.compile(r"\$\{"), r"\\${"),
    (re.compile(r"<\|"), "&lt;|"),
    (re.compile(r"\|>"), "|&gt;"),
    (re.compile(r"\[INST\]", re.IGNORECASE), "[INST-ESCAPED]"),
    (re.compile(r"\[/INST\]", re.IGNORECASE), "[/INST-ESCAPED]"),
    (re.compile(r"\bHuman:", re.IGNORECASE), "Human-Escaped:"),
    (re.compile(r"\bAssistant:", re.IGNORECASE), "Assistant-Escaped:"),
)

_SECRET_ASSIGNMENT = re.compile(
    r"(?<![A-Za-z])(?P<name>password|passwd|api[_-]?key|secret|token|key)"
    r"(?P<sep>\s*[:=]\s*)(?P<value>[^\s'\"]+|'[^']*'|\"[^\"]*\")",
    re.IGNORECASE,
)


def truncate(text: str, limit: int, marker: str = TRUNCATION_MARKER) -> str:
    """Cut text to at most ``limit`` characters, marker included."""
    if len(text) <= limit:
        return text
    if limit <= len(marker):
        return text[:limit]
    return text[: limit - len(marker)] + marker


def escape_delimiters(text: str) -> str:
    return _DELIMITER.sub(
        lambda m: m.group(0).replace("=", "-"), text
    )


def scrub_text(text: str, limit: int | None = None) -> str:
    """Strip unprintable characters and prompt delimiters, then cap."""
    text = escape_delimiters(_UNPRINTABLE.sub("", text))
    return truncate(text, limit) if limit else text


def sanitize_input(text: str | None, limit: int | None = None) -> str:
    """Neutralize prompt-structure tricks in free text."""
    if not text:
        return ""
    text = scrub_text(text)
    for pattern, replacement in _INPUT_REWRITES:
        text = pattern.sub(replacement, text)
    text = _BLANK_RUN.sub("\n\n", text).strip()
    return truncate(text, limit) if limit else text


def sanitize_file_path(path: str, limit: int = 255) -> str:
    if not path:
        return ""
    path = _UNPRINTABLE.sub("", path.replace("\x00", ""))
    path = path.replace("..", "")
    path = re.sub(r'[<>"|*?\n\r\t]', "_", path)
    return path[:limit]


def sanitize_file_list(
    files: Iterable[str], max_items: int = 50, limit: int = 255
) -> list[str]:
    cleaned = []
    for name in files:
        if len(cleaned) >= max_items:
            break
        name = sanitize_file_path(name, limit)
        if name:
            cleaned.append(name)
    return cleaned


def redact_secrets(text: str) -> str:
    """Replace the value of obvious credential assignments."""
    return _SECRET_ASSIGNMENT.sub(
        lambda m: f"{m.group('name')}{m.group('sep')}{REDACTED}", text
    )


def sanitize_diff(diff: str | None, limit: int = 3000) -> str:
    if not diff:
        return ""
    diff = redact_secrets(scrub_text(diff))
    return truncate(diff, limit, DIFF_TRUNCATION_MARKER)


# ============================================================
# INJECTION DETECTION
# ============================================================

@dataclass(frozen=True, slots=True)
class InjectionRule:
    name: str
    pattern: re.Pattern


INJECTION_RULES: Final[tuple[InjectionRule, ...]] = (
    InjectionRule(
        "ignore_instructions",
        re.compile(r"ignore\s+(?:all\s+)?(?:previous|prior|all)\s+instructions", re.I),
    ),
    InjectionRule(
        "forget_instructions",
        re.compile(r"forget\s+(?:everything|all|(?:your\s+)?instructions)", re.I),
    ),
    InjectionRule("new_instructions", re.compile(r"new\s+instructions?\s*:", re.I)),
    InjectionRule(
        "system_role", re.compile(r"system\s*:\s*you\s+(?:are|must)", re.I)
    ),
    InjectionRule(
        "override_safety",
        re.compile(r"override\s+(?:security|safety|instructions)", re.I),
    ),
    InjectionRule(
        "instruction_tokens", re.compile(r"\[INST\].*?\[/INST\]", re.I | re.S)
    ),
    InjectionRule(
        "human_role", re.compile(r"human\s*:\s*(?:ignore|forget|override)", re.I)
    ),
    InjectionRule(
        "assistant_role",
        re.compile(r"assistant\s*:\s*(?:i\s+will|ok\s+i)", re.I),
    ),
    InjectionRule("jailbreak", re.compile(r"jailbreak|prompt\s+injection", re.I)),
)


def detect_prompt_injection(text: str | None) -> list[str]:
    """Names of the injection rules that ``text`` matches."""
    if not text:
        return []
    return [rule.name for rule in INJECTION_RULES if rule.pattern.search(text)]
