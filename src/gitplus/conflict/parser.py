"""Parse git conflict markers into structured hunks."""

import re
from dataclasses import dataclass

_OURS = re.compile(r"^<{7}(?: (.*))?$")
_BASE = re.compile(r"^\|{7}(?: (.*))?$")
_SEPARATOR = re.compile(r"^={7}$")
_THEIRS = re.compile(r"^>{7}(?: (.*))?$")


class MalformedConflictError(ValueError):
    """Conflict markers that do not form a complete region."""


@dataclass
class ConflictHunk:
    """One conflict region; line numbers are 0-based and inclusive."""

    start_line: int
    end_line: int
    ours_content: str
    theirs_content: str
    base_content: str | None
    context_before: list[str]
    context_after: list[str]
    ours_ref: str
    theirs_ref: str


def has_conflict_markers(file_content: str) -> bool:
    """Whether the content still holds a conflict region.

    A start marker always counts. A separator or end marker alone is
    ordinary text (an RST heading underline, say); an end marker that
    follows a separator counts, since it is what is left of a region
    whose start was deleted.
    """
    seen_separator = False
    for line in file_content.splitlines():
        if _OURS.match(line):
            return True
        if _SEPARATOR.match(line):
            seen_separator = True
        elif seen_separator and _THEIRS.match(line):
            return True
    return False


def parse(file_content: str, context_lines: int = 5) -> list[ConflictHunk]:
    """Parse every conflict region in a file.

    Both the merge style (ours/theirs) and the diff3 style (with a
    ``|||||||`` base section) are understood.

    Args:
        file_content: Full file content with conflict markers
        context_lines: Lines of context to keep on either side

    Returns:
        One ConflictHunk per region, in file order

    Raises:
        MalformedConflictError: A region is missing its separator or
            end marker, or a new region starts inside another
    """
    lines = [line.rstrip("\r") for line in file_content.split("\n")]
    if lines and lines[-1] == "":
        lines.pop()

    hunks = []
    i = 0
    while i < len(lines):
        start = _OURS.match(lines[i])
        if not start:
            i += 1
            continue

        base_idx = separator_idx = end_idx = None
        theirs_ref = None
        for j in range(i + 1, len(lines)):
            line = lines[j]
            if _OURS.match(line):
                raise MalformedConflictError(
                    f"Malformed conflict at line {i}: nested start "
                    f"marker at line {j}"
                )
            if separator_idx is None:
                if _BASE.match(line) and base_idx is None:
                    base_idx = j
                elif _SEPARATOR.match(line):
                    separator_idx = j
                elif _THEIRS.match(line):
                    break
            elif _THEIRS.match(line):
                end_idx = j
                theirs_ref = _THEIRS.match(line).group(1)
                break

        if separator_idx is None:
            raise MalformedConflictError(
                f"Malformed conflict at line {i}: no separator found"
            )
        if end_idx is None:
            raise MalformedConflictError(
                f"Malformed conflict at line {i}: no end marker found"
            )

        ours_end = base_idx if base_idx is not None else separator_idx
        hunks.append(ConflictHunk(
            start_line=i,
            end_line=end_idx,
            ours_content="\n".join(lines[i + 1:ours_end]),
            theirs_content="\n".join(lines[separator_idx + 1:end_idx]),
            base_content=(
                "\n".join(lines[base_idx + 1:separator_idx])
                if base_idx is not None
                else None
            ),
            context_before=lines[max(0, i - context_lines):i],
            context_after=lines[end_idx + 1:end_idx + 1 + context_lines],
            ours_ref=(start.group(1) or "").strip() or "ours",
            theirs_ref=(theirs_ref or "").strip() or "theirs",
        ))
        i = end_idx + 1

    return hunks
