"""Checks on proposed file content before it may be written."""

import json

import yaml

from gitplus.conflict.parser import has_conflict_markers


class ContentRejected(ValueError):
    """Proposed content failed a safety check."""


def check_resolved_content(
    path: str, content: str, max_length: int = 50000
) -> None:
    """Refuse content that is oversized, empty, still conflicted, or
    syntactically broken for its file type.

    Raises:
        ContentRejected: With the reason
    """
    if len(content) > max_length:
        raise ContentRejected(
            f"content is {len(content)} characters, limit {max_length}"
        )
    if "\x00" in content:
        raise ContentRejected("content contains NUL bytes")
    if not content.strip():
        raise ContentRejected("content is empty")
    if has_conflict_markers(content):
        raise ContentRejected("content still contains conflict markers")

    try:
        _check_syntax(path, content)
    except ContentRejected:
        raise
    except (RecursionError, MemoryError, ValueError) as e:
        # Nesting too deep for the parser to follow
        raise ContentRejected(
            f"content could not be checked: {type(e).__name__}"
        ) from e


def _check_syntax(path: str, content: str) -> None:
    if path.endswith(".py"):
        try:
            compile(content, path, "exec")
        except SyntaxError as e:
            raise ContentRejected(
                f"Python syntax error at line {e.lineno}: {e.msg}"
            ) from e
    elif path.endswith(".json"):
        try:
            json.loads(content)
        except json.JSONDecodeError as e:
            raise ContentRejected(
                f"JSON syntax error at line {e.lineno}: {e.msg}"
            ) from e
    elif path.endswith((".yaml", ".yml")):
        try:
            list(yaml.safe_load_all(content))
        except yaml.YAMLError as e:
            raise ContentRejected(f"YAML syntax error: {e}") from e
