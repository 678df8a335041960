"""Parsing and validation of backend output.

Backend output is untrusted. It is unwrapped, cut down to its JSON
object, parsed, and validated into typed models; any missing or
out-of-enumeration field is a ParseError, never a silent default.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Iterable
from typing import Any, Literal

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from gitplus.core.config import LimitsConfig
from gitplus.core.errors import ParseError
from gitplus.security.prompt import scrub_text, truncate

_OPENING_FENCE = re.compile(r"\A\s*```[\w-]*[ \t]*\n?")
_CLOSING_FENCE = re.compile(r"\n?[ \t]*```\s*\Z")


def unwrap_envelope(raw: str) -> str:
    """Return the payload of the backend's result envelope, if any.

    The envelope looks like ``{"type": "result", "subtype":
    "success", "result": "..."}``. Output that is not an envelope is
    returned unchanged.

    Raises:
        ParseError: The envelope reports an execution error
    """
    text = raw.strip()
    try:
        envelope = json.loads(text)
    except ValueError:
        return text
    if not isinstance(envelope, dict) or envelope.get("type") != "result":
        return text

    subtype = str(envelope.get("subtype", ""))
    if envelope.get("is_error") or subtype.startswith("error"):
        raise ParseError(f"Backend reported an error ({subtype or 'is_error'})")
    result = envelope.get("result")
    if not isinstance(result, str):
        raise ParseError("Backend envelope has no result text")
    return result.strip()


def strip_code_fence(text: str) -> str:
    """Remove a markdown fence wrapping the whole text.

    Fences inside the text, e.g. in file content, are kept.
    """
    if _OPENING_FENCE.match(text):
        text = _CLOSING_FENCE.sub("", _OPENING_FENCE.sub("", text, count=1))
    return text


def extract_json_object(text: str) -> dict[str, Any]:
    """Find and parse the JSON object inside free text.

    Code fences are stripped first; then the span from the first
    ``{`` to the last ``}`` is parsed.

    Raises:
        ParseError: No object found, invalid JSON, or not an object
    """
    text = strip_code_fence(text)
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        raise ParseError("No JSON object found in backend output")
    try:
        data = json.loads(text[start:end + 1])
    except ValueError as e:
        raise ParseError(f"Invalid JSON in backend output: {e}") from e
    if not isinstance(data, dict):
        raise ParseError("Backend output is not a JSON object")
    return data


def validate_required_fields(data: dict, fields: Iterable[str]) -> None:
    """Check that every dotted path in ``fields`` is present.

    Raises:
        ParseError: Listing the missing paths
    """
    missing = []
    for path in fields:
        node: Any = data
        for part in path.split("."):
            if not isinstance(node, dict) or node.get(part) is None:
                missing.append(path)
                break
            node = node[part]
    if missing:
        raise ParseError(f"Missing required fields: {', '.join(missing)}")


def parse_json_response(raw: str, required: Iterable[str] = ()) -> dict:
    """Unwrap, extract and check a JSON response."""
    data = extract_json_object(unwrap_envelope(raw))
    validate_required_fields(data, required)
    return data


# ============================================================
# RESOLUTION PROPOSAL SCHEMA
# ============================================================

class ProposedFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    path: str = Field(min_length=1)
    content: str
    changes: str = ""
    reasoning: str = ""


class ResolutionProposal(BaseModel):
    """What the backend suggests; the policy decides what happens."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    strategy: Literal["auto", "manual", "escalate"]
    confidence: float
    reasoning: str
    resolved_files: list[ProposedFile] = Field(
        default_factory=list, alias="resolvedFiles"
    )
    unresolved: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @field_validator("strategy", mode="before")
    @classmethod
    def _normalize_strategy(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("confidence must be a number")
        if math.isnan(value):
            raise ValueError("confidence is NaN")
        return min(100.0, max(0.0, float(value)))


RESOLUTION_REQUIRED_FIELDS = ("strategy", "confidence", "reasoning")


def parse_resolution(
    raw: str, limits: LimitsConfig | None = None
) -> ResolutionProposal:
    """Parse backend output into a capped ResolutionProposal.

    Raises:
        ParseError: Malformed output or a schema violation
    """
    limits = limits or LimitsConfig()
    data = parse_json_response(raw, RESOLUTION_REQUIRED_FIELDS)
    try:
        proposal = ResolutionProposal.model_validate(data)
    except pydantic.ValidationError as e:
        fields = sorted({".".join(map(str, err["loc"])) for err in e.errors()})
        raise ParseError(
            f"Backend response failed validation: {', '.join(fields)}"
        ) from e

    def cap(text: str, limit: int) -> str:
        return truncate(scrub_text(text), limit)

    return proposal.model_copy(update={
        "reasoning": cap(proposal.reasoning, limits.max_reasoning_length),
        "warnings": [
            cap(w, limits.max_warning_length) for w in proposal.warnings
        ][: limits.max_file_list_length],
        "unresolved": [
            u[: limits.max_file_name_length] for u in proposal.unresolved
        ][: limits.max_file_list_length],
        "resolved_files": [
            f.model_copy(update={
                "changes": cap(f.changes, limits.max_file_reasoning_length),
                "reasoning": cap(
                    f.reasoning, limits.max_file_reasoning_length
                ),
            })
            for f in proposal.resolved_files
        ],
    })
