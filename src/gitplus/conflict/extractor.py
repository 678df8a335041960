"""Turn conflicted files into bounded ConflictSection values."""

from __future__ import annotations

from collections.abc import Iterable

from gitplus.conflict.models import ConflictSection, ExtractionResult
from gitplus.conflict.parser import ConflictHunk, MalformedConflictError, parse
from gitplus.core.config import LimitsConfig
from gitplus.core.errors import SecurityViolation, ValidationError
from gitplus.core.log import logger
from gitplus.git.repository import RepositoryHandle
from gitplus.security.prompt import sanitize_input, scrub_text

CONTEXT_SEPARATOR = "[... conflict region ...]"


class ConflictExtractor:
    """Reads conflicted files and parses their conflict regions.

    A file that cannot be read or parsed is reported as unresolved;
    it never stops the remaining files from being extracted.
    """

    def __init__(
        self, handle: RepositoryHandle, limits: LimitsConfig | None = None
    ):
        self.handle = handle
        self.limits = limits or LimitsConfig()

    def extract(self, files: Iterable[str]) -> ExtractionResult:
        result = ExtractionResult()
        for name in files:
            with logger.span("Extract conflicts", file=name):
                try:
                    sections = self._extract_file(name)
                except (
                    ValidationError,
                    SecurityViolation,
                    MalformedConflictError,
                    OSError,
                    UnicodeDecodeError,
                ) as e:
                    reason = str(e)
                    logger.warn(
                        "Conflict extraction failed",
                        file=name,
                        reason=reason,
                    )
                    result.unresolved.append(name)
                    result.errors[name] = reason
                    continue
                result.sections.extend(sections)

        logger.info(
            "Conflict extraction finished",
            sections=len(result.sections),
            unresolved=len(result.unresolved),
        )
        return result

    def _extract_file(self, name: str) -> list[ConflictSection]:
        relative = self.handle.relative(name)
        data = (self.handle.root / relative).read_bytes()
        if b"\0" in data:
            raise MalformedConflictError("binary file")
        hunks = parse(data.decode("utf-8"), self.limits.context_lines)
        if not hunks:
            raise MalformedConflictError("no conflict markers found")
        return [self._section(relative, hunk) for hunk in hunks]

    def _section(self, relative: str, hunk: ConflictHunk) -> ConflictSection:
        limit = self.limits.max_section_length
        fields = [hunk.ours_content, hunk.theirs_content]
        if hunk.base_content is not None:
            fields.append(hunk.base_content)
        context = "\n".join(
            [*hunk.context_before, CONTEXT_SEPARATOR, *hunk.context_after]
        )
        truncated = (
            any(len(text) > limit for text in fields)
            or len(context) > self.limits.max_context_length
        )
        return ConflictSection(
            file_path=relative,
            start_line=hunk.start_line,
            end_line=hunk.end_line,
            ours=scrub_text(hunk.ours_content, limit),
            theirs=scrub_text(hunk.theirs_content, limit),
            base=(
                scrub_text(hunk.base_content, limit)
                if hunk.base_content is not None
                else None
            ),
            context=scrub_text(context, self.limits.max_context_length),
            ours_ref=sanitize_input(hunk.ours_ref, 100) or "ours",
            theirs_ref=sanitize_input(hunk.theirs_ref, 100) or "theirs",
            truncated=truncated,
        )
