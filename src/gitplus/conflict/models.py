"""Values passed between extraction, the backend and the policy.

All of them live for one resolution run only and are never persisted.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from gitplus.core.config import ResolutionMode


class Strategy(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"
    ESCALATE = "escalate"


class ConflictSection(BaseModel):
    """One conflict region, with every text field already capped."""

    model_config = ConfigDict(frozen=True)

    file_path: str = Field(description="Validated, repository-relative")
    start_line: int = Field(ge=0)
    end_line: int = Field(ge=0)
    ours: str
    theirs: str
    base: str | None = None
    context: str = ""
    ours_ref: str = "ours"
    theirs_ref: str = "theirs"
    truncated: bool = False

    @model_validator(mode="after")
    def _span_is_ordered(self) -> ConflictSection:
        if self.end_line < self.start_line:
            raise ValueError("end_line precedes start_line")
        return self


class ExtractionResult(BaseModel):
    sections: list[ConflictSection] = Field(default_factory=list)
    unresolved: list[str] = Field(
        default_factory=list,
        description="Files that could not be extracted",
    )
    errors: dict[str, str] = Field(
        default_factory=dict, description="Reason per unresolved file"
    )


class ConflictData(BaseModel):
    """Context for one backend request, built from sanitized values."""

    branch: str
    base_branch: str
    conflicted_files: list[str]
    file_types: list[str] = Field(default_factory=list)
    recent_commits: list[str] = Field(default_factory=list)
    sections: list[ConflictSection] = Field(default_factory=list)


class ResolvedFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    content: str
    rationale: str = ""


class ConflictResolution(BaseModel):
    """The decision for one resolution run.

    A strategy other than ``auto`` means nothing was written; any
    resolved_files are proposals for a human to review.
    """

    strategy: Strategy
    confidence: float = Field(ge=0, le=100)
    reasoning: str = ""
    resolved_files: list[ResolvedFile] = Field(default_factory=list)
    unresolved: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    mode: ResolutionMode | None = None
    applied: list[str] = Field(
        default_factory=list, description="Files written and staged"
    )

    @property
    def fully_resolved(self) -> bool:
        return self.strategy is Strategy.AUTO and not self.unresolved

    @classmethod
    def escalate(
        cls,
        files: list[str],
        reasoning: str,
        warnings: list[str] | None = None,
        mode: ResolutionMode | None = None,
    ) -> ConflictResolution:
        """The universal fallback: nothing resolved, a human decides."""
        return cls(
            strategy=Strategy.ESCALATE,
            confidence=0,
            reasoning=reasoning,
            unresolved=sorted(set(files)),
            warnings=list(warnings or []),
            mode=mode,
        )
