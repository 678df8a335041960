"""Value types describing repository state.

Fields that could not be determined are None ("unknown"), never a
default zero or False.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field


class Platform(str, Enum):
    """Where the repository's origin is hosted."""

    UNKNOWN = "unknown"
    GITHUB = "github"
    GITLAB = "gitlab"
    LOCAL = "local"


class Operation(str, Enum):
    """A multi-step git operation waiting to be continued or aborted."""

    MERGE = "merge"
    REBASE = "rebase"
    CHERRY_PICK = "cherry-pick"
    REVERT = "revert"


class RepositoryStatus(BaseModel):
    """Snapshot of the working tree and branch position."""

    model_config = ConfigDict(frozen=True)

    branch: str | None = Field(
        default=None, description="Current branch; None when detached"
    )
    upstream: str | None = Field(
        default=None, description="Tracking branch, if configured"
    )
    base_branch: str | None = None
    ahead: int | None = None
    behind: int | None = None
    staged: tuple[str, ...] = ()
    unstaged: tuple[str, ...] = ()
    untracked: tuple[str, ...] = ()
    conflicted: tuple[str, ...] = ()
    remote_url: str | None = None
    platform: Platform = Platform.UNKNOWN

    @computed_field
    @property
    def is_dirty(self) -> bool:
        return bool(
            self.staged or self.unstaged or self.untracked or self.conflicted
        )


class SyncStatus(BaseModel):
    """Position of a local branch relative to its remote counterpart."""

    model_config = ConfigDict(frozen=True)

    local_branch: str
    remote_branch: str
    ahead: int = 0
    behind: int = 0
    has_upstream: bool = False

    @computed_field
    @property
    def diverged(self) -> bool:
        return self.ahead > 0 and self.behind > 0

    @computed_field
    @property
    def up_to_date(self) -> bool:
        return self.has_upstream and self.ahead == 0 and self.behind == 0

    @computed_field
    @property
    def needs_pull(self) -> bool:
        return self.behind > 0

    @computed_field
    @property
    def needs_push(self) -> bool:
        return self.ahead > 0


class CommitInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    sha: str
    short_sha: str
    subject: str
    author: str
    date: str


class RepositoryValidation(BaseModel):
    """Health report; issues block automation, warnings do not."""

    issues: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @computed_field
    @property
    def is_valid(self) -> bool:
        return not self.issues
