"""End-to-end conflict resolution for one repository."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Literal

from gitplus.backend.client import ReasoningClient
from gitplus.backend.response import ResolutionProposal
from gitplus.conflict.extractor import ConflictExtractor
from gitplus.conflict.models import ConflictData, ConflictResolution
from gitplus.conflict.policy import ResolutionApplier, ResolutionPolicy
from gitplus.core.config import LimitsConfig, ResolutionConfig, ResolutionMode
from gitplus.core.errors import GitplusError, RepositoryStateError
from gitplus.core.log import logger
from gitplus.git.inspector import RepositoryInspector
from gitplus.git.models import Operation
from gitplus.git.operations import GitOperations
from gitplus.git.repository import RepositoryHandle

RECENT_COMMITS = 5


class ConflictResolutionService:
    """Runs inspector, extractor, backend client, policy and applier.

    Once ``ensure_ready`` has passed, ``resolve`` always returns a
    decision: every failure past that point degrades to ``escalate``.
    """

    def __init__(
        self,
        handle: RepositoryHandle,
        client: ReasoningClient | None = None,
        config: ResolutionConfig | None = None,
        limits: LimitsConfig | None = None,
    ):
        self.handle = handle
        self.config = config or ResolutionConfig()
        self.limits = limits or LimitsConfig()
        self.client = client or ReasoningClient(limits=self.limits)
        self.inspector = RepositoryInspector(handle)
        self.extractor = ConflictExtractor(handle, self.limits)
        self.policy = ResolutionPolicy(self.config)
        self.applier = ResolutionApplier(
            handle, self.inspector, GitOperations(handle), self.limits
        )

    def ensure_ready(self) -> None:
        """Refuse to start while a non-merge operation is in progress.

        Raises:
            RepositoryStateError: A rebase, cherry-pick or revert is
                waiting to be continued or aborted
        """
        operation = self.inspector.get_ongoing_operation()
        if operation is not None and operation is not Operation.MERGE:
            raise RepositoryStateError(
                f"A {operation.value} is in progress; finish or abort it "
                "before resolving conflicts"
            )

    def resolve(
        self, mode: ResolutionMode | None = None
    ) -> ConflictResolution | None:
        """Resolve the current conflicts.

        Returns:
            The decision, or None when there is nothing to resolve

        Raises:
            RepositoryStateError: See ensure_ready
        """
        self.ensure_ready()
        mode = ResolutionMode(mode or self.config.mode)
        files = self.inspector.get_conflicted_files()
        if not files:
            logger.info("No conflicted files")
            return None

        logger.info(
            "Resolving conflicts", files=len(files), mode=mode.value
        )
        extraction = self.extractor.extract(files)
        extractable = [f for f in files if f not in extraction.unresolved]

        proposal: ResolutionProposal | None = None
        failure: str | None = None
        if not extraction.sections:
            failure = "no conflict could be extracted"
        else:
            try:
                proposal = self.client.request_resolution(
                    self._conflict_data(extractable, extraction.sections)
                )
            except GitplusError as e:
                failure = str(e)
                logger.warn(
                    "Reasoning backend unavailable, falling back",
                    error=type(e).__name__,
                    reason=failure,
                )

        resolution = self.policy.decide(proposal, files, mode, failure)
        if extraction.unresolved and resolution.resolved_files:
            resolution = self._exclude(resolution, extraction.errors)
        resolution = self.applier.apply(resolution)

        logger.info(
            "Conflict resolution decided",
            strategy=resolution.strategy.value,
            confidence=resolution.confidence,
            applied=len(resolution.applied),
            unresolved=len(resolution.unresolved),
        )
        return resolution

    def take_side(
        self, side: Literal["ours", "theirs"]
    ) -> ConflictResolution | None:
        """Resolve every conflicted file by keeping one side."""
        self.ensure_ready()
        files = self.inspector.get_conflicted_files()
        if not files:
            return None
        return self.applier.take_side(files, side)

    def _conflict_data(self, files, sections) -> ConflictData:
        branch = self.inspector.get_current_branch() or "HEAD"
        base = self.inspector.get_base_branch() or "unknown"
        commits = [
            f"{c.short_sha} {c.subject}"
            for c in self.inspector.get_commit_history(RECENT_COMMITS)
        ]
        file_types = sorted({
            PurePosixPath(f).suffix.lstrip(".") or "none" for f in files
        })
        return ConflictData(
            branch=branch,
            base_branch=base,
            conflicted_files=list(files),
            file_types=file_types,
            recent_commits=commits,
            sections=sections,
        )

    def _exclude(
        self, resolution: ConflictResolution, errors: dict[str, str]
    ) -> ConflictResolution:
        """Drop proposals for files whose conflicts were never extracted."""
        warnings = list(resolution.warnings)
        for name, reason in errors.items():
            warnings.append(f"{name}: not extracted: {reason}")
        return resolution.model_copy(update={
            "resolved_files": [
                f for f in resolution.resolved_files if f.path not in errors
            ],
            "unresolved": sorted(set(resolution.unresolved) | errors.keys()),
            "warnings": warnings,
        })
