"""Confidence-gated resolution policy and the applier that acts on it.

The policy turns a backend proposal (or its absence) into a
ConflictResolution; it never touches the repository. The applier writes
and stages the files of an ``auto`` resolution, re-checking every path
and every piece of content at the moment of the write.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal

from gitplus.backend.response import ResolutionProposal
from gitplus.conflict.content import ContentRejected, check_resolved_content
from gitplus.conflict.models import ConflictResolution, ResolvedFile, Strategy
from gitplus.core.config import LimitsConfig, ResolutionConfig, ResolutionMode
from gitplus.core.errors import ExecError, SecurityViolation, ValidationError
from gitplus.core.log import logger
from gitplus.git.inspector import RepositoryInspector
from gitplus.git.operations import GitOperations
from gitplus.git.repository import RepositoryHandle
from gitplus.security.sanitizer import Context, validate


class ResolutionPolicy:
    """Decides what happens to a proposal under a resolution mode.

    Rules, first match wins:

    1. No proposal: escalate, confidence 0, every file unresolved.
    2. Confidence below the escalation floor: escalate in every mode.
    3. The backend itself chose manual or escalate: keep its choice.
    4. Review mode: manual, so a human confirms the proposal.
    5. Confidence below the mode threshold: smart falls through to
       manual, safe escalates.
    6. Otherwise auto, limited to files that were actually conflicted.
    """

    def __init__(self, config: ResolutionConfig | None = None):
        self.config = config or ResolutionConfig()

    def threshold(self, mode: ResolutionMode) -> float | None:
        """Auto-apply threshold for a mode; review has none."""
        if mode is ResolutionMode.SMART:
            return self.config.smart_threshold
        if mode is ResolutionMode.SAFE:
            return self.config.safe_threshold
        return None

    def decide(
        self,
        proposal: ResolutionProposal | None,
        conflicted_files: Sequence[str],
        mode: ResolutionMode | None = None,
        failure_reason: str | None = None,
    ) -> ConflictResolution:
        mode = ResolutionMode(mode or self.config.mode)
        files = sorted(set(conflicted_files))

        if proposal is None:
            reason = failure_reason or "No proposal from the reasoning backend"
            logger.warn("Escalating without a proposal", reason=reason)
            return ConflictResolution.escalate(
                files,
                f"Automatic resolution unavailable: {reason}. "
                "Resolve the conflicts manually.",
                mode=mode,
            )

        proposed = self._proposed_files(proposal)
        warnings = list(proposal.warnings)
        confidence = proposal.confidence

        if confidence < self.config.escalation_floor:
            return self._hold(
                Strategy.ESCALATE, proposal, proposed, files, warnings, mode,
                f"confidence {confidence:g} is below the escalation floor "
                f"of {self.config.escalation_floor:g}",
            )
        if proposal.strategy != Strategy.AUTO.value:
            return self._hold(
                Strategy(proposal.strategy), proposal, proposed, files,
                warnings, mode, None,
            )
        if mode is ResolutionMode.REVIEW:
            return self._hold(
                Strategy.MANUAL, proposal, proposed, files, warnings, mode,
                "review mode never applies changes automatically",
            )

        threshold = self.threshold(mode)
        if confidence < threshold:
            strategy = (
                Strategy.MANUAL if mode is ResolutionMode.SMART
                else Strategy.ESCALATE
            )
            return self._hold(
                strategy, proposal, proposed, files, warnings, mode,
                f"confidence {confidence:g} is below the {mode.value} "
                f"threshold of {threshold:g}",
            )

        return self._auto(proposal, proposed, files, warnings, mode)

    def _proposed_files(
        self, proposal: ResolutionProposal
    ) -> list[ResolvedFile]:
        return [
            ResolvedFile(
                path=f.path,
                content=f.content,
                rationale=f.reasoning or f.changes,
            )
            for f in proposal.resolved_files
        ]

    def _hold(
        self,
        strategy: Strategy,
        proposal: ResolutionProposal,
        proposed: list[ResolvedFile],
        files: list[str],
        warnings: list[str],
        mode: ResolutionMode,
        downgrade: str | None,
    ) -> ConflictResolution:
        """A decision that leaves every file for a human."""
        if downgrade:
            warnings = [*warnings, f"Not applied: {downgrade}"]
            logger.info(
                "Proposal held back",
                strategy=strategy.value,
                proposed=proposal.strategy,
                confidence=proposal.confidence,
                reason=downgrade,
            )
        in_scope = set(files)
        return ConflictResolution(
            strategy=strategy,
            confidence=proposal.confidence,
            reasoning=proposal.reasoning,
            resolved_files=[f for f in proposed if f.path in in_scope],
            unresolved=files,
            warnings=warnings,
            mode=mode,
        )

    def _auto(
        self,
        proposal: ResolutionProposal,
        proposed: list[ResolvedFile],
        files: list[str],
        warnings: list[str],
        mode: ResolutionMode,
    ) -> ConflictResolution:
        in_scope = set(files)
        declined = set(proposal.unresolved)
        resolved: dict[str, ResolvedFile] = {}
        for f in proposed:
            if f.path not in in_scope:
                warnings.append(
                    f"Ignored proposed file outside the conflict set: "
                    f"{f.path}"
                )
            elif f.path in declined:
                warnings.append(
                    f"Ignored file marked both resolved and unresolved: "
                    f"{f.path}"
                )
            else:
                resolved[f.path] = f
        unresolved = sorted(in_scope - resolved.keys())
        logger.info(
            "Proposal accepted for automatic apply",
            confidence=proposal.confidence,
            resolved=len(resolved),
            unresolved=len(unresolved),
        )
        return ConflictResolution(
            strategy=Strategy.AUTO,
            confidence=proposal.confidence,
            reasoning=proposal.reasoning,
            resolved_files=list(resolved.values()),
            unresolved=unresolved,
            warnings=warnings,
            mode=mode,
        )


class ResolutionApplier:
    """Writes and stages the files of an auto resolution.

    The conflict set is queried again before writing, and each path is
    validated by the sanitizer and the path validator before its content
    is checked. A file that fails any step moves to unresolved and the
    rest are still applied.
    """

    def __init__(
        self,
        handle: RepositoryHandle,
        inspector: RepositoryInspector | None = None,
        operations: GitOperations | None = None,
        limits: LimitsConfig | None = None,
    ):
        self.handle = handle
        self.inspector = inspector or RepositoryInspector(handle)
        self.operations = operations or GitOperations(handle)
        self.limits = limits or LimitsConfig()

    def apply(self, resolution: ConflictResolution) -> ConflictResolution:
        if resolution.strategy is not Strategy.AUTO:
            logger.debug(
                "Nothing to apply", strategy=resolution.strategy.value
            )
            return resolution

        current = set(self.inspector.get_conflicted_files())
        unresolved = set(resolution.unresolved)
        warnings = list(resolution.warnings)
        applied: list[str] = []

        for f in resolution.resolved_files:
            with logger.span("Apply resolved file", file=f.path):
                reason = self._apply_one(f, current)
            if reason:
                logger.warn(
                    "Resolved file not applied", file=f.path, reason=reason
                )
                unresolved.add(f.path)
                warnings.append(f"{f.path}: not applied: {reason}")
            else:
                applied.append(f.path)

        if not applied:
            logger.warn("No resolved file could be applied")
            return resolution.model_copy(update={
                "strategy": Strategy.ESCALATE,
                "unresolved": sorted(unresolved),
                "warnings": warnings,
            })
        return resolution.model_copy(update={
            "resolved_files": [
                f for f in resolution.resolved_files if f.path in applied
            ],
            "unresolved": sorted(unresolved),
            "warnings": warnings,
            "applied": applied,
        })

    def _apply_one(self, f: ResolvedFile, current: set[str]) -> str | None:
        """Write one file; return why it was refused, or None."""
        try:
            validate(f.path, Context.FILEPATH, field="resolved file")
            self.handle.resolve(f.path)
            relative = self.handle.relative(f.path)
            if relative not in current:
                return "file is no longer conflicted"
            check_resolved_content(
                relative, f.content, self.limits.max_resolved_content
            )
            self.operations.write_file(relative, f.content)
            self.operations.stage([relative])
        except (
            ValidationError,
            SecurityViolation,
            ContentRejected,
            ExecError,
            OSError,
        ) as e:
            return str(e)
        return None

    def take_side(
        self, files: Sequence[str], side: Literal["ours", "theirs"]
    ) -> ConflictResolution:
        """Resolve files by keeping one side of each conflict whole."""
        current = set(self.inspector.get_conflicted_files())
        applied: list[str] = []
        unresolved: list[str] = []
        warnings: list[str] = []
        for name in sorted(set(files)):
            if name not in current:
                unresolved.append(name)
                warnings.append(f"{name}: not applied: no longer conflicted")
                continue
            try:
                self.operations.take_side(name, side)
            except (ValidationError, SecurityViolation, ExecError) as e:
                unresolved.append(name)
                warnings.append(f"{name}: not applied: {e}")
                continue
            applied.append(name)

        return ConflictResolution(
            strategy=Strategy.AUTO if applied else Strategy.ESCALATE,
            confidence=100 if applied else 0,
            reasoning=f"Kept the {side} side of every conflict",
            unresolved=unresolved,
            warnings=warnings,
            applied=applied,
        )
