"""Resolve command - runs the conflict resolution workflow."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

from gitplus.core.config import ResolutionMode
from gitplus.core.errors import (
    CommandTimeout,
    ExecError,
    RepositoryStateError,
    SecurityViolation,
    ValidationError,
)
from gitplus.core.log import logger
from gitplus.git.recovery import refusal_fields

if TYPE_CHECKING:
    from gitplus.core.config import State

EXIT_CODES = {"clean": 0, "resolved": 0, "unresolved": 1}


class ResolveCommand(BaseModel):
    """Resolve merge conflicts in the working directory.

    The reasoning backend proposes a resolution; the policy mode
    decides whether it is applied, left for review, or escalated.
    Exit codes: 0 nothing left to do, 1 conflicts remain for a
    human, 2 refused.
    """

    mode: ResolutionMode | None = Field(
        default=None,
        description="smart, safe or review (default from config)",
    )
    side: Literal["ours", "theirs"] | None = Field(
        default=None,
        description="Keep one side of every conflict; no backend call",
    )

    async def run_workflow(self, state: State) -> int:
        """Run the resolve workflow.

        Args:
            state: State instance with config loaded

        Returns:
            Exit code
        """
        run = state.runtime.resolve
        run.mode = self.mode
        run.side = self.side

        from gitplus.workflow.graph import create_workflow
        from gitplus.workflow.nodes.initialize import Initialize

        workflow = create_workflow()
        try:
            async with workflow.iter(
                inputs=Initialize(), state=state
            ) as graph_run:
                async for event in graph_run:
                    logger.debug("Workflow step", event=repr(event))
                status = graph_run.output
        except (
            CommandTimeout,
            ExecError,
            RepositoryStateError,
            SecurityViolation,
            ValidationError,
        ) as e:
            logger.error("Resolve refused", **refusal_fields(e))
            return 2

        if status is None:
            logger.error("Resolve workflow ended unexpectedly")
            return 2

        resolution = run.resolution
        if resolution is not None:
            logger.info(
                "Resolution summary",
                strategy=resolution.strategy.value,
                confidence=resolution.confidence,
                reasoning=resolution.reasoning,
                applied=resolution.applied,
                unresolved=resolution.unresolved,
            )
        if run.merge_concluded:
            logger.info("Merge committed", commit=run.commit)
        return EXIT_CODES.get(status, 1)
