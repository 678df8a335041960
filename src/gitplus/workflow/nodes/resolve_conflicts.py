"""ResolveConflicts node - ask the backend and apply the decision."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic_graph import BaseNode, GraphRunContext

from gitplus.backend.client import ReasoningClient
from gitplus.conflict.service import ConflictResolutionService
from gitplus.core.config import State
from gitplus.core.log import logger

if TYPE_CHECKING:
    from gitplus.workflow.nodes.finalize import Finalize


@dataclass
class ResolveConflicts(BaseNode[State]):
    """Resolve the recorded conflicts under the configured policy."""

    async def run(self, ctx: GraphRunContext[State]) -> Finalize:
        config = ctx.state.config
        run = ctx.state.runtime.resolve

        client = ReasoningClient(config.backend, config.limits)
        service = ConflictResolutionService(
            run.handle,
            client=client,
            config=config.resolution,
            limits=config.limits,
        )

        if run.side:
            resolution = service.take_side(run.side)
        else:
            resolution = service.resolve(run.mode)

        if resolution is None:
            # Conflicts were resolved outside gitplus since Initialize
            run.status = "clean"
        else:
            run.resolution = resolution
            run.applied_files = list(resolution.applied)
            run.status = (
                "resolved" if resolution.fully_resolved else "unresolved"
            )
            for warning in resolution.warnings:
                logger.warn(warning)

        from gitplus.workflow.nodes.finalize import Finalize
        return Finalize()
