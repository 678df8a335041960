"""Initialize node - open the repository and look for conflicts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic_graph import BaseNode, GraphRunContext

from gitplus.conflict.service import ConflictResolutionService
from gitplus.core.config import State
from gitplus.core.log import logger
from gitplus.git.repository import RepositoryHandle
from gitplus.security.paths import PathSecurity

if TYPE_CHECKING:
    from gitplus.workflow.nodes.finalize import Finalize
    from gitplus.workflow.nodes.resolve_conflicts import ResolveConflicts


@dataclass
class Initialize(BaseNode[State]):
    """Validate the repository root and record the conflicted files."""

    async def run(
        self, ctx: GraphRunContext[State]
    ) -> ResolveConflicts | Finalize:
        """Open the repository and decide whether there is work to do.

        Raises:
            SecurityViolation: The working directory fails validation
            RepositoryStateError: A rebase or similar is in progress

        Returns:
            ResolveConflicts: When files are conflicted
            Finalize: When the tree is clean
        """
        config = ctx.state.config
        run = ctx.state.runtime.resolve

        handle = RepositoryHandle(
            config.repository.workdir,
            security=PathSecurity(config.security),
            exec_config=config.exec,
        )
        run.handle = handle
        run.status = "running"
        logger.info("Opened repository", root=str(handle.root))

        service = ConflictResolutionService(
            handle, config=config.resolution, limits=config.limits
        )
        service.ensure_ready()
        run.conflicted_files = service.inspector.get_conflicted_files()

        if not run.conflicted_files:
            logger.info("No conflicts to resolve")
            run.status = "clean"
            from gitplus.workflow.nodes.finalize import Finalize
            return Finalize()

        logger.info(
            "Found conflicted files", count=len(run.conflicted_files)
        )
        from gitplus.workflow.nodes.resolve_conflicts import ResolveConflicts
        return ResolveConflicts()
