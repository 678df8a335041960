"""Finalize node - conclude the merge and flush the audit trail."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, End, GraphRunContext

from gitplus.core.audit import AuditLogDir
from gitplus.core.config import State
from gitplus.core.log import logger
from gitplus.git.inspector import RepositoryInspector
from gitplus.git.operations import GitOperations


@dataclass
class Finalize(BaseNode[State, None, str]):
    """Commit a fully resolved merge when configured to."""

    async def run(self, ctx: GraphRunContext[State]) -> End[str]:
        """Finish the run.

        Returns:
            End[str]: Final status (clean, resolved or unresolved)
        """
        config = ctx.state.config
        run = ctx.state.runtime.resolve
        handle = run.handle

        if (
            config.resolution.continue_merge
            and run.resolution is not None
            and run.resolution.fully_resolved
        ):
            # Query again; the tree may have changed since the apply
            inspector = RepositoryInspector(handle)
            if inspector.is_merge_in_progress() and not inspector.has_conflicts():
                run.commit = GitOperations(handle).conclude_merge()
                run.merge_concluded = True
            else:
                logger.warn("Merge left open: repository state changed")

        if config.security.audit and handle is not None:
            AuditLogDir(
                config.audit_root, "resolve", project_name=handle.root.name
            ).flush(handle.security.events)

        logger.info("Resolution finished", status=run.status)
        return End(run.status)
