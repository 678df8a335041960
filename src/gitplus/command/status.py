"""Status command - reports repository state."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from gitplus.core.errors import (
    CommandTimeout,
    ExecError,
    RepositoryStateError,
    SecurityViolation,
    ValidationError,
)
from gitplus.core.log import logger
from gitplus.git.inspector import RepositoryInspector
from gitplus.git.recovery import refusal_fields
from gitplus.git.repository import RepositoryHandle
from gitplus.security.paths import PathSecurity

if TYPE_CHECKING:
    from gitplus.core.config import State


class StatusCommand(BaseModel):
    """Print branch, sync and working tree state as JSON.

    Exit code 1 when files are conflicted or an operation is in
    progress, 2 when the repository cannot be read.
    """

    remote: str = Field(default="origin", description="Remote to compare")

    async def run_workflow(self, state: State) -> int:
        config = state.config
        try:
            handle = RepositoryHandle(
                config.repository.workdir,
                security=PathSecurity(config.security),
                exec_config=config.exec,
            )
            inspector = RepositoryInspector(handle)
            status = inspector.get_status()
            sync = (
                inspector.get_sync_status(status.branch, self.remote)
                if status.branch
                else None
            )
            operation = inspector.get_ongoing_operation()
        except (
            CommandTimeout,
            ExecError,
            RepositoryStateError,
            SecurityViolation,
            ValidationError,
        ) as e:
            logger.error("Cannot read repository status", **refusal_fields(e))
            return 2

        report = {
            "status": status.model_dump(mode="json"),
            "sync": sync.model_dump(mode="json") if sync else None,
            "operation": operation.value if operation else None,
        }
        print(json.dumps(report, indent=2))
        return 1 if status.conflicted or operation else 0
