"""Validate command - repository health and path checks."""

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
from gitplus.security.sanitizer import Context, validate

if TYPE_CHECKING:
    from gitplus.core.config import State


class ValidateCommand(BaseModel):
    """Check repository integrity, locks and disk space, and optionally
    validate paths against the repository root.

    Exit code 0 when everything passes, 1 when an issue or an invalid
    path was found, 2 when the repository cannot be opened.
    """

    paths: list[str] = Field(
        default_factory=list,
        description="Paths to validate against the repository root",
    )

    async def run_workflow(self, state: State) -> int:
        config = state.config
        security = PathSecurity(config.security)
        try:
            handle = RepositoryHandle(
                config.repository.workdir,
                security=security,
                exec_config=config.exec,
            )
            report = RepositoryInspector(handle).validate_repository()
        except (
            CommandTimeout,
            ExecError,
            RepositoryStateError,
            SecurityViolation,
            ValidationError,
        ) as e:
            logger.error("Cannot validate repository", **refusal_fields(e))
            return 2

        paths = {}
        for path in self.paths:
            try:
                validate(path, Context.FILEPATH, field="path")
            except ValidationError as e:
                paths[path] = {"is_valid": False, "violations": [str(e)]}
                continue
            result = security.validate_path(path, handle.root)
            paths[path] = {
                "is_valid": result.is_valid,
                "canonical_path": result.canonical_path,
                "violations": [v.message for v in result.violations],
                "warnings": result.warnings,
            }

        print(json.dumps(
            {"repository": report.model_dump(mode="json"), "paths": paths},
            indent=2,
        ))
        if config.security.audit:
            from gitplus.core.audit import AuditLogDir
            AuditLogDir(
                config.audit_root, "validate", project_name=handle.root.name
            ).flush(security.events)

        ok = report.is_valid and all(p["is_valid"] for p in paths.values())
        return 0 if ok else 1
