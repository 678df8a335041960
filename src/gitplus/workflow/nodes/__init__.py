"""Workflow nodes for graph state machine."""

from gitplus.workflow.nodes.finalize import Finalize
from gitplus.workflow.nodes.initialize import Initialize
from gitplus.workflow.nodes.resolve_conflicts import ResolveConflicts

__all__ = [
    "Initialize",
    "ResolveConflicts",
    "Finalize",
]
