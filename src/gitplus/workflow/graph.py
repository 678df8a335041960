"""Graph workflow definition."""

from pydantic_graph import GraphBuilder

from gitplus.core.config import State
from gitplus.core.log import logger


def create_workflow():
    """Create the conflict resolution graph.

    Initialize -> ResolveConflicts -> Finalize, with Initialize going
    straight to Finalize when nothing is conflicted. The graph takes an
    Initialize node as its input and ends with the final status string.

    Returns:
        Graph workflow with State as state_type
    """
    logger.debug("Building workflow graph")

    # Lazy imports avoid a cycle between nodes and their return types.
    # They must stay local: edges are inferred from the run() hints,
    # resolved against this frame.
    from gitplus.workflow.nodes.finalize import Finalize
    from gitplus.workflow.nodes.initialize import Initialize
    from gitplus.workflow.nodes.resolve_conflicts import ResolveConflicts

    builder = GraphBuilder(
        name="resolve",
        state_type=State,
        input_type=Initialize,
        output_type=str,
    )
    builder.add(
        builder.node(Initialize),
        builder.node(ResolveConflicts),
        builder.node(Finalize),
        builder.edge_from(builder.start_node).to(Initialize),
    )
    return builder.build()
