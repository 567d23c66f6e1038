"""Skip propagation: exclude a node and everything reachable from it.

Skipping is idempotent and may race with the scheduling of the nodes being
skipped. The executor therefore re-checks the skipped set right before a
node starts its work, after all of its dependency waits have completed.
"""

import logging

from branchflow.graph.edge import EdgeExecutionState, FlowGraph
from branchflow.graph.node import SelectionState
from branchflow.graph.run_state import RunState
from branchflow.graph.sink import ProgressSink

logger = logging.getLogger(__name__)


def skip_subtree(
    node_id: str,
    graph: FlowGraph,
    state: RunState,
    sink: ProgressSink,
) -> list[str]:
    """
    Mark ``node_id`` and its whole downstream reachable set as skipped.

    Nodes that are already skipped are not revisited; their descendants were
    marked when they were. Every edge touching a newly skipped node is
    reported as skipped.

    Returns:
        IDs of the nodes newly skipped by this call, in visiting order
    """
    newly_skipped: list[str] = []
    stack = [node_id]
    while stack:
        current = stack.pop()
        if not state.mark_skipped(current):
            continue
        newly_skipped.append(current)
        sink.set_node_selection_state(current, SelectionState.SKIPPED)
        for edge in graph.get_incoming_edges(current):
            sink.set_edge_execution_state(edge.id, EdgeExecutionState.SKIPPED)
        for edge in graph.get_outgoing_edges(current):
            sink.set_edge_execution_state(edge.id, EdgeExecutionState.SKIPPED)
        # Reverse so children are visited in edge-list order
        stack.extend(child.id for child in reversed(graph.outgoers(current)))

    if newly_skipped:
        logger.debug(f"Skipped subtree of '{node_id}': {newly_skipped}")
    return newly_skipped
