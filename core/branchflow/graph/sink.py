"""Progress sink: where the executor reports what each node is doing.

The sink is purely observational. The executor never reads from it, so a
sink that drops everything (``NullSink``) does not change scheduling.
Calls are synchronous so the executor can report without yielding control
between a run-state check and the work that depends on it.
"""

from typing import Protocol, runtime_checkable

from branchflow.graph.edge import EdgeExecutionState
from branchflow.graph.node import SelectionState


@runtime_checkable
class ProgressSink(Protocol):
    """Receives run-scoped node and edge updates."""

    def set_node_response(self, node_id: str, response: str, loading: bool) -> None:
        """Called repeatedly while streaming and at least once at completion."""
        ...

    def set_node_selection_state(self, node_id: str, state: SelectionState | None) -> None: ...

    def set_edge_execution_state(self, edge_id: str, state: EdgeExecutionState | None) -> None: ...


class NullSink:
    """Sink that ignores every update."""

    def set_node_response(self, node_id: str, response: str, loading: bool) -> None:
        pass

    def set_node_selection_state(self, node_id: str, state: SelectionState | None) -> None:
        pass

    def set_edge_execution_state(self, edge_id: str, state: EdgeExecutionState | None) -> None:
        pass
