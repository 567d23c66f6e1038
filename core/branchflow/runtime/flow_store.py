"""
Flow Store - Run-scoped view of a flow plus the run entry points.

The store holds the latest graph snapshot handed to it by the editor side,
receives progress from the executor (it is a ProgressSink), and exposes
``run_flow()`` / ``reset_flow()``.

Persistence is delegated to an optional ``persist`` callback that receives a
node id and that node's run-scoped record. While a node is streaming, writes
are throttled per node; a write that ends loading is always forwarded.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from branchflow.config import get_response_throttle_ms
from branchflow.graph.edge import EdgeExecutionState, FlowGraph
from branchflow.graph.executor import FlowExecutor, RunResult
from branchflow.graph.node import SelectionState
from branchflow.llm.provider import BranchSelector, TextGenerator

logger = logging.getLogger(__name__)

PersistCallback = Callable[[str, dict[str, Any]], None]


@dataclass(frozen=True)
class NodeResponse:
    """Run-scoped fields of one node."""

    response: str = ""
    loading: bool = False
    selection_state: SelectionState | None = None

    @property
    def is_empty(self) -> bool:
        return self == EMPTY_RESPONSE

    def to_record(self) -> dict[str, Any]:
        return {
            "response": self.response,
            "loading": self.loading,
            "selectionState": self.selection_state.value if self.selection_state else None,
        }


# Stable default returned for nodes that have no run-scoped data
EMPTY_RESPONSE = NodeResponse()


class FlowStore:
    """
    In-memory store for one flow's run-scoped state.

    Example:
        store = FlowStore(graph, generator=generator, selector=selector)
        result = await store.run_flow()
        store.get_node_response("summary").response
    """

    def __init__(
        self,
        graph: FlowGraph | None = None,
        generator: TextGenerator | None = None,
        selector: BranchSelector | None = None,
        persist: PersistCallback | None = None,
        throttle_ms: int | None = None,
        event_bus: Any | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.graph = graph or FlowGraph()
        self.generator = generator
        self.selector = selector
        self.persist = persist
        self.throttle_ms = throttle_ms if throttle_ms is not None else get_response_throttle_ms()
        self.event_bus = event_bus
        self._clock = clock

        self.node_responses: dict[str, NodeResponse] = {}
        self.edge_execution_states: dict[str, EdgeExecutionState] = {}
        self.is_generating = False
        self._last_response_write: dict[str, float] = {}

    # === GRAPH SNAPSHOT ===

    def set_graph(self, graph: FlowGraph) -> None:
        """Replace the graph snapshot used by the next run."""
        self.graph = graph

    # === PROGRESS SINK ===

    def set_node_response(self, node_id: str, response: str, loading: bool) -> None:
        current = self.get_node_response(node_id)
        updated = NodeResponse(
            response=response, loading=loading, selection_state=current.selection_state
        )
        if updated == current:
            return
        self.node_responses[node_id] = updated

        now = self._clock()
        last_write = self._last_response_write.get(node_id)
        should_write = (
            not loading or last_write is None or (now - last_write) * 1000 >= self.throttle_ms
        )
        if should_write:
            self._last_response_write[node_id] = now
            self._persist(node_id, updated)

    def set_node_selection_state(self, node_id: str, state: SelectionState | None) -> None:
        current = self.get_node_response(node_id)
        if current.selection_state == state:
            return
        updated = NodeResponse(
            response=current.response, loading=current.loading, selection_state=state
        )
        self.node_responses[node_id] = updated
        self._persist(node_id, updated)

    def set_edge_execution_state(self, edge_id: str, state: EdgeExecutionState | None) -> None:
        # Edge states are local-only and never persisted
        if state is None:
            self.edge_execution_states.pop(edge_id, None)
        else:
            self.edge_execution_states[edge_id] = state

    def get_node_response(self, node_id: str) -> NodeResponse:
        return self.node_responses.get(node_id, EMPTY_RESPONSE)

    def get_edge_execution_state(self, edge_id: str) -> EdgeExecutionState | None:
        return self.edge_execution_states.get(edge_id)

    def _persist(self, node_id: str, record: NodeResponse) -> None:
        if self.persist is None:
            return
        try:
            self.persist(node_id, record.to_record())
        except Exception as e:
            logger.warning(f"Failed to persist run state for node {node_id}: {e}")

    # === RUN ENTRY POINTS ===

    def reset_flow(self) -> None:
        """Clear every run-scoped node field and edge state without running anything."""
        self._last_response_write.clear()
        node_ids = {n.id for n in self.graph.nodes} | set(self.node_responses)
        for node_id in node_ids:
            had_data = not self.get_node_response(node_id).is_empty
            self.node_responses[node_id] = EMPTY_RESPONSE
            if had_data:
                self._persist(node_id, EMPTY_RESPONSE)
        self.edge_execution_states.clear()

    async def run_flow(self) -> RunResult | None:
        """
        Run the current graph snapshot end to end.

        Returns None without doing anything when a run is already in progress.

        Raises:
            GraphStructureError: the snapshot cannot run (e.g. it has a cycle)
            ValueError: no text generator or branch selector configured
        """
        if self.is_generating:
            logger.info("Run already in progress; ignoring run_flow()")
            return None
        if self.generator is None or self.selector is None:
            raise ValueError("FlowStore needs a text generator and a branch selector to run")

        self.is_generating = True
        try:
            self.reset_flow()
            executor = FlowExecutor(
                generator=self.generator,
                selector=self.selector,
                sink=self,
                event_bus=self.event_bus,
            )
            return await executor.run(self.graph)
        finally:
            self.is_generating = False
