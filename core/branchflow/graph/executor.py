"""
Flow Executor - Runs a whole flow with dependency-driven concurrency.

The executor:
1. Rejects graphs that cannot run (duplicate ids, cycles) before anything starts
2. Resets run-scoped node and edge state in the progress sink
3. Creates one unit of work (an asyncio task) per node, registering every
   unit before any of them starts
4. Lets each unit wait on its direct predecessors, then skip, branch or run
5. Returns once every unit has resolved

Per-node failures never fail the run. A node whose generation call fails
resolves to None and its descendants still run; a decision node whose
selection fails skips every one of its branches.

All units share one RunState. Units only interleave at ``await`` points, and
no unit awaits between reading the run state and the write that depends on
it, so the state needs no locks.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from branchflow.graph.branch import BranchEvaluator
from branchflow.graph.edge import EdgeExecutionState, FlowGraph
from branchflow.graph.history import build_history
from branchflow.graph.node import FlowNode, SelectionState
from branchflow.graph.node_executor import NodeExecutor
from branchflow.graph.run_state import RunState
from branchflow.graph.sink import NullSink, ProgressSink
from branchflow.graph.skip import skip_subtree
from branchflow.graph.validator import GraphStructureError
from branchflow.llm.provider import BranchSelectionError, BranchSelector, TextGenerator
from branchflow.observability import reset_trace_context, set_trace_context

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Result of running a flow."""

    run_id: str
    responses: dict[str, str] = field(default_factory=dict)  # Completed nodes only
    chosen_child: dict[str, str] = field(default_factory=dict)
    skipped: set[str] = field(default_factory=set)
    failed: set[str] = field(default_factory=set)

    @property
    def success(self) -> bool:
        """True if no node failed. Skipped nodes are not failures."""
        return not self.failed

    @property
    def completed(self) -> set[str]:
        return set(self.responses) - self.failed


def reset_run_fields(graph: FlowGraph, sink: ProgressSink) -> None:
    """Clear every run-scoped node field and edge state in ``sink``."""
    for node in graph.nodes:
        sink.set_node_response(node.id, "", False)
        sink.set_node_selection_state(node.id, None)
    for edge in graph.edges:
        sink.set_edge_execution_state(edge.id, None)


class FlowExecutor:
    """
    Executes flow graphs.

    Example:
        executor = FlowExecutor(
            generator=HttpTextGenerator.from_config(config),
            selector=HttpBranchSelector.from_config(config),
            sink=store,
        )

        result = await executor.run(graph)
        result.responses["summary"]
    """

    def __init__(
        self,
        generator: TextGenerator,
        selector: BranchSelector,
        sink: ProgressSink | None = None,
        event_bus: Any | None = None,
    ):
        self.sink = sink if sink is not None else NullSink()
        self.event_bus = event_bus
        self.node_executor = NodeExecutor(generator, self.sink, event_bus=event_bus)
        self.branch_evaluator = BranchEvaluator(selector)

    async def run(self, graph: FlowGraph, run_id: str | None = None) -> RunResult:
        """
        Run every node of ``graph`` to a terminal state.

        Raises:
            GraphStructureError: duplicate node ids, before anything runs
            CycleDetectedError: the edge set has a cycle, before anything runs
        """
        node_ids = [n.id for n in graph.nodes]
        if len(set(node_ids)) != len(node_ids):
            raise GraphStructureError("Duplicate node IDs in graph")
        graph.topological_order()

        run_id = run_id or uuid.uuid4().hex
        # Units copy the context when created; the caller gets its own context back
        token = set_trace_context(run_id=run_id)
        try:
            return await self._run_all(graph, run_id)
        finally:
            reset_trace_context(token)

    async def _run_all(self, graph: FlowGraph, run_id: str) -> RunResult:
        reset_run_fields(graph, self.sink)
        state = RunState(run_id=run_id)

        logger.info(f"Starting run {run_id} with {len(graph.nodes)} nodes")
        if self.event_bus:
            await self.event_bus.emit_run_started(run_id=run_id, node_count=len(graph.nodes))

        # Tasks only start once this coroutine yields, so every unit is registered first
        for node in graph.nodes:
            task = asyncio.create_task(
                self._run_unit(node, graph, state), name=f"flow-node-{node.id}"
            )
            state.register(node.id, task)

        try:
            await asyncio.gather(*state.pending.values())
        except BaseException as e:
            for task in state.pending.values():
                task.cancel()
            await asyncio.gather(*state.pending.values(), return_exceptions=True)
            logger.error(f"Run {run_id} aborted: {e!r}")
            if self.event_bus and isinstance(e, Exception):
                await self.event_bus.emit_run_failed(run_id=run_id, error=str(e))
            raise

        result = RunResult(
            run_id=run_id,
            responses=dict(state.completed_text),
            chosen_child=dict(state.chosen_child),
            skipped=set(state.skipped),
            failed=set(state.failed),
        )
        logger.info(
            f"Run {run_id} finished: {len(result.completed)} completed, "
            f"{len(result.failed)} failed, {len(result.skipped)} skipped"
        )
        if self.event_bus:
            await self.event_bus.emit_run_completed(
                run_id=run_id,
                completed=len(result.completed),
                failed=len(result.failed),
                skipped=len(result.skipped),
            )
        return result

    async def _run_unit(self, node: FlowNode, graph: FlowGraph, state: RunState) -> str | None:
        """Body of one node's unit of work."""
        set_trace_context(node_id=node.id)
        parents = graph.incomers(node.id)

        waits = []
        for parent in parents:
            unit = state.unit_for(parent.id)
            if unit is None:
                logger.warning(f"Missing unit of work for dependency {parent.id} of {node.id}")
                continue
            waits.append(unit)
        if waits:
            await asyncio.gather(*waits)

        # Re-check after waiting: an ancestor may have skipped this node meanwhile
        if state.is_skipped(node.id):
            return None

        for parent in parents:
            if not parent.is_decision:
                continue
            chosen = state.chosen_for(parent.id)
            if chosen is not None and chosen != node.id:
                newly_skipped = skip_subtree(node.id, graph, state, self.sink)
                await self._emit_skipped(state.run_id, newly_skipped, parent.id)
                return None

        children = graph.outgoers(node.id)
        branching = self.branch_evaluator.should_branch(node, children)
        self.sink.set_node_response(node.id, "", True)
        if self.event_bus:
            await self.event_bus.emit_node_started(
                run_id=state.run_id, node_id=node.id, decision=branching
            )

        if branching:
            text = await self._run_decision(node, children, graph, state)
        else:
            history = build_history(node.id, graph, state.completed_text)
            text = await self.node_executor.execute(node, history, run_id=state.run_id)

        state.record_text(node.id, text)
        if text is None:
            if self.event_bus:
                await self.event_bus.emit_node_failed(
                    run_id=state.run_id, node_id=node.id, error="node execution failed"
                )
            return None

        if not branching:
            for edge in graph.get_outgoing_edges(node.id):
                if not state.is_skipped(edge.target):
                    self.sink.set_edge_execution_state(edge.id, EdgeExecutionState.COMPLETE)
        if self.event_bus:
            await self.event_bus.emit_node_completed(
                run_id=state.run_id, node_id=node.id, response=text
            )
        return text

    async def _run_decision(
        self,
        node: FlowNode,
        children: list[FlowNode],
        graph: FlowGraph,
        state: RunState,
    ) -> str | None:
        """Select one child, skip the others. Fails closed: on error every branch is skipped."""
        history = build_history(node.id, graph, state.completed_text)
        try:
            decision = await self.branch_evaluator.evaluate(node, history, children)
        except BranchSelectionError as e:
            logger.error(f"{e}; skipping every branch of {node.id}", extra={"node_id": node.id})
            self.sink.set_node_response(node.id, "", False)
            newly_skipped: list[str] = []
            for child in children:
                newly_skipped.extend(skip_subtree(child.id, graph, state, self.sink))
            await self._emit_skipped(state.run_id, newly_skipped, node.id)
            return None

        selected_id = decision.selected.id
        state.record_choice(node.id, selected_id)
        self.sink.set_node_selection_state(selected_id, SelectionState.SELECTED)
        for edge in graph.get_outgoing_edges(node.id):
            if edge.target == selected_id:
                self.sink.set_edge_execution_state(edge.id, EdgeExecutionState.SELECTED)

        # Runs after the selection marks, so a selected child that a skipped sibling
        # also reaches ends up skipped along with its incoming edges
        newly_skipped = []
        for child in children:
            if child.id != selected_id:
                newly_skipped.extend(skip_subtree(child.id, graph, state, self.sink))

        response = decision.response
        self.sink.set_node_response(node.id, response, False)

        if self.event_bus:
            await self.event_bus.emit_branch_selected(
                run_id=state.run_id,
                node_id=node.id,
                selected_child_id=selected_id,
                reasoning=decision.reasoning,
            )
        await self._emit_skipped(state.run_id, newly_skipped, node.id)
        return response

    async def _emit_skipped(self, run_id: str, node_ids: list[str], skipped_by: str) -> None:
        if not self.event_bus:
            return
        for node_id in node_ids:
            await self.event_bus.emit_node_skipped(
                run_id=run_id, node_id=node_id, skipped_by=skipped_by
            )
