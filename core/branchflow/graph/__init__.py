"""Graph structures: Nodes, Edges, and dependency-driven Flow Execution."""

from branchflow.graph.branch import BranchDecision, BranchEvaluator
from branchflow.graph.edge import EdgeExecutionState, FlowEdge, FlowGraph, incomers, outgoers
from branchflow.graph.executor import FlowExecutor, RunResult, reset_run_fields
from branchflow.graph.history import Message, build_history
from branchflow.graph.node import ExecutionMode, FlowNode, SelectionState
from branchflow.graph.node_executor import NodeExecutor
from branchflow.graph.run_state import RunState
from branchflow.graph.sink import NullSink, ProgressSink
from branchflow.graph.skip import skip_subtree
from branchflow.graph.validator import CycleDetectedError, GraphStructureError

__all__ = [
    # Node
    "FlowNode",
    "ExecutionMode",
    "SelectionState",
    # Edge
    "FlowEdge",
    "FlowGraph",
    "EdgeExecutionState",
    "incomers",
    "outgoers",
    # Validation
    "GraphStructureError",
    "CycleDetectedError",
    # History
    "Message",
    "build_history",
    # Execution
    "RunState",
    "NodeExecutor",
    "BranchEvaluator",
    "BranchDecision",
    "skip_subtree",
    "FlowExecutor",
    "RunResult",
    "reset_run_fields",
    # Progress
    "ProgressSink",
    "NullSink",
]
