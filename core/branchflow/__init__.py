"""
branchflow - run graphs of language-model reasoning steps.

Nodes run as soon as their predecessors resolve, independent branches run
concurrently, and decision nodes continue into exactly one of their children.
"""

from branchflow.graph import FlowEdge, FlowExecutor, FlowGraph, FlowNode, RunResult
from branchflow.runtime import EventBus, FlowStore

__version__ = "0.1.0"

__all__ = [
    "FlowNode",
    "FlowEdge",
    "FlowGraph",
    "FlowExecutor",
    "RunResult",
    "FlowStore",
    "EventBus",
]
