"""
Edge Protocol - How reasoning steps connect in a flow.

Edges are plain dependencies: the target runs only after the source has
resolved, and the target's conversation history is assembled from its
predecessors. Which children of a decision node actually run is decided by
the node itself at run time, not by the edge.

The accessors in this module are pure functions over a snapshot of nodes and
edges. Order is significant: incomers and outgoers are returned in edge-list
order, and the history builder only follows the first incomer.
"""

from collections.abc import Iterable, Sequence
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from branchflow.graph.node import FlowNode
from branchflow.graph.validator import topological_order, validate_structure


class EdgeExecutionState(StrEnum):
    """Observational state of an edge during a run."""

    SELECTED = "selected"  # Chosen branch of a decision node
    SKIPPED = "skipped"  # Leads into or out of an excluded subtree
    COMPLETE = "complete"  # Source finished normally


class FlowEdge(BaseModel):
    """
    A directed arc ``source -> target``.

    Handles are editor connection points and play no part in execution.

    Example:
        FlowEdge(id="e1", source="intro", target="details")
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    id: str
    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")
    source_handle: str | None = Field(default=None, alias="sourceHandle")
    target_handle: str | None = Field(default=None, alias="targetHandle")


def _unique_in_order(node_ids: Iterable[str], nodes: Sequence[FlowNode]) -> list[FlowNode]:
    by_id = {n.id: n for n in nodes}
    seen: set[str] = set()
    result: list[FlowNode] = []
    for node_id in node_ids:
        if node_id in seen or node_id not in by_id:
            continue
        seen.add(node_id)
        result.append(by_id[node_id])
    return result


def incomers(
    node_id: str, nodes: Sequence[FlowNode], edges: Sequence[FlowEdge]
) -> list[FlowNode]:
    """Direct predecessors of a node, in edge-list order.

    Unknown node ids (and edges pointing at missing nodes) yield nothing.
    """
    return _unique_in_order((e.source for e in edges if e.target == node_id), nodes)


def outgoers(
    node_id: str, nodes: Sequence[FlowNode], edges: Sequence[FlowEdge]
) -> list[FlowNode]:
    """Direct successors of a node, in edge-list order."""
    return _unique_in_order((e.target for e in edges if e.source == node_id), nodes)


class FlowGraph(BaseModel):
    """
    Immutable snapshot of a flow: every node and every edge.

    The executor consumes one snapshot per run. Edits made by the editor
    while a run is in flight are not visible to that run.

    Example:
        graph = FlowGraph(
            nodes=[FlowNode(id="a", prompt="hi"), FlowNode(id="b")],
            edges=[FlowEdge(id="a-b", source="a", target="b")],
        )
        graph.outgoers("a")  # [FlowNode(id="b", ...)]
    """

    model_config = ConfigDict(frozen=True)

    nodes: list[FlowNode] = Field(default_factory=list)
    edges: list[FlowEdge] = Field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "FlowGraph":
        """Load a flow from ``{"nodes": [...], "edges": [...]}``.

        Nodes may be flat dicts or editor rows with a ``data`` bag.
        """
        return cls(
            nodes=[FlowNode.from_record(n) for n in payload.get("nodes", [])],
            edges=[FlowEdge.model_validate(e) for e in payload.get("edges", [])],
        )

    def get_node(self, node_id: str) -> FlowNode | None:
        """Get a node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def incomers(self, node_id: str) -> list[FlowNode]:
        return incomers(node_id, self.nodes, self.edges)

    def outgoers(self, node_id: str) -> list[FlowNode]:
        return outgoers(node_id, self.nodes, self.edges)

    def get_incoming_edges(self, node_id: str) -> list[FlowEdge]:
        """Get all edges entering a node."""
        return [e for e in self.edges if e.target == node_id]

    def get_outgoing_edges(self, node_id: str) -> list[FlowEdge]:
        """Get all edges leaving a node."""
        return [e for e in self.edges if e.source == node_id]

    def topological_order(self) -> list[str]:
        """Node IDs in dependency order. Raises CycleDetectedError on a cycle."""
        return topological_order(self.nodes, self.edges)

    def validate(self) -> list[str]:
        """Validate the graph structure; returns human-readable problems."""
        return validate_structure(self.nodes, self.edges)
