"""Structural validation for flow graphs.

The executor waits on predecessors, so a cycle would leave every unit in the
cycle waiting forever. Cycles are rejected up front with Kahn's algorithm
before any unit of work is created.
"""

import logging
from collections import deque
from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from branchflow.graph.edge import FlowEdge
    from branchflow.graph.node import FlowNode

logger = logging.getLogger(__name__)


class GraphStructureError(Exception):
    """The flow graph cannot be executed as given."""


class CycleDetectedError(GraphStructureError):
    """The edge set contains at least one directed cycle."""

    def __init__(self, cycle_nodes: Sequence[str]):
        self.cycle_nodes = list(cycle_nodes)
        super().__init__(f"Cycle detected in graph involving nodes: {', '.join(self.cycle_nodes)}")


def topological_order(nodes: Sequence["FlowNode"], edges: Sequence["FlowEdge"]) -> list[str]:
    """
    Order node IDs so every node comes after all of its predecessors.

    Edges referencing unknown nodes are ignored, matching the accessors.
    Ties keep node-list order.

    Raises:
        CycleDetectedError: listing every node that is on or behind a cycle.
    """
    node_ids = list(dict.fromkeys(n.id for n in nodes))
    known = set(node_ids)
    in_degree = dict.fromkeys(node_ids, 0)
    successors: dict[str, list[str]] = {node_id: [] for node_id in node_ids}

    seen_pairs: set[tuple[str, str]] = set()
    for edge in edges:
        if edge.source not in known or edge.target not in known:
            continue
        pair = (edge.source, edge.target)
        if pair in seen_pairs:
            continue
        seen_pairs.add(pair)
        successors[edge.source].append(edge.target)
        in_degree[edge.target] += 1

    ready = deque(node_id for node_id in node_ids if in_degree[node_id] == 0)
    ordered: list[str] = []
    while ready:
        current = ready.popleft()
        ordered.append(current)
        for target in successors[current]:
            in_degree[target] -= 1
            if in_degree[target] == 0:
                ready.append(target)

    if len(ordered) < len(node_ids):
        stuck = [node_id for node_id in node_ids if in_degree[node_id] > 0]
        raise CycleDetectedError(stuck)
    return ordered


def validate_structure(nodes: Sequence["FlowNode"], edges: Sequence["FlowEdge"]) -> list[str]:
    """Collect every structural problem in the graph."""
    errors: list[str] = []

    seen: set[str] = set()
    for node in nodes:
        if node.id in seen:
            errors.append(f"Duplicate node ID: '{node.id}'")
        seen.add(node.id)

    for edge in edges:
        if edge.source not in seen:
            errors.append(f"Edge '{edge.id}' references missing source '{edge.source}'")
        if edge.target not in seen:
            errors.append(f"Edge '{edge.id}' references missing target '{edge.target}'")

    try:
        topological_order(nodes, edges)
    except CycleDetectedError as e:
        errors.append(str(e))

    for node in nodes:
        if node.is_decision and not node.condition_prompt:
            logger.debug(f"Decision node '{node.id}' has no condition prompt; it runs as a plain node")

    return errors
