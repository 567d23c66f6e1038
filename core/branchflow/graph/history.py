"""Conversation history assembly for a node.

A node's transcript is built from a single lineage: starting at the node,
follow the first incoming edge of every ancestor up to a root, then replay
that chain root-first. Each ancestor contributes its prompt as a user turn
and its completed answer as an assistant turn. A completed ancestor that
failed contributes an empty assistant turn.

Nodes with several parents therefore only see the lineage of their first
parent. Only completed answers are used; text that is still streaming is
never part of another node's history.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from branchflow.graph.edge import FlowGraph
from branchflow.graph.validator import CycleDetectedError


@dataclass(frozen=True)
class Message:
    """A single turn in a node's transcript."""

    role: Literal["user", "assistant"]
    content: str

    def to_llm_dict(self) -> dict[str, Any]:
        """Convert to the ``{role, content}`` dict sent over the wire."""
        return {"role": self.role, "content": self.content}


def build_history(
    node_id: str,
    graph: FlowGraph,
    completed_text: Mapping[str, str],
) -> list[Message]:
    """
    Assemble the transcript that feeds into ``node_id``'s prompt.

    Args:
        node_id: Node whose history is requested (its own prompt is not included)
        graph: Snapshot of the flow
        completed_text: Final text of every node that has completed so far

    Returns:
        Messages in root-to-node order. Empty for a node without incomers.

    Raises:
        CycleDetectedError: if the first-parent chain loops back on itself
    """
    chain = []
    visited = {node_id}
    current = node_id
    while True:
        parents = graph.incomers(current)
        if not parents:
            break
        parent = parents[0]
        if parent.id in visited:
            raise CycleDetectedError([node_id, *(n.id for n in chain)])
        visited.add(parent.id)
        chain.append(parent)
        current = parent.id

    history: list[Message] = []
    for ancestor in reversed(chain):
        if ancestor.prompt:
            history.append(Message(role="user", content=ancestor.prompt))
        if ancestor.id in completed_text:
            history.append(Message(role="assistant", content=completed_text[ancestor.id]))
    return history


def to_llm_messages(messages: list[Message]) -> list[dict[str, Any]]:
    return [m.to_llm_dict() for m in messages]
