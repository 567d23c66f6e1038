"""
Branch Evaluator - Picks the one child a decision node continues into.

Branching only happens for a node in ``choose`` mode with a non-empty
condition prompt and more than one child. Anything else runs as a plain
node.

The decision node does not generate an answer of its own. Its stored
response is a short synthetic summary of the choice, and that summary is
what its descendants see in their history.
"""

import logging
from dataclasses import dataclass

from branchflow.graph.history import Message
from branchflow.graph.node import FlowNode
from branchflow.graph.node_executor import NodeExecutor
from branchflow.llm.provider import BranchChild, BranchSelectionError, BranchSelector

logger = logging.getLogger(__name__)


def format_selection(label: str, reasoning: str) -> str:
    return f"Selected: {label}\n\nReason: {reasoning}"


@dataclass
class BranchDecision:
    """Outcome of a successful branch selection."""

    node_id: str
    selected: FlowNode
    reasoning: str

    @property
    def response(self) -> str:
        """Synthetic text stored as the decision node's answer."""
        return format_selection(self.selected.display_name, self.reasoning)


class BranchEvaluator:
    """
    Invokes the branch selector for decision nodes.

    Example:
        evaluator = BranchEvaluator(selector)
        if evaluator.should_branch(node, children):
            decision = await evaluator.evaluate(node, history, children)
    """

    def __init__(self, selector: BranchSelector):
        self.selector = selector

    @staticmethod
    def should_branch(node: FlowNode, children: list[FlowNode]) -> bool:
        """True when the node must select exactly one of ``children``."""
        return node.is_decision and bool(node.condition_prompt.strip()) and len(children) > 1

    async def evaluate(
        self,
        node: FlowNode,
        history: list[Message],
        children: list[FlowNode],
    ) -> BranchDecision:
        """
        Ask the selector which child to continue into.

        Args:
            node: The decision node
            history: The decision node's history (its own prompt is appended)
            children: Direct successors in edge-list order

        Returns:
            BranchDecision for the selected child

        Raises:
            BranchSelectionError: if the selector fails or answers with an id
                that is not one of ``children``
        """
        candidates = [
            BranchChild(id=child.id, label=child.display_name, prompt=child.prompt)
            for child in children
        ]
        messages = NodeExecutor.build_messages(node, history)

        try:
            choice = await self.selector.choose(messages, node.condition_prompt, candidates)
        except Exception as e:
            raise BranchSelectionError(node.id, str(e)) from e

        by_id = {child.id: child for child in children}
        selected = by_id.get(choice.selected_child_id)
        if selected is None:
            raise BranchSelectionError(
                node.id,
                f"selected id {choice.selected_child_id!r} is not one of {list(by_id)}",
            )

        logger.info(
            f"Decision node {node.id} selected {selected.id}",
            extra={"node_id": node.id, "event": "branch_selected"},
        )
        return BranchDecision(node_id=node.id, selected=selected, reasoning=choice.reasoning)
