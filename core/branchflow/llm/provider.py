"""Collaborator contracts for the two language-model calls a flow makes.

The engine never talks to a model directly. It streams answers from a
``TextGenerator`` and asks a ``BranchSelector`` which child of a decision
node to continue into. Implementations own transport, retries and
authentication.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from branchflow.llm.stream_events import StreamEvent


class LLMRequestError(Exception):
    """A text-generation or branch-selection request did not succeed."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class BranchSelectionError(Exception):
    """A decision node could not resolve to exactly one of its children."""

    def __init__(self, node_id: str, reason: str):
        self.node_id = node_id
        self.reason = reason
        super().__init__(f"Branch selection for node '{node_id}' failed: {reason}")


@dataclass(frozen=True)
class BranchChild:
    """Metadata for one candidate child shown to the selector."""

    id: str
    label: str
    prompt: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "label": self.label, "prompt": self.prompt}


@dataclass(frozen=True)
class BranchChoice:
    """Selector response: the chosen child and why."""

    selected_child_id: str
    reasoning: str = ""


class TextGenerator(ABC):
    """
    Streams an answer for a conversation.

    Implementations should:
    - Yield a TextDeltaEvent per received fragment (snapshot = text so far)
    - Finish with a TextEndEvent carrying the full text
    - Raise LLMRequestError for a non-success status or transport failure,
      or yield a StreamErrorEvent for a failure after streaming started
    """

    @abstractmethod
    def stream(self, messages: list[dict[str, Any]]) -> AsyncIterator[StreamEvent]:
        """
        Stream a completion.

        Args:
            messages: Conversation history [{role: "user"|"assistant", content: str}]

        Returns:
            Async iterator of StreamEvents
        """

    async def aclose(self) -> None:
        """Release transport resources. No-op by default."""


class BranchSelector(ABC):
    """Picks exactly one child for a decision node."""

    @abstractmethod
    async def choose(
        self,
        messages: list[dict[str, Any]],
        condition_prompt: str,
        children: list[BranchChild],
    ) -> BranchChoice:
        """
        Select one of ``children``.

        Args:
            messages: The decision node's transcript
            condition_prompt: Selection criterion authored on the node
            children: Candidates; the returned id must be one of theirs

        Returns:
            BranchChoice naming the selected child
        """

    async def aclose(self) -> None:
        """Release transport resources. No-op by default."""
