"""Collaborator contracts for text generation and branch selection."""

from branchflow.llm.http import HttpBranchSelector, HttpTextGenerator
from branchflow.llm.mock import MockBranchSelector, MockTextGenerator
from branchflow.llm.provider import (
    BranchChild,
    BranchChoice,
    BranchSelectionError,
    BranchSelector,
    LLMRequestError,
    TextGenerator,
)
from branchflow.llm.stream_events import (
    FinishEvent,
    StreamErrorEvent,
    StreamEvent,
    TextDeltaEvent,
    TextEndEvent,
)

__all__ = [
    "TextGenerator",
    "BranchSelector",
    "BranchChild",
    "BranchChoice",
    "LLMRequestError",
    "BranchSelectionError",
    "HttpTextGenerator",
    "HttpBranchSelector",
    "MockTextGenerator",
    "MockBranchSelector",
    "StreamEvent",
    "TextDeltaEvent",
    "TextEndEvent",
    "FinishEvent",
    "StreamErrorEvent",
]
