"""Stream event types for text-generation responses.

Defines a discriminated union of frozen dataclasses for every event a
streaming generation call can produce. These types form the contract between
text generators, the node executor, and the event bus.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class TextDeltaEvent:
    """A chunk of generated text."""

    type: Literal["text_delta"] = "text_delta"
    content: str = ""  # this chunk's text
    snapshot: str = ""  # accumulated text so far


@dataclass(frozen=True)
class TextEndEvent:
    """Signals that text generation is complete."""

    type: Literal["text_end"] = "text_end"
    full_text: str = ""


@dataclass(frozen=True)
class FinishEvent:
    """The generator has finished; carries whatever metadata the service reported."""

    type: Literal["finish"] = "finish"
    stop_reason: str = ""
    status_code: int = 0


@dataclass(frozen=True)
class StreamErrorEvent:
    """An error occurred mid-stream."""

    type: Literal["error"] = "error"
    error: str = ""
    recoverable: bool = False


# Discriminated union of all stream event types
StreamEvent = TextDeltaEvent | TextEndEvent | FinishEvent | StreamErrorEvent
