"""Scripted collaborators for tests and offline runs.

``MockTextGenerator`` answers by looking up the last user turn of the
conversation (normally the node's own prompt). ``MockBranchSelector`` answers
by looking up the condition prompt. Both record every call they receive.
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

from branchflow.llm.provider import (
    BranchChild,
    BranchChoice,
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


def _last_user_content(messages: list[dict[str, Any]]) -> str:
    for message in reversed(messages):
        if message.get("role") == "user":
            return str(message.get("content", ""))
    return ""


class MockTextGenerator(TextGenerator):
    """
    Text generator with canned answers.

    Args:
        responses: Map of prompt -> answer
        default: Answer for prompts not in ``responses``; None echoes the prompt
        failures: Map of prompt -> exception raised before streaming
        stream_errors: Prompts whose stream breaks with a StreamErrorEvent
        chunk_size: Characters per streamed delta
        delay: Seconds to sleep before each delta
    """

    def __init__(
        self,
        responses: dict[str, str] | None = None,
        default: str | None = None,
        failures: dict[str, Exception] | None = None,
        stream_errors: set[str] | None = None,
        chunk_size: int = 4,
        delay: float = 0.0,
    ):
        self.responses = responses or {}
        self.default = default
        self.failures = failures or {}
        self.stream_errors = stream_errors or set()
        self.chunk_size = max(1, chunk_size)
        self.delay = delay
        self.calls: list[list[dict[str, Any]]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def answer_for(self, prompt: str) -> str:
        if prompt in self.responses:
            return self.responses[prompt]
        if self.default is not None:
            return self.default
        return f"echo: {prompt}"

    async def stream(self, messages: list[dict[str, Any]]) -> AsyncIterator[StreamEvent]:
        self.calls.append([dict(m) for m in messages])
        prompt = _last_user_content(messages)
        if prompt in self.failures:
            raise self.failures[prompt]

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            text = self.answer_for(prompt)
            snapshot = ""
            for start in range(0, len(text), self.chunk_size):
                await asyncio.sleep(self.delay)
                chunk = text[start : start + self.chunk_size]
                snapshot += chunk
                yield TextDeltaEvent(content=chunk, snapshot=snapshot)
                if prompt in self.stream_errors:
                    yield StreamErrorEvent(error="stream interrupted")
                    return
            yield TextEndEvent(full_text=text)
            yield FinishEvent(stop_reason="stop", status_code=200)
        finally:
            self.in_flight -= 1


class MockBranchSelector(BranchSelector):
    """
    Branch selector with canned decisions.

    Args:
        choices: Map of condition prompt -> child id, or a callable receiving
            (condition_prompt, children) and returning a child id
        reasoning: Reasoning text returned with every choice
        error: Exception raised on every call, when set
    """

    def __init__(
        self,
        choices: dict[str, str] | Callable[[str, list[BranchChild]], str] | None = None,
        reasoning: str = "",
        error: Exception | None = None,
        delay: float = 0.0,
    ):
        self.choices = choices if choices is not None else {}
        self.reasoning = reasoning
        self.error = error
        self.delay = delay
        self.calls: list[dict[str, Any]] = []

    async def choose(
        self,
        messages: list[dict[str, Any]],
        condition_prompt: str,
        children: list[BranchChild],
    ) -> BranchChoice:
        self.calls.append(
            {
                "messages": [dict(m) for m in messages],
                "condition_prompt": condition_prompt,
                "children": list(children),
            }
        )
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

        if callable(self.choices):
            child_id = self.choices(condition_prompt, children)
        elif condition_prompt in self.choices:
            child_id = self.choices[condition_prompt]
        elif children:
            child_id = children[0].id
        else:
            raise LLMRequestError("No children provided", status_code=400)
        return BranchChoice(selected_child_id=child_id, reasoning=self.reasoning)
