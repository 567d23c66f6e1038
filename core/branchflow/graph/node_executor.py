"""
Node Executor - Streams one node's answer from the text generator.

The executor:
1. Appends the node's own prompt to its history
2. Issues one streaming generation request
3. Reports every delta to the progress sink (loading=True)
4. Reports the final text (loading=False) once the stream ends

A failed request is contained: the node is reported with an empty response
and resolves to None. Siblings and descendants keep running.
"""

import logging
import time
from collections.abc import AsyncIterator
from typing import Any

from branchflow.graph.history import Message, to_llm_messages
from branchflow.graph.node import FlowNode
from branchflow.graph.sink import ProgressSink
from branchflow.llm.provider import LLMRequestError, TextGenerator
from branchflow.llm.stream_events import StreamErrorEvent, TextDeltaEvent

logger = logging.getLogger(__name__)


class NodeExecutor:
    """
    Runs the generation call for plain (non-branching) nodes.

    Example:
        executor = NodeExecutor(generator=HttpTextGenerator.from_config(config), sink=store)
        text = await executor.execute(node, history)  # None on failure
    """

    def __init__(
        self,
        generator: TextGenerator,
        sink: ProgressSink,
        event_bus: Any | None = None,
    ):
        self.generator = generator
        self.sink = sink
        self.event_bus = event_bus

    @staticmethod
    def build_messages(node: FlowNode, history: list[Message]) -> list[dict[str, Any]]:
        """History plus the node's own prompt as the trailing user turn."""
        messages = to_llm_messages(history)
        if node.prompt:
            messages.append({"role": "user", "content": node.prompt})
        return messages

    async def stream(
        self,
        node: FlowNode,
        history: list[Message],
        run_id: str = "",
    ) -> AsyncIterator[TextDeltaEvent]:
        """
        Lazily stream the node's answer.

        Each yielded delta carries the accumulated text in ``snapshot``. The
        sequence is finite and can be consumed once. Failures are raised as
        LLMRequestError (or whatever the generator raised).
        """
        messages = self.build_messages(node, history)
        accumulated = ""
        async for event in self.generator.stream(messages):
            if isinstance(event, StreamErrorEvent):
                raise LLMRequestError(f"Stream failed for node '{node.id}': {event.error}")
            if not isinstance(event, TextDeltaEvent) or not event.content:
                continue
            accumulated += event.content
            delta = TextDeltaEvent(content=event.content, snapshot=accumulated)
            self.sink.set_node_response(node.id, accumulated, True)
            if self.event_bus is not None:
                await self.event_bus.emit_llm_text_delta(
                    run_id=run_id,
                    node_id=node.id,
                    content=delta.content,
                    snapshot=delta.snapshot,
                )
            yield delta

        self.sink.set_node_response(node.id, accumulated, False)

    async def execute(
        self,
        node: FlowNode,
        history: list[Message],
        run_id: str = "",
    ) -> str | None:
        """Stream the answer to completion. Returns the final text, or None on failure."""
        start = time.time()
        text = ""
        try:
            async for delta in self.stream(node, history, run_id=run_id):
                text = delta.snapshot
        except Exception as e:
            logger.error(f"Error executing node {node.id}: {e}", extra={"node_id": node.id})
            self.sink.set_node_response(node.id, "", False)
            return None

        latency_ms = int((time.time() - start) * 1000)
        logger.info(
            f"Node {node.id} completed ({len(text)} chars)",
            extra={"node_id": node.id, "latency_ms": latency_ms},
        )
        return text
