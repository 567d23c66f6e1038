"""
Event Bus - Observers of a flow run subscribe here.

The executor publishes lifecycle events (run, node, branch choice) and every
streamed text delta. Subscribers are async callables filtered by event type
and optionally by run or node. A bounded history of recent events is kept for
debugging and tests.

Publishing never changes scheduling: handler failures are logged and dropped.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    RUN_STARTED = "run_started"
    RUN_COMPLETED = "run_completed"
    RUN_FAILED = "run_failed"

    NODE_STARTED = "node_started"
    NODE_COMPLETED = "node_completed"
    NODE_FAILED = "node_failed"
    NODE_SKIPPED = "node_skipped"

    BRANCH_SELECTED = "branch_selected"
    LLM_TEXT_DELTA = "llm_text_delta"

    CUSTOM = "custom"


@dataclass
class FlowEvent:
    """Something that happened during a run, optionally scoped to one node."""

    type: EventType
    run_id: str
    node_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "run_id": self.run_id,
            "node_id": self.node_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


EventHandler = Callable[[FlowEvent], Awaitable[None]]


@dataclass
class Subscription:
    id: str
    event_types: frozenset[EventType]
    handler: EventHandler
    filter_run: str | None = None
    filter_node: str | None = None

    def accepts(self, event: FlowEvent) -> bool:
        if event.type not in self.event_types:
            return False
        if self.filter_run is not None and self.filter_run != event.run_id:
            return False
        return self.filter_node is None or self.filter_node == event.node_id


class EventBus:
    """
    Async pub/sub for flow runs.

    Example:
        bus = EventBus()

        async def show(event: FlowEvent):
            print(event.node_id, event.data["selected_child_id"])

        bus.subscribe([EventType.BRANCH_SELECTED], show)
        await FlowExecutor(generator, selector, event_bus=bus).run(graph)
    """

    def __init__(self, max_history: int = 1000, max_concurrent_handlers: int = 10):
        """
        Args:
            max_history: Number of recent events retained for get_history()
            max_concurrent_handlers: Upper bound on handlers running at once
        """
        self._subscriptions: dict[str, Subscription] = {}
        self._history: deque[FlowEvent] = deque(maxlen=max_history)
        self._handler_slots = asyncio.Semaphore(max_concurrent_handlers)
        self._next_id = 0

    def subscribe(
        self,
        event_types: list[EventType],
        handler: EventHandler,
        filter_run: str | None = None,
        filter_node: str | None = None,
    ) -> str:
        """Register ``handler`` and return a subscription id for unsubscribe()."""
        self._next_id += 1
        sub_id = f"sub_{self._next_id}"
        self._subscriptions[sub_id] = Subscription(
            id=sub_id,
            event_types=frozenset(event_types),
            handler=handler,
            filter_run=filter_run,
            filter_node=filter_node,
        )
        logger.debug(f"Subscription {sub_id} registered for {sorted(event_types)}")
        return sub_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Returns False when the id is unknown."""
        return self._subscriptions.pop(subscription_id, None) is not None

    async def publish(self, event: FlowEvent) -> None:
        self._history.append(event)
        handlers = [s.handler for s in self._subscriptions.values() if s.accepts(event)]
        if handlers:
            await asyncio.gather(*(self._call(handler, event) for handler in handlers))

    async def _call(self, handler: EventHandler, event: FlowEvent) -> None:
        async with self._handler_slots:
            try:
                await handler(event)
            except Exception as e:
                logger.error(f"Event handler failed for {event.type}: {e}")

    # === EMITTERS ===

    async def _emit(
        self, event_type: EventType, run_id: str, node_id: str | None = None, **data: Any
    ) -> None:
        await self.publish(FlowEvent(type=event_type, run_id=run_id, node_id=node_id, data=data))

    async def emit_run_started(self, run_id: str, node_count: int) -> None:
        await self._emit(EventType.RUN_STARTED, run_id, node_count=node_count)

    async def emit_run_completed(
        self, run_id: str, completed: int, failed: int, skipped: int
    ) -> None:
        await self._emit(
            EventType.RUN_COMPLETED, run_id, completed=completed, failed=failed, skipped=skipped
        )

    async def emit_run_failed(self, run_id: str, error: str) -> None:
        await self._emit(EventType.RUN_FAILED, run_id, error=error)

    async def emit_node_started(self, run_id: str, node_id: str, decision: bool = False) -> None:
        await self._emit(EventType.NODE_STARTED, run_id, node_id, decision=decision)

    async def emit_node_completed(self, run_id: str, node_id: str, response: str) -> None:
        await self._emit(EventType.NODE_COMPLETED, run_id, node_id, response=response)

    async def emit_node_failed(self, run_id: str, node_id: str, error: str) -> None:
        await self._emit(EventType.NODE_FAILED, run_id, node_id, error=error)

    async def emit_node_skipped(self, run_id: str, node_id: str, skipped_by: str) -> None:
        await self._emit(EventType.NODE_SKIPPED, run_id, node_id, skipped_by=skipped_by)

    async def emit_branch_selected(
        self, run_id: str, node_id: str, selected_child_id: str, reasoning: str
    ) -> None:
        await self._emit(
            EventType.BRANCH_SELECTED,
            run_id,
            node_id,
            selected_child_id=selected_child_id,
            reasoning=reasoning,
        )

    async def emit_llm_text_delta(
        self, run_id: str, node_id: str, content: str, snapshot: str
    ) -> None:
        await self._emit(
            EventType.LLM_TEXT_DELTA, run_id, node_id, content=content, snapshot=snapshot
        )

    # === HISTORY ===

    def get_history(
        self,
        event_type: EventType | None = None,
        run_id: str | None = None,
        node_id: str | None = None,
        limit: int = 100,
    ) -> list[FlowEvent]:
        """Recent events, newest first, optionally filtered."""
        matches = []
        for event in reversed(self._history):
            if event_type is not None and event.type != event_type:
                continue
            if run_id is not None and event.run_id != run_id:
                continue
            if node_id is not None and event.node_id != node_id:
                continue
            matches.append(event)
            if len(matches) >= limit:
                break
        return matches

    def clear_history(self) -> None:
        self._history.clear()
