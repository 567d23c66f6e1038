"""Runtime pieces around the executor: event bus and flow store."""

from branchflow.runtime.event_bus import EventBus, EventType, FlowEvent
from branchflow.runtime.flow_store import FlowStore, NodeResponse

__all__ = [
    "EventBus",
    "EventType",
    "FlowEvent",
    "FlowStore",
    "NodeResponse",
]
