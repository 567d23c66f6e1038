"""Tests for the EventBus pub/sub used to observe flow runs."""

import pytest

from branchflow.runtime.event_bus import EventBus, EventType, FlowEvent


class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_handler_receives_matching_events(self):
        bus = EventBus()
        received = []

        async def handler(event):
            received.append(event)

        bus.subscribe(event_types=[EventType.NODE_COMPLETED], handler=handler)
        await bus.emit_node_completed(run_id="r1", node_id="a", response="done")
        await bus.emit_node_started(run_id="r1", node_id="a")

        assert len(received) == 1
        assert received[0].data == {"response": "done"}

    @pytest.mark.asyncio
    async def test_run_and_node_filters(self):
        bus = EventBus()
        received = []

        async def handler(event):
            received.append((event.run_id, event.node_id))

        bus.subscribe(
            event_types=[EventType.NODE_SKIPPED],
            handler=handler,
            filter_run="r1",
            filter_node="b",
        )
        await bus.emit_node_skipped(run_id="r1", node_id="b", skipped_by="a")
        await bus.emit_node_skipped(run_id="r1", node_id="c", skipped_by="a")
        await bus.emit_node_skipped(run_id="r2", node_id="b", skipped_by="a")

        assert received == [("r1", "b")]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = EventBus()
        received = []

        async def handler(event):
            received.append(event)

        sub_id = bus.subscribe(event_types=[EventType.RUN_STARTED], handler=handler)
        assert bus.unsubscribe(sub_id) is True
        assert bus.unsubscribe(sub_id) is False

        await bus.emit_run_started(run_id="r1", node_count=3)
        assert received == []

    @pytest.mark.asyncio
    async def test_handler_errors_do_not_propagate(self):
        bus = EventBus()
        received = []

        async def broken(event):
            raise RuntimeError("handler bug")

        async def healthy(event):
            received.append(event)

        bus.subscribe(event_types=[EventType.RUN_FAILED], handler=broken)
        bus.subscribe(event_types=[EventType.RUN_FAILED], handler=healthy)

        await bus.emit_run_failed(run_id="r1", error="boom")
        assert len(received) == 1


class TestHistory:
    @pytest.mark.asyncio
    async def test_history_is_most_recent_first_and_filterable(self):
        bus = EventBus()
        await bus.emit_run_started(run_id="r1", node_count=2)
        await bus.emit_branch_selected(
            run_id="r1", node_id="a", selected_child_id="b", reasoning="why"
        )
        await bus.emit_run_completed(run_id="r1", completed=2, failed=0, skipped=1)

        history = bus.get_history()
        assert [e.type for e in history] == [
            EventType.RUN_COMPLETED,
            EventType.BRANCH_SELECTED,
            EventType.RUN_STARTED,
        ]
        assert bus.get_history(node_id="a")[0].data["selected_child_id"] == "b"
        assert bus.get_history(run_id="other") == []
        assert len(bus.get_history(limit=1)) == 1

    @pytest.mark.asyncio
    async def test_history_is_bounded(self):
        bus = EventBus(max_history=3)
        for i in range(5):
            await bus.emit_llm_text_delta(run_id="r", node_id="a", content=str(i), snapshot="")
        assert [e.data["content"] for e in bus.get_history()] == ["4", "3", "2"]

    @pytest.mark.asyncio
    async def test_clear_history(self):
        bus = EventBus()
        await bus.emit_node_failed(run_id="r", node_id="a", error="x")
        bus.clear_history()
        assert bus.get_history() == []

    def test_event_to_dict(self):
        event = FlowEvent(type=EventType.NODE_STARTED, run_id="r", node_id="a")
        payload = event.to_dict()
        assert payload["type"] == "node_started"
        assert payload["node_id"] == "a"
        assert "timestamp" in payload
