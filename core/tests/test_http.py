"""Tests for the HTTP text generator and branch selector against httpx.MockTransport."""

import json

import httpx
import pytest

from branchflow.config import FlowConfig
from branchflow.graph.node import FlowNode
from branchflow.graph.node_executor import NodeExecutor
from branchflow.graph.sink import NullSink
from branchflow.llm.http import HttpBranchSelector, HttpTextGenerator
from branchflow.llm.provider import BranchChild, LLMRequestError
from branchflow.llm.stream_events import FinishEvent, TextDeltaEvent, TextEndEvent

CONFIG = FlowConfig(
    api_base="http://flows.test/api",
    timeout_seconds=5.0,
    generate_path="/generate",
    choose_path="/choose-child",
    response_throttle_ms=500,
)
MESSAGES = [{"role": "user", "content": "hi"}]
CHILDREN = [
    BranchChild(id="b", label="Bee", prompt="P_B"),
    BranchChild(id="c", label="c", prompt=""),
]


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def _collect(generator):
    return [event async for event in generator.stream(MESSAGES)]


# ---------------------------------------------------------------------------
# HttpTextGenerator
# ---------------------------------------------------------------------------
class TestHttpTextGenerator:
    @pytest.mark.asyncio
    async def test_streams_text_and_finishes(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, text="Hello world")

        async with _client(handler) as client:
            events = await _collect(HttpTextGenerator.from_config(CONFIG, client=client))

        assert seen["url"] == "http://flows.test/api/generate"
        assert seen["body"] == {"messages": MESSAGES}

        deltas = [e for e in events if isinstance(e, TextDeltaEvent)]
        assert "".join(d.content for d in deltas) == "Hello world"
        assert deltas[-1].snapshot == "Hello world"
        assert isinstance(events[-2], TextEndEvent)
        assert events[-2].full_text == "Hello world"
        assert isinstance(events[-1], FinishEvent)
        assert events[-1].status_code == 200

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        def handler(request):
            return httpx.Response(500, json={"error": "model overloaded"})

        async with _client(handler) as client:
            with pytest.raises(LLMRequestError) as exc_info:
                await _collect(HttpTextGenerator.from_config(CONFIG, client=client))

        assert exc_info.value.status_code == 500
        assert "model overloaded" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(LLMRequestError) as exc_info:
                await _collect(HttpTextGenerator.from_config(CONFIG, client=client))

        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_redirect_is_not_a_response(self):
        def handler(request):
            return httpx.Response(302, text="Redirecting to /login")

        async with _client(handler) as client:
            with pytest.raises(LLMRequestError) as exc_info:
                await _collect(HttpTextGenerator.from_config(CONFIG, client=client))

        assert exc_info.value.status_code == 302

    @pytest.mark.asyncio
    async def test_redirect_fails_the_node(self):
        async with _client(lambda request: httpx.Response(302, text="Redirecting")) as client:
            generator = HttpTextGenerator.from_config(CONFIG, client=client)
            node = FlowNode(id="a", prompt="hi")
            text = await NodeExecutor(generator, NullSink()).execute(node, [])

        assert text is None

    @pytest.mark.asyncio
    async def test_empty_body_yields_no_deltas(self):
        async with _client(lambda request: httpx.Response(200, text="")) as client:
            events = await _collect(HttpTextGenerator.from_config(CONFIG, client=client))

        assert not any(isinstance(e, TextDeltaEvent) for e in events)
        assert events[0] == TextEndEvent(full_text="")

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self):
        async with _client(lambda request: httpx.Response(200, text="x")) as client:
            generator = HttpTextGenerator.from_config(CONFIG, client=client)
            await generator.aclose()
            assert not client.is_closed

    @pytest.mark.asyncio
    async def test_owned_client_is_closed(self):
        generator = HttpTextGenerator.from_config(CONFIG)
        client = generator.client
        await generator.aclose()
        assert client.is_closed


# ---------------------------------------------------------------------------
# HttpBranchSelector
# ---------------------------------------------------------------------------
class TestHttpBranchSelector:
    @pytest.mark.asyncio
    async def test_posts_children_and_parses_choice(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"selectedChildId": "b", "reasoning": "closer fit"})

        async with _client(handler) as client:
            choice = await HttpBranchSelector.from_config(CONFIG, client=client).choose(
                MESSAGES, "pick one", CHILDREN
            )

        assert seen["url"] == "http://flows.test/api/choose-child"
        assert seen["body"] == {
            "messages": MESSAGES,
            "conditionPrompt": "pick one",
            "children": [
                {"id": "b", "label": "Bee", "prompt": "P_B"},
                {"id": "c", "label": "c", "prompt": ""},
            ],
        }
        assert choice.selected_child_id == "b"
        assert choice.reasoning == "closer fit"

    @pytest.mark.asyncio
    async def test_missing_reasoning_defaults_to_empty(self):
        def handler(request):
            return httpx.Response(200, json={"selectedChildId": "c"})

        async with _client(handler) as client:
            choice = await HttpBranchSelector.from_config(CONFIG, client=client).choose(
                MESSAGES, "pick", CHILDREN
            )
        assert choice.reasoning == ""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(400, json={"error": "No children provided"}),
            httpx.Response(302, json={"selectedChildId": "b"}),
            httpx.Response(200, text="not json"),
            httpx.Response(200, json={"reasoning": "forgot the id"}),
            httpx.Response(200, json=["b"]),
        ],
        ids=["status", "redirect", "not-json", "missing-id", "not-object"],
    )
    async def test_bad_responses_raise(self, response):
        async with _client(lambda request: response) as client:
            with pytest.raises(LLMRequestError):
                await HttpBranchSelector.from_config(CONFIG, client=client).choose(
                    MESSAGES, "pick", CHILDREN
                )

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with _client(handler) as client:
            with pytest.raises(LLMRequestError):
                await HttpBranchSelector.from_config(CONFIG, client=client).choose(
                    MESSAGES, "pick", CHILDREN
                )


def test_config_urls():
    assert CONFIG.generate_url == "http://flows.test/api/generate"
    assert CONFIG.choose_url == "http://flows.test/api/choose-child"
