"""HTTP collaborators for the generation service.

Two endpoints are used:

- ``POST {base}/generate`` with ``{"messages": [...]}`` answers with a plain
  text stream; the concatenated fragments are the final answer.
- ``POST {base}/choose-child`` with ``{"messages", "conditionPrompt",
  "children"}`` answers with ``{"selectedChildId", "reasoning"}``.

Transport errors and non-success statuses are raised as LLMRequestError so
the executor can contain them per node.
"""

import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from branchflow.config import FlowConfig
from branchflow.llm.provider import (
    BranchChild,
    BranchChoice,
    BranchSelector,
    LLMRequestError,
    TextGenerator,
)
from branchflow.llm.stream_events import FinishEvent, StreamEvent, TextDeltaEvent, TextEndEvent

logger = logging.getLogger(__name__)


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        return str(payload.get("error") or payload.get("message") or payload)
    return str(payload)


class _HttpCollaborator:
    """Owns an httpx.AsyncClient, created lazily unless one is injected."""

    def __init__(
        self,
        url: str,
        timeout: float,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class HttpTextGenerator(_HttpCollaborator, TextGenerator):
    """
    Streams answers from the ``/generate`` endpoint.

    Example:
        generator = HttpTextGenerator.from_config(FlowConfig())
        async for event in generator.stream([{"role": "user", "content": "hi"}]):
            ...
    """

    @classmethod
    def from_config(
        cls, config: FlowConfig, client: httpx.AsyncClient | None = None
    ) -> "HttpTextGenerator":
        return cls(url=config.generate_url, timeout=config.timeout_seconds, client=client)

    async def stream(self, messages: list[dict[str, Any]]) -> AsyncIterator[StreamEvent]:
        accumulated = ""
        try:
            async with self.client.stream("POST", self.url, json={"messages": messages}) as res:
                if not res.is_success:
                    await res.aread()
                    raise LLMRequestError(
                        f"API request failed: {res.status_code} {_error_detail(res)}",
                        status_code=res.status_code,
                    )
                async for chunk in res.aiter_text():
                    if not chunk:
                        continue
                    accumulated += chunk
                    yield TextDeltaEvent(content=chunk, snapshot=accumulated)
                status_code = res.status_code
        except httpx.HTTPError as e:
            raise LLMRequestError(f"API request failed: {e}") from e

        yield TextEndEvent(full_text=accumulated)
        yield FinishEvent(stop_reason="stop", status_code=status_code)


class HttpBranchSelector(_HttpCollaborator, BranchSelector):
    """Asks the ``/choose-child`` endpoint which child to continue into."""

    @classmethod
    def from_config(
        cls, config: FlowConfig, client: httpx.AsyncClient | None = None
    ) -> "HttpBranchSelector":
        return cls(url=config.choose_url, timeout=config.timeout_seconds, client=client)

    async def choose(
        self,
        messages: list[dict[str, Any]],
        condition_prompt: str,
        children: list[BranchChild],
    ) -> BranchChoice:
        body = {
            "messages": messages,
            "conditionPrompt": condition_prompt,
            "children": [c.to_dict() for c in children],
        }
        try:
            res = await self.client.post(self.url, json=body)
        except httpx.HTTPError as e:
            raise LLMRequestError(f"Branch selection request failed: {e}") from e

        if not res.is_success:
            raise LLMRequestError(
                f"Branch selection request failed: {res.status_code} {_error_detail(res)}",
                status_code=res.status_code,
            )

        try:
            payload = res.json()
        except ValueError as e:
            raise LLMRequestError("Branch selection response is not JSON") from e
        if not isinstance(payload, dict) or not payload.get("selectedChildId"):
            raise LLMRequestError(f"Branch selection response missing selectedChildId: {payload}")

        logger.debug(f"choose-child answered {payload.get('selectedChildId')}")
        return BranchChoice(
            selected_child_id=str(payload["selectedChildId"]),
            reasoning=str(payload.get("reasoning") or ""),
        )
