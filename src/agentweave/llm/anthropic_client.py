"""Model client backed by the Anthropic Messages API."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import anthropic
import structlog

from agentweave.config import Settings, get_settings
from agentweave.core.exceptions import TransportError
from agentweave.llm.client import (
    ContentBlock,
    ModelRequest,
    ModelResponse,
    TextBlock,
    TextDelta,
    ToolUseBlock,
)
from agentweave.models.usage import TokenUsage

logger = structlog.get_logger(__name__)


def _request_params(request: ModelRequest, *, include_max_tokens: bool = True) -> dict[str, Any]:
    params: dict[str, Any] = {
        "model": request.model,
        "messages": [turn.to_request() for turn in request.turns],
    }
    if include_max_tokens:
        params["max_tokens"] = request.max_output_tokens
    if request.system_text is not None:
        params["system"] = request.system_text
    if request.tool_definitions:
        params["tools"] = list(request.tool_definitions)
    return params


def _to_response(message: Any) -> ModelResponse:
    """Translate an SDK ``Message`` into a :class:`ModelResponse`."""
    blocks: list[ContentBlock] = []
    for block in message.content:
        if block.type == "text":
            blocks.append(TextBlock(text=block.text))
        elif block.type == "tool_use":
            blocks.append(ToolUseBlock(id=block.id, name=block.name, input=block.input))

    usage = message.usage
    return ModelResponse(
        content_blocks=blocks,
        stop_reason=message.stop_reason,
        token_usage=TokenUsage(
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            cache_creation_input_tokens=getattr(usage, "cache_creation_input_tokens", None),
            cache_read_input_tokens=getattr(usage, "cache_read_input_tokens", None),
        ),
        id=message.id,
    )


class AnthropicStream:
    """Single-use wrapper around ``messages.stream``.

    Iterating yields :class:`TextDelta` items; once iteration finishes
    :meth:`final_summary` returns the completed message.
    """

    def __init__(self, client: anthropic.AsyncAnthropic, request: ModelRequest) -> None:
        self._client = client
        self._request = request
        self._final: ModelResponse | None = None
        self._consumed = False

    async def __aiter__(self) -> AsyncIterator[TextDelta]:
        if self._consumed:
            raise RuntimeError("Stream has already been consumed")
        self._consumed = True
        try:
            async with self._client.messages.stream(**_request_params(self._request)) as stream:
                async for event in stream:
                    if event.type == "content_block_delta" and event.delta.type == "text_delta":
                        yield TextDelta(text=event.delta.text)
                self._final = _to_response(await stream.get_final_message())
        except anthropic.APIError as exc:
            raise TransportError(self._request.model, str(exc)) from exc

    async def final_summary(self) -> ModelResponse:
        if self._final is None:
            raise RuntimeError("Stream has not completed")
        return self._final


class AnthropicModelClient:
    """:class:`~agentweave.llm.client.ModelClient` over ``AsyncAnthropic``.

    Timeouts and transport-level retries are enforced here, by the SDK.
    """

    def __init__(
        self,
        api_key: str | None = None,
        max_retries: int | None = None,
        settings: Settings | None = None,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._client = client or anthropic.AsyncAnthropic(
            api_key=api_key or settings.anthropic_api_key or None,
            max_retries=settings.client_max_retries if max_retries is None else max_retries,
            timeout=anthropic.Timeout(settings.request_timeout, connect=settings.connect_timeout),
        )
        self._log = logger.bind(client="anthropic")

    async def complete(self, request: ModelRequest) -> ModelResponse:
        self._log.debug("model_request", model=request.model, turns=len(request.turns))
        try:
            message = await self._client.messages.create(**_request_params(request))
        except anthropic.APIError as exc:
            self._log.warning("model_request_failed", model=request.model, error=str(exc))
            raise TransportError(request.model, str(exc)) from exc
        return _to_response(message)

    def stream_complete(self, request: ModelRequest) -> AnthropicStream:
        self._log.debug("model_stream_request", model=request.model)
        return AnthropicStream(self._client, request)

    async def count_tokens(self, request: ModelRequest) -> int:
        """Count the input tokens *request* would consume."""
        try:
            result = await self._client.messages.count_tokens(
                **_request_params(request, include_max_tokens=False)
            )
        except anthropic.APIError as exc:
            raise TransportError(request.model, str(exc)) from exc
        return result.input_tokens

    @property
    def raw_client(self) -> anthropic.AsyncAnthropic:
        return self._client
