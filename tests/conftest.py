"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from typing import Any

import pytest

from agentweave.events.bus import EventBus
from agentweave.llm.client import (
    STOP_TOOL_USE,
    ModelRequest,
    ModelResponse,
    TextBlock,
    TextDelta,
    ToolUseBlock,
)
from agentweave.models.usage import TokenUsage


# ---------------------------------------------------------------------------
# Response builders
# ---------------------------------------------------------------------------


def text_response(text: str = "ok", input_tokens: int = 10, output_tokens: int = 5) -> ModelResponse:
    """A final assistant response carrying *text*."""
    return ModelResponse(
        content_blocks=[TextBlock(text=text)],
        stop_reason="end_turn",
        token_usage=TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens),
    )


def tool_response(
    *calls: tuple[str, str, Any],
    text: str | None = None,
    input_tokens: int = 10,
    output_tokens: int = 5,
) -> ModelResponse:
    """A response requesting one tool call per ``(id, name, input)`` tuple."""
    blocks: list[Any] = [TextBlock(text=text)] if text else []
    blocks += [ToolUseBlock(id=id_, name=name, input=input_) for id_, name, input_ in calls]
    return ModelResponse(
        content_blocks=blocks,
        stop_reason=STOP_TOOL_USE,
        token_usage=TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens),
    )


# ---------------------------------------------------------------------------
# MockModelClient
# ---------------------------------------------------------------------------


class MockStream:
    """Scripted stream: yields *chunks*, then optionally raises *error*."""

    def __init__(
        self,
        chunks: Iterable[str],
        usage: TokenUsage,
        error: Exception | None = None,
    ) -> None:
        self.chunks = list(chunks)
        self.usage = usage
        self.error = error

    async def __aiter__(self) -> AsyncIterator[TextDelta]:
        for chunk in self.chunks:
            yield TextDelta(text=chunk)
        if self.error is not None:
            raise self.error

    async def final_summary(self) -> ModelResponse:
        return ModelResponse(
            content_blocks=[TextBlock(text="".join(self.chunks))],
            stop_reason="end_turn",
            token_usage=self.usage,
        )


class MockModelClient:
    """Test double for a model client that replays scripted outcomes.

    Each call to ``complete`` consumes the next scripted item: a
    :class:`ModelResponse` is returned, an exception is raised. When the
    script runs out, the last item is repeated. Every request is recorded.
    """

    def __init__(self, *script: ModelResponse | Exception) -> None:
        self.script = list(script) or [text_response()]
        self.requests: list[ModelRequest] = []
        self.stream_chunks: list[str] = ["Hel", "lo"]
        self.stream_usage = TokenUsage(input_tokens=7, output_tokens=2)
        self.stream_error: Exception | None = None

    @property
    def models(self) -> list[str]:
        return [r.model for r in self.requests]

    async def complete(self, request: ModelRequest) -> ModelResponse:
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self.script) - 1)
        item = self.script[index]
        if isinstance(item, Exception):
            raise item
        return item

    def stream_complete(self, request: ModelRequest) -> MockStream:
        self.requests.append(request)
        return MockStream(self.stream_chunks, self.stream_usage, self.stream_error)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def make_client():
    """Factory fixture: call with scripted outcomes to get a MockModelClient."""

    def _factory(*script: ModelResponse | Exception) -> MockModelClient:
        return MockModelClient(*script)

    return _factory


@pytest.fixture
def mock_client() -> MockModelClient:
    """Client that always answers ``"ok"``."""
    return MockModelClient(text_response("ok"))


@pytest.fixture
def recorded_events():
    """A bus together with the list of every event published on it."""
    bus: EventBus[Any] = EventBus("test")
    events: list[Any] = []
    bus.subscribe(events.append)
    return bus, events
