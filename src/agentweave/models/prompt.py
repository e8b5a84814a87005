"""Prompt specs, hooks and execution results."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union

from pydantic import Field

from agentweave.models.base import SpecModel, generate_id, utcnow
from agentweave.models.tool import ToolCallRecord
from agentweave.models.usage import TokenUsage


@dataclass
class McpEvent:
    """A Model Context Protocol event observed during a prompt execution."""

    type: str
    payload: Any
    parent_prompt_id: str
    id: str = field(default_factory=generate_id)
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class PromptExecutionResult:
    """Outcome of running a single prompt to completion."""

    content: str = ""
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    duration_ms: int = 0
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    mcp_events: list[McpEvent] = field(default_factory=list)
    error: BaseException | None = None
    cache_hit: bool | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


# Hooks may return a value directly or an awaitable resolving to it.
MaybeAwaitable = Union[Any, Awaitable[Any]]


class PromptHooks(SpecModel):
    """Optional callbacks invoked around a prompt execution.

    Attributes:
        before_call: ``(input) -> input``; transforms the input before
            interpolation.
        after_call: ``(result) -> result``; transforms the successful result.
        on_tool: ``(record) -> None``; called before each tool handler runs.
        on_mcp_event: ``(event) -> None``; called for protocol events.
        on_validation_error: ``(error, result) -> None``; reserved for output
            schema validation.
    """

    before_call: Callable[[Any], MaybeAwaitable] | None = None
    after_call: Callable[[PromptExecutionResult], MaybeAwaitable] | None = None
    on_tool: Callable[[ToolCallRecord], MaybeAwaitable] | None = None
    on_mcp_event: Callable[[McpEvent], MaybeAwaitable] | None = None
    on_validation_error: Callable[[BaseException, PromptExecutionResult], MaybeAwaitable] | None = None


class PromptSpec(SpecModel):
    """Immutable description of a single prompt.

    ``system`` and ``user`` are templates supporting ``{{path.to.value}}``
    placeholders resolved against the prompt input.
    """

    id: str = Field(default_factory=generate_id)
    name: str = Field(..., min_length=1)
    system: str | None = None
    user: str
    model: str | None = None
    cacheable: bool = False
    json_schema: dict[str, Any] | None = None
    hooks: PromptHooks | None = None
