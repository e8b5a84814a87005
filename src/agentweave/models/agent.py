"""Agent specs, hooks and run results."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import Field

from agentweave.models.base import SpecModel, generate_id
from agentweave.models.prompt import MaybeAwaitable, PromptExecutionResult, PromptSpec
from agentweave.models.tool import ToolDefinition
from agentweave.models.usage import TokenUsage


@dataclass
class ReflectionMetadata:
    """Records a reflection pass that replaced a failed prompt result."""

    original_error: BaseException
    reflection_prompt_id: str
    reflection_result: PromptExecutionResult


@dataclass
class AgentRunResult:
    """Aggregate outcome of running every prompt of an agent."""

    prompt_results: list[PromptExecutionResult] = field(default_factory=list)
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    total_duration_ms: int = 0
    retry_count: int = 0
    error: BaseException | None = None
    reflection_metadata: ReflectionMetadata | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class AgentHooks(SpecModel):
    """Optional callbacks invoked around an agent run.

    Attributes:
        before_run: ``(input) -> input``.
        after_run: ``(result) -> result``.
        before_prompt: ``(prompt_spec, input) -> input``.
        after_prompt: ``(prompt_spec, result) -> result``.
        on_error: ``(error) -> None``; called once per failed attempt and for
            unexpected run failures.
        on_reflection: ``(failed_result, reflection_result) -> None``.
    """

    before_run: Callable[[Any], MaybeAwaitable] | None = None
    after_run: Callable[[AgentRunResult], MaybeAwaitable] | None = None
    before_prompt: Callable[[PromptSpec, Any], MaybeAwaitable] | None = None
    after_prompt: Callable[[PromptSpec, PromptExecutionResult], MaybeAwaitable] | None = None
    on_error: Callable[[BaseException], MaybeAwaitable] | None = None
    on_reflection: Callable[
        [PromptExecutionResult, PromptExecutionResult], MaybeAwaitable
    ] | None = None


class AgentSpec(SpecModel):
    """Immutable description of an agent and its ordered prompts."""

    id: str = Field(default_factory=generate_id)
    name: str = Field(..., min_length=1)
    model: str | None = None
    prompts: tuple[PromptSpec, ...] = Field(..., min_length=1)
    tools: tuple[ToolDefinition, ...] = ()
    enable_reflection: bool = False
    max_retries: int = Field(default=0, ge=0)
    enable_cache: bool = False
    hooks: AgentHooks | None = None
