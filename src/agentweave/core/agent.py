"""Agent: ordered prompt execution with bounded retries and reflection."""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from agentweave.cache.base import Cache
from agentweave.core.context import RunScope, call_hook, emit
from agentweave.core.exceptions import ConfigurationError, RetryExhaustedError
from agentweave.core.prompt import PromptExecutor
from agentweave.core.tools import ToolHandler, ToolRegistry
from agentweave.events.bus import EventBus
from agentweave.events.types import AgentRunEnd, AgentRunStart, Event, ReflectionEnd, ReflectionStart
from agentweave.llm.client import ModelClient
from agentweave.models.agent import AgentRunResult, AgentSpec, ReflectionMetadata
from agentweave.models.base import elapsed_ms
from agentweave.models.prompt import PromptExecutionResult, PromptSpec
from agentweave.models.usage import aggregate_token_usage

logger = structlog.get_logger(__name__)

REFLECTION_PROMPT = PromptSpec(
    id="reflection",
    name="reflection",
    system=(
        "You are a helpful assistant tasked with analyzing a failed response and "
        "providing a corrected version.\n"
        "Analyze the error and the original output, then provide a corrected response."
    ),
    user=(
        "Original prompt: {{original_prompt}}\n\n"
        "Original response: {{original_result}}\n\n"
        "Error: {{error}}\n\n"
        "Please provide a corrected response that addresses the error."
    ),
)


@dataclass
class _RunState:
    """Mutable counters for a single :meth:`Agent.run` call."""

    retry_count: int = 0
    reflection: ReflectionMetadata | None = None


class Agent:
    """Runs an agent spec's prompts in order against a resolved model.

    Each prompt gets ``1 + max_retries`` attempts. When reflection is enabled
    a failed attempt that still has budget left is followed by one reflection
    pass; a successful reflection replaces the failed result. A prompt that
    is still failing once its budget is spent aborts the remaining prompts.

    :meth:`run` never raises: every failure is returned on ``result.error``.
    """

    def __init__(
        self,
        spec: AgentSpec,
        *,
        parent_model: str | None = None,
        tools: ToolRegistry | Mapping[str, ToolHandler] | None = None,
        bus: EventBus[Event] | None = None,
        scope: RunScope | None = None,
        reflection_model: str | None = None,
        max_output_tokens: int | None = None,
        cache: Cache | None = None,
        cache_ttl: float | None = None,
        cache_by_default: bool = False,
    ) -> None:
        self.id = spec.id
        self.name = spec.name
        self.spec = spec
        self.parent_model = parent_model
        self.reflection_model = reflection_model
        self.bus: EventBus[Event] = bus if bus is not None else EventBus(f"agent:{spec.name}")
        self._tools = ToolRegistry.coerce(tools)
        self._scope = (scope or RunScope()).child(agent_id=self.id)
        self._max_output_tokens = max_output_tokens
        self._cache = cache if spec.enable_cache or cache_by_default else None
        self._cache_ttl = cache_ttl
        self._log = logger.bind(agent=self.name, agent_id=self.id)

    def resolve_model(self, prompt_model: str | None = None) -> str:
        """Pick the model for a prompt: prompt, then agent, then inherited.

        Raises:
            ConfigurationError: If none of the three is set.
        """
        for candidate in (prompt_model, self.spec.model, self.parent_model):
            if candidate is not None:
                return candidate
        raise ConfigurationError()

    # ---- Run ----

    async def run(self, client: ModelClient, input: Any = None) -> AgentRunResult:
        """Execute every prompt of the agent in order."""
        started = time.monotonic()
        hooks = self.spec.hooks
        prompt_results: list[PromptExecutionResult] = []
        state = _RunState()
        processed = input
        start_emitted = False

        try:
            if hooks is not None and hooks.before_run is not None:
                processed = await call_hook(hooks.before_run, input)
            self._emit_start(processed)
            start_emitted = True

            for prompt in self.spec.prompts:
                result, exhausted = await self._run_prompt(client, prompt, processed, state)
                prompt_results.append(result)
                if result.error is not None and exhausted:
                    self._log.warning(
                        "agent_aborted",
                        prompt=prompt.name,
                        remaining=len(self.spec.prompts) - len(prompt_results),
                    )
                    break

            agent_result = AgentRunResult(
                prompt_results=prompt_results,
                token_usage=aggregate_token_usage(r.token_usage for r in prompt_results),
                total_duration_ms=elapsed_ms(started),
                retry_count=state.retry_count,
                error=next((r.error for r in prompt_results if r.error is not None), None),
                reflection_metadata=state.reflection,
            )
            if hooks is not None and hooks.after_run is not None:
                agent_result = await call_hook(hooks.after_run, agent_result)

        except Exception as exc:
            self._log.error("agent_run_failed", error=str(exc), error_type=type(exc).__name__)
            if not start_emitted:
                self._emit_start(processed)
            await self._notify_error(exc)
            agent_result = AgentRunResult(
                prompt_results=prompt_results,
                token_usage=aggregate_token_usage(r.token_usage for r in prompt_results),
                total_duration_ms=elapsed_ms(started),
                retry_count=state.retry_count,
                error=exc,
                reflection_metadata=state.reflection,
            )

        emit(
            self.bus,
            AgentRunEnd(
                **self._scope.keys(),
                agent_name=self.name,
                result=agent_result,
                duration_ms=agent_result.total_duration_ms,
                token_usage=agent_result.token_usage,
            ),
        )
        return agent_result

    async def _run_prompt(
        self,
        client: ModelClient,
        prompt: PromptSpec,
        agent_input: Any,
        state: _RunState,
    ) -> tuple[PromptExecutionResult, bool]:
        """Run one prompt with retries; returns the result and whether the
        retry budget was spent."""
        hooks = self.spec.hooks
        max_retries = self.spec.max_retries

        prompt_input = agent_input
        if hooks is not None and hooks.before_prompt is not None:
            prompt_input = await call_hook(hooks.before_prompt, prompt, agent_input)

        model = self.resolve_model(prompt.model)
        attempts = 0
        while True:
            executor = self._executor(prompt, model, prompt_input)
            result = await executor.run(client)
            if result.error is None:
                break

            attempts += 1
            state.retry_count += 1
            self._log.warning(
                "agent_prompt_failed",
                prompt=prompt.name,
                attempt=attempts,
                max_retries=max_retries,
                error=str(result.error),
            )
            if hooks is not None:
                await call_hook(hooks.on_error, result.error)

            if self.spec.enable_reflection and attempts <= max_retries:
                reflection_id, reflection = await self.reflect(
                    client, prompt, result, failed_prompt_id=executor.id
                )
                if reflection.error is None:
                    state.reflection = ReflectionMetadata(
                        original_error=result.error,
                        reflection_prompt_id=reflection_id,
                        reflection_result=reflection,
                    )
                    result = reflection
                    break

            if attempts > max_retries:
                self._log.error(
                    "agent_retries_exhausted",
                    prompt=prompt.name,
                    error=str(RetryExhaustedError(attempts, result.error)),
                )
                break

        if hooks is not None and hooks.after_prompt is not None:
            result = await call_hook(hooks.after_prompt, prompt, result)
        return result, attempts > max_retries

    # ---- Reflection ----

    async def reflect(
        self,
        client: ModelClient,
        prompt: PromptSpec,
        failed_result: PromptExecutionResult,
        *,
        failed_prompt_id: str,
        override_model: str | None = None,
    ) -> tuple[str, PromptExecutionResult]:
        """Run the built-in reflection prompt once over a failed result.

        Returns the reflection execution's id and its result. The reflection
        model is *override_model*, else the agent's reflection model, else the
        normal prompt/agent/inherited cascade.
        """
        model = override_model or self.reflection_model or self.resolve_model(prompt.model)
        executor = PromptExecutor(
            REFLECTION_PROMPT,
            model,
            {
                "original_prompt": prompt.user,
                "original_result": failed_result.content,
                "error": str(failed_result.error),
            },
            bus=self.bus,
            scope=self._scope,
            max_output_tokens=self._max_output_tokens,
        )
        self._log.info("agent_reflection_started", prompt=prompt.name, failed_prompt_id=failed_prompt_id)
        emit(
            self.bus,
            ReflectionStart(
                **self._scope.keys(),
                prompt_id=failed_prompt_id,
                reflection_prompt_id=executor.id,
                original_error=failed_result.error,
            ),
        )

        result = await executor.run(client)

        emit(
            self.bus,
            ReflectionEnd(
                **self._scope.keys(),
                prompt_id=failed_prompt_id,
                reflection_prompt_id=executor.id,
                result=result,
            ),
        )
        if self.spec.hooks is not None:
            await call_hook(self.spec.hooks.on_reflection, failed_result, result)
        self._log.info("agent_reflection_finished", prompt=prompt.name, succeeded=result.succeeded)
        return executor.id, result

    # ---- Internals ----

    def _executor(self, prompt: PromptSpec, model: str, prompt_input: Any) -> PromptExecutor:
        return PromptExecutor(
            prompt,
            model,
            prompt_input,
            tools=self._tools,
            tool_definitions=self.spec.tools,
            bus=self.bus,
            scope=self._scope,
            max_output_tokens=self._max_output_tokens,
            cache=self._cache,
            cache_ttl=self._cache_ttl,
        )

    def _emit_start(self, input: Any) -> None:
        self._log.info("agent_run_started", prompts=len(self.spec.prompts))
        emit(self.bus, AgentRunStart(**self._scope.keys(), agent_name=self.name, input=input))

    async def _notify_error(self, error: BaseException) -> None:
        if self.spec.hooks is None:
            return
        try:
            await call_hook(self.spec.hooks.on_error, error)
        except Exception as hook_exc:
            self._log.error("agent_on_error_hook_failed", error=str(hook_exc))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id}, name={self.name!r})"
