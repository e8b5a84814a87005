"""Execution of a single immutable prompt spec."""

from __future__ import annotations

import dataclasses
import time
from collections.abc import AsyncIterator, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Literal, Union

import structlog

from agentweave.cache.base import Cache
from agentweave.cache.keys import generate_cache_key
from agentweave.config import get_settings
from agentweave.core.context import RunScope, call_hook, emit
from agentweave.core.exceptions import AgentWeaveError, TransportError
from agentweave.core.template import build_context, interpolate
from agentweave.core.tool_loop import ToolLoop
from agentweave.core.tools import ToolHandler, ToolRegistry
from agentweave.events.bus import EventBus
from agentweave.events.types import Event, PromptEnd, PromptStart, TokenReceived
from agentweave.llm.client import ModelClient, ModelRequest, Turn
from agentweave.models.base import elapsed_ms, generate_id
from agentweave.models.prompt import PromptExecutionResult, PromptSpec
from agentweave.models.tool import ToolDefinition
from agentweave.models.usage import TokenUsage

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StreamToken:
    """A text delta produced while streaming."""

    token: str
    type: Literal["token"] = "token"


@dataclass(frozen=True)
class StreamResult:
    """Terminal message of a stream, carrying the aggregate result."""

    result: PromptExecutionResult
    type: Literal["result"] = "result"


StreamMessage = Union[StreamToken, StreamResult]


def _detached(result: PromptExecutionResult, **changes: Any) -> PromptExecutionResult:
    """Copy *result* so cache entries never share lists with handed-out results."""
    return dataclasses.replace(
        result,
        tool_calls=list(result.tool_calls),
        mcp_events=list(result.mcp_events),
        **changes,
    )


class PromptExecutor:
    """Executes one prompt spec against one resolved model.

    A new executor is created for every execution: it binds the frozen spec,
    the resolved model and the input, and is discarded once its result has
    been consumed. :meth:`run` and :meth:`stream` never raise; failures are
    reported on ``result.error``.

    Tool calls are only supported by :meth:`run`. :meth:`stream` issues a
    single streaming call without tool definitions.
    """

    def __init__(
        self,
        spec: PromptSpec,
        resolved_model: str,
        input: Any = None,
        *,
        tools: ToolRegistry | Mapping[str, ToolHandler] | None = None,
        tool_definitions: Iterable[ToolDefinition] = (),
        bus: EventBus[Event] | None = None,
        scope: RunScope | None = None,
        max_output_tokens: int | None = None,
        cache: Cache | None = None,
        cache_ttl: float | None = None,
    ) -> None:
        self.id = generate_id()
        self.spec = spec
        self.resolved_model = resolved_model
        self.input = input
        self.max_output_tokens = max_output_tokens or get_settings().max_output_tokens
        self._tools = ToolRegistry.coerce(tools)
        self._tool_definitions = tuple(tool_definitions)
        self._bus = bus
        self._scope = scope or RunScope()
        self._cache = cache if spec.cacheable else None
        self._cache_ttl = cache_ttl
        self._log = logger.bind(prompt_id=self.id, prompt=spec.name, model=resolved_model)

    # ---- Rendering ----

    def render(self, input: Any) -> tuple[str | None, str]:
        """Interpolate the system and user templates against *input*."""
        context = build_context(input)
        system_text = interpolate(self.spec.system, context) if self.spec.system else None
        return system_text, interpolate(self.spec.user, context)

    def cache_key(self, input: Any) -> str:
        return generate_cache_key(self.spec.system, self.spec.user, self.resolved_model, input)

    # ---- Execution ----

    async def run(self, client: ModelClient) -> PromptExecutionResult:
        """Execute the prompt, running tool calls until the model is done."""
        started = time.monotonic()
        hooks = self.spec.hooks
        loop: ToolLoop | None = None
        processed = self.input
        start_emitted = False

        try:
            if hooks is not None and hooks.before_call is not None:
                processed = await call_hook(hooks.before_call, self.input)
            self._emit_start(processed)
            start_emitted = True

            cached = await self._cached_result(processed, started)
            if cached is not None:
                result = cached
            else:
                system_text, user_text = self.render(processed)
                loop = ToolLoop(
                    client,
                    model=self.resolved_model,
                    max_output_tokens=self.max_output_tokens,
                    prompt_id=self.id,
                    system_text=system_text,
                    tool_definitions=self._tool_payload(),
                    tools=self._tools,
                    hooks=hooks,
                    bus=self._bus,
                    scope=self._scope,
                )
                response = await loop.run(user_text)
                result = PromptExecutionResult(
                    content=response.text,
                    token_usage=loop.token_usage,
                    duration_ms=elapsed_ms(started),
                    tool_calls=list(loop.tool_calls),
                )
                await self._store(processed, result)

            if hooks is not None and hooks.after_call is not None:
                result = await call_hook(hooks.after_call, result)

        except Exception as exc:
            self._log.warning("prompt_failed", error=str(exc), error_type=type(exc).__name__)
            if not start_emitted:
                self._emit_start(processed)
            result = PromptExecutionResult(
                content="",
                token_usage=loop.token_usage if loop is not None else TokenUsage(),
                duration_ms=elapsed_ms(started),
                tool_calls=list(loop.tool_calls) if loop is not None else [],
                error=exc,
            )

        self._emit_end(result)
        return result

    async def stream(self, client: ModelClient) -> AsyncIterator[StreamMessage]:
        """Stream the prompt's response.

        Yields a :class:`StreamToken` per text delta as soon as it arrives,
        then exactly one :class:`StreamResult`. Token usage is taken from the
        stream's completion summary.
        """
        started = time.monotonic()
        hooks = self.spec.hooks
        processed = self.input
        start_emitted = False
        buffer: list[str] = []
        usage = TokenUsage()

        try:
            if hooks is not None and hooks.before_call is not None:
                processed = await call_hook(hooks.before_call, self.input)
            self._emit_start(processed)
            start_emitted = True

            system_text, user_text = self.render(processed)
            request = ModelRequest(
                model=self.resolved_model,
                max_output_tokens=self.max_output_tokens,
                turns=(Turn(role="user", content=user_text),),
                system_text=system_text,
            )
            try:
                model_stream = client.stream_complete(request)
                async for delta in model_stream:
                    if not delta.text:
                        continue
                    buffer.append(delta.text)
                    emit(
                        self._bus,
                        TokenReceived(**self._scope.keys(), prompt_id=self.id, token=delta.text),
                    )
                    yield StreamToken(token=delta.text)
                summary = await model_stream.final_summary()
            except AgentWeaveError:
                raise
            except Exception as exc:
                raise TransportError(self.resolved_model, str(exc)) from exc

            usage = dataclasses.replace(summary.token_usage)
            result = PromptExecutionResult(
                content="".join(buffer),
                token_usage=usage,
                duration_ms=elapsed_ms(started),
            )
            if hooks is not None and hooks.after_call is not None:
                result = await call_hook(hooks.after_call, result)

        except Exception as exc:
            self._log.warning("prompt_stream_failed", error=str(exc), tokens=len(buffer))
            if not start_emitted:
                self._emit_start(processed)
            result = PromptExecutionResult(
                content="".join(buffer),
                token_usage=usage,
                duration_ms=elapsed_ms(started),
                error=exc,
            )

        self._emit_end(result)
        yield StreamResult(result=result)

    # ---- Internals ----

    def _tool_payload(self) -> list[dict[str, Any]] | None:
        if not len(self._tools):
            return None
        return [d.to_request() for d in self._tools.definitions(self._tool_definitions)]

    async def _cached_result(self, input: Any, started: float) -> PromptExecutionResult | None:
        if self._cache is None:
            return None
        cached = await self._cache.get(self.cache_key(input))
        if cached is None:
            return None
        self._log.debug("prompt_cache_hit")
        return _detached(cached, cache_hit=True, duration_ms=elapsed_ms(started))

    async def _store(self, input: Any, result: PromptExecutionResult) -> None:
        if self._cache is not None:
            await self._cache.set(
                self.cache_key(input),
                _detached(result, cache_hit=False),
                self._cache_ttl,
            )

    def _emit_start(self, input: Any) -> None:
        self._log.debug("prompt_started")
        emit(
            self._bus,
            PromptStart(
                **self._scope.keys(),
                prompt_id=self.id,
                prompt_name=self.spec.name,
                spec_id=self.spec.id,
                input=input,
            ),
        )

    def _emit_end(self, result: PromptExecutionResult) -> None:
        self._log.debug(
            "prompt_finished",
            duration_ms=result.duration_ms,
            succeeded=result.succeeded,
            tool_calls=len(result.tool_calls),
        )
        emit(
            self._bus,
            PromptEnd(
                **self._scope.keys(),
                prompt_id=self.id,
                prompt_name=self.spec.name,
                spec_id=self.spec.id,
                result=result,
                duration_ms=result.duration_ms,
                token_usage=result.token_usage,
            ),
        )


# Name used by the wider API for a bound, single-use prompt execution.
PromptInstance = PromptExecutor
