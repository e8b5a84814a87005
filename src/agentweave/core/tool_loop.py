"""Agentic loop: call the model until it stops requesting tools."""

from __future__ import annotations

import json
import time
from collections.abc import Sequence
from typing import Any

import structlog

from agentweave.core.context import RunScope, call_hook, emit
from agentweave.core.exceptions import AgentWeaveError, TransportError, UnknownToolError
from agentweave.core.tools import ToolRegistry
from agentweave.events.bus import EventBus
from agentweave.events.types import Event, ToolCallEnd, ToolCallStart
from agentweave.llm.client import (
    ModelClient,
    ModelRequest,
    ModelResponse,
    ToolResultBlock,
    ToolUseBlock,
    Turn,
)
from agentweave.models.base import elapsed_ms, generate_id
from agentweave.models.prompt import PromptHooks
from agentweave.models.tool import ToolCallRecord
from agentweave.models.usage import TokenUsage, aggregate_token_usage

logger = structlog.get_logger(__name__)


def _encode_output(output: Any) -> str:
    try:
        return json.dumps(output)
    except (TypeError, ValueError):
        return str(output)


class ToolLoop:
    """Drives repeated model calls while the model requests tool use.

    A loop is owned by a single prompt execution and used once. Token usage
    and tool-call records accumulate on the instance as the loop progresses,
    so partial progress remains readable if a call fails mid-loop.
    """

    def __init__(
        self,
        client: ModelClient,
        *,
        model: str,
        max_output_tokens: int,
        prompt_id: str,
        system_text: str | None = None,
        tool_definitions: Sequence[dict[str, Any]] | None = None,
        tools: ToolRegistry | None = None,
        hooks: PromptHooks | None = None,
        bus: EventBus[Event] | None = None,
        scope: RunScope | None = None,
    ) -> None:
        self._client = client
        self._model = model
        self._max_output_tokens = max_output_tokens
        self._prompt_id = prompt_id
        self._system_text = system_text
        self._tool_definitions = tuple(tool_definitions) if tool_definitions else None
        self._tools = tools or ToolRegistry()
        self._hooks = hooks
        self._bus = bus
        self._scope = scope or RunScope()
        self._log = logger.bind(prompt_id=prompt_id, model=model)

        self.turns: list[Turn] = []
        self.tool_calls: list[ToolCallRecord] = []
        self.token_usage = TokenUsage()
        self.model_calls = 0

    async def run(self, user_text: str) -> ModelResponse:
        """Run the loop from a single user turn and return the last response."""
        self.turns.append(Turn(role="user", content=user_text))
        response = await self._call_model()

        while response.requests_tool_use:
            results = [await self._execute_tool(block) for block in response.tool_uses]
            self.turns.append(Turn(role="assistant", content=tuple(response.content_blocks)))
            self.turns.append(Turn(role="user", content=tuple(results)))
            response = await self._call_model()

        return response

    async def _call_model(self) -> ModelResponse:
        request = ModelRequest(
            model=self._model,
            max_output_tokens=self._max_output_tokens,
            turns=tuple(self.turns),
            system_text=self._system_text,
            tool_definitions=self._tool_definitions,
        )
        try:
            response = await self._client.complete(request)
        except AgentWeaveError:
            raise
        except Exception as exc:
            raise TransportError(self._model, str(exc)) from exc

        self.model_calls += 1
        self.token_usage = aggregate_token_usage([self.token_usage, response.token_usage])
        self._log.debug(
            "model_call_completed",
            call=self.model_calls,
            stop_reason=response.stop_reason,
            input_tokens=response.token_usage.input_tokens,
            output_tokens=response.token_usage.output_tokens,
        )
        return response

    async def _execute_tool(self, block: ToolUseBlock) -> ToolResultBlock:
        tool_id = generate_id()
        started = time.monotonic()
        emit(
            self._bus,
            ToolCallStart(
                **self._scope.keys(),
                tool_id=tool_id,
                tool_name=block.name,
                parent_prompt_id=self._prompt_id,
                input=block.input,
            ),
        )

        output: Any = None
        error: BaseException | None = None
        handler = self._tools.get(block.name)
        if handler is None:
            error = UnknownToolError(block.name)
        else:
            try:
                if self._hooks is not None:
                    await call_hook(
                        self._hooks.on_tool,
                        ToolCallRecord(
                            id=tool_id,
                            tool_name=block.name,
                            input=block.input,
                            parent_prompt_id=self._prompt_id,
                        ),
                    )
                output = await call_hook(handler, block.input)
            except Exception as exc:
                error = exc

        duration = elapsed_ms(started)
        if error is not None:
            self._log.warning("tool_call_failed", tool=block.name, tool_id=tool_id, error=str(error))
        else:
            self._log.debug("tool_call_completed", tool=block.name, tool_id=tool_id, duration_ms=duration)

        emit(
            self._bus,
            ToolCallEnd(
                **self._scope.keys(),
                tool_id=tool_id,
                tool_name=block.name,
                parent_prompt_id=self._prompt_id,
                duration_ms=duration,
                output=output,
                error=error,
            ),
        )
        self.tool_calls.append(
            ToolCallRecord(
                id=tool_id,
                tool_name=block.name,
                input=block.input,
                parent_prompt_id=self._prompt_id,
                output=output,
                error=error,
                duration_ms=duration,
            )
        )
        return ToolResultBlock(
            tool_use_id=block.id,
            content=str(error) if error is not None else _encode_output(output),
            is_error=error is not None,
        )
