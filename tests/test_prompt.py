"""Tests for prompt execution, the tool loop and streaming."""

from __future__ import annotations

import json
from typing import Any

import pydantic
import pytest

from agentweave.cache.memory import MemoryCache
from agentweave.core.context import RunScope
from agentweave.core.exceptions import TransportError, UnknownToolError
from agentweave.core.prompt import PromptExecutor, StreamResult, StreamToken
from agentweave.core.tools import ToolRegistry
from agentweave.events.types import (
    EventType,
    PromptEnd,
    PromptStart,
    TokenReceived,
    ToolCallEnd,
    ToolCallStart,
)
from agentweave.llm.client import ToolResultBlock, ToolUseBlock
from agentweave.models.prompt import PromptHooks, PromptSpec
from agentweave.models.tool import ToolDefinition

from conftest import MockModelClient, text_response, tool_response


def _spec(**overrides: Any) -> PromptSpec:
    fields: dict[str, Any] = {
        "name": "summarize",
        "system": "You summarize text about {{topic}}.",
        "user": "Summarize: {{text}}",
    }
    fields.update(overrides)
    return PromptSpec(**fields)


async def _lookup(payload: dict[str, Any]) -> dict[str, Any]:
    return {"answer": payload["q"].upper()}


# ---------------------------------------------------------------------------
# Basic execution
# ---------------------------------------------------------------------------


async def test_run_renders_templates_and_returns_content():
    client = MockModelClient(text_response("short summary", input_tokens=12, output_tokens=4))
    executor = PromptExecutor(_spec(), "model-a", {"topic": "birds", "text": "Birds fly."})

    result = await executor.run(client)

    assert result.succeeded
    assert result.content == "short summary"
    assert (result.token_usage.input_tokens, result.token_usage.output_tokens) == (12, 4)
    assert result.tool_calls == []

    request = client.requests[0]
    assert request.model == "model-a"
    assert request.system_text == "You summarize text about birds."
    assert request.turns[0].content == "Summarize: Birds fly."
    assert request.tool_definitions is None


async def test_run_without_system_prompt():
    client = MockModelClient(text_response())
    await PromptExecutor(_spec(system=None, user="Hi {{input}}"), "m", "there").run(client)
    assert client.requests[0].system_text is None
    assert client.requests[0].turns[0].content == "Hi there"


async def test_explicit_max_output_tokens_is_sent():
    client = MockModelClient(text_response())
    await PromptExecutor(_spec(), "m", {}, max_output_tokens=123).run(client)
    assert client.requests[0].max_output_tokens == 123


async def test_each_executor_has_fresh_id():
    spec = _spec()
    assert PromptExecutor(spec, "m").id != PromptExecutor(spec, "m").id


def test_prompt_spec_is_immutable():
    spec = _spec()
    with pytest.raises(pydantic.ValidationError):
        spec.user = "changed"  # type: ignore[misc]
    assert spec.user == "Summarize: {{text}}"


def test_prompt_spec_requires_name():
    with pytest.raises(pydantic.ValidationError):
        PromptSpec(name="", user="x")


# ---------------------------------------------------------------------------
# Tool loop
# ---------------------------------------------------------------------------


async def test_tool_loop_runs_until_model_stops_requesting_tools():
    client = MockModelClient(
        tool_response(("call-1", "lookup", {"q": "a"}), text="Let me check."),
        tool_response(("call-2", "lookup", {"q": "b"})),
        text_response("final answer"),
    )
    tools = ToolRegistry({"lookup": _lookup})

    result = await PromptExecutor(_spec(), "m", {}, tools=tools).run(client)

    assert result.succeeded
    assert result.content == "final answer"
    assert len(client.requests) == 3
    assert [c.output for c in result.tool_calls] == [{"answer": "A"}, {"answer": "B"}]
    assert all(c.parent_prompt_id for c in result.tool_calls)
    assert (result.token_usage.input_tokens, result.token_usage.output_tokens) == (30, 15)

    last_turns = client.requests[-1].turns
    assert [t.role for t in last_turns] == ["user", "assistant", "user", "assistant", "user"]
    assistant_blocks = last_turns[1].content
    assert isinstance(assistant_blocks[-1], ToolUseBlock)
    tool_result = last_turns[2].content[0]
    assert isinstance(tool_result, ToolResultBlock)
    assert tool_result.tool_use_id == "call-1"
    assert json.loads(tool_result.content) == {"answer": "A"}
    assert tool_result.is_error is False


async def test_tool_definitions_sent_only_with_registered_tools():
    client = MockModelClient(text_response())
    tools = ToolRegistry({"lookup": _lookup})
    explicit = (ToolDefinition(name="lookup", description="Look something up"),)

    await PromptExecutor(_spec(), "m", {}, tools=tools, tool_definitions=explicit).run(client)

    assert client.requests[0].tool_definitions == (
        {
            "name": "lookup",
            "description": "Look something up",
            "input_schema": {"type": "object", "properties": {}},
        },
    )


async def test_multiple_tool_calls_in_one_response_run_in_order():
    order: list[str] = []

    async def record(payload: dict[str, Any]) -> str:
        order.append(payload["q"])
        return payload["q"]

    client = MockModelClient(
        tool_response(("c1", "record", {"q": "first"}), ("c2", "record", {"q": "second"})),
        text_response("done"),
    )
    result = await PromptExecutor(_spec(), "m", {}, tools={"record": record}).run(client)

    assert order == ["first", "second"]
    results = client.requests[1].turns[2].content
    assert [r.tool_use_id for r in results] == ["c1", "c2"]


async def test_unknown_tool_is_reported_to_model():
    client = MockModelClient(
        tool_response(("c1", "missing", {})),
        text_response("recovered"),
    )
    result = await PromptExecutor(_spec(), "m", {}, tools={"lookup": _lookup}).run(client)

    assert result.succeeded
    assert result.content == "recovered"
    record = result.tool_calls[0]
    assert isinstance(record.error, UnknownToolError)
    assert str(record.error) == "Unknown tool: missing"
    block = client.requests[1].turns[2].content[0]
    assert block.is_error is True
    assert block.content == "Unknown tool: missing"


async def test_handler_exception_is_recorded_not_raised():
    async def broken(payload: Any) -> Any:
        raise ValueError("bad input")

    client = MockModelClient(tool_response(("c1", "broken", 1)), text_response("ok"))
    result = await PromptExecutor(_spec(), "m", {}, tools={"broken": broken}).run(client)

    assert result.succeeded
    assert isinstance(result.tool_calls[0].error, ValueError)
    assert client.requests[1].turns[2].content[0].content == "bad input"


async def test_non_json_tool_output_is_stringified():
    class Opaque:
        def __str__(self) -> str:
            return "<opaque>"

    async def opaque(payload: Any) -> Opaque:
        return Opaque()

    client = MockModelClient(tool_response(("c1", "opaque", None)), text_response())
    await PromptExecutor(_spec(), "m", {}, tools={"opaque": opaque}).run(client)
    assert client.requests[1].turns[2].content[0].content == "<opaque>"


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


async def test_transport_failure_becomes_error_result(recorded_events):
    bus, events = recorded_events
    client = MockModelClient(RuntimeError("connection reset"))

    result = await PromptExecutor(_spec(), "m", {}, bus=bus).run(client)

    assert not result.succeeded
    assert isinstance(result.error, TransportError)
    assert isinstance(result.error.__cause__, RuntimeError)
    assert result.content == ""
    assert [type(e) for e in events] == [PromptStart, PromptEnd]
    assert events[1].result is result


async def test_failure_mid_loop_keeps_partial_progress():
    client = MockModelClient(
        tool_response(("c1", "lookup", {"q": "x"})),
        RuntimeError("overloaded"),
    )
    result = await PromptExecutor(_spec(), "m", {}, tools={"lookup": _lookup}).run(client)

    assert isinstance(result.error, TransportError)
    assert len(result.tool_calls) == 1
    assert result.token_usage.input_tokens == 10


async def test_before_call_failure_still_emits_start_and_end(recorded_events):
    bus, events = recorded_events

    def explode(value: Any) -> Any:
        raise KeyError("nope")

    spec = _spec(hooks=PromptHooks(before_call=explode))
    client = MockModelClient(text_response())
    result = await PromptExecutor(spec, "m", {}, bus=bus).run(client)

    assert isinstance(result.error, KeyError)
    assert client.requests == []
    assert [e.type for e in events] == [EventType.PROMPT_START, EventType.PROMPT_END]


# ---------------------------------------------------------------------------
# Hooks and events
# ---------------------------------------------------------------------------


async def test_hooks_transform_input_and_result():
    seen_records: list[Any] = []

    async def before(value: dict[str, Any]) -> dict[str, Any]:
        return {**value, "text": value["text"].upper()}

    def after(result: Any) -> Any:
        result.content = result.content + "!"
        return result

    hooks = PromptHooks(before_call=before, after_call=after, on_tool=seen_records.append)
    client = MockModelClient(tool_response(("c1", "lookup", {"q": "z"})), text_response("done"))

    result = await PromptExecutor(
        _spec(hooks=hooks), "m", {"topic": "t", "text": "quiet"}, tools={"lookup": _lookup}
    ).run(client)

    assert client.requests[0].turns[0].content == "Summarize: QUIET"
    assert result.content == "done!"
    assert len(seen_records) == 1
    assert seen_records[0].tool_name == "lookup"
    assert seen_records[0].output is None
    assert seen_records[0].duration_ms == 0


async def test_events_are_correlated(recorded_events):
    bus, events = recorded_events
    scope = RunScope(workflow_id="wf", step_id="s1", agent_id="a1")
    client = MockModelClient(tool_response(("c1", "lookup", {"q": "z"})), text_response())

    executor = PromptExecutor(_spec(), "m", {}, tools={"lookup": _lookup}, bus=bus, scope=scope)
    await executor.run(client)

    assert [type(e) for e in events] == [PromptStart, ToolCallStart, ToolCallEnd, PromptEnd]
    assert all(e.workflow_id == "wf" and e.agent_id == "a1" for e in events)
    assert events[0].prompt_id == executor.id
    assert events[0].spec_id == executor.spec.id
    assert events[1].parent_prompt_id == executor.id
    assert events[1].tool_id == events[2].tool_id
    assert events[2].output == {"answer": "Z"}


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------


async def test_cacheable_prompt_served_from_cache():
    cache = MemoryCache()
    spec = _spec(cacheable=True)
    client = MockModelClient(text_response("cached text"))

    first = await PromptExecutor(spec, "m", {"text": "a"}, cache=cache).run(client)
    second = await PromptExecutor(spec, "m", {"text": "a"}, cache=cache).run(client)

    assert len(client.requests) == 1
    assert first.cache_hit is None
    assert second.cache_hit is True
    assert second.content == "cached text"


async def test_cached_result_is_isolated_from_hook_mutation():
    def drop_tool_calls(result: Any) -> Any:
        result.tool_calls.clear()
        return result

    cache = MemoryCache()
    spec = _spec(cacheable=True, hooks=PromptHooks(after_call=drop_tool_calls))
    client = MockModelClient(
        tool_response(("tu_1", "lookup", {"q": "x"})),
        text_response("done"),
    )
    tools = {"lookup": _lookup}

    first = await PromptExecutor(spec, "m", {"text": "a"}, tools=tools, cache=cache).run(client)
    second = await PromptExecutor(spec, "m", {"text": "a"}, tools=tools, cache=cache).run(client)
    plain = await PromptExecutor(_spec(cacheable=True), "m", {"text": "a"}, cache=cache).run(client)

    assert first.tool_calls == []
    assert second.cache_hit is True
    assert second.tool_calls == []
    assert plain.cache_hit is True
    assert [call.tool_name for call in plain.tool_calls] == ["lookup"]
    assert len(client.requests) == 2


async def test_non_cacheable_prompt_ignores_cache():
    cache = MemoryCache()
    client = MockModelClient(text_response())
    await PromptExecutor(_spec(), "m", {}, cache=cache).run(client)
    await PromptExecutor(_spec(), "m", {}, cache=cache).run(client)
    assert len(client.requests) == 2
    assert cache.size == 0


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


async def test_stream_yields_tokens_then_result(recorded_events):
    bus, events = recorded_events
    client = MockModelClient()
    executor = PromptExecutor(_spec(), "m", {"text": "x"}, bus=bus)

    messages = [m async for m in executor.stream(client)]

    assert messages[:-1] == [StreamToken("Hel"), StreamToken("lo")]
    final = messages[-1]
    assert isinstance(final, StreamResult)
    assert final.result.content == "Hello"
    assert final.result.token_usage.input_tokens == 7
    assert final.result.succeeded
    assert client.requests[0].tool_definitions is None

    tokens = [e.token for e in events if isinstance(e, TokenReceived)]
    assert tokens == ["Hel", "lo"]
    assert isinstance(events[0], PromptStart)
    assert isinstance(events[-1], PromptEnd)


async def test_stream_failure_keeps_partial_content():
    client = MockModelClient()
    client.stream_error = RuntimeError("stream dropped")

    messages = [m async for m in PromptExecutor(_spec(), "m", {}).stream(client)]

    final = messages[-1]
    assert isinstance(final, StreamResult)
    assert final.result.content == "Hello"
    assert isinstance(final.result.error, TransportError)
    assert sum(isinstance(m, StreamResult) for m in messages) == 1
