"""Lifecycle event taxonomy.

Every execution layer reports progress as one of the frozen event classes
below. Start/end pairs bracket a lifecycle and share the identifying keys
needed to correlate them and to rebuild the execution tree afterwards:

* step events carry ``workflow_id`` and ``step_id``
* agent events add ``agent_id``
* prompt and token events add ``prompt_id``
* tool events add ``tool_id`` and ``parent_prompt_id``
* reflection events carry the failed ``prompt_id`` and the
  ``reflection_prompt_id`` of the corrective run
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, ClassVar, Union

from agentweave.models.agent import AgentRunResult
from agentweave.models.base import utcnow
from agentweave.models.prompt import PromptExecutionResult
from agentweave.models.usage import TokenUsage


class EventType(str, enum.Enum):
    """Discriminator for :data:`Event`."""

    STEP_START = "step_start"
    STEP_END = "step_end"
    AGENT_RUN_START = "agent_run_start"
    AGENT_RUN_END = "agent_run_end"
    PROMPT_START = "prompt_start"
    PROMPT_END = "prompt_end"
    TOKEN_RECEIVED = "token_received"
    TOOL_CALL_START = "tool_call_start"
    TOOL_CALL_END = "tool_call_end"
    REFLECTION_START = "reflection_start"
    REFLECTION_END = "reflection_end"


@dataclass(frozen=True, kw_only=True)
class BaseEvent:
    """Correlation keys shared by every event."""

    type: ClassVar[EventType]

    workflow_id: str | None = None
    step_id: str | None = None
    agent_id: str | None = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Shallow dict of the event fields plus its ``type`` tag."""
        data: dict[str, Any] = {"type": self.type.value}
        for f in fields(self):
            data[f.name] = getattr(self, f.name)
        return data


# ---------------------------------------------------------------------------
# Step
# ---------------------------------------------------------------------------

@dataclass(frozen=True, kw_only=True)
class StepStart(BaseEvent):
    type: ClassVar[EventType] = EventType.STEP_START

    step_name: str


@dataclass(frozen=True, kw_only=True)
class StepEnd(BaseEvent):
    type: ClassVar[EventType] = EventType.STEP_END

    step_name: str
    duration_ms: int
    token_usage: TokenUsage
    agent_results: tuple[AgentRunResult, ...] = ()
    error: BaseException | None = None


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------

@dataclass(frozen=True, kw_only=True)
class AgentRunStart(BaseEvent):
    type: ClassVar[EventType] = EventType.AGENT_RUN_START

    agent_name: str
    input: Any = None


@dataclass(frozen=True, kw_only=True)
class AgentRunEnd(BaseEvent):
    type: ClassVar[EventType] = EventType.AGENT_RUN_END

    agent_name: str
    result: AgentRunResult
    duration_ms: int
    token_usage: TokenUsage


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

@dataclass(frozen=True, kw_only=True)
class PromptStart(BaseEvent):
    type: ClassVar[EventType] = EventType.PROMPT_START

    prompt_id: str
    prompt_name: str
    spec_id: str | None = None
    input: Any = None


@dataclass(frozen=True, kw_only=True)
class PromptEnd(BaseEvent):
    type: ClassVar[EventType] = EventType.PROMPT_END

    prompt_id: str
    prompt_name: str
    result: PromptExecutionResult
    duration_ms: int
    token_usage: TokenUsage
    spec_id: str | None = None


@dataclass(frozen=True, kw_only=True)
class TokenReceived(BaseEvent):
    type: ClassVar[EventType] = EventType.TOKEN_RECEIVED

    prompt_id: str
    token: str


# ---------------------------------------------------------------------------
# Tool
# ---------------------------------------------------------------------------

@dataclass(frozen=True, kw_only=True)
class ToolCallStart(BaseEvent):
    type: ClassVar[EventType] = EventType.TOOL_CALL_START

    tool_id: str
    tool_name: str
    parent_prompt_id: str
    input: Any = None


@dataclass(frozen=True, kw_only=True)
class ToolCallEnd(BaseEvent):
    type: ClassVar[EventType] = EventType.TOOL_CALL_END

    tool_id: str
    tool_name: str
    parent_prompt_id: str
    duration_ms: int
    output: Any = None
    error: BaseException | None = None


# ---------------------------------------------------------------------------
# Reflection
# ---------------------------------------------------------------------------

@dataclass(frozen=True, kw_only=True)
class ReflectionStart(BaseEvent):
    type: ClassVar[EventType] = EventType.REFLECTION_START

    prompt_id: str
    reflection_prompt_id: str
    original_error: BaseException | None = None


@dataclass(frozen=True, kw_only=True)
class ReflectionEnd(BaseEvent):
    type: ClassVar[EventType] = EventType.REFLECTION_END

    prompt_id: str
    reflection_prompt_id: str
    result: PromptExecutionResult


Event = Union[
    StepStart,
    StepEnd,
    AgentRunStart,
    AgentRunEnd,
    PromptStart,
    PromptEnd,
    TokenReceived,
    ToolCallStart,
    ToolCallEnd,
    ReflectionStart,
    ReflectionEnd,
]
