"""Lifecycle events and the bus that carries them."""

from agentweave.events.bus import EventBus, Subscription
from agentweave.events.types import (
    AgentRunEnd,
    AgentRunStart,
    BaseEvent,
    Event,
    EventType,
    PromptEnd,
    PromptStart,
    ReflectionEnd,
    ReflectionStart,
    StepEnd,
    StepStart,
    TokenReceived,
    ToolCallEnd,
    ToolCallStart,
)

__all__ = [
    "EventBus",
    "Subscription",
    "BaseEvent",
    "Event",
    "EventType",
    "StepStart",
    "StepEnd",
    "AgentRunStart",
    "AgentRunEnd",
    "PromptStart",
    "PromptEnd",
    "TokenReceived",
    "ToolCallStart",
    "ToolCallEnd",
    "ReflectionStart",
    "ReflectionEnd",
]
