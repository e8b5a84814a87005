"""Model client protocol and implementations."""

from agentweave.llm.anthropic_client import AnthropicModelClient, AnthropicStream
from agentweave.llm.client import (
    STOP_TOOL_USE,
    ContentBlock,
    ModelClient,
    ModelRequest,
    ModelResponse,
    ModelStream,
    TextBlock,
    TextDelta,
    ToolResultBlock,
    ToolUseBlock,
    Turn,
)

__all__ = [
    "STOP_TOOL_USE",
    "AnthropicModelClient",
    "AnthropicStream",
    "ContentBlock",
    "ModelClient",
    "ModelRequest",
    "ModelResponse",
    "ModelStream",
    "TextBlock",
    "TextDelta",
    "ToolResultBlock",
    "ToolUseBlock",
    "Turn",
]
