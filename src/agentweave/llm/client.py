"""Model client protocol and the request/response shapes it exchanges."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, Union

from agentweave.models.usage import TokenUsage

STOP_TOOL_USE = "tool_use"


@dataclass(frozen=True)
class TextBlock:
    text: str
    type: Literal["text"] = "text"

    def to_request(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True)
class ToolUseBlock:
    id: str
    name: str
    input: Any = None
    type: Literal["tool_use"] = "tool_use"

    def to_request(self) -> dict[str, Any]:
        return {"type": self.type, "id": self.id, "name": self.name, "input": self.input}


@dataclass(frozen=True)
class ToolResultBlock:
    tool_use_id: str
    content: str
    is_error: bool = False
    type: Literal["tool_result"] = "tool_result"

    def to_request(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "tool_use_id": self.tool_use_id,
            "content": self.content,
        }
        if self.is_error:
            data["is_error"] = True
        return data


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock]


@dataclass(frozen=True)
class Turn:
    """One conversation turn: plain text or a list of content blocks."""

    role: Literal["user", "assistant"]
    content: str | tuple[ContentBlock, ...]

    def to_request(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [b.to_request() for b in self.content]}


@dataclass(frozen=True)
class ModelRequest:
    model: str
    max_output_tokens: int
    turns: tuple[Turn, ...]
    system_text: str | None = None
    tool_definitions: tuple[dict[str, Any], ...] | None = None


@dataclass
class ModelResponse:
    content_blocks: list[ContentBlock]
    stop_reason: str | None
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    id: str = ""

    @property
    def requests_tool_use(self) -> bool:
        return self.stop_reason == STOP_TOOL_USE

    @property
    def text(self) -> str:
        """Newline-joined text of every text block."""
        return "\n".join(b.text for b in self.content_blocks if isinstance(b, TextBlock))

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.content_blocks if isinstance(b, ToolUseBlock)]


@dataclass(frozen=True)
class TextDelta:
    """An incremental piece of streamed text."""

    text: str


class ModelStream(Protocol):
    """A single-use stream of deltas followed by a completion summary."""

    def __aiter__(self) -> AsyncIterator[TextDelta]: ...

    async def final_summary(self) -> ModelResponse: ...


class ModelClient(Protocol):
    """Thin request/response wrapper around a completion API."""

    async def complete(self, request: ModelRequest) -> ModelResponse: ...

    def stream_complete(self, request: ModelRequest) -> ModelStream: ...
