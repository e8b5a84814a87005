"""Tool definitions and execution records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import Field

from agentweave.models.base import SpecModel


class ToolDefinition(SpecModel):
    """A tool advertised to the model, in the provider's tool format."""

    name: str = Field(..., min_length=1)
    description: str = ""
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
    )

    @classmethod
    def placeholder(cls, name: str) -> ToolDefinition:
        """Definition used for a registered handler with no explicit definition."""
        return cls(name=name, description=f"Tool: {name}")

    def to_request(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


@dataclass
class ToolCallRecord:
    """One tool invocation made during a prompt execution."""

    id: str
    tool_name: str
    input: Any
    parent_prompt_id: str
    output: Any = None
    error: BaseException | None = None
    duration_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.error is None
