"""Workflow observer protocol and log entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from agentweave.models.base import generate_id, utcnow
from agentweave.models.usage import TokenUsage

if TYPE_CHECKING:
    from agentweave.core.tree import WorkflowNode
    from agentweave.events.types import Event


@dataclass
class LogEntry:
    """A single workflow-scoped log record delivered to observers."""

    workflow_id: str
    level: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=generate_id)
    timestamp: datetime = field(default_factory=utcnow)
    step_id: str | None = None
    agent_id: str | None = None
    prompt_id: str | None = None
    tool_id: str | None = None
    token_usage: TokenUsage | None = None
    retry_count: int | None = None


class WorkflowObserver(Protocol):
    """Receives workflow notifications synchronously. Must not block."""

    def on_log(self, entry: LogEntry) -> None: ...

    def on_event(self, event: Event) -> None: ...

    def on_state_updated(self, node: WorkflowNode) -> None: ...

    def on_tree_changed(self, root: WorkflowNode) -> None: ...


class BaseObserver:
    """Observer with no-op handlers; override the ones you need."""

    def on_log(self, entry: LogEntry) -> None:
        pass

    def on_event(self, event: Event) -> None:
        pass

    def on_state_updated(self, node: WorkflowNode) -> None:
        pass

    def on_tree_changed(self, root: WorkflowNode) -> None:
        pass
