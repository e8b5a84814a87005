"""Correlation scope and hook invocation helpers."""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import asdict, dataclass, replace
from typing import Any

from agentweave.events.bus import EventBus
from agentweave.events.types import Event


@dataclass(frozen=True)
class RunScope:
    """Identifiers of the workflow, step and agent an execution belongs to."""

    workflow_id: str | None = None
    step_id: str | None = None
    agent_id: str | None = None

    def child(self, **changes: str | None) -> RunScope:
        return replace(self, **changes)

    def keys(self) -> dict[str, str | None]:
        """Scope as keyword arguments for an event constructor."""
        return asdict(self)


async def call_hook(hook: Callable[..., Any] | None, *args: Any) -> Any:
    """Invoke an optional hook, awaiting its result when it is awaitable."""
    if hook is None:
        return None
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def emit(bus: EventBus[Event] | None, event: Event) -> None:
    if bus is not None:
        bus.publish(event)
