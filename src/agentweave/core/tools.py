"""Read-only registry of tool handlers."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Any

from agentweave.models.tool import ToolDefinition

ToolHandler = Callable[[Any], Awaitable[Any]]


class ToolRegistry:
    """Registry mapping tool names to async handlers.

    The registry is fixed at construction and shared by reference into every
    prompt execution. Use :meth:`with_tool` to derive an extended copy.
    """

    def __init__(self, handlers: Mapping[str, ToolHandler] | None = None) -> None:
        self._handlers: Mapping[str, ToolHandler] = MappingProxyType(dict(handlers or {}))

    def get(self, name: str) -> ToolHandler | None:
        return self._handlers.get(name)

    def has(self, name: str) -> bool:
        return name in self._handlers

    @property
    def names(self) -> list[str]:
        return list(self._handlers.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

    def with_tool(self, name: str, handler: ToolHandler) -> ToolRegistry:
        """Return a new registry with *handler* added under *name*."""
        return ToolRegistry({**self._handlers, name: handler})

    def definitions(self, explicit: Iterable[ToolDefinition] = ()) -> list[ToolDefinition]:
        """Tool definitions to advertise to the model.

        Explicit definitions are used for tools that have a handler; every
        other handler gets a placeholder definition.
        """
        by_name = {d.name: d for d in explicit if d.name in self._handlers}
        return [by_name.get(name) or ToolDefinition.placeholder(name) for name in self._handlers]

    @classmethod
    def coerce(cls, value: ToolRegistry | Mapping[str, ToolHandler] | None) -> ToolRegistry:
        if isinstance(value, ToolRegistry):
            return value
        return cls(value)
