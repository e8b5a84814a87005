"""Cache interface for prompt results."""

from __future__ import annotations

from typing import Any, Protocol


class Cache(Protocol):
    """Async key/value store with optional per-entry TTL in seconds."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def clear(self) -> None: ...

    async def has(self, key: str) -> bool: ...
