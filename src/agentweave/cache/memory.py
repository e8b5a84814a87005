"""In-process cache implementation."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any


@dataclass
class _Entry:
    value: Any
    expires_at: float | None = None

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now > self.expires_at


class MemoryCache:
    """Dict-backed :class:`~agentweave.cache.base.Cache`.

    Expired entries are dropped lazily, on the next read of their key.
    """

    def __init__(self) -> None:
        self._store: dict[str, _Entry] = {}

    def _live_entry(self, key: str) -> _Entry | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.expired(time.monotonic()):
            del self._store[key]
            return None
        return entry

    async def get(self, key: str) -> Any | None:
        entry = self._live_entry(key)
        return entry.value if entry is not None else None

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        expires_at = time.monotonic() + ttl if ttl else None
        self._store[key] = _Entry(value=value, expires_at=expires_at)

    async def delete(self, key: str) -> bool:
        return self._store.pop(key, None) is not None

    async def clear(self) -> None:
        self._store.clear()

    async def has(self, key: str) -> bool:
        return self._live_entry(key) is not None

    @property
    def size(self) -> int:
        return len(self._store)
