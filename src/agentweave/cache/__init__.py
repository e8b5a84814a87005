"""Prompt result caching."""

from agentweave.cache.base import Cache
from agentweave.cache.keys import generate_cache_key
from agentweave.cache.memory import MemoryCache

__all__ = ["Cache", "MemoryCache", "generate_cache_key"]
