"""Token usage accounting."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any


@dataclass
class TokenUsage:
    """Token counts reported for one or more model calls.

    The cache counters stay ``None`` unless a provider reported them.
    """

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int | None = None
    cache_read_input_tokens: int | None = None

    def to_dict(self) -> dict[str, int]:
        data = {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens}
        if self.cache_creation_input_tokens is not None:
            data["cache_creation_input_tokens"] = self.cache_creation_input_tokens
        if self.cache_read_input_tokens is not None:
            data["cache_read_input_tokens"] = self.cache_read_input_tokens
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenUsage:
        return cls(
            input_tokens=int(data.get("input_tokens", 0)),
            output_tokens=int(data.get("output_tokens", 0)),
            cache_creation_input_tokens=data.get("cache_creation_input_tokens"),
            cache_read_input_tokens=data.get("cache_read_input_tokens"),
        )


def empty_token_usage() -> TokenUsage:
    """Return a zeroed usage record."""
    return TokenUsage()


def aggregate_token_usage(usages: Iterable[TokenUsage]) -> TokenUsage:
    """Sum usages element-wise.

    Cache counters are only populated when at least one contributor reports
    a non-zero value for them.
    """
    total = TokenUsage()
    for usage in usages:
        total.input_tokens += usage.input_tokens
        total.output_tokens += usage.output_tokens
        if usage.cache_creation_input_tokens:
            total.cache_creation_input_tokens = (
                (total.cache_creation_input_tokens or 0) + usage.cache_creation_input_tokens
            )
        if usage.cache_read_input_tokens:
            total.cache_read_input_tokens = (
                (total.cache_read_input_tokens or 0) + usage.cache_read_input_tokens
            )
    return total


def format_token_usage(usage: TokenUsage) -> str:
    """Render usage as ``"in: X, out: Y"`` plus any cache counters."""
    parts = [f"in: {usage.input_tokens}", f"out: {usage.output_tokens}"]
    if usage.cache_creation_input_tokens:
        parts.append(f"cache-create: {usage.cache_creation_input_tokens}")
    if usage.cache_read_input_tokens:
        parts.append(f"cache-read: {usage.cache_read_input_tokens}")
    return ", ".join(parts)


def estimate_cost(
    usage: TokenUsage,
    input_cost_per_1m: float = 3.0,
    output_cost_per_1m: float = 15.0,
) -> float:
    """Estimate the USD cost of *usage* from per-million-token prices."""
    input_cost = usage.input_tokens / 1_000_000 * input_cost_per_1m
    output_cost = usage.output_tokens / 1_000_000 * output_cost_per_1m
    return input_cost + output_cost
