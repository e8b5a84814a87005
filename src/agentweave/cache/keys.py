"""Stable cache keys for prompt executions."""

import hashlib
import json
from typing import Any


def generate_cache_key(
    system_text: str | None,
    user_template: str,
    resolved_model: str,
    input: Any,
) -> str:
    """SHA-256 hex digest of the canonical JSON form of the key fields."""
    payload = json.dumps(
        {
            "system": system_text,
            "user": user_template,
            "model": resolved_model,
            "input": input,
        },
        sort_keys=True,
        default=str,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
