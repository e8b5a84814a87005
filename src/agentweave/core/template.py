"""``{{path.to.value}}`` template interpolation."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

_PLACEHOLDER_RE = re.compile(r"\{\{([^}]+)\}\}")

_MISSING = object()


def build_context(value: Any) -> Mapping[str, Any]:
    """Return the interpolation context for a prompt input.

    Mappings are used as-is; any other value is exposed as ``input``.
    """
    if isinstance(value, Mapping):
        return value
    return {"input": value}


def _lookup(current: Any, key: str) -> Any:
    if isinstance(current, Mapping):
        return current[key] if key in current else _MISSING
    if isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
        if key.isdigit() and int(key) < len(current):
            return current[int(key)]
    return _MISSING


def resolve_path(context: Mapping[str, Any], path: str) -> Any:
    """Walk a dotted *path* through *context*.

    Returns ``None`` when any segment cannot be resolved.
    """
    current: Any = context
    for key in path.strip().split("."):
        current = _lookup(current, key)
        if current is _MISSING:
            return None
    return current


def interpolate(template: str, context: Mapping[str, Any]) -> str:
    """Substitute every ``{{path}}`` placeholder in *template*.

    A placeholder whose path cannot be fully resolved, or which resolves to
    ``None``, is left in the output exactly as written.
    """

    def _replace(match: re.Match[str]) -> str:
        value = resolve_path(context, match.group(1))
        if value is None:
            return match.group(0)
        return str(value)

    return _PLACEHOLDER_RE.sub(_replace, template)
