"""Shared base classes and helpers for spec and result models."""

import time
from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel, ConfigDict


def generate_id() -> str:
    """Return a new random identifier."""
    return uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def elapsed_ms(started: float) -> int:
    """Milliseconds elapsed since the ``time.monotonic()`` reading *started*."""
    return int((time.monotonic() - started) * 1000)


class SpecModel(BaseModel):
    """Base for caller-authored specs.

    Specs are frozen once constructed: assigning to a field raises
    :class:`pydantic.ValidationError` and leaves the instance unchanged.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")
