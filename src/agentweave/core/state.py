"""Workflow status state machine."""

from __future__ import annotations

import enum


class Status(str, enum.Enum):
    """Unified status enum for workflows and execution-tree nodes."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (Status.COMPLETED, Status.FAILED, Status.CANCELLED)


# Valid state transitions for workflows. CANCELLED is only ever entered
# through Workflow.cancel(); the engine never cancels on its own.
_WORKFLOW_TRANSITIONS: dict[Status, set[Status]] = {
    Status.IDLE: {Status.RUNNING, Status.CANCELLED},
    Status.RUNNING: {Status.COMPLETED, Status.FAILED, Status.CANCELLED},
    Status.COMPLETED: {Status.RUNNING},  # re-run
    Status.FAILED: {Status.RUNNING},  # retry
}

# Execution-tree nodes below the workflow root only move forward.
_NODE_TRANSITIONS: dict[Status, set[Status]] = {
    Status.IDLE: {Status.RUNNING, Status.CANCELLED},
    Status.RUNNING: {Status.COMPLETED, Status.FAILED, Status.CANCELLED},
}


def can_transition(current: Status, target: Status, *, is_node: bool = False) -> bool:
    """Check whether a state transition is valid."""
    table = _NODE_TRANSITIONS if is_node else _WORKFLOW_TRANSITIONS
    return target in table.get(current, set())
