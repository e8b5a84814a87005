"""Custom exceptions for the execution engine."""

from __future__ import annotations


class AgentWeaveError(Exception):
    """Base exception for all agentweave errors."""


class ConfigurationError(AgentWeaveError):
    """Raised when no model can be resolved for a prompt."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message or "No model configured. Specify model on prompt, agent, or workflow."
        )


class ToolExecutionError(AgentWeaveError):
    """Error raised while executing a tool call."""

    def __init__(self, tool_name: str, message: str) -> None:
        self.tool_name = tool_name
        super().__init__(message)


class UnknownToolError(ToolExecutionError):
    """Raised when the model requests a tool that has no registered handler."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(tool_name, f"Unknown tool: {tool_name}")


class TransportError(AgentWeaveError):
    """Raised when a model call is rejected or fails in transit."""

    def __init__(self, model: str, message: str) -> None:
        self.model = model
        super().__init__(f"Model call to {model!r} failed: {message}")


class ValidationError(AgentWeaveError):
    """Raised when a prompt result does not match its output schema."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__(f"Validation failed: {'; '.join(errors)}")


class RetryExhaustedError(AgentWeaveError):
    """Raised when all retry attempts for a prompt have been exhausted."""

    def __init__(self, attempts: int, last_error: BaseException | None = None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(f"Retry exhausted after {attempts} attempt(s){detail}")


class WorkflowStateError(AgentWeaveError):
    """Raised on an invalid workflow state transition."""

    def __init__(self, workflow_id: str, current: str, target: str) -> None:
        self.workflow_id = workflow_id
        self.current_status = current
        self.target_status = target
        super().__init__(
            f"Workflow {workflow_id}: cannot transition from '{current}' to '{target}'"
        )
