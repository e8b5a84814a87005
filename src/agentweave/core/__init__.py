"""Core execution engine: prompts, agents, workflows and their state."""

from agentweave.core.agent import REFLECTION_PROMPT, Agent
from agentweave.core.context import RunScope
from agentweave.core.exceptions import (
    AgentWeaveError,
    ConfigurationError,
    RetryExhaustedError,
    ToolExecutionError,
    TransportError,
    UnknownToolError,
    ValidationError,
    WorkflowStateError,
)
from agentweave.core.observer import BaseObserver, LogEntry, WorkflowObserver
from agentweave.core.prompt import (
    PromptExecutor,
    PromptInstance,
    StreamMessage,
    StreamResult,
    StreamToken,
)
from agentweave.core.state import Status, can_transition
from agentweave.core.template import interpolate, resolve_path
from agentweave.core.tools import ToolHandler, ToolRegistry
from agentweave.core.tree import NodeType, WorkflowNode, WorkflowTree
from agentweave.core.workflow import AgentWorkflow, Workflow, WorkflowRunState

__all__ = [
    # Execution
    "Agent",
    "AgentWorkflow",
    "PromptExecutor",
    "PromptInstance",
    "REFLECTION_PROMPT",
    "RunScope",
    "StreamMessage",
    "StreamResult",
    "StreamToken",
    "Workflow",
    "WorkflowRunState",
    # Tools
    "ToolHandler",
    "ToolRegistry",
    # Templates
    "interpolate",
    "resolve_path",
    # State
    "Status",
    "can_transition",
    # Tree and observers
    "BaseObserver",
    "LogEntry",
    "NodeType",
    "WorkflowNode",
    "WorkflowObserver",
    "WorkflowTree",
    # Exceptions
    "AgentWeaveError",
    "ConfigurationError",
    "RetryExhaustedError",
    "ToolExecutionError",
    "TransportError",
    "UnknownToolError",
    "ValidationError",
    "WorkflowStateError",
]
