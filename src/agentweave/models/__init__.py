"""Spec and result models."""

from agentweave.models.agent import AgentHooks, AgentRunResult, AgentSpec, ReflectionMetadata
from agentweave.models.base import SpecModel, generate_id
from agentweave.models.prompt import McpEvent, PromptExecutionResult, PromptHooks, PromptSpec
from agentweave.models.tool import ToolCallRecord, ToolDefinition
from agentweave.models.usage import (
    TokenUsage,
    aggregate_token_usage,
    empty_token_usage,
    estimate_cost,
    format_token_usage,
)
from agentweave.models.workflow import (
    LogLevel,
    StepRunResult,
    StepSpec,
    WorkflowRunResult,
    WorkflowSpec,
)

__all__ = [
    # Specs
    "SpecModel",
    "PromptSpec",
    "PromptHooks",
    "AgentSpec",
    "AgentHooks",
    "StepSpec",
    "WorkflowSpec",
    "ToolDefinition",
    "LogLevel",
    # Results
    "PromptExecutionResult",
    "ToolCallRecord",
    "McpEvent",
    "AgentRunResult",
    "ReflectionMetadata",
    "StepRunResult",
    "WorkflowRunResult",
    # Token usage
    "TokenUsage",
    "aggregate_token_usage",
    "empty_token_usage",
    "estimate_cost",
    "format_token_usage",
    # Helpers
    "generate_id",
]
