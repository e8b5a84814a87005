"""Workflow and step specs and run results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from pydantic import Field

from agentweave.models.agent import AgentRunResult, AgentSpec
from agentweave.models.base import SpecModel, generate_id
from agentweave.models.usage import TokenUsage

LogLevel = Literal["debug", "info", "warn", "error", "silent"]


class StepSpec(SpecModel):
    """A named group of agents run one after another."""

    id: str = Field(default_factory=generate_id)
    name: str | None = None
    agents: tuple[AgentSpec, ...] = Field(..., min_length=1)

    @property
    def display_name(self) -> str:
        return self.name or f"step-{self.id}"


class WorkflowSpec(SpecModel):
    """Declarative definition of an agent workflow."""

    id: str = Field(default_factory=generate_id)
    name: str = "AgentWorkflow"
    steps: tuple[StepSpec, ...] = Field(..., min_length=1)
    default_model: str | None = None
    enable_cache: bool = False
    log_level: LogLevel = "info"


@dataclass
class StepRunResult:
    """Results of every agent that ran in one step."""

    step_id: str
    step_name: str
    agent_results: list[AgentRunResult] = field(default_factory=list)
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    duration_ms: int = 0

    @property
    def error(self) -> BaseException | None:
        """The first agent error in this step, if any."""
        for result in self.agent_results:
            if result.error is not None:
                return result.error
        return None


@dataclass
class WorkflowRunResult:
    """Aggregate outcome of a workflow run."""

    step_results: list[StepRunResult] = field(default_factory=list)
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    total_duration_ms: int = 0
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None
