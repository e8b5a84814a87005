"""Workflow execution with status state machine and step orchestration."""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from agentweave.cache.base import Cache
from agentweave.config import Settings, get_settings
from agentweave.core.agent import Agent
from agentweave.core.context import RunScope, emit
from agentweave.core.exceptions import WorkflowStateError
from agentweave.core.observer import LogEntry, WorkflowObserver
from agentweave.core.state import Status, can_transition
from agentweave.core.tools import ToolHandler, ToolRegistry
from agentweave.core.tree import NodeType, WorkflowNode, WorkflowTree
from agentweave.events.bus import EventBus, Subscription
from agentweave.events.types import (
    AgentRunEnd,
    AgentRunStart,
    Event,
    PromptEnd,
    PromptStart,
    ReflectionEnd,
    ReflectionStart,
    StepEnd,
    StepStart,
    TokenReceived,
    ToolCallEnd,
    ToolCallStart,
)
from agentweave.llm.client import ModelClient
from agentweave.models.agent import AgentRunResult
from agentweave.models.base import elapsed_ms, generate_id, utcnow
from agentweave.models.usage import aggregate_token_usage
from agentweave.models.workflow import (
    LogLevel,
    StepRunResult,
    StepSpec,
    WorkflowRunResult,
    WorkflowSpec,
)

logger = structlog.get_logger(__name__)

_LOG_LEVELS: dict[str, int] = {"debug": 10, "info": 20, "warn": 30, "error": 40, "silent": 100}
_STRUCTLOG_METHODS = {"debug": "debug", "info": "info", "warn": "warning", "error": "error"}


# ---------------------------------------------------------------------------
# Workflow base
# ---------------------------------------------------------------------------

class Workflow:
    """Node of an observable workflow tree.

    Owns a status state machine (idle -> running -> completed | failed |
    cancelled), an event bus, the observers attached to it and the execution
    tree arena. A workflow created with ``parent`` shares the parent's arena,
    attaches its root node under the parent's node, and forwards its events
    to the parent's bus.
    """

    def __init__(
        self,
        name: str,
        *,
        parent: Workflow | None = None,
        log_level: LogLevel = "info",
    ) -> None:
        self.id = generate_id()
        self.name = name
        self.parent = parent
        self.log_level = log_level
        self.bus: EventBus[Event] = EventBus(f"workflow:{name}")
        self._observers: list[tuple[WorkflowObserver, Subscription[Event]]] = []
        self._open_nodes: dict[tuple[NodeType, str], str] = {}
        self._log = logger.bind(workflow=name, workflow_id=self.id)

        self.node = WorkflowNode(id=self.id, name=name, node_type=NodeType.WORKFLOW)
        if parent is None:
            self.tree = WorkflowTree(self.node)
        else:
            self.tree = parent.tree
            self.tree.attach(self.node, parent.node.id)

        # The tracker subscribes first so observers see an up-to-date tree.
        self.bus.subscribe(self._track)
        if parent is not None:
            self.bus.subscribe(parent.bus.publish)
            parent._notify_tree_changed()

    # ---- Status ----

    @property
    def status(self) -> Status:
        return self.node.status

    def set_status(self, target: Status) -> None:
        """Move the workflow to *target*.

        Raises:
            WorkflowStateError: If the transition is not allowed.
        """
        if not can_transition(self.status, target):
            raise WorkflowStateError(self.id, self.status.value, target.value)
        self.node.status = target
        self._notify("on_state_updated", self.node)

    def cancel(self) -> None:
        """Mark the workflow cancelled. Never triggered by the engine itself."""
        self.set_status(Status.CANCELLED)
        self.log("info", "workflow_cancelled")

    # ---- Observers ----

    def add_observer(self, observer: WorkflowObserver) -> Callable[[], None]:
        """Attach *observer*; returns a callable that detaches it."""
        subscription = self.bus.subscribe(observer.on_event)
        self._observers.append((observer, subscription))
        return lambda: self.remove_observer(observer)

    def remove_observer(self, observer: WorkflowObserver) -> None:
        for idx, (existing, subscription) in enumerate(self._observers):
            if existing is observer:
                subscription.unsubscribe()
                del self._observers[idx]
                return

    def emit_event(self, event: Event) -> None:
        emit(self.bus, event)

    # ---- Logging ----

    def log(self, level: str, message: str, **data: Any) -> LogEntry | None:
        """Record a workflow-scoped log entry and deliver it to observers.

        Entries below the workflow's log level are dropped.
        """
        if _LOG_LEVELS[level] < _LOG_LEVELS[self.log_level]:
            return None
        ids = {key: data.pop(key, None) for key in ("step_id", "agent_id", "prompt_id", "tool_id")}
        token_usage = data.pop("token_usage", None)
        retry_count = data.pop("retry_count", None)
        entry = LogEntry(
            workflow_id=self.id,
            level=level,
            message=message,
            data=data,
            token_usage=token_usage,
            retry_count=retry_count,
            **ids,
        )
        self.node.logs.append(entry)
        getattr(self._log, _STRUCTLOG_METHODS[level])(
            message, **{k: v for k, v in ids.items() if v is not None}, retry_count=retry_count, **data
        )
        self._notify("on_log", entry)
        return entry

    # ---- State snapshot ----

    def state(self) -> dict[str, Any]:
        """Serializable state captured by :meth:`snapshot`."""
        return {}

    def snapshot(self) -> dict[str, Any]:
        """Store the current state on the workflow node and return it."""
        snapshot = {
            "workflow_id": self.id,
            "name": self.name,
            "status": self.status.value,
            "taken_at": utcnow().isoformat(),
            "state": self.state(),
        }
        self.node.state_snapshot = snapshot
        self._notify("on_state_updated", self.node)
        return snapshot

    # ---- Execution tree ----

    def _track(self, event: Event) -> None:
        """Mirror an event of this workflow into the execution tree."""
        if event.workflow_id != self.id:
            return
        self.node.events.append(event)

        if isinstance(event, StepStart):
            self._open(NodeType.STEP, event.step_id, event.step_name, self.node.id, event)
        elif isinstance(event, StepEnd):
            self._close(NodeType.STEP, event.step_id, event, event.error is None, event.token_usage)
        elif isinstance(event, AgentRunStart):
            parent = self._open_nodes.get((NodeType.STEP, event.step_id), self.node.id)
            self._open(NodeType.AGENT, event.agent_id, event.agent_name, parent, event)
        elif isinstance(event, AgentRunEnd):
            self._close(
                NodeType.AGENT, event.agent_id, event, event.result.error is None, event.token_usage
            )
        elif isinstance(event, PromptStart):
            parent = (
                self._open_nodes.get((NodeType.AGENT, event.agent_id))
                or self._open_nodes.get((NodeType.STEP, event.step_id))
                or self.node.id
            )
            self._open(NodeType.PROMPT, event.prompt_id, event.prompt_name, parent, event)
        elif isinstance(event, PromptEnd):
            node = self._close(
                NodeType.PROMPT, event.prompt_id, event, event.result.error is None, event.token_usage
            )
            if node is not None:
                node.tool_calls = list(event.result.tool_calls)
        elif isinstance(event, ToolCallStart):
            parent = self._open_nodes.get((NodeType.PROMPT, event.parent_prompt_id), self.node.id)
            self._open(NodeType.TOOL, event.tool_id, event.tool_name, parent, event)
        elif isinstance(event, ToolCallEnd):
            self._close(NodeType.TOOL, event.tool_id, event, event.error is None)
        elif isinstance(event, TokenReceived):
            self._append(NodeType.PROMPT, event.prompt_id, event)
        elif isinstance(event, (ReflectionStart, ReflectionEnd)):
            self._append(NodeType.AGENT, event.agent_id, event)

    def _open(
        self,
        node_type: NodeType,
        ref_id: str | None,
        name: str,
        parent_id: str,
        event: Event,
    ) -> None:
        if ref_id is None:
            return
        node = WorkflowNode(
            id=generate_id(),
            name=name,
            node_type=node_type,
            ref_id=ref_id,
            status=Status.RUNNING,
            events=[event],
        )
        self.tree.attach(node, parent_id)
        self._open_nodes[(node_type, ref_id)] = node.id
        self._notify_tree_changed()

    def _close(
        self,
        node_type: NodeType,
        ref_id: str | None,
        event: Event,
        succeeded: bool,
        token_usage: Any = None,
    ) -> WorkflowNode | None:
        node_id = self._open_nodes.pop((node_type, ref_id), None) if ref_id else None
        if node_id is None:
            return None
        node = self.tree.get(node_id)
        node.events.append(event)
        target = Status.COMPLETED if succeeded else Status.FAILED
        if can_transition(node.status, target, is_node=True):
            node.status = target
        if token_usage is not None:
            node.token_usage = token_usage
        self._notify("on_state_updated", node)
        return node

    def _append(self, node_type: NodeType, ref_id: str | None, event: Event) -> None:
        node_id = self._open_nodes.get((node_type, ref_id)) if ref_id else None
        if node_id is not None:
            self.tree.get(node_id).events.append(event)

    # ---- Notification ----

    def _notify(self, method: str, arg: Any) -> None:
        for observer, _ in list(self._observers):
            try:
                getattr(observer, method)(arg)
            except Exception as exc:
                self._log.warning("observer_failed", observer=repr(observer), hook=method, error=str(exc))

    def _notify_tree_changed(self) -> None:
        workflow: Workflow | None = self
        while workflow is not None:
            workflow._notify("on_tree_changed", self.tree.root)
            workflow = workflow.parent

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id}, name={self.name!r}, status={self.status.value})"


# ---------------------------------------------------------------------------
# Agent workflow
# ---------------------------------------------------------------------------

@dataclass
class WorkflowRunState:
    """Progress of the current or last run."""

    start_time: datetime | None = None
    end_time: datetime | None = None
    current_step_index: int = 0
    is_running: bool = False


class AgentWorkflow(Workflow):
    """Runs the steps of a :class:`WorkflowSpec` in declared order.

    Agents inside a step run one after another; the first failing agent stops
    its step, and the first failing step stops the workflow. :meth:`run`
    never raises.
    """

    def __init__(
        self,
        spec: WorkflowSpec,
        *,
        client: ModelClient | None = None,
        tools: ToolRegistry | Mapping[str, ToolHandler] | None = None,
        parent: Workflow | None = None,
        cache: Cache | None = None,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(spec.name, parent=parent, log_level=spec.log_level)
        self.spec = spec
        self._settings = settings or get_settings()
        self._client = client
        self._tools = ToolRegistry.coerce(tools)
        self._cache = cache
        self.default_model = spec.default_model or self._settings.default_model
        self.run_state = WorkflowRunState()

    @property
    def client(self) -> ModelClient:
        """The model client; an Anthropic client is created on first use."""
        if self._client is None:
            from agentweave.llm.anthropic_client import AnthropicModelClient

            self._client = AnthropicModelClient(settings=self._settings)
        return self._client

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    def state(self) -> dict[str, Any]:
        rs = self.run_state
        return {
            "start_time": rs.start_time.isoformat() if rs.start_time else None,
            "end_time": rs.end_time.isoformat() if rs.end_time else None,
            "current_step_index": rs.current_step_index,
            "is_running": rs.is_running,
        }

    # ---- Execution ----

    async def run(self, input: Any = None) -> WorkflowRunResult:
        """Execute every step in order."""
        started = time.monotonic()
        step_results: list[StepRunResult] = []

        try:
            self.set_status(Status.RUNNING)
        except WorkflowStateError as exc:
            await logger.awarning("Workflow not runnable", workflow_id=self.id, error=str(exc))
            return WorkflowRunResult(error=exc)

        self.run_state = WorkflowRunState(start_time=utcnow(), is_running=True)
        await logger.ainfo(
            "Workflow execution started",
            workflow_id=self.id,
            workflow=self.name,
            total_steps=len(self.spec.steps),
        )

        try:
            client = self.client
            for index, step in enumerate(self.spec.steps):
                self.run_state.current_step_index = index
                step_result = await self._execute_step(client, step, input)
                step_results.append(step_result)
                self.snapshot()

                if step_result.error is not None:
                    self._finish(Status.FAILED)
                    await logger.aerror(
                        "Workflow failed",
                        workflow_id=self.id,
                        failed_step=step_result.step_name,
                    )
                    return self._result(step_results, started, step_result.error)

            self._finish(Status.COMPLETED)
            await logger.ainfo("Workflow completed", workflow_id=self.id)
            return self._result(step_results, started)

        except Exception as exc:
            self._finish(Status.FAILED)
            await logger.aexception("Workflow execution error", workflow_id=self.id)
            return self._result(step_results, started, exc)

    async def _execute_step(
        self,
        client: ModelClient,
        step: StepSpec,
        input: Any,
    ) -> StepRunResult:
        """Run each agent of *step*, stopping at the first failure."""
        started = time.monotonic()
        step_name = step.display_name
        scope = RunScope(workflow_id=self.id, step_id=step.id)

        self.log("info", "step_started", step_id=step.id, step=step_name)
        self.emit_event(StepStart(**scope.keys(), step_name=step_name))

        agent_results: list[AgentRunResult] = []
        for agent_spec in step.agents:
            agent = Agent(
                agent_spec,
                parent_model=self.default_model,
                tools=self._tools,
                bus=self.bus,
                scope=scope,
                max_output_tokens=self._settings.max_output_tokens,
                cache=self._cache,
                cache_ttl=self._settings.cache_ttl_seconds,
                cache_by_default=self.spec.enable_cache or self._settings.enable_cache,
            )
            result = await agent.run(client, input)
            agent_results.append(result)

            if result.reflection_metadata is not None:
                self.log(
                    "info",
                    "agent_reflected",
                    step_id=step.id,
                    agent_id=agent.id,
                    reflection_prompt_id=result.reflection_metadata.reflection_prompt_id,
                )
            if result.error is not None:
                self.log(
                    "error",
                    "agent_failed",
                    step_id=step.id,
                    agent_id=agent.id,
                    error=str(result.error),
                    retry_count=result.retry_count,
                )
                break
            if result.retry_count:
                self.log(
                    "warn",
                    "agent_retried",
                    step_id=step.id,
                    agent_id=agent.id,
                    retry_count=result.retry_count,
                )

        step_result = StepRunResult(
            step_id=step.id,
            step_name=step_name,
            agent_results=agent_results,
            token_usage=aggregate_token_usage(r.token_usage for r in agent_results),
            duration_ms=elapsed_ms(started),
        )
        self.emit_event(
            StepEnd(
                **scope.keys(),
                step_name=step_name,
                duration_ms=step_result.duration_ms,
                token_usage=step_result.token_usage,
                agent_results=tuple(agent_results),
                error=step_result.error,
            )
        )
        self.log(
            "info",
            "step_finished",
            step_id=step.id,
            step=step_name,
            duration_ms=step_result.duration_ms,
            token_usage=step_result.token_usage,
        )
        return step_result

    # ---- Internals ----

    def _finish(self, target: Status) -> None:
        self.run_state.is_running = False
        self.run_state.end_time = utcnow()
        # A workflow cancelled while running keeps its cancelled status.
        if self.status == Status.RUNNING:
            self.set_status(target)
        self.log(
            "error" if target == Status.FAILED else "info",
            "workflow_finished",
            status=self.status.value,
        )

    def _result(
        self,
        step_results: list[StepRunResult],
        started: float,
        error: BaseException | None = None,
    ) -> WorkflowRunResult:
        return WorkflowRunResult(
            step_results=step_results,
            token_usage=aggregate_token_usage(s.token_usage for s in step_results),
            total_duration_ms=elapsed_ms(started),
            error=error,
        )
