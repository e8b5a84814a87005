"""Execution tree stored as an arena of nodes indexed by id."""

from __future__ import annotations

import enum
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from agentweave.core.state import Status
from agentweave.models.tool import ToolCallRecord
from agentweave.models.usage import TokenUsage, format_token_usage

if TYPE_CHECKING:
    from agentweave.core.observer import LogEntry
    from agentweave.events.types import Event


class NodeType(str, enum.Enum):
    WORKFLOW = "workflow"
    STEP = "step"
    AGENT = "agent"
    PROMPT = "prompt"
    TOOL = "tool"


@dataclass
class WorkflowNode:
    """A node of the execution tree.

    ``parent_id`` is a lookup-only back-reference; ``children`` lists the ids
    of the nodes this node owns, in attachment order. ``ref_id`` is the
    step, agent, prompt or tool id the node was created for.
    """

    id: str
    name: str
    node_type: NodeType = NodeType.WORKFLOW
    ref_id: str | None = None
    parent_id: str | None = None
    children: list[str] = field(default_factory=list)
    status: Status = Status.IDLE
    logs: list[LogEntry] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)
    state_snapshot: dict[str, Any] | None = None
    token_usage: TokenUsage | None = None
    tool_calls: list[ToolCallRecord] = field(default_factory=list)


class WorkflowTree:
    """Arena owning every :class:`WorkflowNode` of one execution tree."""

    def __init__(self, root: WorkflowNode) -> None:
        if root.parent_id is not None:
            raise ValueError("Root node must not have a parent")
        self.root_id = root.id
        self._nodes: dict[str, WorkflowNode] = {root.id: root}

    @property
    def root(self) -> WorkflowNode:
        return self._nodes[self.root_id]

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, node_id: str) -> WorkflowNode:
        """Return the node with *node_id*.

        Raises:
            KeyError: If no such node exists.
        """
        return self._nodes[node_id]

    def find(self, node_id: str | None) -> WorkflowNode | None:
        if node_id is None:
            return None
        return self._nodes.get(node_id)

    def attach(self, node: WorkflowNode, parent_id: str) -> WorkflowNode:
        """Add *node* as the last child of *parent_id*.

        Raises:
            KeyError: If the parent does not exist.
            ValueError: If a node with the same id is already attached.
        """
        parent = self._nodes[parent_id]
        if node.id in self._nodes:
            raise ValueError(f"Node {node.id} is already attached")
        node.parent_id = parent.id
        self._nodes[node.id] = node
        parent.children.append(node.id)
        return node

    def parent_of(self, node_id: str) -> WorkflowNode | None:
        return self.find(self._nodes[node_id].parent_id)

    def children_of(self, node_id: str) -> list[WorkflowNode]:
        return [self._nodes[child] for child in self._nodes[node_id].children]

    def ancestors(self, node_id: str) -> list[WorkflowNode]:
        """Nodes from the parent of *node_id* up to the root."""
        chain: list[WorkflowNode] = []
        parent = self.parent_of(node_id)
        while parent is not None:
            chain.append(parent)
            parent = self.parent_of(parent.id)
        return chain

    def walk(self, node_id: str | None = None) -> Iterator[tuple[int, WorkflowNode]]:
        """Depth-first pre-order traversal yielding ``(depth, node)``."""
        stack = [(0, self._nodes[node_id or self.root_id])]
        while stack:
            depth, node = stack.pop()
            yield depth, node
            for child in reversed(node.children):
                stack.append((depth + 1, self._nodes[child]))

    def render(self, node_id: str | None = None) -> str:
        """Indented text rendering of the tree, one node per line."""
        lines = []
        for depth, node in self.walk(node_id):
            line = f"{'  ' * depth}{node.name} [{node.node_type.value}] {node.status.value}"
            if node.token_usage is not None:
                line += f" ({format_token_usage(node.token_usage)})"
            lines.append(line)
        return "\n".join(lines)
