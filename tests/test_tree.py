"""Tests for the execution tree arena and the status state machine."""

from __future__ import annotations

import pytest

from agentweave.core.state import Status, can_transition
from agentweave.core.tree import NodeType, WorkflowNode, WorkflowTree
from agentweave.events.types import EventType, StepStart
from agentweave.models.usage import TokenUsage


def _tree() -> WorkflowTree:
    tree = WorkflowTree(WorkflowNode(id="root", name="wf"))
    tree.attach(WorkflowNode(id="s1", name="step one", node_type=NodeType.STEP), "root")
    tree.attach(WorkflowNode(id="a1", name="agent", node_type=NodeType.AGENT), "s1")
    tree.attach(WorkflowNode(id="s2", name="step two", node_type=NodeType.STEP), "root")
    return tree


class TestWorkflowTree:
    """Tests for WorkflowTree."""

    def test_attach_links_parent_and_children(self) -> None:
        tree = _tree()
        assert tree.get("s1").parent_id == "root"
        assert tree.root.children == ["s1", "s2"]
        assert [n.id for n in tree.children_of("s1")] == ["a1"]
        assert tree.parent_of("a1") is tree.get("s1")
        assert tree.parent_of("root") is None
        assert len(tree) == 4
        assert "a1" in tree

    def test_attach_rejects_duplicates_and_unknown_parents(self) -> None:
        tree = _tree()
        with pytest.raises(ValueError):
            tree.attach(WorkflowNode(id="a1", name="again"), "root")
        with pytest.raises(KeyError):
            tree.attach(WorkflowNode(id="x", name="orphan"), "missing")

    def test_root_must_not_have_parent(self) -> None:
        with pytest.raises(ValueError):
            WorkflowTree(WorkflowNode(id="r", name="r", parent_id="p"))

    def test_walk_is_preorder(self) -> None:
        tree = _tree()
        assert [(depth, node.id) for depth, node in tree.walk()] == [
            (0, "root"),
            (1, "s1"),
            (2, "a1"),
            (1, "s2"),
        ]
        assert [node.id for _, node in tree.walk("s1")] == ["s1", "a1"]

    def test_ancestors(self) -> None:
        tree = _tree()
        assert [n.id for n in tree.ancestors("a1")] == ["s1", "root"]
        assert tree.ancestors("root") == []

    def test_find(self) -> None:
        tree = _tree()
        assert tree.find(None) is None
        assert tree.find("nope") is None
        assert tree.find("s2") is tree.get("s2")

    def test_render(self) -> None:
        tree = _tree()
        tree.get("s1").status = Status.COMPLETED
        tree.get("s1").token_usage = TokenUsage(5, 2)
        assert tree.render() == (
            "wf [workflow] idle\n"
            "  step one [step] completed (in: 5, out: 2)\n"
            "    agent [agent] idle\n"
            "  step two [step] idle"
        )


class TestStatusTransitions:
    """Tests for the status transition table."""

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (Status.IDLE, Status.RUNNING),
            (Status.IDLE, Status.CANCELLED),
            (Status.RUNNING, Status.COMPLETED),
            (Status.RUNNING, Status.FAILED),
            (Status.RUNNING, Status.CANCELLED),
            (Status.COMPLETED, Status.RUNNING),
            (Status.FAILED, Status.RUNNING),
        ],
    )
    def test_allowed(self, current: Status, target: Status) -> None:
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (Status.IDLE, Status.COMPLETED),
            (Status.COMPLETED, Status.CANCELLED),
            (Status.CANCELLED, Status.RUNNING),
            (Status.FAILED, Status.COMPLETED),
        ],
    )
    def test_rejected(self, current: Status, target: Status) -> None:
        assert not can_transition(current, target)

    def test_nodes_do_not_rerun(self) -> None:
        assert not can_transition(Status.COMPLETED, Status.RUNNING, is_node=True)
        assert can_transition(Status.IDLE, Status.RUNNING, is_node=True)

    def test_terminal(self) -> None:
        assert Status.CANCELLED.is_terminal
        assert not Status.RUNNING.is_terminal


def test_event_to_dict_carries_type_tag():
    event = StepStart(workflow_id="wf", step_id="s1", step_name="research")
    data = event.to_dict()
    assert data["type"] == "step_start"
    assert data["step_name"] == "research"
    assert event.type is EventType.STEP_START


def test_events_are_frozen():
    event = StepStart(workflow_id="wf", step_id="s1", step_name="research")
    with pytest.raises(AttributeError):
        event.step_name = "other"  # type: ignore[misc]
