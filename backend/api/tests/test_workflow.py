import pytest

from contentflow import workflow
from contentflow.errors import InvalidState, NotFound

DECLARED = [
    ("draft", "review", ("content:create",)),
    ("review", "approval", ("content:approve",)),
    ("review", "revisions", ("content:approve",)),
    ("revisions", "review", ("content:create",)),
    ("approval", "approved", ("content:approve",)),
    ("approval", "revisions", ("content:approve",)),
    ("approved", "published", ("content:publish",)),
]


@pytest.mark.parametrize("src,dst,perms", DECLARED)
def test_declared_edges(src, dst, perms) -> None:
    edge = workflow.find_edge(src, dst)
    assert tuple(p.id for p in edge.permissions) == perms


@pytest.mark.parametrize("src", ["draft", "review", "revisions", "approval", "approved", "published"])
def test_every_non_terminal_state_can_be_archived(src) -> None:
    edge = workflow.find_edge(src, "archived")
    assert {p.id for p in edge.permissions} == {"content:delete", "space:manage"}


def test_edge_table_is_closed() -> None:
    assert len(workflow.TRANSITIONS) == len(DECLARED) + 6


def test_unknown_target_is_not_found() -> None:
    with pytest.raises(NotFound):
        workflow.find_edge("draft", "shipped")


@pytest.mark.parametrize(
    "src,dst",
    [("draft", "approved"), ("review", "published"), ("archived", "draft"), ("published", "draft")],
)
def test_undeclared_pair_is_invalid_state(src, dst) -> None:
    with pytest.raises(InvalidState):
        workflow.find_edge(src, dst)


@pytest.mark.parametrize(
    "current,target",
    [("draft", "review"), ("review", "revisions"), ("approval", "approved")],
)
def test_next_step_uses_declared_edge(current, target) -> None:
    edge = workflow.next_step_edge(current)
    assert edge is workflow.TRANSITIONS[(current, target)]


@pytest.mark.parametrize("current", ["revisions", "approved", "published", "archived"])
def test_next_step_rejected_without_edge(current) -> None:
    with pytest.raises(InvalidState):
        workflow.next_step_edge(current)


@pytest.mark.parametrize("current,target", [("revisions", "review"), ("approval", "revisions")])
def test_previous_step_uses_declared_edge(current, target) -> None:
    edge = workflow.previous_step_edge(current)
    assert edge is workflow.TRANSITIONS[(current, target)]


@pytest.mark.parametrize("current", ["draft", "review", "approved", "archived"])
def test_previous_step_rejected_without_edge(current) -> None:
    with pytest.raises(InvalidState):
        workflow.previous_step_edge(current)
