from __future__ import annotations

from dataclasses import dataclass

from contentflow.errors import InvalidState, NotFound
from contentflow.permissions import (
    CONTENT_APPROVE,
    CONTENT_CREATE,
    CONTENT_DELETE,
    CONTENT_PUBLISH,
    SPACE_MANAGE,
    Permission,
)

STATES: list[str] = [
    "draft",
    "review",
    "revisions",
    "approval",
    "approved",
    "published",
    "archived",
]

INITIAL_STATE = "draft"
ARCHIVED = "archived"
TERMINAL_STATES = frozenset({ARCHIVED})

# Ordered subsequence walked by the generic "previous/next step" controls.
STEPS: list[str] = ["draft", "review", "revisions", "approval", "approved"]


@dataclass(frozen=True)
class TransitionEdge:
    """One legal move. Any single permission in `permissions` is sufficient."""

    from_status: str
    to_status: str
    permissions: tuple[Permission, ...]


def _edge(from_status: str, to_status: str, *permissions: Permission) -> TransitionEdge:
    return TransitionEdge(from_status, to_status, tuple(permissions))


_DECLARED: list[TransitionEdge] = [
    _edge("draft", "review", CONTENT_CREATE),
    _edge("review", "approval", CONTENT_APPROVE),
    _edge("review", "revisions", CONTENT_APPROVE),
    _edge("revisions", "review", CONTENT_CREATE),
    _edge("approval", "approved", CONTENT_APPROVE),
    _edge("approval", "revisions", CONTENT_APPROVE),
    _edge("approved", "published", CONTENT_PUBLISH),
]
_DECLARED += [
    _edge(state, ARCHIVED, CONTENT_DELETE, SPACE_MANAGE)
    for state in STATES
    if state not in TERMINAL_STATES
]

TRANSITIONS: dict[tuple[str, str], TransitionEdge] = {
    (e.from_status, e.to_status): e for e in _DECLARED
}


def list_states() -> list[str]:
    return list(STATES)


def _normalize_state(state: str) -> str:
    if not state:
        return state
    return state.strip().lower()


def is_terminal(state: str) -> bool:
    return _normalize_state(state) in TERMINAL_STATES


def edges_from(from_state: str) -> list[TransitionEdge]:
    s = _normalize_state(from_state)
    return [edge for (src, _), edge in TRANSITIONS.items() if src == s]


def find_edge(from_state: str, to_state: str) -> TransitionEdge:
    """
    Return the declared edge for (from_state, to_state).

    Raises NotFound for a target outside the state set (no edge can exist)
    and InvalidState when the target is a real status with no edge from
    `from_state`.
    """
    s_from = _normalize_state(from_state)
    s_to = _normalize_state(to_state)

    if s_to not in STATES:
        raise NotFound(f"Unknown status: {to_state}")

    edge = TRANSITIONS.get((s_from, s_to))
    if edge is None:
        allowed = [e.to_status for e in edges_from(s_from)]
        raise InvalidState(f"Transition not allowed: {s_from} -> {s_to}. Allowed: {allowed}")
    return edge


def _adjacent_step(current: str, offset: int) -> str:
    s = _normalize_state(current)
    if s not in STEPS:
        raise InvalidState(f"Status '{s}' is not part of the review steps")
    index = STEPS.index(s) + offset
    if index < 0 or index >= len(STEPS):
        raise InvalidState(f"No {'next' if offset > 0 else 'previous'} step from '{s}'")
    return STEPS[index]


def next_step_edge(current: str) -> TransitionEdge:
    """The edge behind "move to next step"; only exists where the edge table declares it."""
    return find_edge(current, _adjacent_step(current, 1))


def previous_step_edge(current: str) -> TransitionEdge:
    return find_edge(current, _adjacent_step(current, -1))
