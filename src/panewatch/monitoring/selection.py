"""Selection persistence across tree refreshes.

A selection remembers the unique id, pid and target of each selected agent.
When a new tree arrives the selection is re-resolved against it: first by
unique id, then by pid, then by target. If none resolve, the fallback policy
either clears the cursor or moves it to the nearest agent that is still
visible, in the order the previous tree showed them.

All functions here are pure: reconciling the same tree and state twice gives
the same result.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from panewatch.detection.models import AgentTree, MonitoredAgent


class FallbackPolicy(str, Enum):
    CLEAR = "clear"
    NEAREST = "nearest"


class MatchedBy(str, Enum):
    """How a remembered selection was found in the new tree."""

    UNIQUE_ID = "unique_id"
    PID = "pid"
    TARGET = "target"
    NEAREST = "nearest"
    NONE = "none"


@dataclass(frozen=True)
class SelectedRef:
    """Identity of a selected agent as last seen."""

    unique_id: str
    pid: int
    target: str

    @classmethod
    def of(cls, agent: MonitoredAgent) -> SelectedRef:
        return cls(unique_id=agent.unique_id, pid=agent.pid, target=agent.target)


@dataclass(frozen=True)
class SelectionState:
    """Cursor and multi-selection, plus the visual order they were made in.

    Attributes:
        cursor: The focused agent, or None.
        marked: Agents selected for bulk actions.
        order: Unique ids of the tree the state was last resolved against,
            in display order. Used by the nearest-neighbour fallback.
    """

    cursor: SelectedRef | None = None
    marked: tuple[SelectedRef, ...] = ()
    order: tuple[str, ...] = ()


@dataclass(frozen=True)
class Reconciliation:
    state: SelectionState
    cursor_matched_by: MatchedBy
    cursor_index: int | None


def _order(tree: AgentTree) -> tuple[str, ...]:
    return tuple(agent.unique_id for agent in tree.root_agents)


def locate(tree: AgentTree, ref: SelectedRef) -> tuple[int, MatchedBy] | None:
    """Find ``ref`` in ``tree`` by unique id, then pid, then target."""
    agents = tree.root_agents
    for matched_by, key in (
        (MatchedBy.UNIQUE_ID, lambda a: a.unique_id == ref.unique_id),
        (MatchedBy.PID, lambda a: a.pid == ref.pid),
        (MatchedBy.TARGET, lambda a: a.target == ref.target),
    ):
        for index, agent in enumerate(agents):
            if key(agent):
                return index, matched_by
    return None


def _nearest(tree: AgentTree, ref: SelectedRef, order: tuple[str, ...]) -> int | None:
    """Index in ``tree`` of the closest surviving neighbour of ``ref`` in ``order``.

    Neighbours below the old position are preferred over those above at the
    same distance.
    """
    if ref.unique_id not in order:
        return None
    position = order.index(ref.unique_id)
    index_of = {uid: i for i, uid in enumerate(_order(tree))}
    for distance in range(1, len(order)):
        for candidate in (position + distance, position - distance):
            if 0 <= candidate < len(order) and order[candidate] in index_of:
                return index_of[order[candidate]]
    return None


def reconcile(
    tree: AgentTree,
    state: SelectionState,
    policy: FallbackPolicy = FallbackPolicy.CLEAR,
) -> Reconciliation:
    """Re-resolve a selection against a freshly published tree.

    Marked agents that cannot be found by id, pid or target are dropped; the
    fallback policy only applies to the cursor.
    """
    agents = tree.root_agents

    marked = []
    for ref in state.marked:
        found = locate(tree, ref)
        if found is not None:
            agent_ref = SelectedRef.of(agents[found[0]])
            if agent_ref not in marked:
                marked.append(agent_ref)

    cursor = None
    cursor_index = None
    matched_by = MatchedBy.NONE
    if state.cursor is not None:
        found = locate(tree, state.cursor)
        if found is not None:
            cursor_index, matched_by = found
        elif FallbackPolicy(policy) is FallbackPolicy.NEAREST:
            cursor_index = _nearest(tree, state.cursor, state.order)
            if cursor_index is not None:
                matched_by = MatchedBy.NEAREST
        if cursor_index is not None:
            cursor = SelectedRef.of(agents[cursor_index])

    return Reconciliation(
        state=SelectionState(cursor=cursor, marked=tuple(marked), order=_order(tree)),
        cursor_matched_by=matched_by,
        cursor_index=cursor_index,
    )


def select(tree: AgentTree, index: int, state: SelectionState | None = None) -> SelectionState:
    """Move the cursor to ``tree.root_agents[index]``."""
    agent = tree.root_agents[index]
    marked = state.marked if state is not None else ()
    return SelectionState(cursor=SelectedRef.of(agent), marked=marked, order=_order(tree))


def toggle_mark(state: SelectionState, agent: MonitoredAgent) -> SelectionState:
    """Add ``agent`` to the multi-selection, or remove it if already marked."""
    ref = SelectedRef.of(agent)
    remaining = tuple(m for m in state.marked if m.unique_id != ref.unique_id)
    marked = remaining if len(remaining) != len(state.marked) else state.marked + (ref,)
    return SelectionState(cursor=state.cursor, marked=marked, order=state.order)


def selected_agents(tree: AgentTree, state: SelectionState) -> list[MonitoredAgent]:
    """Agents an action applies to: the marked ones, or else the cursor."""
    refs = state.marked or ((state.cursor,) if state.cursor is not None else ())
    agents = []
    for ref in refs:
        found = locate(tree, ref)
        if found is not None:
            agents.append(tree.root_agents[found[0]])
    return agents
