"""Monitoring: the background loop, its tree channel and selection handling.

Key Components:
    - monitor_loop: MonitorLoop, the per-tick list/identify/classify task
    - channel: Bounded tree channel with a back-pressure policy
    - session_filter: Session ignore patterns
    - selection: Selection persistence across tree refreshes
"""

from __future__ import annotations

from .channel import BackpressurePolicy, TreeChannel
from .monitor_loop import DetectionSet, MonitorLoop
from .selection import (
    FallbackPolicy,
    MatchedBy,
    Reconciliation,
    SelectedRef,
    SelectionState,
    reconcile,
    select,
    selected_agents,
    toggle_mark,
)
from .session_filter import SessionFilter

__all__ = [
    "BackpressurePolicy",
    "DetectionSet",
    "FallbackPolicy",
    "MatchedBy",
    "MonitorLoop",
    "Reconciliation",
    "SelectedRef",
    "SelectionState",
    "SessionFilter",
    "TreeChannel",
    "reconcile",
    "select",
    "selected_agents",
    "toggle_mark",
]
