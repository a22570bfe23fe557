"""Pane status detection.

Key Components:
    - models: Pane snapshots, status variants, monitored agents and trees
    - rules: Compiled state rules and refinements
    - splitter: Structural splitters and the glyph table
    - engine: StatusEngine, which applies a profile's rules to a buffer
    - subagents: Shallow parsing of subagent activity
"""

from __future__ import annotations

from .engine import DetectionTrace, StatusEngine, safe_tail
from .models import (
    UNKNOWN_ANCESTOR,
    AgentStatus,
    AgentTree,
    ApprovalType,
    AwaitingApproval,
    Error,
    Idle,
    MonitoredAgent,
    PaneSnapshot,
    Processing,
    StatusKind,
    Subagent,
    SubagentStatus,
    Unknown,
)
from .splitter import GlyphTable

__all__ = [
    "UNKNOWN_ANCESTOR",
    "AgentStatus",
    "AgentTree",
    "ApprovalType",
    "AwaitingApproval",
    "DetectionTrace",
    "Error",
    "GlyphTable",
    "Idle",
    "MonitoredAgent",
    "PaneSnapshot",
    "Processing",
    "StatusEngine",
    "StatusKind",
    "Subagent",
    "SubagentStatus",
    "Unknown",
    "safe_tail",
]
