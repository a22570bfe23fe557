"""Data models for pane detection.

This module defines the runtime values the detector works on: immutable pane
snapshots taken from tmux, the agent status variants produced by the status
engine, and the monitored agents and trees published by the monitor loop.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar

UNKNOWN_ANCESTOR = "<unknown>"
"""Placeholder entry for an ancestor chain that could not be resolved."""


class StatusKind(str, Enum):
    """Coarse classification of an agent's state.

    Attributes:
        IDLE: Agent is waiting for input.
        WORKING: Agent is busy.
        APPROVAL: Agent needs a human decision.
        ERROR: Agent reported an error.
        UNKNOWN: Status could not be determined.
    """

    IDLE = "idle"
    WORKING = "working"
    APPROVAL = "approval"
    ERROR = "error"
    UNKNOWN = "unknown"


class ApprovalType(str, Enum):
    """What an agent awaiting approval is asking for."""

    FILE_EDIT = "edit"
    FILE_CREATE = "create"
    FILE_DELETE = "delete"
    SHELL_COMMAND = "shell"
    MCP_TOOL = "mcp"
    USER_CHOICE = "choice"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str | None) -> ApprovalType:
        """Map a configured approval type string onto the enum.

        Unrecognised or missing values map to OTHER.
        """
        if not value:
            return cls.OTHER
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.OTHER

    @property
    def label(self) -> str:
        return _APPROVAL_LABELS[self]


_APPROVAL_LABELS = {
    ApprovalType.FILE_EDIT: "Edit",
    ApprovalType.FILE_CREATE: "Create",
    ApprovalType.FILE_DELETE: "Delete",
    ApprovalType.SHELL_COMMAND: "Shell",
    ApprovalType.MCP_TOOL: "MCP",
    ApprovalType.USER_CHOICE: "Choice",
    ApprovalType.OTHER: "Action Required",
}


@dataclass(frozen=True)
class Idle:
    """Agent is idle at its prompt."""

    label: str | None = None
    kind: ClassVar[StatusKind] = StatusKind.IDLE

    def describe(self) -> str:
        return self.label or "Idle"


@dataclass(frozen=True)
class Processing:
    """Agent is working. ``activity`` is a short human-readable label."""

    activity: str = "Working..."
    kind: ClassVar[StatusKind] = StatusKind.WORKING

    def describe(self) -> str:
        return self.activity


@dataclass(frozen=True)
class AwaitingApproval:
    """Agent is blocked on a human decision."""

    approval_type: ApprovalType = ApprovalType.OTHER
    details: str = ""
    kind: ClassVar[StatusKind] = StatusKind.APPROVAL

    def describe(self) -> str:
        if self.details:
            return f"{self.approval_type.label}: {self.details}"
        return self.approval_type.label


@dataclass(frozen=True)
class Error:
    """Agent reported an error."""

    message: str = "Error"
    kind: ClassVar[StatusKind] = StatusKind.ERROR

    def describe(self) -> str:
        return self.message


@dataclass(frozen=True)
class Unknown:
    """Status could not be determined for this tick."""

    kind: ClassVar[StatusKind] = StatusKind.UNKNOWN

    def describe(self) -> str:
        return "Unknown"


AgentStatus = Idle | Processing | AwaitingApproval | Error | Unknown

STATUS_INDICATORS: dict[StatusKind, str] = {
    StatusKind.IDLE: "●",
    StatusKind.WORKING: "◐",
    StatusKind.APPROVAL: "⚠",
    StatusKind.ERROR: "✗",
    StatusKind.UNKNOWN: "?",
}


def is_active(status: AgentStatus) -> bool:
    """Return True for statuses that mean the agent is doing something."""
    return status.kind in (StatusKind.WORKING, StatusKind.APPROVAL)


@dataclass(frozen=True)
class PaneSnapshot:
    """Immutable view of one tmux pane at listing time.

    Attributes:
        session: Session name.
        window_index: Window index within the session.
        window_name: Window name.
        pane_index: Pane index within the window.
        pid: PID of the pane's root process.
        command: Foreground command name as reported by tmux.
        title: Pane title.
        full_cmdline: Full command line of the foreground process.
        ancestor_commands: Commands from the foreground process's parent up to
            the pane's root process, nearest first. May end with
            UNKNOWN_ANCESTOR when the chain could not be resolved.
        path: Current working directory of the pane.
        session_attached: Whether a client is attached to the session.
    """

    session: str
    window_index: int
    window_name: str
    pane_index: int
    pid: int
    command: str
    title: str = ""
    full_cmdline: str = ""
    ancestor_commands: tuple[str, ...] = ()
    path: str = ""
    session_attached: bool = True

    @property
    def target(self) -> str:
        """tmux target address, ``session:window.pane``."""
        return f"{self.session}:{self.window_index}.{self.pane_index}"

    @property
    def unique_id(self) -> str:
        return f"{self.target}-{self.pid}"

    @property
    def sort_key(self) -> tuple[str, int, int]:
        return (self.session, self.window_index, self.pane_index)


class SubagentStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Subagent:
    """A nested task reported inside an agent's buffer.

    Attributes:
        id: Stable identifier within the parent agent.
        subagent_type: Display name of the subagent type, e.g. "Explore".
        status: Lifecycle status.
        description: Free text taken from the buffer.
    """

    id: str
    subagent_type: str
    status: SubagentStatus
    description: str = ""


@dataclass(frozen=True)
class MonitoredAgent:
    """A pane together with its identified profile and detected status.

    Panes that matched no profile are still listed with ``profile_id`` set to
    None and an Unknown status.
    """

    unique_id: str
    target: str
    pid: int
    session: str
    window_index: int
    window_name: str
    pane_index: int
    path: str
    command: str
    profile_id: str | None
    display_name: str
    status: AgentStatus
    subagents: tuple[Subagent, ...] = ()
    last_content: str = ""

    @property
    def is_agent(self) -> bool:
        return self.profile_id is not None

    @property
    def indicator(self) -> str:
        return STATUS_INDICATORS[self.status.kind]

    @property
    def running_subagents(self) -> int:
        return sum(1 for s in self.subagents if s.status is SubagentStatus.RUNNING)

    @classmethod
    def from_snapshot(
        cls,
        snapshot: PaneSnapshot,
        *,
        profile_id: str | None,
        display_name: str,
        status: AgentStatus,
        subagents: tuple[Subagent, ...] = (),
        last_content: str = "",
    ) -> MonitoredAgent:
        return cls(
            unique_id=snapshot.unique_id,
            target=snapshot.target,
            pid=snapshot.pid,
            session=snapshot.session,
            window_index=snapshot.window_index,
            window_name=snapshot.window_name,
            pane_index=snapshot.pane_index,
            path=snapshot.path,
            command=snapshot.command,
            profile_id=profile_id,
            display_name=display_name,
            status=status,
            subagents=subagents,
            last_content=last_content,
        )


@dataclass(frozen=True)
class AgentTree:
    """Ordered collection of monitored agents published once per tick.

    Attributes:
        root_agents: Agents ordered by session, window index, pane index.
        sequence: Monotonically increasing tick number.
        created_at: Wall-clock time the tree was assembled.
    """

    root_agents: tuple[MonitoredAgent, ...] = ()
    sequence: int = 0
    created_at: float = field(default_factory=time.time)

    def __len__(self) -> int:
        return len(self.root_agents)

    def __iter__(self):
        return iter(self.root_agents)

    @property
    def agents(self) -> tuple[MonitoredAgent, ...]:
        """Only panes that matched a profile."""
        return tuple(a for a in self.root_agents if a.is_agent)

    @property
    def total_count(self) -> int:
        return len(self.agents)

    @property
    def non_agent_count(self) -> int:
        return len(self.root_agents) - len(self.agents)

    @property
    def active_count(self) -> int:
        return sum(1 for a in self.agents if is_active(a.status))

    @property
    def awaiting_approval_count(self) -> int:
        return sum(1 for a in self.agents if a.status.kind is StatusKind.APPROVAL)

    @property
    def running_subagent_count(self) -> int:
        return sum(a.running_subagents for a in self.agents)

    def by_session(self) -> dict[str, list[MonitoredAgent]]:
        grouped: dict[str, list[MonitoredAgent]] = {}
        for agent in self.root_agents:
            grouped.setdefault(agent.session, []).append(agent)
        return grouped

    def find(self, unique_id: str) -> MonitoredAgent | None:
        for agent in self.root_agents:
            if agent.unique_id == unique_id:
                return agent
        return None
