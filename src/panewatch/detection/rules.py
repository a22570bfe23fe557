"""Compiled state rules.

A state rule pairs a splitter with an ordered list of refinements. The
splitter divides the recent part of a pane buffer into a body group and a
prompt group; each refinement looks at one location inside one group and, on
a match, decides the pane's status.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from panewatch.detection.models import (
    AgentStatus,
    ApprovalType,
    AwaitingApproval,
    Error,
    Idle,
    Processing,
    StatusKind,
    Unknown,
)


class SplitterKind(str, Enum):
    """How a buffer window is divided into groups.

    Attributes:
        NONE: The whole window is the body group.
        SEPARATOR_LINE: Body above an input area framed by two separator lines.
        POWERLINE_BOX: Body above a rounded box drawn with box-drawing glyphs.
    """

    NONE = "none"
    SEPARATOR_LINE = "separator_line"
    POWERLINE_BOX = "powerline_box"


class Group(str, Enum):
    BODY = "body"
    PROMPT = "prompt"


class Location(str, Enum):
    """Where inside a group a refinement pattern is applied."""

    ANYWHERE = "anywhere"
    LAST_LINE = "last_line"
    LAST_BLOCK = "last_block"
    FIRST_LINE_OF_LAST_BLOCK = "first_line_of_last_block"


@dataclass(frozen=True)
class Refinement:
    """One pattern test inside a state rule.

    The resulting status takes its text from a ``details`` named group when the
    pattern has one, otherwise from ``status``.
    """

    group: Group
    location: Location
    pattern: re.Pattern[str]
    kind: StatusKind
    status: str
    approval_type: ApprovalType | None = None

    def build_status(self, match: re.Match[str]) -> AgentStatus:
        details = None
        if "details" in self.pattern.groupindex:
            details = (match.group("details") or "").strip() or None
        return make_status(self.kind, self.status, self.approval_type, details)


@dataclass(frozen=True)
class StateRule:
    """A splitter plus refinements, evaluated over the last ``last_lines`` lines.

    Attributes:
        name: Identifier shown in explain traces.
        splitter: Splitter used to divide the window into groups.
        last_lines: Number of trailing non-blank-terminated lines considered.
        refinements: Ordered tests; the first match wins.
        max_prompt_lines: Largest input area the splitter accepts.
        max_footer_lines: Lines allowed below the input area before the
            buffer's true end.
    """

    name: str
    splitter: SplitterKind
    last_lines: int
    refinements: tuple[Refinement, ...]
    max_prompt_lines: int = 8
    max_footer_lines: int = 4


def make_status(
    kind: StatusKind,
    status: str | None,
    approval_type: ApprovalType | None = None,
    details: str | None = None,
) -> AgentStatus:
    """Build an AgentStatus from a configured status kind and label."""
    text = details or status or ""
    if kind is StatusKind.IDLE:
        return Idle(label=text or None)
    if kind is StatusKind.WORKING:
        return Processing(activity=text or "Working...")
    if kind is StatusKind.APPROVAL:
        return AwaitingApproval(approval_type=approval_type or ApprovalType.OTHER, details=text)
    if kind is StatusKind.ERROR:
        return Error(message=text or "Error")
    return Unknown()
