"""Status engine: classify a pane buffer using a profile's state rules.

Rules are evaluated in the order the profile lists them. Within a rule the
splitter runs first; if its structure is present at the end of the window,
refinements are tried in order and the first match decides the status. When
no rule decides, the profile's default applies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from panewatch.detection.models import AgentStatus, Idle, Subagent, Unknown
from panewatch.detection.rules import StatusKind, make_status
from panewatch.detection.splitter import GlyphTable, locate, split, window
from panewatch.detection.subagents import parse_subagents

if TYPE_CHECKING:
    from panewatch.profiles.matcher import MatchResult
    from panewatch.profiles.registry import AgentProfile

logger = logging.getLogger(__name__)

DEFAULT_TAIL_CHARS = 16384


@dataclass
class TraceStep:
    """One refinement attempt (or one failed split) recorded by explain."""

    rule: str
    splitter: str
    split_found: bool
    refinement: int | None = None
    group: str | None = None
    location: str | None = None
    pattern: str | None = None
    matched: bool = False


@dataclass
class DetectionTrace:
    """Which matcher, rule and refinement produced a status, for debugging profiles.

    ``matcher`` is empty when the profile was chosen by the caller rather than
    by the agent matcher.
    """

    profile_id: str
    matcher: str = ""
    strength: str = ""
    steps: list[TraceStep] = field(default_factory=list)
    status: AgentStatus | None = None
    decided_by: str = ""

    def format(self) -> list[str]:
        lines = [f"profile: {self.profile_id}"]
        if self.matcher:
            lines.append(f"matcher: {self.matcher} ({self.strength})")
        else:
            lines.append("matcher: none (profile chosen explicitly)")
        for step in self.steps:
            if not step.split_found:
                lines.append(f"  rule {step.rule}: splitter {step.splitter} found no input area")
                continue
            verdict = "MATCH" if step.matched else "no match"
            lines.append(
                f"  rule {step.rule} #{step.refinement} [{step.group}/{step.location}] "
                f"{step.pattern!r}: {verdict}"
            )
        if self.status is not None:
            lines.append(f"result: {self.status.kind.value} ({self.status.describe()}) via {self.decided_by}")
        return lines


def safe_tail(text: str, max_chars: int = DEFAULT_TAIL_CHARS) -> str:
    """Return at most ``max_chars`` from the end of ``text``, on a line boundary."""
    if len(text) <= max_chars:
        return text
    tail = text[-max_chars:]
    newline = tail.find("\n")
    return tail[newline + 1 :] if newline != -1 else tail


class StatusEngine:
    """Classifies pane buffers for a given profile.

    The engine holds no per-pane state, so one instance serves every pane and
    may be shared across threads.
    """

    def __init__(self, glyphs: GlyphTable | None = None, tail_chars: int = DEFAULT_TAIL_CHARS):
        self.glyphs = glyphs or GlyphTable()
        self.tail_chars = tail_chars

    def detect(self, text: str, profile: AgentProfile) -> AgentStatus:
        """Return exactly one status for ``text`` under ``profile``.

        Never raises. Unexpected failures are logged and reported as Unknown.
        """
        try:
            return self._classify(text, profile, None)
        except Exception as e:
            logger.error(f"Status detection failed for profile {profile.id}: {e}", exc_info=True)
            return Unknown()

    def explain(self, text: str, profile: AgentProfile, match: MatchResult | None = None) -> DetectionTrace:
        """Classify ``text`` and record every rule and refinement tried.

        Args:
            text: Captured pane buffer.
            profile: Profile to classify with.
            match: How the agent matcher picked ``profile``, if it did.
        """
        trace = DetectionTrace(profile_id=profile.id)
        if match is not None and match.matcher is not None:
            trace.matcher = match.matcher.describe()
            trace.strength = match.strength.name.lower()
        trace.status = self._classify(text, profile, trace)
        return trace

    def subagents(self, text: str, profile: AgentProfile) -> tuple[Subagent, ...]:
        try:
            return parse_subagents(safe_tail(text, self.tail_chars), profile.subagent_rules)
        except Exception as e:
            logger.warning(f"Subagent parsing failed for profile {profile.id}: {e}")
            return ()

    def _classify(self, text: str, profile: AgentProfile, trace: DetectionTrace | None) -> AgentStatus:
        text = safe_tail(text, self.tail_chars)
        if not text.strip():
            if trace is not None:
                trace.decided_by = "empty buffer"
            return Idle()

        for rule in profile.state_rules:
            lines = window(text, rule.last_lines)
            parts = split(lines, rule.splitter, self.glyphs, rule.max_prompt_lines, rule.max_footer_lines)
            if parts is None:
                if trace is not None:
                    trace.steps.append(TraceStep(rule.name, rule.splitter.value, split_found=False))
                continue

            for index, refinement in enumerate(rule.refinements):
                region = locate(parts.group(refinement.group), refinement.location)
                match = refinement.pattern.search(region) if region is not None else None
                if trace is not None:
                    trace.steps.append(
                        TraceStep(
                            rule=rule.name,
                            splitter=rule.splitter.value,
                            split_found=True,
                            refinement=index,
                            group=refinement.group.value,
                            location=refinement.location.value,
                            pattern=refinement.pattern.pattern,
                            matched=match is not None,
                        )
                    )
                if match is not None:
                    if trace is not None:
                        trace.decided_by = f"rule {rule.name} refinement #{index}"
                    return refinement.build_status(match)

        if trace is not None:
            trace.decided_by = "profile default"
        return make_status(profile.default_type or StatusKind.IDLE, profile.default_status)
