"""Shallow parsing of subagent activity from an agent's buffer."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace

from panewatch.detection.models import Subagent, SubagentStatus

_KNOWN_TYPES = {
    "explore": "Explore",
    "plan": "Plan",
    "bash": "Bash",
    "general": "General",
    "general-purpose": "General",
    "code-simplifier": "Code Simplifier",
}


def subagent_type_name(raw: str) -> str:
    """Normalise a subagent type as written in the buffer to a display name."""
    key = raw.strip().lower()
    if key in _KNOWN_TYPES:
        return _KNOWN_TYPES[key]
    return raw.strip() or "Task"


@dataclass(frozen=True)
class SubagentRules:
    """Patterns for subagent lifecycle lines.

    Each pattern should capture ``type`` and may capture ``description``.
    """

    start: re.Pattern[str] | None = None
    running: re.Pattern[str] | None = None
    complete: re.Pattern[str] | None = None
    failed: re.Pattern[str] | None = None


def _fields(match: re.Match[str]) -> tuple[str, str]:
    groups = match.groupdict()
    return (
        subagent_type_name(groups.get("type") or ""),
        (groups.get("description") or "").strip(),
    )


def parse_subagents(text: str, rules: SubagentRules | None) -> tuple[Subagent, ...]:
    """Collect subagents from ``text``, one entry per subagent type.

    Lines are read top to bottom. A start or running line opens (or reopens)
    the entry for its type; a complete or failed line closes it.
    """
    if rules is None or not text:
        return ()

    found: dict[str, Subagent] = {}
    for line in text.splitlines():
        for pattern, status in (
            (rules.complete, SubagentStatus.COMPLETED),
            (rules.failed, SubagentStatus.FAILED),
            (rules.start, SubagentStatus.RUNNING),
            (rules.running, SubagentStatus.RUNNING),
        ):
            if pattern is None:
                continue
            match = pattern.search(line)
            if not match:
                continue
            type_name, description = _fields(match)
            existing = found.get(type_name)
            if existing is None:
                found[type_name] = Subagent(
                    id=f"{type_name.lower().replace(' ', '-')}-{len(found)}",
                    subagent_type=type_name,
                    status=status,
                    description=description,
                )
            else:
                found[type_name] = replace(
                    existing,
                    status=status,
                    description=description or existing.description,
                )
            break

    return tuple(found.values())
