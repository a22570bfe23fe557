"""Agent profiles: schema, registry and pane matching."""

from __future__ import annotations

from .matcher import AgentMatcher, LazyCapture, MatchResult
from .registry import (
    DEFAULT_PROFILES_PATH,
    AgentKeys,
    AgentProfile,
    Matcher,
    MatcherKind,
    MatchStrength,
    ProfileRegistry,
    load_registry,
)

__all__ = [
    "DEFAULT_PROFILES_PATH",
    "AgentKeys",
    "AgentMatcher",
    "AgentProfile",
    "LazyCapture",
    "MatchResult",
    "MatchStrength",
    "Matcher",
    "MatcherKind",
    "ProfileRegistry",
    "load_registry",
]
