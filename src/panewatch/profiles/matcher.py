"""Agent identification: which profile, if any, a pane belongs to."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from panewatch.detection.engine import safe_tail
from panewatch.detection.models import PaneSnapshot
from panewatch.errors import TransientIoError
from panewatch.profiles.registry import AgentProfile, Matcher, MatchStrength, ProfileRegistry

logger = logging.getLogger(__name__)


class LazyCapture:
    """Capture a pane's buffer at most once, on first use.

    A failed capture is remembered; later calls return None without asking
    tmux again.
    """

    def __init__(self, fetch: Callable[[], str]):
        self._fetch = fetch
        self._done = False
        self._text: str | None = None
        self.error: TransientIoError | None = None

    @classmethod
    def of(cls, text: str | None) -> LazyCapture:
        """A capture that is already resolved to ``text``."""
        capture = cls(lambda: "")
        capture._done = True
        capture._text = text
        return capture

    @property
    def fetched(self) -> bool:
        return self._done

    def get(self) -> str | None:
        if not self._done:
            self._done = True
            try:
                self._text = self._fetch()
            except TransientIoError as e:
                self.error = e
                logger.warning(f"Pane capture failed: {e}")
        return self._text


@dataclass(frozen=True)
class MatchResult:
    """Outcome of identifying a pane. ``profile`` is None when unmatched."""

    profile: AgentProfile | None = None
    matcher: Matcher | None = None
    strength: MatchStrength = MatchStrength.NONE

    @property
    def matched(self) -> bool:
        return self.profile is not None


UNMATCHED = MatchResult()


class AgentMatcher:
    """Selects the profile for a pane.

    Profiles are tried in registry (priority) order. The first profile that
    matches strongly wins outright. Otherwise the first weak (title-only)
    match is used. Content matchers only run for a profile whose identity
    matchers already matched, and the buffer is captured at most once per
    pane no matter how many profiles need it.
    """

    def __init__(self, registry: ProfileRegistry, tail_chars: int = 16384):
        self.registry = registry
        self.tail_chars = tail_chars

    def match(self, snapshot: PaneSnapshot, capture: LazyCapture | None = None) -> MatchResult:
        weak: MatchResult | None = None

        for profile in self.registry:
            identity = self._identity_match(profile, snapshot)
            if identity is None:
                continue

            matcher = identity
            strength = identity.strength
            if profile.content_matchers:
                text = capture.get() if capture is not None else None
                if text is None:
                    continue
                tail = safe_tail(text, self.tail_chars)
                confirmed = next((m for m in profile.content_matchers if m.matches_content(tail)), None)
                if confirmed is None:
                    continue
                matcher = confirmed
                strength = MatchStrength.STRONG

            if strength is MatchStrength.STRONG:
                logger.debug(f"Pane {snapshot.target} matched {profile.id} via {matcher.describe()}")
                return MatchResult(profile, matcher, strength)
            if weak is None:
                weak = MatchResult(profile, matcher, strength)

        if weak is not None:
            logger.debug(f"Pane {snapshot.target} weakly matched {weak.profile.id}")
            return weak
        return UNMATCHED

    @staticmethod
    def _identity_match(profile: AgentProfile, snapshot: PaneSnapshot) -> Matcher | None:
        """Return the strongest identity matcher of ``profile`` that matches."""
        best: Matcher | None = None
        for matcher in profile.identity_matchers:
            if matcher.matches_snapshot(snapshot):
                if matcher.strength is MatchStrength.STRONG:
                    return matcher
                best = best or matcher
        return best
