"""Session filtering: which tmux sessions the monitor skips."""

import fnmatch
import logging
import re

from panewatch.detection.models import PaneSnapshot
from panewatch.errors import ConfigurationError

logger = logging.getLogger(__name__)


class SessionFilter:
    """Decides whether a pane's session is monitored.

    Patterns are exact names, globs containing ``*`` or ``?``, or regular
    expressions written as ``/regex/``.

    Args:
        patterns: Session patterns to ignore.
        current_session: Session this process runs in, ignored when set.
        show_detached: Whether panes in detached sessions are kept.
    """

    def __init__(
        self,
        patterns: list[str] | None = None,
        current_session: str | None = None,
        show_detached: bool = True,
    ):
        self.current_session = current_session
        self.show_detached = show_detached
        self._exact: set[str] = set()
        self._globs: list[str] = []
        self._regexes: list[re.Pattern[str]] = []

        for pattern in patterns or []:
            if len(pattern) >= 2 and pattern.startswith("/") and pattern.endswith("/"):
                try:
                    self._regexes.append(re.compile(pattern[1:-1]))
                except re.error as e:
                    raise ConfigurationError(f"Invalid ignore_sessions regex {pattern!r}: {e}") from e
            elif "*" in pattern or "?" in pattern:
                self._globs.append(pattern)
            else:
                self._exact.add(pattern)

    def is_ignored(self, session: str) -> bool:
        if self.current_session is not None and session == self.current_session:
            return True
        if session in self._exact:
            return True
        if any(fnmatch.fnmatchcase(session, glob) for glob in self._globs):
            return True
        return any(regex.search(session) for regex in self._regexes)

    def accepts(self, snapshot: PaneSnapshot) -> bool:
        if not self.show_detached and not snapshot.session_attached:
            return False
        return not self.is_ignored(snapshot.session)

    def apply(self, snapshots: list[PaneSnapshot]) -> list[PaneSnapshot]:
        kept = [s for s in snapshots if self.accepts(s)]
        if len(kept) != len(snapshots):
            logger.debug(f"Session filter skipped {len(snapshots) - len(kept)} panes")
        return kept
