"""Shared fixtures for panewatch tests."""

from __future__ import annotations

import logging

import pytest

from panewatch.detection.models import AgentTree, Idle, MonitoredAgent, PaneSnapshot
from panewatch.errors import TransientIoError
from panewatch.logging_manager import AUDIT_LOGGER, ROOT_LOGGER
from panewatch.profiles.registry import ProfileRegistry, load_registry

SEP = "─" * 40

TEST_PROFILES = r"""
glyphs:
  prompt: "❯>"
  spinner: "⠋⠙✻*"

agents:
  - id: alpha
    name: Alpha
    priority: 10
    default_type: idle
    default_status: Idle
    matchers:
      - type: command
        pattern: '^alpha$'
      - type: title
        pattern: 'Alpha'
    state_rules:
      - name: prompt-choice
        splitter: separator_line
        refinements:
          - group: prompt
            pattern: '^[ \t]*{prompt}[ \t]*1\.'
            type: approval
            approval_type: choice
            status: Choose
      - name: menu
        splitter: none
        refinements:
          - location: last_block
            pattern: 'Allow (?P<details>\S+)\?\n[ \t]*{prompt}[ \t]*1\. Yes(?:\n[^\n]*){0,3}\Z'
            type: approval
            approval_type: shell
            status: Allow
      - name: body
        splitter: separator_line
        refinements:
          - location: last_block
            pattern: '^[ \t]*{spinner}[ \t]*(?P<details>\S[^\n]*?…)'
            type: working
            status: Working
          - location: last_line
            pattern: '^Error: (?P<details>.+)$'
            type: error
            status: Error
          - group: prompt
            pattern: '^[ \t]*{prompt}'
            type: idle
            status: Ready
      - name: tail
        splitter: none
        refinements:
          - location: last_line
            pattern: '^[ \t]*{spinner}[ \t]*(?P<details>\S[^\n]*?…)'
            type: working
            status: Working
    subagent_rules:
      start: '^> task (?P<type>[\w-]+): (?P<description>.+)$'
      complete: '^> done (?P<type>[\w-]+)'

  - id: beta
    priority: 5
    matchers:
      - type: command
        pattern: '^node$'
      - type: content
        pattern: 'BETA-THEME'

  - id: gamma
    priority: 5
    matchers:
      - type: command
        pattern: '^node$'
      - type: content
        pattern: 'GAMMA-THEME'

  - id: wrapper
    priority: 1
    matchers:
      - type: ancestor
        pattern: 'wrapper-cli'

  - id: titled
    priority: 50
    matchers:
      - type: title
        pattern: '^Shared Title$'
"""


def sandwich(body_lines: list[str], prompt_line: str = "❯", footer: str = "  ? for shortcuts") -> str:
    """A buffer with body output above a separator-framed input line."""
    return "\n".join(body_lines + ["", SEP, prompt_line, SEP, footer]) + "\n\n\n"


def make_snapshot(
    session: str = "main",
    window_index: int = 0,
    pane_index: int = 0,
    pid: int = 1000,
    command: str = "alpha",
    title: str = "",
    ancestors: tuple[str, ...] = (),
    attached: bool = True,
) -> PaneSnapshot:
    return PaneSnapshot(
        session=session,
        window_index=window_index,
        window_name="win",
        pane_index=pane_index,
        pid=pid,
        command=command,
        title=title,
        full_cmdline=command,
        ancestor_commands=ancestors,
        path="/work",
        session_attached=attached,
    )


def make_agent(target: str, pid: int, profile_id: str | None = "alpha") -> MonitoredAgent:
    session, _, rest = target.partition(":")
    window, _, pane = rest.partition(".")
    snapshot = make_snapshot(session=session, window_index=int(window), pane_index=int(pane), pid=pid)
    return MonitoredAgent.from_snapshot(
        snapshot, profile_id=profile_id, display_name=profile_id or "zsh", status=Idle()
    )


def make_tree(*agents: MonitoredAgent, sequence: int = 1) -> AgentTree:
    return AgentTree(root_agents=tuple(agents), sequence=sequence)


class FakeTmuxClient:
    """In-memory stand-in for TmuxClient."""

    def __init__(self, panes: list[PaneSnapshot] | None = None, buffers: dict[str, str] | None = None):
        self.panes = panes or []
        self.buffers = buffers or {}
        self.list_error: Exception | None = None
        self.capture_errors: set[str] = set()
        self.capture_gates: dict = {}
        self.capture_calls: list[str] = []
        self.list_calls = 0
        self.current: str | None = None
        self.sent: list[tuple[str, tuple[str, ...]]] = []
        self.typed: list[tuple[str, str]] = []
        self.focused: list[str] = []

    def list_panes(self) -> list[PaneSnapshot]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return list(self.panes)

    def capture_pane(self, target: str) -> str:
        self.capture_calls.append(target)
        gate = self.capture_gates.get(target)
        if gate is not None:
            gate.wait(2.0)
        if target in self.capture_errors:
            raise TransientIoError(f"can't find pane: {target}")
        return self.buffers.get(target, "")

    def current_session(self) -> str | None:
        return self.current

    def send_keys(self, target: str, *keys: str, literal: bool = False) -> None:
        if target in self.capture_errors:
            raise TransientIoError(f"can't find pane: {target}")
        if literal:
            self.typed.append((target, "".join(keys)))
        else:
            self.sent.append((target, keys))

    def focus_pane(self, target: str) -> None:
        self.focused.append(target)


@pytest.fixture
def registry() -> ProfileRegistry:
    """Registry built from the test profile document."""
    return ProfileRegistry.from_yaml(TEST_PROFILES, "test-profiles")


@pytest.fixture
def alpha(registry):
    return registry.get("alpha")


@pytest.fixture
def default_registry() -> ProfileRegistry:
    """Registry built from the packaged default profiles."""
    return load_registry()


@pytest.fixture
def fake_client() -> FakeTmuxClient:
    return FakeTmuxClient()


@pytest.fixture(autouse=True)
def reset_panewatch_loggers():
    """Undo LoggingManager setup so later tests see default propagation."""
    yield
    for name in (ROOT_LOGGER, AUDIT_LOGGER):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
        logger.propagate = True
        logger.setLevel(logging.NOTSET)
