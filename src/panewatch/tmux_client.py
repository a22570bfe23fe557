"""tmux access: pane listing, buffer capture and key sending.

All calls are blocking and are meant to run in a worker thread. Failures are
raised as TransientIoError so the monitor loop can retry on the next tick.
"""

import logging
import os

import libtmux
import psutil
from libtmux.exc import LibTmuxException

from panewatch.detection.models import UNKNOWN_ANCESTOR, MonitoredAgent, PaneSnapshot
from panewatch.errors import TransientIoError
from panewatch.logging_manager import audit
from panewatch.profiles.registry import ProfileRegistry

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "\x1f"

PANE_FORMAT = FIELD_SEPARATOR.join(
    [
        "#{session_name}",
        "#{session_attached}",
        "#{window_index}",
        "#{window_name}",
        "#{pane_index}",
        "#{pane_pid}",
        "#{pane_current_command}",
        "#{pane_title}",
        "#{pane_current_path}",
    ]
)


class ProcessInspector:
    """Resolves a pane's foreground process and its ancestor chain with psutil."""

    def __init__(self, max_depth: int = 8):
        self.max_depth = max_depth

    @staticmethod
    def _command(proc: psutil.Process) -> str:
        try:
            cmdline = proc.cmdline()
        except (psutil.AccessDenied, psutil.ZombieProcess):
            cmdline = []
        return " ".join(cmdline) if cmdline else proc.name()

    @staticmethod
    def _name(proc: psutil.Process) -> str:
        try:
            return proc.name()
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            return ""

    def _foreground(self, root: psutil.Process, command: str = "") -> psutil.Process:
        """The process tmux reports as the pane command, else the newest leaf.

        An agent and its tool subprocesses can share a name; the oldest
        process with the reported name is the agent itself.
        """
        children = root.children(recursive=True)
        if command:
            named = [p for p in [root, *children] if self._name(p) == command]
            if named:
                return min(named, key=lambda p: p.create_time())
        leaves = [c for c in children if not c.children()]
        if not leaves:
            return root
        return max(leaves, key=lambda p: p.create_time())

    def describe(self, pane_pid: int, command: str = "") -> tuple[str, tuple[str, ...]]:
        """Return the foreground command line and ancestor commands for a pane.

        Args:
            pane_pid: PID of the pane's root process.
            command: Command name tmux reports for the pane, used to pick the
                foreground process.

        Ancestors run from the foreground process's parent up to the pane's
        root process, nearest first. If the chain cannot be walked completely
        it ends with UNKNOWN_ANCESTOR.
        """
        try:
            root = psutil.Process(pane_pid)
            foreground = self._foreground(root, command)
            full_cmdline = self._command(foreground)
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess) as e:
            logger.debug(f"Cannot inspect pane process {pane_pid}: {e}")
            return "", (UNKNOWN_ANCESTOR,)

        ancestors: list[str] = []
        proc = foreground
        try:
            while proc.pid != pane_pid:
                proc = proc.parent()
                if proc is None or len(ancestors) >= self.max_depth:
                    ancestors.append(UNKNOWN_ANCESTOR)
                    break
                ancestors.append(self._command(proc))
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            ancestors.append(UNKNOWN_ANCESTOR)

        return full_cmdline, tuple(ancestors)


class TmuxClient:
    """Thin wrapper around a libtmux server.

    Args:
        capture_lines: Scrollback lines included in each capture.
        server: libtmux server; a default server is created when omitted.
        inspector: Process inspector used to fill command line and ancestors.
    """

    def __init__(
        self,
        capture_lines: int = 100,
        server: libtmux.Server | None = None,
        inspector: ProcessInspector | None = None,
    ):
        self.capture_lines = capture_lines
        self.server = server or libtmux.Server()
        self.inspector = inspector or ProcessInspector()

    def _run(self, *args: str) -> list[str]:
        try:
            result = self.server.cmd(*args)
        except (LibTmuxException, OSError) as e:
            raise TransientIoError(f"tmux {args[0]} failed: {e}") from e
        if result.stderr:
            raise TransientIoError(f"tmux {args[0]} failed: {' '.join(result.stderr)}")
        return result.stdout

    def list_panes(self) -> list[PaneSnapshot]:
        """Snapshot every pane on the server.

        Raises:
            TransientIoError: If tmux could not be queried.
        """
        snapshots = []
        for line in self._run("list-panes", "-a", "-F", PANE_FORMAT):
            snapshot = self._parse_pane_line(line)
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    def _parse_pane_line(self, line: str) -> PaneSnapshot | None:
        parts = line.split(FIELD_SEPARATOR)
        if len(parts) != 9:
            logger.warning(f"Skipping malformed list-panes line: {line!r}")
            return None

        session, attached, window_index, window_name, pane_index, pid, command, title, path = parts
        try:
            pane_pid, window_number, pane_number = int(pid), int(window_index), int(pane_index)
        except ValueError:
            logger.warning(f"Skipping list-panes line with non-numeric fields: {line!r}")
            return None

        full_cmdline, ancestors = self.inspector.describe(pane_pid, command)
        return PaneSnapshot(
            session=session,
            window_index=window_number,
            window_name=window_name,
            pane_index=pane_number,
            pid=pane_pid,
            command=command,
            title=title,
            full_cmdline=full_cmdline,
            ancestor_commands=ancestors,
            path=path,
            session_attached=attached not in ("", "0"),
        )

    def capture_pane(self, target: str) -> str:
        """Capture the visible screen plus ``capture_lines`` of scrollback.

        Raises:
            TransientIoError: If the capture failed.
        """
        return "\n".join(self._run("capture-pane", "-p", "-t", target, "-S", f"-{self.capture_lines}"))

    def send_keys(self, target: str, *keys: str, literal: bool = False) -> None:
        """Send tmux key names (e.g. "y", "Enter", "Escape") to a pane.

        With ``literal`` the keys are typed as text instead of looked up as
        key names.
        """
        flags = ("-l",) if literal else ()
        self._run("send-keys", *flags, "-t", target, *keys)
        logger.info(f"Sent keys {keys} to {target}")

    def focus_pane(self, target: str) -> None:
        """Make ``target`` the active pane, switching the client if inside tmux."""
        if os.environ.get("TMUX"):
            self._run("switch-client", "-t", target)
        self._run("select-window", "-t", target)
        self._run("select-pane", "-t", target)

    def current_session(self) -> str | None:
        """Name of the session this process runs in, if any."""
        pane = os.environ.get("TMUX_PANE")
        if not os.environ.get("TMUX") or not pane:
            return None
        try:
            output = self._run("display-message", "-p", "-t", pane, "#{session_name}")
        except TransientIoError as e:
            logger.debug(f"Could not resolve current session: {e}")
            return None
        return output[0].strip() if output else None


def send_decision(
    client: TmuxClient,
    agents: list[MonitoredAgent],
    registry: ProfileRegistry,
    approve: bool,
) -> dict[str, str | None]:
    """Send each agent's approve or reject key.

    Agents may span sessions. Panes that are not recognised agents are
    skipped. A failure for one pane does not stop the others.

    Returns:
        Mapping of target to None on success or an error message.
    """
    results: dict[str, str | None] = {}
    action = "approve" if approve else "reject"
    for agent in agents:
        profile = registry.get(agent.profile_id) if agent.profile_id else None
        if profile is None:
            results[agent.target] = "not a recognised agent"
            continue
        key = profile.keys.approve if approve else profile.keys.reject
        try:
            client.send_keys(agent.target, key)
        except TransientIoError as e:
            logger.error(f"Failed to {action} {agent.target}: {e}")
            results[agent.target] = str(e)
            continue
        audit(action, target=agent.target, profile_id=profile.id, keys=key)
        results[agent.target] = None
    return results


def send_input(client: TmuxClient, targets: list[str], text: str, enter: bool = True) -> dict[str, str | None]:
    """Type ``text`` into each target pane, then press Enter unless told not to.

    Used to answer a choice with something other than the approve key, or to
    send a follow-up message. A failure for one pane does not stop the others.

    Returns:
        Mapping of target to None on success or an error message.
    """
    results: dict[str, str | None] = {}
    for target in targets:
        try:
            client.send_keys(target, text, literal=True)
            if enter:
                client.send_keys(target, "Enter")
        except TransientIoError as e:
            logger.error(f"Failed to send input to {target}: {e}")
            results[target] = str(e)
            continue
        audit("send", target=target, text=text, enter=enter)
        results[target] = None
    return results
