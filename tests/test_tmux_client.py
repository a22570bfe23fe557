"""Unit tests for tmux_client.py with a mocked libtmux server and psutil."""

from unittest.mock import Mock, call, patch

import psutil
import pytest
from conftest import make_agent
from libtmux.exc import LibTmuxException

from panewatch.detection.models import UNKNOWN_ANCESTOR
from panewatch.errors import TransientIoError
from panewatch.tmux_client import FIELD_SEPARATOR, ProcessInspector, TmuxClient, send_decision, send_input


def cmd_result(stdout=None, stderr=None):
    return Mock(stdout=stdout or [], stderr=stderr or [])


def pane_line(session="main", attached="1", window="0", pane="0", pid="4242", command="claude"):
    return FIELD_SEPARATOR.join([session, attached, window, "editor", pane, pid, command, "✳ Claude Code", "/work"])


@pytest.fixture
def server():
    return Mock()


@pytest.fixture
def client(server):
    inspector = Mock()
    inspector.describe.return_value = ("node /opt/claude/cli.js", ("zsh",))
    return TmuxClient(capture_lines=50, server=server, inspector=inspector)


class TestListPanes:
    """Test pane listing and parsing."""

    def test_parses_snapshot(self, client, server):
        server.cmd.return_value = cmd_result([pane_line(), pane_line(session="bg", attached="0", pane="1", pid="7")])

        panes = client.list_panes()

        assert [p.target for p in panes] == ["main:0.0", "bg:0.1"]
        first = panes[0]
        assert first.pid == 4242
        assert first.command == "claude"
        assert first.title == "✳ Claude Code"
        assert first.full_cmdline == "node /opt/claude/cli.js"
        assert first.ancestor_commands == ("zsh",)
        assert first.session_attached
        assert not panes[1].session_attached
        assert server.cmd.call_args.args[:3] == ("list-panes", "-a", "-F")

    def test_skips_malformed_lines(self, client, server):
        server.cmd.return_value = cmd_result(["garbage", pane_line(pid="abc"), pane_line()])
        assert len(client.list_panes()) == 1

    def test_stderr_is_transient_error(self, client, server):
        server.cmd.return_value = cmd_result(stderr=["no server running on /tmp/tmux-1000/default"])
        with pytest.raises(TransientIoError, match="no server running"):
            client.list_panes()

    def test_libtmux_exception_is_transient_error(self, client, server):
        server.cmd.side_effect = LibTmuxException("tmux not found")
        with pytest.raises(TransientIoError):
            client.list_panes()


class TestPaneCommands:
    """Test capture, key sending and focus."""

    def test_capture_includes_scrollback(self, client, server):
        server.cmd.return_value = cmd_result(["line 1", "line 2"])
        assert client.capture_pane("main:0.0") == "line 1\nline 2"
        server.cmd.assert_called_once_with("capture-pane", "-p", "-t", "main:0.0", "-S", "-50")

    def test_capture_of_vanished_pane(self, client, server):
        server.cmd.return_value = cmd_result(stderr=["can't find pane: %9"])
        with pytest.raises(TransientIoError):
            client.capture_pane("main:0.9")

    def test_send_keys(self, client, server):
        server.cmd.return_value = cmd_result()
        client.send_keys("main:0.0", "y")
        server.cmd.assert_called_once_with("send-keys", "-t", "main:0.0", "y")

    def test_send_literal_text(self, client, server):
        server.cmd.return_value = cmd_result()
        client.send_keys("main:0.0", "Enter the plan", literal=True)
        server.cmd.assert_called_once_with("send-keys", "-l", "-t", "main:0.0", "Enter the plan")

    def test_focus_outside_tmux(self, client, server, monkeypatch):
        monkeypatch.delenv("TMUX", raising=False)
        server.cmd.return_value = cmd_result()
        client.focus_pane("work:1.2")
        assert [c.args[0] for c in server.cmd.call_args_list] == ["select-window", "select-pane"]

    def test_focus_inside_tmux_switches_client(self, client, server, monkeypatch):
        monkeypatch.setenv("TMUX", "/tmp/tmux-1000/default,1,0")
        server.cmd.return_value = cmd_result()
        client.focus_pane("work:1.2")
        assert [c.args[0] for c in server.cmd.call_args_list] == ["switch-client", "select-window", "select-pane"]

    def test_current_session(self, client, server, monkeypatch):
        monkeypatch.setenv("TMUX", "/tmp/tmux-1000/default,1,0")
        monkeypatch.setenv("TMUX_PANE", "%3")
        server.cmd.return_value = cmd_result(["dash"])
        assert client.current_session() == "dash"

    def test_current_session_outside_tmux(self, client, monkeypatch):
        monkeypatch.delenv("TMUX", raising=False)
        assert client.current_session() is None


class TestProcessInspector:
    """Test ancestor resolution with mocked psutil processes."""

    @staticmethod
    def proc(pid, cmdline, parent=None, children=()):
        p = Mock(pid=pid)
        p.cmdline.return_value = cmdline
        p.name.return_value = cmdline[0] if cmdline else "?"
        p.parent.return_value = parent
        p.children.return_value = list(children)
        p.create_time.return_value = float(pid)
        return p

    def test_ancestors_nearest_first(self):
        root = self.proc(100, ["-zsh"])
        wrapper = self.proc(101, ["wrapper-cli", "--fast"], parent=root)
        leaf = self.proc(102, ["node", "agent.js"], parent=wrapper)
        wrapper.children.return_value = [leaf]
        root.children.return_value = [wrapper, leaf]

        with patch("panewatch.tmux_client.psutil.Process", return_value=root):
            cmdline, ancestors = ProcessInspector().describe(100)

        assert cmdline == "node agent.js"
        assert ancestors == ("wrapper-cli --fast", "-zsh")

    def test_pane_without_children(self):
        root = self.proc(100, ["claude"])
        with patch("panewatch.tmux_client.psutil.Process", return_value=root):
            assert ProcessInspector().describe(100) == ("claude", ())

    def test_broken_chain_ends_with_sentinel(self):
        root = self.proc(100, ["zsh"])
        orphan_parent = self.proc(101, ["sh"], parent=None)
        leaf = self.proc(102, ["agent"], parent=orphan_parent)
        root.children.return_value = [leaf]

        with patch("panewatch.tmux_client.psutil.Process", return_value=root):
            _, ancestors = ProcessInspector().describe(100)

        assert ancestors == ("sh", UNKNOWN_ANCESTOR)

    def test_depth_limit(self):
        root = self.proc(100, ["zsh"])
        chain = root
        for pid in range(101, 110):
            chain = self.proc(pid, [f"p{pid}"], parent=chain)
        root.children.return_value = [chain]

        with patch("panewatch.tmux_client.psutil.Process", return_value=root):
            _, ancestors = ProcessInspector(max_depth=3).describe(100)

        assert ancestors == ("p108", "p107", "p106", UNKNOWN_ANCESTOR)

    def test_vanished_process(self):
        with patch("panewatch.tmux_client.psutil.Process", side_effect=psutil.NoSuchProcess(100)):
            assert ProcessInspector().describe(100) == ("", (UNKNOWN_ANCESTOR,))

    def test_access_denied_cmdline_falls_back_to_name(self):
        root = self.proc(100, ["zsh"])
        root.cmdline.side_effect = psutil.AccessDenied(100)
        root.name.return_value = "zsh"
        with patch("panewatch.tmux_client.psutil.Process", return_value=root):
            assert ProcessInspector().describe(100)[0] == "zsh"

    def test_foreground_follows_reported_command(self):
        root = self.proc(100, ["-zsh"])
        agent = self.proc(101, ["node", "/opt/claude/cli.js"], parent=root)
        mcp = self.proc(102, ["node", "mcp-server.js"], parent=agent)
        helper = self.proc(103, ["rg", "TODO"], parent=agent)
        agent.children.return_value = [mcp, helper]
        root.children.return_value = [agent, mcp, helper]

        with patch("panewatch.tmux_client.psutil.Process", return_value=root):
            cmdline, ancestors = ProcessInspector().describe(100, "node")

        assert cmdline == "node /opt/claude/cli.js"
        assert ancestors == ("-zsh",)

    def test_unknown_reported_command_uses_newest_leaf(self):
        root = self.proc(100, ["-zsh"])
        leaf = self.proc(101, ["agent"], parent=root)
        root.children.return_value = [leaf]

        with patch("panewatch.tmux_client.psutil.Process", return_value=root):
            assert ProcessInspector().describe(100, "python3")[0] == "agent"


class TestSendDecision:
    """Test approve/reject fan-out across panes."""

    def test_sends_profile_keys_and_reports_per_pane(self, registry):
        client = Mock()

        def send_keys(target, key):
            if target == "other:0.0":
                raise TransientIoError("can't find pane")

        client.send_keys.side_effect = send_keys
        agents = [
            make_agent("main:0.0", 1),
            make_agent("other:0.0", 2),
            make_agent("main:0.1", 3, profile_id=None),
        ]

        results = send_decision(client, agents, registry, approve=True)

        assert results["main:0.0"] is None
        assert "can't find pane" in results["other:0.0"]
        assert results["main:0.1"] == "not a recognised agent"
        client.send_keys.assert_any_call("main:0.0", "y")

    def test_reject_key(self, registry):
        client = Mock()
        send_decision(client, [make_agent("main:0.0", 1)], registry, approve=False)
        client.send_keys.assert_called_once_with("main:0.0", "n")


class TestSendInput:
    """Test typing text into several panes."""

    def test_types_text_then_enter(self):
        client = Mock()
        results = send_input(client, ["main:0.0", "other:1.0"], "2")

        assert results == {"main:0.0": None, "other:1.0": None}
        assert client.send_keys.call_args_list[:2] == [
            call("main:0.0", "2", literal=True),
            call("main:0.0", "Enter"),
        ]

    def test_without_enter(self):
        client = Mock()
        send_input(client, ["main:0.0"], "draft", enter=False)
        client.send_keys.assert_called_once_with("main:0.0", "draft", literal=True)

    def test_failure_is_reported_per_pane(self):
        client = Mock()

        def send_keys(target, *keys, literal=False):
            if target == "gone:0.0":
                raise TransientIoError("can't find pane")

        client.send_keys.side_effect = send_keys

        results = send_input(client, ["gone:0.0", "main:0.0"], "yes")

        assert "can't find pane" in results["gone:0.0"]
        assert results["main:0.0"] is None
