"""Behaviour of the packaged default profiles on representative buffers."""

import pytest
from conftest import SEP, make_snapshot, sandwich

from panewatch.detection.engine import StatusEngine
from panewatch.detection.models import (
    ApprovalType,
    AwaitingApproval,
    Error,
    Idle,
    Processing,
    SubagentStatus,
)
from panewatch.profiles.matcher import AgentMatcher, LazyCapture

UNRELATED = [f"unrelated output line {i}" for i in range(40)]


@pytest.fixture
def engine(default_registry):
    return StatusEngine(default_registry.glyphs)


@pytest.fixture
def claude(default_registry):
    return default_registry.get("claude")


def test_profile_order(default_registry):
    assert [p.id for p in default_registry] == ["claude", "codex", "gemini", "opencode"]


class TestClaude:
    def test_idle_input_area(self, engine, claude):
        text = "\n".join(UNRELATED + [SEP, "> ", SEP, "  ? for shortcuts"])
        assert isinstance(engine.detect(text, claude), Idle)

    def test_choice_in_input_area(self, engine, claude):
        text = "\n".join(UNRELATED + [SEP, "❯ 1. Yes  2. No", SEP, "  ? for shortcuts"])
        status = engine.detect(text, claude)
        assert isinstance(status, AwaitingApproval)
        assert status.approval_type is ApprovalType.USER_CHOICE

    def test_spinner_on_last_line(self, engine, claude):
        status = engine.detect("\n".join(UNRELATED + ["", "✻ Thinking…"]), claude)
        assert status == Processing(activity="Thinking…")

    def test_edit_permission_menu(self, engine, claude):
        text = "\n".join(
            UNRELATED
            + [
                "",
                " Do you want to make this edit to foo.py?",
                " ❯ 1. Yes",
                "   2. Yes, and don't ask again this session (shift+tab)",
                "   3. No, and tell Claude what to do differently (esc)",
                "",
            ]
        )
        assert engine.detect(text, claude) == AwaitingApproval(ApprovalType.FILE_EDIT, "foo.py")

    def test_working_above_input_area(self, engine, claude):
        text = sandwich(UNRELATED + ["", "✻ Reticulating… (12s · esc to interrupt)"])
        assert engine.detect(text, claude) == Processing(activity="Reticulating…")

    def test_api_error_above_input_area(self, engine, claude):
        text = sandwich(UNRELATED + ["", "  ⎿  API Error: 529 overloaded"])
        assert engine.detect(text, claude) == Error(message="529 overloaded")

    def test_old_menu_in_history_is_ignored(self, engine, claude):
        history = [" Do you want to make this edit to foo.py?", " ❯ 1. Yes", "   2. No", ""]
        text = sandwich(history + UNRELATED[:12])
        assert engine.detect(text, claude) == Idle(label="Ready")

    def test_answered_menu_directly_above_input_area_is_ignored(self, engine, claude):
        menu = [" Do you want to proceed?", " ❯ 1. Yes", "   2. No"]
        text = "\n".join(UNRELATED + menu + [SEP, "> ", SEP, "  ? for shortcuts"])
        assert engine.detect(text, claude) == Idle(label="Ready")

    def test_spinner_directly_above_input_area(self, engine, claude):
        text = "\n".join(UNRELATED + ["✻ Thinking…", SEP, "> ", SEP, "  ? for shortcuts"])
        assert engine.detect(text, claude) == Processing(activity="Thinking…")

    def test_subagents(self, engine, claude):
        text = "\n".join(
            [
                "⏺ Explore(find config files)  ⎿  Done (3 tool uses)",
                "⏺ Plan(outline the change)",
                "  ⎿  Reading files…",
            ]
        )
        subagents = {s.subagent_type: s for s in engine.subagents(text, claude)}
        assert subagents["Explore"].status is SubagentStatus.COMPLETED
        assert subagents["Plan"].status is SubagentStatus.RUNNING
        assert subagents["Plan"].description == "outline the change"

    def test_identified_through_ancestor(self, default_registry):
        snapshot = make_snapshot(command="node", ancestors=("claude", "zsh"))
        result = AgentMatcher(default_registry).match(snapshot, LazyCapture.of(""))
        assert result.profile.id == "claude"


class TestCodex:
    @pytest.fixture
    def codex(self, default_registry):
        return default_registry.get("codex")

    def test_command_approval(self, engine, codex):
        text = "ran tests\n\nWould you like to run the following command?\n  $ make build\n"
        assert engine.detect(text, codex) == AwaitingApproval(ApprovalType.SHELL_COMMAND, "Run command")

    def test_command_approval_with_options(self, engine, codex):
        text = "\n".join(
            [
                "• Ran tests",
                "",
                "Would you like to run the following command?",
                "",
                "  $ make build",
                "",
                "› 1. Yes, proceed (y)",
                "  2. No, and tell Codex what to do differently (esc)",
                "",
                "  Press enter to confirm or esc to cancel",
            ]
        )
        assert engine.detect(text, codex) == AwaitingApproval(ApprovalType.SHELL_COMMAND, "Run command")

    def test_answered_question_with_prompt_below_is_idle(self, engine, codex):
        text = "Would you like to run the following command?\n  $ make\nran make ok\n› "
        assert engine.detect(text, codex) == Idle(label="Ready")

    def test_working_after_answered_question(self, engine, codex):
        text = "\n".join(
            [
                "Would you like to run the following command?",
                "  $ make",
                "",
                "• Working (3s • esc to interrupt)",
                "",
                "› Ask Codex to do anything",
            ]
        )
        assert engine.detect(text, codex) == Processing(activity="Working")


class TestGemini:
    BOX_TOP = "╭" + "─" * 30 + "╮"
    BOX_BOTTOM = "╰" + "─" * 30 + "╯"

    @pytest.fixture
    def gemini(self, default_registry):
        return default_registry.get("gemini")

    def input_box(self):
        return [self.BOX_TOP, "│ >   Type your message       │", self.BOX_BOTTOM, "~/work  gemini-2.5-pro"]

    def test_input_box(self, engine, gemini):
        text = "\n".join(UNRELATED[:5] + self.input_box())
        assert engine.detect(text, gemini) == Idle(label="Ready")

    def test_execution_confirmation(self, engine, gemini):
        text = "\n".join(
            UNRELATED[:5]
            + [
                self.BOX_TOP,
                "│ ?  Shell rm -rf build        │",
                "│ Allow execution?             │",
                "│ ● 1. Yes, allow once         │",
                "│   2. No (esc)                │",
                self.BOX_BOTTOM,
            ]
        )
        assert engine.detect(text, gemini) == AwaitingApproval(ApprovalType.OTHER, "Action Required")

    def test_answered_confirmation_is_ignored(self, engine, gemini):
        answered = [self.BOX_TOP, "│ Allow execution?             │", "│ ● 1. Yes, allow once         │", self.BOX_BOTTOM]
        text = "\n".join(answered + ["✓ Shell rm -rf build"] + self.input_box())
        assert engine.detect(text, gemini) == Idle(label="Ready")

    def test_spinner_above_input_box(self, engine, gemini):
        text = "\n".join(UNRELATED[:5] + ["⠋ Reading files (esc to cancel, 2s)"] + self.input_box())
        assert engine.detect(text, gemini) == Processing(activity="Working...")


class TestOpenCode:
    @pytest.fixture
    def opencode(self, default_registry):
        return default_registry.get("opencode")

    def test_working(self, engine, opencode):
        assert engine.detect("building\n  esc interrupt\n", opencode) == Processing(activity="Working...")

    def test_permission_while_working(self, engine, opencode):
        text = "building\n  esc to interrupt\nPermission required: bash rm -rf build\n  Allow once   Reject"
        assert engine.detect(text, opencode) == AwaitingApproval(ApprovalType.OTHER, "Permission")

    def test_answered_permission_is_ignored(self, engine, opencode):
        lines = ["Permission required: bash make", "  Allow once   Reject"] + UNRELATED[:12] + ["  esc interrupt"]
        assert engine.detect("\n".join(lines), opencode) == Processing(activity="Working...")
