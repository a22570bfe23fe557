"""Tests for the structural splitters and refinement locations."""

from panewatch.detection.rules import Location, SplitterKind
from panewatch.detection.splitter import GlyphTable, blocks, locate, split, window

SEP = "─" * 30


class TestWindow:
    def test_drops_trailing_blank_lines(self):
        assert window("a\nb\n\n   \n\n", 10) == ["a", "b"]

    def test_keeps_last_lines_only(self):
        text = "\n".join(str(i) for i in range(10))
        assert window(text, 3) == ["7", "8", "9"]

    def test_strips_trailing_whitespace(self):
        assert window("❯   \nfoo  ", 5) == ["❯", "foo"]


class TestGlyphTable:
    def test_separator_detection(self):
        glyphs = GlyphTable()
        assert glyphs.is_separator(SEP)
        assert glyphs.is_separator("  " + "━" * 12 + "  ")
        assert not glyphs.is_separator("─" * 5)
        assert not glyphs.is_separator("some text with ── dashes ──────────")

    def test_expand_placeholders(self):
        glyphs = GlyphTable(prompt=">", spinner="*·")
        assert glyphs.expand("^{prompt} {spinner}") == "^[>] [\\*·]"

    def test_expand_leaves_quantifiers_alone(self):
        assert GlyphTable().expand("a{0,3}") == "a{0,3}"


class TestSeparatorSplitter:
    def test_finds_input_area_at_bottom(self):
        lines = ["out 1", "out 2", SEP, "❯ hello", SEP, "footer"]
        parts = split(lines, SplitterKind.SEPARATOR_LINE, GlyphTable())
        assert parts is not None
        assert parts.body == ["out 1", "out 2"]
        assert parts.prompt == [SEP, "❯ hello", SEP, "footer"]

    def test_multiline_input_area(self):
        lines = ["out", SEP, "❯ line one", "  line two", SEP]
        parts = split(lines, SplitterKind.SEPARATOR_LINE, GlyphTable())
        assert parts.body == ["out"]

    def test_separators_in_history_are_ignored(self):
        lines = [SEP, "❯ old", SEP] + [f"later {i}" for i in range(10)]
        assert split(lines, SplitterKind.SEPARATOR_LINE, GlyphTable()) is None

    def test_footer_longer_than_bound_rejects(self):
        lines = ["out", SEP, "❯", SEP] + [f"footer {i}" for i in range(5)]
        assert split(lines, SplitterKind.SEPARATOR_LINE, GlyphTable(), max_footer_lines=4) is None
        assert split(lines, SplitterKind.SEPARATOR_LINE, GlyphTable(), max_footer_lines=5) is not None

    def test_adjacent_separators_are_not_an_input_area(self):
        lines = ["out", SEP, SEP]
        assert split(lines, SplitterKind.SEPARATOR_LINE, GlyphTable()) is None

    def test_input_area_taller_than_bound_rejects(self):
        lines = ["out", SEP] + ["typed"] * 5 + [SEP]
        assert split(lines, SplitterKind.SEPARATOR_LINE, GlyphTable(), max_prompt_lines=4) is None


class TestPowerlineBoxSplitter:
    def test_finds_box(self):
        lines = ["body", "╭──────────╮", "│ > hi     │", "╰──────────╯"]
        parts = split(lines, SplitterKind.POWERLINE_BOX, GlyphTable())
        assert parts.body == ["body"]
        assert parts.prompt[1] == "│ > hi     │"

    def test_no_box(self):
        assert split(["just", "text"], SplitterKind.POWERLINE_BOX, GlyphTable()) is None


class TestNoneSplitter:
    def test_whole_window_is_body(self):
        parts = split(["a", "b"], SplitterKind.NONE, GlyphTable())
        assert parts.body == ["a", "b"]
        assert parts.prompt == []


class TestLocate:
    lines = ["first block", "still first", "", "second start", "second end", ""]

    def test_blocks(self):
        assert blocks(self.lines) == [["first block", "still first"], ["second start", "second end"]]

    def test_anywhere(self):
        assert locate(self.lines, Location.ANYWHERE).startswith("first block")

    def test_last_line(self):
        assert locate(self.lines, Location.LAST_LINE) == "second end"

    def test_last_block(self):
        assert locate(self.lines, Location.LAST_BLOCK) == "second start\nsecond end"

    def test_first_line_of_last_block(self):
        assert locate(self.lines, Location.FIRST_LINE_OF_LAST_BLOCK) == "second start"

    def test_empty_group(self):
        for location in Location:
            assert locate([], location) is None
            assert locate(["", "  "], location) is None
