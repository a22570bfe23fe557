"""Structural splitters that locate an agent's input area.

Splitters work bottom-up from the true end of the buffer. Only a bounded
footer is allowed below the input area, so a separator or box scrolled up
into history never counts as the current input area.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from panewatch.detection.rules import Group, Location, SplitterKind


@dataclass(frozen=True)
class GlyphTable:
    """Glyphs that agent UIs draw, loaded from profile configuration.

    Attributes:
        horizontal: Characters that make up separator lines.
        min_separator_width: Shortest horizontal run treated as a separator.
        box_top_left: Rounded box top-left corner.
        box_bottom_left: Rounded box bottom-left corner.
        box_vertical: Box side glyph.
        prompt: Characters used as prompt or selection markers.
        spinner: Characters used as activity spinners.
    """

    horizontal: str = "─━═"
    min_separator_width: int = 10
    box_top_left: str = "╭"
    box_bottom_left: str = "╰"
    box_vertical: str = "│"
    prompt: str = "❯>›"
    spinner: str = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏✻✶✳✢✽·*"

    def char_class(self, chars: str) -> str:
        return "[" + "".join(re.escape(c) for c in chars) + "]"

    def expand(self, source: str) -> str:
        """Substitute ``{spinner}``, ``{prompt}`` and ``{hr}`` placeholders."""
        return (
            source.replace("{spinner}", self.char_class(self.spinner))
            .replace("{prompt}", self.char_class(self.prompt))
            .replace("{hr}", self.char_class(self.horizontal))
        )

    def is_separator(self, line: str) -> bool:
        stripped = line.strip().strip(self.box_vertical).strip()
        if len(stripped) < self.min_separator_width or stripped[0] not in self.horizontal:
            return False
        run = sum(1 for c in stripped if c in self.horizontal)
        return run >= self.min_separator_width and run >= 0.8 * len(stripped)

    def is_box_top(self, line: str) -> bool:
        return line.strip().startswith(self.box_top_left)

    def is_box_bottom(self, line: str) -> bool:
        return line.strip().startswith(self.box_bottom_left)


@dataclass(frozen=True)
class Split:
    """Body and prompt groups produced by a splitter."""

    body: list[str]
    prompt: list[str]

    def group(self, group: Group) -> list[str]:
        return self.body if group is Group.BODY else self.prompt


def window(text: str, last_lines: int) -> list[str]:
    """Return the last ``last_lines`` lines of ``text`` ending at its true end.

    Trailing whitespace is stripped from every line and trailing blank lines,
    which tmux emits for the unused part of the screen, are dropped.
    """
    lines = [line.rstrip() for line in text.splitlines()]
    while lines and not lines[-1]:
        lines.pop()
    return lines[-last_lines:] if last_lines > 0 else []


def _find_frame(lines, is_lower, is_upper, max_prompt_lines, max_footer_lines) -> int | None:
    """Return the index of the upper frame line of the bottom-most input area."""
    n = len(lines)
    lowest = max(0, n - 1 - max_footer_lines)
    for lower in range(n - 1, lowest - 1, -1):
        if not is_lower(lines[lower]):
            continue
        for upper in range(lower - 1, max(-1, lower - 2 - max_prompt_lines), -1):
            if is_upper(lines[upper]):
                if lower - upper - 1 >= 1:
                    return upper
                break
    return None


def split(
    lines: list[str],
    kind: SplitterKind,
    glyphs: GlyphTable,
    max_prompt_lines: int = 8,
    max_footer_lines: int = 4,
) -> Split | None:
    """Divide a window into body and prompt groups.

    Returns:
        The split, or None when the splitter's structure is not present at
        the end of the window.
    """
    if kind is SplitterKind.NONE:
        return Split(body=list(lines), prompt=[])

    if kind is SplitterKind.SEPARATOR_LINE:
        upper = _find_frame(
            lines, glyphs.is_separator, glyphs.is_separator, max_prompt_lines, max_footer_lines
        )
    else:
        upper = _find_frame(
            lines, glyphs.is_box_bottom, glyphs.is_box_top, max_prompt_lines, max_footer_lines
        )

    if upper is None:
        return None
    return Split(body=lines[:upper], prompt=lines[upper:])


def blocks(lines: list[str]) -> list[list[str]]:
    """Group lines into runs separated by blank lines."""
    result: list[list[str]] = []
    current: list[str] = []
    for line in lines:
        if line.strip():
            current.append(line)
        elif current:
            result.append(current)
            current = []
    if current:
        result.append(current)
    return result


def locate(lines: list[str], location: Location) -> str | None:
    """Extract the text a refinement is tested against, or None if empty."""
    if location is Location.ANYWHERE:
        text = "\n".join(lines).strip("\n")
        return text if text.strip() else None
    if location is Location.LAST_LINE:
        for line in reversed(lines):
            if line.strip():
                return line
        return None

    found = blocks(lines)
    if not found:
        return None
    if location is Location.LAST_BLOCK:
        return "\n".join(found[-1])
    return found[-1][0]
