"""Pydantic schema for profile documents.

A profile document is YAML with an optional ``glyphs`` table and a list of
``agents``. Validation here is purely structural; patterns are compiled and
vetted when the registry is built.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

StatusType = Literal["idle", "working", "approval", "error"]


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class MatcherSpec(_Strict):
    """One identification pattern."""

    kind: Literal["command", "title", "content", "ancestor"] = Field(alias="type")
    pattern: str
    requires_content: bool | None = None


class RefinementSpec(_Strict):
    """One pattern test inside a state rule."""

    group: Literal["body", "prompt"] = "body"
    location: Literal["anywhere", "last_line", "last_block", "first_line_of_last_block"] = "anywhere"
    pattern: str
    status: str
    kind: StatusType = Field(alias="type")
    approval_type: str | None = None


class StateRuleSpec(_Strict):
    name: str | None = None
    splitter: Literal["none", "separator_line", "powerline_box"] = "none"
    last_lines: int = Field(default=30, ge=1)
    max_prompt_lines: int = Field(default=8, ge=1)
    max_footer_lines: int = Field(default=4, ge=0)
    refinements: list[RefinementSpec] = Field(min_length=1)


class SubagentRulesSpec(_Strict):
    start: str | None = None
    running: str | None = None
    complete: str | None = None
    failed: str | None = None


class KeysSpec(_Strict):
    """Keys sent to the pane for approve and reject actions."""

    approve: str = "y"
    reject: str = "n"


class ProfileSpec(_Strict):
    id: str = Field(min_length=1)
    name: str | None = None
    priority: int = 0
    color: str | None = None
    default_type: StatusType | None = None
    default_status: str | None = None
    matchers: list[MatcherSpec] = Field(default_factory=list)
    state_rules: list[StateRuleSpec] = Field(default_factory=list)
    subagent_rules: SubagentRulesSpec | None = None
    keys: KeysSpec = Field(default_factory=KeysSpec)


class GlyphSpec(_Strict):
    horizontal: str = Field(default="─━═", min_length=1)
    min_separator_width: int = Field(default=10, ge=2)
    box_top_left: str = Field(default="╭", min_length=1)
    box_bottom_left: str = Field(default="╰", min_length=1)
    box_vertical: str = Field(default="│", min_length=1)
    prompt: str = Field(default="❯>›", min_length=1)
    spinner: str = Field(default="⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏✻✶✳✢✽·*", min_length=1)


class ProfileDocument(_Strict):
    glyphs: GlyphSpec | None = None
    agents: list[ProfileSpec] = Field(default_factory=list)
