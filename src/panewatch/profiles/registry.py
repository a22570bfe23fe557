"""Agent profile registry.

Profiles are loaded from YAML documents: the packaged defaults, optionally
merged with a user document in which a profile with the same id replaces the
default one. Every pattern is compiled and vetted while the registry is
built, so a registry that exists is always fully usable.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum, IntEnum
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import ValidationError

from panewatch.detection.models import UNKNOWN_ANCESTOR, ApprovalType, PaneSnapshot, StatusKind
from panewatch.detection.patterns import compile_pattern
from panewatch.detection.rules import Group, Location, Refinement, SplitterKind, StateRule
from panewatch.detection.splitter import GlyphTable
from panewatch.detection.subagents import SubagentRules
from panewatch.errors import ConfigurationError
from panewatch.profiles.schema import GlyphSpec, ProfileDocument, ProfileSpec

logger = logging.getLogger(__name__)

DEFAULT_PROFILES_PATH = Path(__file__).parent.parent / "data" / "default_profiles.yaml"


class MatcherKind(str, Enum):
    COMMAND = "command"
    TITLE = "title"
    CONTENT = "content"
    ANCESTOR = "ancestor"


class MatchStrength(IntEnum):
    """How strongly a matcher identifies a pane. Title matches are weak."""

    NONE = 0
    WEAK = 1
    STRONG = 2


@dataclass(frozen=True)
class Matcher:
    """A compiled identification pattern.

    Command matchers test both the foreground command and its full command
    line. Ancestor matchers test each resolved ancestor command. Content
    matchers test the captured buffer and only confirm a pane that an
    identity matcher of the same profile already matched.
    """

    kind: MatcherKind
    pattern: re.Pattern[str]
    requires_content: bool = False

    @property
    def strength(self) -> MatchStrength:
        return MatchStrength.WEAK if self.kind is MatcherKind.TITLE else MatchStrength.STRONG

    def matches_snapshot(self, snapshot: PaneSnapshot) -> bool:
        if self.kind is MatcherKind.COMMAND:
            return bool(
                self.pattern.search(snapshot.command)
                or (snapshot.full_cmdline and self.pattern.search(snapshot.full_cmdline))
            )
        if self.kind is MatcherKind.TITLE:
            return bool(snapshot.title and self.pattern.search(snapshot.title))
        if self.kind is MatcherKind.ANCESTOR:
            return any(
                self.pattern.search(command)
                for command in snapshot.ancestor_commands
                if command != UNKNOWN_ANCESTOR
            )
        return False

    def matches_content(self, text: str) -> bool:
        return bool(self.pattern.search(text))

    def describe(self) -> str:
        return f"{self.kind.value}:{self.pattern.pattern}"


@dataclass(frozen=True)
class AgentKeys:
    approve: str = "y"
    reject: str = "n"


@dataclass(frozen=True)
class AgentProfile:
    """A compiled agent profile.

    Attributes:
        id: Unique profile id.
        display_name: Name shown in the dashboard.
        priority: Higher priorities are tried first.
        matchers: Identification patterns.
        state_rules: Ordered status detection rules.
        default_type: Status kind used when no rule decides.
        default_status: Label for the default status.
        subagent_rules: Optional subagent patterns.
        keys: Keys sent for approve and reject actions.
        color: Optional display color.
    """

    id: str
    display_name: str
    priority: int = 0
    matchers: tuple[Matcher, ...] = ()
    state_rules: tuple[StateRule, ...] = ()
    default_type: StatusKind | None = None
    default_status: str | None = None
    subagent_rules: SubagentRules | None = None
    keys: AgentKeys = AgentKeys()
    color: str | None = None

    @property
    def identity_matchers(self) -> tuple[Matcher, ...]:
        return tuple(m for m in self.matchers if not m.requires_content)

    @property
    def content_matchers(self) -> tuple[Matcher, ...]:
        return tuple(m for m in self.matchers if m.requires_content)


def _compile_profile(spec: ProfileSpec, glyphs: GlyphTable) -> AgentProfile:
    where = f"profile {spec.id!r}"

    def pattern(source: str, field: str) -> re.Pattern[str]:
        return compile_pattern(glyphs.expand(source), f"{where} {field}")

    matchers = []
    for i, m in enumerate(spec.matchers):
        kind = MatcherKind(m.kind)
        requires_content = kind is MatcherKind.CONTENT
        if m.requires_content is not None and m.requires_content != requires_content:
            raise ConfigurationError(
                f"{where} matchers[{i}]: requires_content must be {requires_content} for {kind.value} matchers"
            )
        matchers.append(Matcher(kind, pattern(m.pattern, f"matchers[{i}]"), requires_content))

    if any(m.requires_content for m in matchers) and not any(not m.requires_content for m in matchers):
        raise ConfigurationError(
            f"{where}: content matchers need a command, ancestor or title matcher to gate them"
        )

    rules = []
    for r, rule in enumerate(spec.state_rules):
        refinements = tuple(
            Refinement(
                group=Group(ref.group),
                location=Location(ref.location),
                pattern=pattern(ref.pattern, f"state_rules[{r}].refinements[{i}]"),
                kind=StatusKind(ref.kind),
                status=ref.status,
                approval_type=ApprovalType.parse(ref.approval_type) if ref.kind == "approval" else None,
            )
            for i, ref in enumerate(rule.refinements)
        )
        rules.append(
            StateRule(
                name=rule.name or str(r),
                splitter=SplitterKind(rule.splitter),
                last_lines=rule.last_lines,
                refinements=refinements,
                max_prompt_lines=rule.max_prompt_lines,
                max_footer_lines=rule.max_footer_lines,
            )
        )

    subagent_rules = None
    if spec.subagent_rules is not None:
        sub = spec.subagent_rules
        subagent_rules = SubagentRules(
            **{
                name: pattern(source, f"subagent_rules.{name}")
                for name, source in sub.model_dump().items()
                if source
            }
        )

    return AgentProfile(
        id=spec.id,
        display_name=spec.name or spec.id,
        priority=spec.priority,
        matchers=tuple(matchers),
        state_rules=tuple(rules),
        default_type=StatusKind(spec.default_type) if spec.default_type else None,
        default_status=spec.default_status,
        subagent_rules=subagent_rules,
        keys=AgentKeys(approve=spec.keys.approve, reject=spec.keys.reject),
        color=spec.color,
    )


def glyph_table(spec: GlyphSpec | None) -> GlyphTable:
    if spec is None:
        return GlyphTable()
    return GlyphTable(**spec.model_dump())


class ProfileRegistry:
    """Immutable, priority-ordered collection of agent profiles.

    Profiles are kept sorted by descending priority; equal priorities keep
    their load order.
    """

    def __init__(self, profiles: Iterable[AgentProfile], glyphs: GlyphTable | None = None):
        ordered = sorted(profiles, key=lambda p: -p.priority)
        seen: set[str] = set()
        for profile in ordered:
            if profile.id in seen:
                raise ConfigurationError(f"Duplicate profile id {profile.id!r}")
            seen.add(profile.id)
        self._profiles = tuple(ordered)
        self._by_id = {p.id: p for p in ordered}
        self.glyphs = glyphs or GlyphTable()

    @property
    def profiles(self) -> tuple[AgentProfile, ...]:
        return self._profiles

    def __iter__(self) -> Iterator[AgentProfile]:
        return iter(self._profiles)

    def __len__(self) -> int:
        return len(self._profiles)

    def __contains__(self, profile_id: object) -> bool:
        return profile_id in self._by_id

    def get(self, profile_id: str) -> AgentProfile | None:
        return self._by_id.get(profile_id)

    @classmethod
    def from_document(cls, document: ProfileDocument) -> ProfileRegistry:
        """Compile a validated document into a registry.

        Raises:
            ConfigurationError: If any profile is invalid.
        """
        ids = [spec.id for spec in document.agents]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate profile ids: {', '.join(duplicates)}")

        glyphs = glyph_table(document.glyphs)
        profiles = [_compile_profile(spec, glyphs) for spec in document.agents]
        logger.info(f"Loaded {len(profiles)} agent profiles")
        return cls(profiles, glyphs)

    @classmethod
    def from_yaml(cls, text: str, source: str = "<string>") -> ProfileRegistry:
        return cls.from_document(parse_document(text, source))


def parse_document(text: str, source: str) -> ProfileDocument:
    """Parse and validate a profile document.

    Raises:
        ConfigurationError: If the YAML is malformed or fails validation.
    """
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse {source}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{source}: expected a mapping at the top level")

    try:
        return ProfileDocument.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"{source}: {_describe_validation_error(e, data)}") from e


def _describe_validation_error(error: ValidationError, data: dict) -> str:
    messages = []
    agents = data.get("agents") if isinstance(data.get("agents"), list) else []
    for item in error.errors():
        loc = list(item["loc"])
        field = ".".join(str(part) for part in loc)
        if len(loc) >= 2 and loc[0] == "agents" and isinstance(loc[1], int) and loc[1] < len(agents):
            entry = agents[loc[1]]
            profile_id = entry.get("id") if isinstance(entry, dict) else None
            if profile_id:
                field = f"profile {profile_id!r} " + ".".join(str(part) for part in loc[2:])
        messages.append(f"{field}: {item['msg']}")
    return "; ".join(messages)


def load_document(path: Path) -> ProfileDocument:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read profile file {path}: {e}") from e
    return parse_document(text, str(path))


@lru_cache(maxsize=1)
def load_default_document() -> ProfileDocument:
    """Load the packaged default profiles (cached)."""
    return load_document(DEFAULT_PROFILES_PATH)


def merge_documents(base: ProfileDocument, override: ProfileDocument) -> ProfileDocument:
    """Merge ``override`` into ``base``.

    Profiles with an id already in ``base`` replace it in place; new ids are
    appended. An override glyph table replaces the base one.
    """
    agents = {spec.id: spec for spec in base.agents}
    for spec in override.agents:
        agents[spec.id] = spec
    return ProfileDocument(glyphs=override.glyphs or base.glyphs, agents=list(agents.values()))


def load_registry(user_path: Path | None = None, include_defaults: bool = True) -> ProfileRegistry:
    """Build a registry from the packaged defaults and an optional user file.

    Raises:
        ConfigurationError: If either document is invalid.
    """
    document = load_default_document() if include_defaults else ProfileDocument()
    if user_path is not None:
        document = merge_documents(document, load_document(user_path))
        logger.info(f"Merged user profiles from {user_path}")
    return ProfileRegistry.from_document(document)
