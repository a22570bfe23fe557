"""Fixture regression runner for agent profiles.

A fixture directory holds one subdirectory per profile id. Each file in it is
named ``case_<status>_<name>.txt`` and holds a captured pane buffer; the
runner checks that the profile classifies it as ``<status>``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from panewatch.detection.engine import DetectionTrace, StatusEngine
from panewatch.detection.models import StatusKind
from panewatch.profiles.registry import ProfileRegistry

logger = logging.getLogger(__name__)

EXPECTED_KINDS = {
    "awaiting_approval": StatusKind.APPROVAL,
    "processing": StatusKind.WORKING,
    "idle": StatusKind.IDLE,
    "error": StatusKind.ERROR,
}


def expected_kind(filename: str) -> StatusKind | None:
    """Expected status encoded in a fixture filename, or None if not a case."""
    if not filename.startswith("case_"):
        return None
    rest = filename[len("case_") :]
    for name, kind in EXPECTED_KINDS.items():
        if rest.startswith(name + "_") or rest.split(".", 1)[0] == name:
            return kind
    return None


@dataclass
class FixtureCase:
    profile_id: str
    path: Path
    expected: StatusKind
    actual: StatusKind | None = None
    trace: DetectionTrace | None = None
    error: str | None = None

    @property
    def passed(self) -> bool:
        return self.error is None and self.actual is self.expected


@dataclass
class FixtureReport:
    cases: list[FixtureCase] = field(default_factory=list)

    @property
    def failures(self) -> list[FixtureCase]:
        return [case for case in self.cases if not case.passed]

    @property
    def ok(self) -> bool:
        return not self.failures


def run_fixtures(root: Path, registry: ProfileRegistry, engine: StatusEngine | None = None) -> FixtureReport:
    """Classify every fixture under ``root`` with the matching profile."""
    engine = engine or StatusEngine(registry.glyphs)
    report = FixtureReport()

    for suite in sorted(p for p in Path(root).iterdir() if p.is_dir()):
        profile = registry.get(suite.name)
        for path in sorted(suite.glob("*.txt")):
            kind = expected_kind(path.name)
            if kind is None:
                logger.debug(f"Skipping non-case fixture {path}")
                continue

            case = FixtureCase(profile_id=suite.name, path=path, expected=kind)
            report.cases.append(case)
            if profile is None:
                case.error = f"no profile with id {suite.name!r}"
                continue

            text = path.read_text(encoding="utf-8", errors="replace")
            case.trace = engine.explain(text, profile)
            case.actual = case.trace.status.kind if case.trace.status is not None else None

    logger.info(f"Ran {len(report.cases)} fixtures, {len(report.failures)} failed")
    return report
