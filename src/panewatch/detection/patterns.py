"""Load-time compilation and safety checks for detection patterns.

Python's ``re`` engine cannot be interrupted mid-match, so patterns are vetted
before they enter a registry: they must compile, must not nest an unbounded
quantifier inside another unbounded quantifier, and must finish a set of
adversarial probe inputs within a small time budget.
"""

from __future__ import annotations

import logging
import re
import time

from panewatch.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_FLAGS = re.MULTILINE

PROBE_BUDGET_SECONDS = 0.1

_PROBE_INPUTS = (
    "a" * 1024,
    " " * 1024,
    "\n" * 512,
    "─" * 512,
    "1. " * 256,
    ("x" * 60 + "\n") * 16,
)


def _skip_class(source: str, i: int) -> int:
    """Return the index just past the character class starting at ``i``."""
    i += 1
    if i < len(source) and source[i] == "^":
        i += 1
    if i < len(source) and source[i] == "]":
        i += 1
    while i < len(source) and source[i] != "]":
        i += 2 if source[i] == "\\" else 1
    return i + 1


def _unbounded_quantifier_at(source: str, i: int) -> bool:
    if i >= len(source):
        return False
    if source[i] in "*+":
        return True
    if source[i] == "{":
        end = source.find("}", i)
        return end != -1 and re.fullmatch(r"\{\d*,\}", source[i : end + 1]) is not None
    return False


def has_nested_quantifier(source: str) -> bool:
    """Detect groups like ``(a+)+`` or ``(?:x*\\s)*`` in a pattern source.

    This is a structural heuristic, not a full regex parser. It is meant to
    catch the common catastrophic-backtracking shapes.
    """
    stack: list[bool] = []
    i = 0
    while i < len(source):
        ch = source[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "[":
            i = _skip_class(source, i)
            if stack and _unbounded_quantifier_at(source, i):
                stack[-1] = True
            continue
        if ch == "(":
            stack.append(False)
        elif ch == ")":
            inner = stack.pop() if stack else False
            if inner and _unbounded_quantifier_at(source, i + 1):
                return True
            if stack and (inner or _unbounded_quantifier_at(source, i + 1)):
                stack[-1] = True
        elif stack and _unbounded_quantifier_at(source, i):
            stack[-1] = True
        i += 1
    return False


def compile_pattern(source: str, where: str, flags: int = DEFAULT_FLAGS) -> re.Pattern[str]:
    """Compile and vet a detection pattern.

    Args:
        source: Regular expression source text.
        where: Human-readable location used in error messages, e.g.
            ``"profile 'claude' state_rules[0].refinements[2]"``.
        flags: ``re`` flags, MULTILINE by default.

    Returns:
        The compiled pattern.

    Raises:
        ConfigurationError: If the pattern is invalid or unsafe.
    """
    try:
        compiled = re.compile(source, flags)
    except re.error as e:
        raise ConfigurationError(f"{where}: invalid pattern {source!r}: {e}") from e

    if has_nested_quantifier(source):
        raise ConfigurationError(
            f"{where}: pattern {source!r} nests unbounded quantifiers and may backtrack without limit"
        )

    for probe in _PROBE_INPUTS:
        started = time.perf_counter()
        compiled.search(probe)
        elapsed = time.perf_counter() - started
        if elapsed > PROBE_BUDGET_SECONDS:
            raise ConfigurationError(
                f"{where}: pattern {source!r} took {elapsed:.3f}s on a probe input "
                f"(budget {PROBE_BUDGET_SECONDS}s)"
            )

    logger.debug(f"Compiled pattern for {where}: {source!r}")
    return compiled
