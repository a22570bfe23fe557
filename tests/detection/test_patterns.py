"""Tests for load-time pattern vetting."""

import itertools

import pytest

from panewatch.detection.patterns import compile_pattern, has_nested_quantifier
from panewatch.errors import ConfigurationError


class TestNestedQuantifiers:
    @pytest.mark.parametrize(
        "source",
        [
            r"(a+)+",
            r"(?:x*\s)*",
            r"(\w+\s?)+$",
            r"([a-z]+)*b",
            r"(?:(?:ab)+c)+",
            r"(.*){2,}",
        ],
    )
    def test_rejects_catastrophic_shapes(self, source):
        assert has_nested_quantifier(source)

    @pytest.mark.parametrize(
        "source",
        [
            r"^[ \t]*❯[ \t]*1\.",
            r"Allow (?P<details>\S+)\?",
            r"(?:\n[^\n]*){0,8}\Z",
            r"[(+]+",
            r"\(a+\)+",
            r"(ab)?c+",
        ],
    )
    def test_accepts_bounded_patterns(self, source):
        assert not has_nested_quantifier(source)


class TestCompilePattern:
    def test_compiles_with_multiline(self):
        pattern = compile_pattern(r"^ready$", "test")
        assert pattern.search("busy\nready\n")

    def test_invalid_regex_names_location(self):
        with pytest.raises(ConfigurationError, match="profile 'x' matchers\\[0\\]"):
            compile_pattern(r"(unclosed", "profile 'x' matchers[0]")

    def test_nested_quantifier_rejected(self):
        with pytest.raises(ConfigurationError, match="nests unbounded quantifiers"):
            compile_pattern(r"(a+)+$", "test")

    def test_slow_probe_rejected(self, monkeypatch):
        ticks = itertools.count(0.0, 1.0)
        monkeypatch.setattr("panewatch.detection.patterns.time.perf_counter", lambda: next(ticks))
        with pytest.raises(ConfigurationError, match="probe input"):
            compile_pattern(r"abc", "test")
