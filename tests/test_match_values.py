"""Tests for tagfilter.match_values: compilation and JSON round-trip."""
from __future__ import annotations

import functools
import re

import pytest

from tagfilter.errors import FilterSpecError
from tagfilter.match_values import (
    Exact,
    FilterSpec,
    IdRule,
    LocationRule,
    Nested,
    Pattern,
    Predicate,
    call_style_of,
    compile_filter_spec,
    compile_match_value,
    filter_spec_from_json,
    filter_spec_to_json,
    string_form,
)


class TestStringForm:
    def test_booleans(self) -> None:
        assert string_form(True) == "true"
        assert string_form(False) == "false"

    def test_none(self) -> None:
        assert string_form(None) == ""

    def test_numbers(self) -> None:
        assert string_form(2) == "2"
        assert string_form(1.5) == "1.5"


# ───────────────────────────── call styles ──────────────────────────────


class TestCallStyle:
    def test_zero(self) -> None:
        assert call_style_of(lambda: True) == "no_args"

    def test_one(self) -> None:
        assert call_style_of(lambda v: True) == "value"

    def test_two(self) -> None:
        assert call_style_of(lambda v, m: True) == "value_and_metadata"

    def test_three_falls_back_to_value(self) -> None:
        assert call_style_of(lambda a, b, c: True) == "value"

    def test_defaults_fall_back_to_value(self) -> None:
        assert call_style_of(lambda v, m=None: True) == "value"

    def test_var_positional(self) -> None:
        assert call_style_of(lambda *args: True) == "value"

    def test_keyword_only_counts_as_zero(self) -> None:
        assert call_style_of(lambda *, strict=False: True) == "no_args"

    def test_bound_method(self) -> None:
        class Checker:
            def check(self, value: object, metadata: object) -> bool:
                return True

        assert call_style_of(Checker().check) == "value_and_metadata"

    def test_partial(self) -> None:
        def between(low: int, high: int, value: int) -> bool:
            return low <= value <= high

        assert call_style_of(functools.partial(between, 1, 10)) == "value"

    def test_builtin(self) -> None:
        assert call_style_of(bool) in ("value", "no_args")


# ───────────────────────────── compilation ──────────────────────────────


class TestCompile:
    def test_exact(self) -> None:
        assert compile_match_value("slow", True) == Exact(text="true", raw=True)

    def test_pattern(self) -> None:
        rx = re.compile("^db_")
        assert compile_match_value("tag", rx) == Pattern(regex=rx)

    def test_predicate(self) -> None:
        def fn(v: object) -> bool:
            return True

        value = compile_match_value("tag", fn)
        assert isinstance(value, Predicate)
        assert value.call_style == "value"

    def test_class_is_not_predicate(self) -> None:
        value = compile_match_value("kind", int)
        assert isinstance(value, Exact)

    def test_nested(self) -> None:
        value = compile_match_value("env", {"os": "linux"})
        assert value == Nested(spec=FilterSpec(clauses=(("os", Exact.of("linux")),)))

    def test_locations(self) -> None:
        value = compile_match_value("locations", {"/a.py": [5, 20]})
        assert value == LocationRule(lines_by_path={"/a.py": (5, 20)})

    def test_ids(self) -> None:
        value = compile_match_value("ids", {"./a.py": ["1:1", "1:2"], "./b.py": "2"})
        assert value == IdRule(
            ids_by_path={"./a.py": frozenset({"1:1", "1:2"}), "./b.py": frozenset({"2"})},
        )

    def test_locations_non_mapping_is_exact(self) -> None:
        assert isinstance(compile_match_value("locations", "a.py:5"), Exact)

    def test_compiled_spec_passes_through(self) -> None:
        spec = compile_filter_spec({"slow": True})
        assert compile_filter_spec(spec) is spec

    def test_none_is_empty(self) -> None:
        assert compile_filter_spec(None).is_empty

    def test_keys_keep_order(self) -> None:
        spec = compile_filter_spec({"b": 1, "a": 2})
        assert spec.keys() == ("b", "a")


class TestVolatileKeys:
    def test_predicate_key(self) -> None:
        spec = compile_filter_spec({"slow": True, "type": lambda v: True})
        assert spec.volatile_keys() == frozenset({"type"})

    def test_nested_predicate_marks_parent(self) -> None:
        spec = compile_filter_spec({"env": {"os": lambda v: True}})
        assert spec.volatile_keys() == frozenset({"env"})

    def test_context_rules(self) -> None:
        spec = compile_filter_spec({"locations": {"/a.py": [1]}})
        assert spec.volatile_keys() == frozenset({"locations"})
        assert spec.has_context_rule

    def test_plain_spec(self) -> None:
        spec = compile_filter_spec({"slow": True, "tag": re.compile("x")})
        assert spec.volatile_keys() == frozenset()
        assert not spec.has_context_rule


# ───────────────────────────── JSON ─────────────────────────────────────


class TestJson:
    def test_regex_literal(self) -> None:
        spec = filter_spec_from_json({"tag": "/^db_/"})
        (key, value), = spec.clauses
        assert key == "tag"
        assert isinstance(value, Pattern)
        assert value.regex.pattern == "^db_"

    def test_plain_slash_is_exact(self) -> None:
        spec = filter_spec_from_json({"path": "/"})
        assert spec.clauses == (("path", Exact.of("/")),)

    def test_invalid_regex(self) -> None:
        with pytest.raises(FilterSpecError, match="Invalid regex"):
            filter_spec_from_json({"tag": "/(/"})

    def test_not_an_object(self) -> None:
        with pytest.raises(FilterSpecError, match="must be an object"):
            filter_spec_from_json(["slow"])

    def test_bad_location_lines(self) -> None:
        with pytest.raises(FilterSpecError, match="list of integers"):
            filter_spec_from_json({"locations": {"/a.py": ["5"]}})

    def test_bad_ids(self) -> None:
        with pytest.raises(FilterSpecError, match="must be a list"):
            filter_spec_from_json({"ids": {"./a.py": "1:1"}})

    def test_round_trip(self) -> None:
        payload = {
            "slow": True,
            "priority": 2,
            "tag": "/^db_/",
            "env": {"os": "linux"},
            "locations": {"/a.py": [5, 20]},
            "ids": {"./a.py": ["1:2", "1:1"]},
        }
        out = filter_spec_to_json(filter_spec_from_json(payload))
        assert out == {**payload, "ids": {"./a.py": ["1:1", "1:2"]}}

    def test_predicate_not_serializable(self) -> None:
        spec = compile_filter_spec({"type": lambda v: True})
        with pytest.raises(FilterSpecError, match="cannot be serialized"):
            filter_spec_to_json(spec)
