"""Tests for spanscore.matching.variables -- the variable resolver."""

from __future__ import annotations

from spanscore.matching.variables import (
    parse_json_path,
    resolve,
    resolve_one,
    value_as_text,
    variables_as_text,
    walk,
)
from spanscore.models.evaluator import VariableMapping
from spanscore.models.span import Span, Trace


def _make_span(**overrides) -> Span:
    defaults = {
        "span_id": "s1",
        "trace_id": "t1",
        "parent_span_id": "root",
        "span_name": "chat",
        "input": {"messages": [{"role": "user", "content": "What is 2+2?"}]},
        "output": {"choices": [{"text": "4"}]},
        "metadata": {"user": {"id": "u-1"}},
    }
    defaults.update(overrides)
    return Span(**defaults)


def _mapping(name: str, source: str, path: str = "") -> VariableMapping:
    return VariableMapping(variable_name=name, source=source, json_path=path)


class TestParseJsonPath:
    def test_keys_and_indices(self):
        assert parse_json_path("messages[0].content") == ["messages", 0, "content"]

    def test_chained_indices(self):
        assert parse_json_path("grid[1][2]") == ["grid", 1, 2]

    def test_empty_path_is_whole_value(self):
        assert parse_json_path("") == []

    def test_negative_index(self):
        assert parse_json_path("items[-1]") == ["items", -1]

    def test_malformed(self):
        assert parse_json_path("messages[abc]") is None
        assert parse_json_path("a..b") is None
        assert parse_json_path("a[0") is None


class TestWalk:
    def test_missing_key(self):
        assert walk({"a": 1}, ["b"]) is None

    def test_index_out_of_range(self):
        assert walk({"a": [1]}, ["a", 5]) is None

    def test_index_into_mapping(self):
        assert walk({"a": {"b": 1}}, ["a", 0]) is None

    def test_index_into_string(self):
        assert walk("plain", [0]) is None

    def test_json_string_decoded(self):
        assert walk('{"a": [10, 20]}', ["a", 1]) == 20

    def test_invalid_json_string(self):
        assert walk("{not json", ["a"]) is None


class TestResolve:
    """Resolution against span and trace payloads."""

    def test_span_input_path(self):
        rv = resolve_one(_mapping("question", "span_input", "messages[0].content"), _make_span())
        assert rv.resolved_value == "What is 2+2?"
        assert rv.json_path == "messages[0].content"

    def test_span_output_path(self):
        rv = resolve_one(_mapping("answer", "span_output", "choices[0].text"), _make_span())
        assert rv.resolved_value == "4"

    def test_span_metadata_path(self):
        rv = resolve_one(_mapping("user", "span_metadata", "user.id"), _make_span())
        assert rv.resolved_value == "u-1"

    def test_empty_path_returns_whole_payload(self):
        span = _make_span(output="plain text")
        rv = resolve_one(_mapping("output", "span_output"), span)
        assert rv.resolved_value == "plain text"
        assert rv.json_path is None

    def test_malformed_path_is_none(self):
        rv = resolve_one(_mapping("x", "span_input", "messages[oops]"), _make_span())
        assert rv.resolved_value is None

    def test_missing_span(self):
        rv = resolve_one(_mapping("x", "span_input", "a"), None)
        assert rv.resolved_value is None

    def test_trace_input(self):
        trace = Trace(trace_id="t1", input={"query": "hello"})
        rv = resolve_one(_mapping("q", "trace_input", "query"), _make_span(), trace)
        assert rv.resolved_value == "hello"

    def test_trace_input_falls_back_to_root_span(self):
        root = _make_span(parent_span_id=None, input={"query": "from root"})
        rv = resolve_one(_mapping("q", "trace_input", "query"), root)
        assert rv.resolved_value == "from root"

    def test_trace_input_without_trace_on_child(self):
        rv = resolve_one(_mapping("q", "trace_input", "query"), _make_span())
        assert rv.resolved_value is None

    def test_one_result_per_mapping(self):
        mappings = [
            _mapping("a", "span_input", "messages[0].content"),
            _mapping("b", "span_output", "missing.path"),
            _mapping("c", "span_metadata", "user[3]"),
        ]
        resolved = resolve(mappings, _make_span())
        assert [rv.variable_name for rv in resolved] == ["a", "b", "c"]
        assert resolved[1].resolved_value is None
        assert resolved[2].resolved_value is None

    def test_deeply_nested_json_string_is_none(self):
        span = _make_span(input="[" * 100_000)
        [rv] = resolve([_mapping("x", "span_input", "[0]")], span)
        assert rv.resolved_value is None


class TestValueAsText:
    def test_none(self):
        assert value_as_text(None) == ""

    def test_string_unchanged(self):
        assert value_as_text("hi") == "hi"

    def test_structures_json_encoded(self):
        assert value_as_text({"a": 1}) == '{"a": 1}'
        assert value_as_text(3) == "3"

    def test_variables_as_text(self):
        resolved = resolve([_mapping("out", "span_output", "choices")], _make_span())
        assert variables_as_text(resolved) == {"out": '[{"text": "4"}]'}
