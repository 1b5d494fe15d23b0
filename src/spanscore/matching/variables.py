"""Variable resolver -- extracts scorer inputs from span and trace payloads.

Paths are dot-separated keys with optional ``[i]`` index suffixes
(``messages[0].content``, ``choices[0][1]``). Resolution is fail-soft:
anything unresolvable becomes None and nothing here raises.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from typing import Any

from spanscore.models.evaluator import VariableMapping, VariableSource
from spanscore.models.execution import ResolvedVariable
from spanscore.models.span import Span, Trace

_SEGMENT = re.compile(r"^([^\[\]]*)((?:\[-?\d+\])*)$")
_INDEX = re.compile(r"\[(-?\d+)\]")


def parse_json_path(path: str) -> list[str | int] | None:
    """Split a path into keys and indices, or None if it is malformed.

    >>> parse_json_path("messages[0].content")
    ['messages', 0, 'content']
    """
    if not path:
        return []
    steps: list[str | int] = []
    for segment in path.split("."):
        m = _SEGMENT.match(segment)
        if m is None:
            return None
        name, indices = m.groups()
        if not name and not indices:
            return None
        if name:
            steps.append(name)
        steps.extend(int(i) for i in _INDEX.findall(indices))
    return steps


def walk(value: Any, steps: list[str | int]) -> Any:
    """Descend through *value*; None on any missing key or bad index."""
    current = value
    for step in steps:
        if isinstance(current, str) and current[:1] in ("{", "["):
            try:
                current = json.loads(current)
            except (ValueError, RecursionError):
                return None
        if isinstance(step, int):
            if not isinstance(current, Sequence) or isinstance(current, str):
                return None
            if not -len(current) <= step < len(current):
                return None
            current = current[step]
        else:
            if not isinstance(current, Mapping) or step not in current:
                return None
            current = current[step]
    return current


def _source_value(source: VariableSource, span: Span | None, trace: Trace | None) -> Any:
    if source == VariableSource.trace_input:
        if trace is not None:
            return trace.input
        if span is not None and span.is_root:
            return span.input
        return None
    if span is None:
        return None
    if source == VariableSource.span_input:
        return span.input
    if source == VariableSource.span_output:
        return span.output
    return span.metadata


def resolve_one(
    mapping: VariableMapping,
    span: Span | None,
    trace: Trace | None = None,
) -> ResolvedVariable:
    value: Any = None
    steps = parse_json_path(mapping.json_path)
    if steps is not None:
        value = walk(_source_value(mapping.source, span, trace), steps)
    return ResolvedVariable(
        variable_name=mapping.variable_name,
        source=mapping.source,
        json_path=mapping.json_path or None,
        resolved_value=value,
    )


def resolve(
    mappings: list[VariableMapping],
    span: Span | None,
    trace: Trace | None = None,
) -> list[ResolvedVariable]:
    """Resolve every mapping; always one ResolvedVariable per mapping."""
    return [resolve_one(m, span, trace) for m in mappings]


def value_as_text(value: Any) -> str:
    """Render a resolved value for prompt substitution and text scorers."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def variables_as_text(resolved: list[ResolvedVariable]) -> dict[str, str]:
    return {rv.variable_name: value_as_text(rv.resolved_value) for rv in resolved}
