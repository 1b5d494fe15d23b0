"""Filter engine -- evaluates filter clauses against a flat span record.

Supports 9 operators: equals, not_equals, contains, gt, lt, gte, lte,
is_empty, is_not_empty. Clauses are ANDed. Type mismatches and absent
fields fail the clause (except is_empty) and never raise.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any

from spanscore.models.evaluator import FilterClause, FilterOperator, is_numeric
from spanscore.models.span import Span

_MISSING = object()


def span_record(span: Span) -> dict[str, Any]:
    """Flatten a Span into the dict the filter engine queries.

    Structure::

        {
            "span_id": ..., "trace_id": ..., "span_name": ..., "name": ...,
            "span_kind": ..., "status": ..., "model": ..., "provider": ...,
            "latency_ms": ..., "duration_ms": ..., "input_tokens": ...,
            "output_tokens": ..., "total_tokens": ..., "input": ...,
            "output": ..., "metadata": {...}, "metadata.<key>": ...,
            <extra span attributes>
        }
    """
    record: dict[str, Any] = {
        "span_id": span.span_id,
        "trace_id": span.trace_id,
        "parent_span_id": span.parent_span_id,
        "span_name": span.span_name,
        "name": span.span_name,
        "span_kind": span.span_kind,
        "status": span.status.value,
        "model": span.model,
        "provider": span.provider,
        "latency_ms": span.latency_ms,
        "duration_ms": span.duration_ms,
        "input_tokens": span.input_tokens,
        "output_tokens": span.output_tokens,
        "total_tokens": span.total_tokens,
        "input": span.input,
        "output": span.output,
        "metadata": span.metadata,
    }
    for key, value in span.metadata.items():
        record[f"metadata.{key}"] = value
    if span.model_extra:
        for key, value in span.model_extra.items():
            record.setdefault(key, value)
    # Absent optional attributes are dropped so they read as missing.
    return {k: v for k, v in record.items() if v is not None}


def lookup(record: Mapping[str, Any], field: str) -> Any:
    """Find *field* in *record*, returning _MISSING when absent.

    Tries the literal key first, then walks dotted segments through
    nested mappings. JSON-encoded string payloads are decoded on the way.
    """
    if field in record:
        return record[field]
    if "." not in field:
        return _MISSING

    current: Any = record
    for part in field.split("."):
        if isinstance(current, str):
            try:
                current = json.loads(current)
            except (ValueError, RecursionError):
                return _MISSING
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def is_empty_value(value: Any) -> bool:
    if value is _MISSING or value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def _typed_equal(actual: Any, expected: Any) -> bool:
    """Equality without coercion: numbers only equal numbers, strings strings."""
    if is_numeric(actual) and is_numeric(expected):
        return actual == expected
    if type(actual) is not type(expected):
        return False
    return actual == expected


def compare(actual: Any, operator: FilterOperator, expected: Any) -> bool:
    """Apply one operator. *actual* may be _MISSING."""
    if operator == FilterOperator.is_empty:
        return is_empty_value(actual)
    if operator == FilterOperator.is_not_empty:
        return not is_empty_value(actual)

    if actual is _MISSING:
        return False

    if operator == FilterOperator.equals:
        return _typed_equal(actual, expected)
    if operator == FilterOperator.not_equals:
        return not _typed_equal(actual, expected)

    if operator == FilterOperator.contains:
        if not isinstance(actual, str) or not isinstance(expected, str):
            return False
        return expected in actual

    if operator in (
        FilterOperator.gt,
        FilterOperator.gte,
        FilterOperator.lt,
        FilterOperator.lte,
    ):
        if not is_numeric(actual) or not is_numeric(expected):
            return False
        if operator == FilterOperator.gt:
            return actual > expected
        if operator == FilterOperator.gte:
            return actual >= expected
        if operator == FilterOperator.lt:
            return actual < expected
        return actual <= expected

    return False


def clause_matches(clause: FilterClause, record: Mapping[str, Any]) -> bool:
    return compare(lookup(record, clause.field), clause.operator, clause.value)


def matches(expression: Iterable[FilterClause], record: Mapping[str, Any]) -> bool:
    """True iff every clause matches. An empty expression matches everything."""
    return all(clause_matches(clause, record) for clause in expression)


def matches_span_names(span_names: Iterable[str], span_name: str) -> bool:
    """Empty span_names means no restriction."""
    allowed = set(span_names)
    return not allowed or span_name in allowed


def span_matches(
    expression: Iterable[FilterClause],
    span_names: Iterable[str],
    span: Span,
) -> bool:
    """Name restriction plus filter expression for a single span."""
    if not matches_span_names(span_names, span.span_name):
        return False
    return matches(expression, span_record(span))


_OPERATOR_SYMBOLS: dict[FilterOperator, str] = {
    FilterOperator.equals: "=",
    FilterOperator.not_equals: "!=",
    FilterOperator.contains: "contains",
    FilterOperator.gt: ">",
    FilterOperator.lt: "<",
    FilterOperator.gte: ">=",
    FilterOperator.lte: "<=",
    FilterOperator.is_empty: "is empty",
    FilterOperator.is_not_empty: "is not empty",
}


def describe_filter(
    expression: list[FilterClause],
    span_names: Iterable[str] = (),
) -> str:
    """Render a filter expression for humans, preserving clause order."""
    parts: list[str] = []
    names = list(span_names)
    if names:
        parts.append("span_name in [" + ", ".join(names) + "]")
    for clause in expression:
        symbol = _OPERATOR_SYMBOLS[clause.operator]
        if clause.operator in (FilterOperator.is_empty, FilterOperator.is_not_empty):
            parts.append(f"{clause.field} {symbol}")
        else:
            parts.append(f"{clause.field} {symbol} {clause.value!r}")
    if not parts:
        return "No filters - matches all spans"
    return " AND ".join(parts)
