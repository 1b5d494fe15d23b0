"""Span matching - filter engine, sampling and variable resolution."""

from spanscore.matching.filters import (
    describe_filter,
    matches,
    matches_span_names,
    span_matches,
    span_record,
)
from spanscore.matching.sampling import Sampler
from spanscore.matching.variables import resolve, variables_as_text

__all__ = [
    "Sampler",
    "describe_filter",
    "matches",
    "matches_span_names",
    "resolve",
    "span_matches",
    "span_record",
    "variables_as_text",
]
