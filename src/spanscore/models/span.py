"""Span and trace records that evaluators are matched against.

Unknown keys are kept (``extra="allow"``) so that ingestion-specific
attributes remain filterable.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class SpanStatus(str, Enum):
    ok = "ok"
    error = "error"
    unset = "unset"


class Span(BaseModel):
    """A single recorded unit of work within a trace."""

    model_config = {"extra": "allow"}

    span_id: str
    trace_id: str = ""
    parent_span_id: str | None = None
    project_id: str | None = None
    span_name: str = ""
    span_kind: str | None = None
    status: SpanStatus = SpanStatus.unset
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_ms: float | None = None
    model: str | None = None
    provider: str | None = None
    input: Any = None
    output: Any = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        # Naive timestamps are taken as UTC.
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def latency_ms(self) -> float | None:
        if self.duration_ms is not None:
            return self.duration_ms
        if self.start_time is not None and self.end_time is not None:
            return (self.end_time - self.start_time).total_seconds() * 1000
        return None

    @property
    def is_root(self) -> bool:
        return not self.parent_span_id


class Trace(BaseModel):
    """An ordered collection of spans for one end-to-end request."""

    model_config = {"extra": "allow"}

    trace_id: str
    input: Any = None
    output: Any = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    spans: list[Span] = Field(default_factory=list)

    def root_span(self) -> Span | None:
        for span in self.spans:
            if span.is_root:
                return span
        return self.spans[0] if self.spans else None

    @classmethod
    def from_spans(cls, trace_id: str, spans: list[Span]) -> Trace:
        """Build a trace whose input/output mirror its root span."""
        members = [s for s in spans if s.trace_id == trace_id]
        trace = cls(trace_id=trace_id, spans=members)
        root = trace.root_span()
        if root is not None:
            trace.input = root.input
            trace.output = root.output
            trace.metadata = dict(root.metadata)
        return trace
