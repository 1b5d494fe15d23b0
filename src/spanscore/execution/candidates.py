"""Candidate span selection for executions and dry runs.

Span storage lives outside spanscore; it is consumed through the
SpanSource interface. Selection priority for a scope is
span_ids > span_id > trace_id > time window.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from spanscore.models.evaluator import TargetScope
from spanscore.models.execution import TriggerScope
from spanscore.models.span import Span, Trace

logger = logging.getLogger(__name__)

WINDOWS: dict[str, timedelta] = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}


@dataclass
class Candidate:
    span: Span
    trace: Trace | None = None


class SpanSource(ABC):
    """Read access to recorded spans."""

    @abstractmethod
    def get_span(self, span_id: str) -> Span | None: ...

    @abstractmethod
    def get_trace(self, trace_id: str) -> Trace | None: ...

    @abstractmethod
    def query(
        self,
        *,
        project_id: str | None,
        start: datetime | None,
        end: datetime | None,
        limit: int,
    ) -> list[Span]:
        """Spans in [start, end), newest first, at most *limit*."""

    @abstractmethod
    def add(self, span: Span) -> None: ...


class InMemorySpanSource(SpanSource):
    """Spans held in a dict, e.g. loaded from a JSON/YAML file.

    Spans without a start_time fall inside every window, and spans
    without a project_id belong to every project.
    """

    def __init__(self, spans: list[Span] | None = None) -> None:
        self._spans: dict[str, Span] = {}
        for span in spans or []:
            self.add(span)

    def add(self, span: Span) -> None:
        self._spans[span.span_id] = span

    def __len__(self) -> int:
        return len(self._spans)

    def get_span(self, span_id: str) -> Span | None:
        return self._spans.get(span_id)

    def get_trace(self, trace_id: str) -> Trace | None:
        if not trace_id:
            return None
        members = [s for s in self._spans.values() if s.trace_id == trace_id]
        if not members:
            return None
        return Trace.from_spans(trace_id, members)

    def query(
        self,
        *,
        project_id: str | None,
        start: datetime | None,
        end: datetime | None,
        limit: int,
    ) -> list[Span]:
        def in_window(span: Span) -> bool:
            if span.start_time is None:
                return True
            if start is not None and span.start_time < start:
                return False
            return end is None or span.start_time < end

        found = [
            s
            for s in self._spans.values()
            if (project_id is None or s.project_id in (None, project_id)) and in_window(s)
        ]
        # Stable: untimed spans keep insertion order after timed ones.
        floor = datetime.min.replace(tzinfo=timezone.utc)
        found.sort(key=lambda s: s.start_time or floor, reverse=True)
        return found[:limit]

    @classmethod
    def from_file(cls, path: Path) -> InMemorySpanSource:
        """Load spans from a JSON or YAML file.

        Accepts a list of spans, or a mapping with a ``spans`` list.
        """
        text = path.read_text(encoding="utf-8")
        if path.suffix in (".yaml", ".yml"):
            import yaml

            raw = yaml.safe_load(text)
        else:
            raw = json.loads(text)
        if isinstance(raw, dict):
            raw = raw.get("spans", [])
        if not isinstance(raw, list):
            raise ValueError(f"{path}: expected a list of spans")
        return cls([Span.model_validate(item) for item in raw])


def window_start(window: str, now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now - WINDOWS[window]


def select_candidates(
    source: SpanSource,
    scope: TriggerScope,
    *,
    project_id: str | None,
    target_scope: TargetScope,
    default_limit: int,
) -> list[Candidate]:
    """Resolve a scope to the spans an execution will consider.

    With target_scope=trace each trace contributes a single candidate:
    its root span, carrying the whole trace.
    """
    limit = scope.sample_limit or default_limit

    spans: list[Span]
    if scope.span_ids:
        spans = []
        for span_id in scope.span_ids:
            span = source.get_span(span_id)
            if span is None:
                logger.debug("span %s not found, skipping", span_id)
                continue
            spans.append(span)
    elif scope.span_id:
        span = source.get_span(scope.span_id)
        spans = [span] if span is not None else []
    elif scope.trace_id:
        trace = source.get_trace(scope.trace_id)
        spans = list(trace.spans) if trace is not None else []
    else:
        spans = source.query(
            project_id=project_id,
            start=scope.start_time,
            end=scope.end_time,
            limit=limit,
        )

    traces: dict[str, Trace | None] = {}

    def trace_for(span: Span) -> Trace | None:
        if span.trace_id not in traces:
            traces[span.trace_id] = source.get_trace(span.trace_id)
        return traces[span.trace_id]

    candidates: list[Candidate] = []
    if target_scope == TargetScope.trace:
        seen: set[str] = set()
        for span in spans:
            key = span.trace_id or span.span_id
            if key in seen:
                continue
            seen.add(key)
            trace = trace_for(span)
            root = trace.root_span() if trace is not None else None
            candidates.append(Candidate(span=root or span, trace=trace))
    else:
        candidates = [Candidate(span=s, trace=trace_for(s)) for s in spans]

    return candidates[:limit]
