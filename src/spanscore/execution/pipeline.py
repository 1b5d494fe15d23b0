"""Per-span evaluation shared by executions and dry runs.

filter -> sample -> resolve -> dispatch, producing a SpanEvaluation.
Nothing here persists anything; callers decide what to record.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from spanscore.errors import ScorerError
from spanscore.matching.filters import span_matches
from spanscore.matching.sampling import Sampler
from spanscore.matching.variables import resolve
from spanscore.models.evaluator import LLMMessage
from spanscore.models.execution import (
    EvaluatorSnapshot,
    ResolvedVariable,
    ScoreResult,
    SpanExecutionDetail,
    SpanResultStatus,
)
from spanscore.models.span import Span, Trace
from spanscore.scoring import dispatch
from spanscore.scoring.base import ScoringContext

logger = logging.getLogger(__name__)


class SpanOutcome(str, Enum):
    """filtered: failed the filter. skipped: matched but sampled out."""

    filtered = "filtered"
    skipped = "skipped"
    success = "success"
    failed = "failed"


@dataclass
class SpanEvaluation:
    span: Span
    outcome: SpanOutcome
    variables: list[ResolvedVariable] = field(default_factory=list)
    score_results: list[ScoreResult] = field(default_factory=list)
    prompt_sent: list[LLMMessage] | None = None
    raw_response: str | None = None
    parsed_response: dict[str, Any] | None = None
    error_message: str | None = None
    latency_ms: float | None = None

    @property
    def matched_filter(self) -> bool:
        return self.outcome != SpanOutcome.filtered

    @property
    def evaluated(self) -> bool:
        return self.outcome in (SpanOutcome.success, SpanOutcome.failed)

    def to_detail(self) -> SpanExecutionDetail:
        """Persistable record. Filtered spans have no detail."""
        if self.outcome == SpanOutcome.filtered:
            raise ValueError("filtered spans are not recorded")
        return SpanExecutionDetail(
            span_id=self.span.span_id,
            trace_id=self.span.trace_id,
            span_name=self.span.span_name,
            status=SpanResultStatus(self.outcome.value),
            score_results=self.score_results,
            variables_resolved=self.variables,
            prompt_sent=self.prompt_sent,
            llm_response_raw=self.raw_response,
            llm_response_parsed=self.parsed_response,
            error_message=self.error_message,
            latency_ms=self.latency_ms,
        )


async def score_span(
    snapshot: EvaluatorSnapshot,
    span: Span,
    trace: Trace | None,
    context: ScoringContext,
) -> SpanEvaluation:
    """Resolve variables and dispatch to the scorer.

    ScorerError becomes a failed evaluation. ScorerUnavailableError and
    ScorerConfigMismatchError propagate: they are execution-wide.
    """
    variables = resolve(snapshot.variable_mapping, span, trace)
    start = time.perf_counter()
    try:
        outcome = await dispatch(
            snapshot.scorer_type,
            snapshot.scorer_config,
            variables,
            context.for_span(span),
        )
    except ScorerError as exc:
        elapsed = (time.perf_counter() - start) * 1000
        logger.warning("span %s scoring failed: %s", span.span_id, exc.message)
        return SpanEvaluation(
            span=span,
            outcome=SpanOutcome.failed,
            variables=variables,
            prompt_sent=exc.prompt_sent,
            raw_response=exc.raw_response,
            parsed_response=exc.parsed_response,
            error_message=exc.message,
            latency_ms=elapsed,
        )

    elapsed = (time.perf_counter() - start) * 1000
    logger.debug(
        "span %s scored %s in %.1fms",
        span.span_id,
        ", ".join(f"{r.score_name}={r.value}" for r in outcome.score_results),
        elapsed,
    )
    return SpanEvaluation(
        span=span,
        outcome=SpanOutcome.success,
        variables=variables,
        score_results=outcome.score_results,
        prompt_sent=outcome.prompt_sent,
        raw_response=outcome.raw_response,
        parsed_response=outcome.parsed_response,
        latency_ms=elapsed,
    )


async def evaluate_span(
    snapshot: EvaluatorSnapshot,
    span: Span,
    trace: Trace | None,
    sampler: Sampler,
    context: ScoringContext,
    *,
    bypass_filter: bool = False,
) -> SpanEvaluation:
    """Run the full per-span pipeline."""
    if not bypass_filter:
        if not span_matches(snapshot.filter, snapshot.span_names, span):
            return SpanEvaluation(span=span, outcome=SpanOutcome.filtered)
        if not sampler.accept():
            return SpanEvaluation(
                span=span,
                outcome=SpanOutcome.skipped,
                error_message="excluded by sampling",
            )
    return await score_span(snapshot, span, trace, context)
