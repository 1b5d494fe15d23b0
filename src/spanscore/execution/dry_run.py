"""Test (dry-run) pipeline.

Runs the same per-span pipeline as an execution against a small sample,
but never writes to any store and never touches the evaluator's
automatic-run bookkeeping. Safe to call concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable
from datetime import datetime, timezone

from spanscore.adapters.base import BaseAdapter
from spanscore.adapters.registry import get_adapter
from spanscore.errors import ScorerConfigMismatchError, ScorerUnavailableError
from spanscore.execution.candidates import Candidate, SpanSource, select_candidates, window_start
from spanscore.execution.pipeline import SpanEvaluation, SpanOutcome, evaluate_span
from spanscore.execution.retry import RetryPolicy
from spanscore.matching.filters import describe_filter
from spanscore.matching.sampling import Sampler
from spanscore.models.config import CredentialConfig
from spanscore.models.evaluator import Evaluator, LLMScorerConfig
from spanscore.models.execution import EvaluatorSnapshot, TriggerScope
from spanscore.models.preview import (
    EvaluatorPreview,
    SampleInput,
    TestEvaluatorResponse,
    TestExecution,
    TestSampleSpec,
    TestSpanStatus,
    TestSummary,
)
from spanscore.models.span import Span, Trace
from spanscore.scoring.base import ScoringContext
from spanscore.scoring.prompt import prompt_preview

logger = logging.getLogger(__name__)

SAMPLE_SPAN_ID = "sample-input"
SAMPLE_TRACE_ID = "sample-trace"


def sample_scope(spec: TestSampleSpec, now: datetime | None = None) -> TriggerScope:
    """Translate a sample spec into a candidate scope.

    Priority: span_ids > span_id > trace_id > time_range window.
    """
    if spec.span_ids:
        return TriggerScope(span_ids=list(spec.span_ids), sample_limit=spec.limit)
    if spec.span_id:
        return TriggerScope(span_id=spec.span_id, sample_limit=spec.limit)
    if spec.trace_id:
        return TriggerScope(trace_id=spec.trace_id, sample_limit=spec.limit)
    now = now or datetime.now(timezone.utc)
    return TriggerScope(
        start_time=window_start(spec.time_range, now),
        end_time=now,
        sample_limit=spec.limit,
    )


def synthetic_candidate(sample: SampleInput) -> Candidate:
    """Wrap an ad-hoc payload as a root span of its own trace."""
    span = Span(
        span_id=SAMPLE_SPAN_ID,
        trace_id=SAMPLE_TRACE_ID,
        span_name="sample_input",
        input=sample.input,
        output=sample.output,
        metadata=dict(sample.metadata),
    )
    return Candidate(span=span, trace=Trace.from_spans(SAMPLE_TRACE_ID, [span]))


def build_preview(evaluator: Evaluator, matching_count: int | None = None) -> EvaluatorPreview:
    """Configuration-only summary of an evaluator."""
    config = evaluator.scorer_config
    preview = None
    if isinstance(config, LLMScorerConfig):
        preview = prompt_preview(config.messages)
    return EvaluatorPreview(
        name=evaluator.name,
        scorer_type=evaluator.scorer_type,
        filter_description=describe_filter(evaluator.filter, evaluator.span_names),
        variable_names=evaluator.variable_names,
        prompt_preview=preview,
        matching_count=matching_count,
    )


def _as_test_execution(evaluation: SpanEvaluation) -> TestExecution:
    span = evaluation.span
    return TestExecution(
        span_id=span.span_id,
        trace_id=span.trace_id,
        span_name=span.span_name,
        matched_filter=evaluation.matched_filter,
        status=TestSpanStatus(evaluation.outcome.value),
        score_results=evaluation.score_results,
        variables_resolved=evaluation.variables,
        prompt_sent=evaluation.prompt_sent,
        llm_response_raw=evaluation.raw_response,
        llm_response_parsed=evaluation.parsed_response,
        error_message=evaluation.error_message,
        latency_ms=evaluation.latency_ms,
    )


def summarize(evaluations: list[SpanEvaluation]) -> TestSummary:
    """Aggregate per-span dry-run outcomes."""
    counts = {outcome: 0 for outcome in SpanOutcome}
    for evaluation in evaluations:
        counts[evaluation.outcome] += 1

    values: list[float] = []
    for evaluation in evaluations:
        if evaluation.outcome != SpanOutcome.success:
            continue
        for result in evaluation.score_results:
            # bool is a subclass of int: True/False average as 1/0.
            if isinstance(result.value, (int, float)):
                values.append(float(result.value))

    latencies = [
        e.latency_ms for e in evaluations if e.evaluated and e.latency_ms is not None
    ]
    return TestSummary(
        total_spans=len(evaluations),
        matched_spans=len(evaluations) - counts[SpanOutcome.filtered],
        evaluated_spans=counts[SpanOutcome.success] + counts[SpanOutcome.failed],
        success_count=counts[SpanOutcome.success],
        failure_count=counts[SpanOutcome.failed],
        skipped_count=counts[SpanOutcome.skipped],
        filtered_count=counts[SpanOutcome.filtered],
        average_score=sum(values) / len(values) if values else None,
        average_latency_ms=sum(latencies) / len(latencies) if latencies else None,
    )


async def run_test(
    evaluator: Evaluator,
    spans: SpanSource,
    sample: TestSampleSpec | None = None,
    *,
    credentials: dict[str, CredentialConfig] | None = None,
    adapter_factory: Callable[[str], BaseAdapter] = get_adapter,
    retry_policy: RetryPolicy | None = None,
    max_parallel: int = 4,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> TestEvaluatorResponse:
    """Dry-run *evaluator* against a sample and report what would happen.

    Provider faults that would fail a real execution are reported on each
    affected span instead, so the caller still sees the rest of the sample.
    """
    sample = sample or TestSampleSpec()
    snapshot = EvaluatorSnapshot.from_evaluator(evaluator)
    context = ScoringContext(
        credentials=credentials or {},
        retry_policy=retry_policy or RetryPolicy(),
        adapter_factory=adapter_factory,
    )
    sampler = Sampler(snapshot.sampling_rate, rng)

    bypass_filter = sample.sample_input is not None
    if sample.sample_input is not None:
        candidates = [synthetic_candidate(sample.sample_input)]
    else:
        candidates = select_candidates(
            spans,
            sample_scope(sample, now),
            project_id=evaluator.project_id,
            target_scope=snapshot.target_scope,
            default_limit=sample.limit,
        )
    logger.debug("dry run of %s over %d candidate(s)", evaluator.id, len(candidates))

    semaphore = asyncio.Semaphore(max(1, max_parallel))
    results: list[SpanEvaluation | None] = [None] * len(candidates)

    async def run_one(index: int, candidate: Candidate) -> None:
        async with semaphore:
            try:
                evaluation = await evaluate_span(
                    snapshot,
                    candidate.span,
                    candidate.trace,
                    sampler,
                    context,
                    bypass_filter=bypass_filter,
                )
            except (ScorerUnavailableError, ScorerConfigMismatchError) as exc:
                evaluation = SpanEvaluation(
                    span=candidate.span,
                    outcome=SpanOutcome.failed,
                    error_message=str(exc),
                )
            results[index] = evaluation

    async with asyncio.TaskGroup() as tg:
        for index, candidate in enumerate(candidates):
            tg.create_task(run_one(index, candidate))

    evaluations = [r for r in results if r is not None]
    summary = summarize(evaluations)
    return TestEvaluatorResponse(
        summary=summary,
        executions=[_as_test_execution(e) for e in evaluations],
        preview=build_preview(
            evaluator, None if bypass_filter else summary.matched_spans
        ),
    )
