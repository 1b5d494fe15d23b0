"""Evaluator analytics over a period of executions.

Span-level metrics (success rate, scores, latency, errors) come from the
recorded span details; execution-level totals come from the execution
counters.
"""

from __future__ import annotations

import statistics
from collections import Counter
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone

from spanscore.models.analytics import (
    AnalyticsPeriod,
    ErrorSummary,
    EvaluatorAnalytics,
    LatencyStats,
    ScoreBucket,
    TrendPoint,
)
from spanscore.models.execution import (
    Execution,
    ExecutionStatus,
    SpanExecutionDetail,
    SpanResultStatus,
)

PERIODS: dict[str, timedelta] = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}

SCORE_BUCKETS = 10
TOP_ERRORS = 5


def numeric_scores(details: list[SpanExecutionDetail]) -> list[float]:
    """Numeric score values of successful spans; booleans count as 0/1."""
    values: list[float] = []
    for detail in details:
        if detail.status != SpanResultStatus.success:
            continue
        for result in detail.score_results:
            if isinstance(result.value, (int, float)):
                values.append(float(result.value))
    return values


def latency_stats(latencies: list[float]) -> LatencyStats:
    """p50/p90/p99 plus avg/min/max.

    statistics.quantiles requires >= 2 data points, so 0 and 1 are
    special-cased.
    """
    if not latencies:
        return LatencyStats()
    if len(latencies) == 1:
        only = latencies[0]
        return LatencyStats(p50=only, p90=only, p99=only, avg=only, min=only, max=only)
    # quantiles(n=100) gives 99 cut points -> index 49 is p50, 89 is p90, 98 is p99
    cuts = statistics.quantiles(latencies, n=100)
    return LatencyStats(
        p50=cuts[49],
        p90=cuts[89],
        p99=cuts[98],
        avg=statistics.fmean(latencies),
        min=min(latencies),
        max=max(latencies),
    )


def score_distribution(values: list[float], buckets: int = SCORE_BUCKETS) -> list[ScoreBucket]:
    """Histogram of *values* in equal-width buckets over the observed range."""
    if not values:
        return []
    low, high = min(values), max(values)
    total = len(values)
    if low == high:
        return [ScoreBucket(bin_start=low, bin_end=high, count=total, percentage=100.0)]

    width = (high - low) / buckets
    counts = [0] * buckets
    for value in values:
        index = min(int((value - low) / width), buckets - 1)
        counts[index] += 1
    return [
        ScoreBucket(
            bin_start=low + i * width,
            bin_end=high if i == buckets - 1 else low + (i + 1) * width,
            count=count,
            percentage=round(count / total * 100, 2),
        )
        for i, count in enumerate(counts)
    ]


def _floor(moment: datetime, step: timedelta) -> datetime:
    if step >= timedelta(days=1):
        return moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return moment.replace(minute=0, second=0, microsecond=0)


def execution_trend(
    executions: list[Execution],
    details: Mapping[str, list[SpanExecutionDetail]],
    since: datetime,
    now: datetime,
    step: timedelta,
) -> list[TrendPoint]:
    """One point per step from *since* to *now*, empty steps included."""
    points: list[TrendPoint] = []
    start = _floor(since, step)
    while start <= now:
        end = start + step
        window = [e for e in executions if start <= e.created_at < end]
        scores = numeric_scores([d for e in window for d in details.get(e.id, [])])
        points.append(
            TrendPoint(
                timestamp=start,
                executions=len(window),
                spans_scored=sum(e.spans_scored for e in window),
                errors=sum(e.errors_count for e in window),
                average_score=statistics.fmean(scores) if scores else None,
            )
        )
        start = end
    return points


def top_errors(
    executions: list[Execution],
    details: list[SpanExecutionDetail],
    limit: int = TOP_ERRORS,
) -> list[ErrorSummary]:
    """Most frequent error messages across failed spans and failed executions."""
    messages = [
        d.error_message
        for d in details
        if d.status == SpanResultStatus.failed and d.error_message
    ]
    messages.extend(
        e.error_message
        for e in executions
        if e.status == ExecutionStatus.failed and e.error_message
    )
    if not messages:
        return []
    total = len(messages)
    return [
        ErrorSummary(message=message, count=count, percentage=round(count / total * 100, 2))
        for message, count in Counter(messages).most_common(limit)
    ]


def compute_analytics(
    evaluator_id: str,
    period: AnalyticsPeriod,
    executions: list[Execution],
    details: Mapping[str, list[SpanExecutionDetail]],
    now: datetime | None = None,
) -> EvaluatorAnalytics:
    """Aggregate *executions* created within *period* before *now*.

    Args:
        evaluator_id: Evaluator the executions belong to.
        period: One of 24h, 7d, 30d. 24h trends are hourly, others daily.
        executions: Candidate executions (any age; filtered here).
        details: Span details keyed by execution id.
        now: Reference time, defaults to the current UTC time.
    """
    now = now or datetime.now(timezone.utc)
    span = PERIODS[period]
    since = now - span
    in_period = [e for e in executions if since <= e.created_at <= now]
    span_details = [d for e in in_period for d in details.get(e.id, [])]

    succeeded = sum(1 for d in span_details if d.status == SpanResultStatus.success)
    failed = sum(1 for d in span_details if d.status == SpanResultStatus.failed)
    evaluated = succeeded + failed
    scores = numeric_scores(span_details)
    latencies = [d.latency_ms for d in span_details if d.latency_ms is not None]
    step = timedelta(hours=1) if period == "24h" else timedelta(days=1)

    return EvaluatorAnalytics(
        evaluator_id=evaluator_id,
        period=period,
        total_executions=len(in_period),
        total_spans_scored=sum(e.spans_scored for e in in_period),
        total_errors=sum(e.errors_count for e in in_period),
        success_rate=succeeded / evaluated if evaluated else 0.0,
        average_score=statistics.fmean(scores) if scores else None,
        score_distribution=score_distribution(scores),
        execution_trend=execution_trend(in_period, details, since, now, step),
        latency_percentiles=latency_stats(latencies),
        top_errors=top_errors(in_period, span_details),
    )
