"""Read-side analytics models for an evaluator's execution history."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

AnalyticsPeriod = Literal["24h", "7d", "30d"]


class LatencyStats(BaseModel):
    p50: float = 0.0
    p90: float = 0.0
    p99: float = 0.0
    avg: float = 0.0
    min: float = 0.0
    max: float = 0.0


class ScoreBucket(BaseModel):
    bin_start: float
    bin_end: float
    count: int
    percentage: float


class TrendPoint(BaseModel):
    timestamp: datetime
    executions: int
    spans_scored: int
    errors: int
    average_score: float | None = None


class ErrorSummary(BaseModel):
    message: str
    count: int
    percentage: float


class EvaluatorAnalytics(BaseModel):
    evaluator_id: str
    period: AnalyticsPeriod
    total_executions: int = 0
    total_spans_scored: int = 0
    total_errors: int = 0
    success_rate: float = 0.0
    average_score: float | None = None
    score_distribution: list[ScoreBucket] = Field(default_factory=list)
    execution_trend: list[TrendPoint] = Field(default_factory=list)
    latency_percentiles: LatencyStats = Field(default_factory=LatencyStats)
    top_errors: list[ErrorSummary] = Field(default_factory=list)
