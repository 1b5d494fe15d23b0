"""Dry-run (test) request and response models."""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from spanscore.models.evaluator import LLMMessage, ScorerType
from spanscore.models.execution import ResolvedVariable, ScoreResult

TimeRange = Literal["1h", "24h", "7d", "30d"]

DEFAULT_TEST_LIMIT = 5
MAX_TEST_LIMIT = 20


class SampleInput(BaseModel):
    """Ad-hoc payload scored as a synthetic span, bypassing filters."""

    model_config = {"extra": "forbid"}

    input: Any = None
    output: Any = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _needs_payload(self) -> SampleInput:
        if self.input in (None, "") and self.output in (None, ""):
            raise ValueError("sample_input needs at least one of input or output")
        return self


class TestSampleSpec(BaseModel):
    """Which spans a dry run samples."""

    model_config = {"extra": "forbid"}

    trace_id: str | None = None
    span_id: str | None = None
    span_ids: list[str] = Field(default_factory=list)
    limit: int = Field(default=DEFAULT_TEST_LIMIT, ge=1, le=MAX_TEST_LIMIT)
    time_range: TimeRange = "24h"
    sample_input: SampleInput | None = None


class TestSpanStatus(str, Enum):
    success = "success"
    failed = "failed"
    skipped = "skipped"
    filtered = "filtered"


class TestExecution(BaseModel):
    """Dry-run outcome for one candidate span."""

    span_id: str
    trace_id: str = ""
    span_name: str = ""
    matched_filter: bool
    status: TestSpanStatus
    score_results: list[ScoreResult] = Field(default_factory=list)
    variables_resolved: list[ResolvedVariable] = Field(default_factory=list)
    prompt_sent: list[LLMMessage] | None = None
    llm_response_raw: str | None = None
    llm_response_parsed: dict[str, Any] | None = None
    error_message: str | None = None
    latency_ms: float | None = None


class TestSummary(BaseModel):
    total_spans: int = 0
    matched_spans: int = 0
    evaluated_spans: int = 0
    success_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0
    filtered_count: int = 0
    average_score: float | None = None
    average_latency_ms: float | None = None


class EvaluatorPreview(BaseModel):
    """Human-readable summary of what an evaluator would run."""

    name: str
    scorer_type: ScorerType
    filter_description: str
    variable_names: list[str] = Field(default_factory=list)
    prompt_preview: str | None = None
    matching_count: int | None = None


class TestEvaluatorResponse(BaseModel):
    summary: TestSummary
    executions: list[TestExecution] = Field(default_factory=list)
    preview: EvaluatorPreview
