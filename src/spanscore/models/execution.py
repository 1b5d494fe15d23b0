"""Execution data models.

An Execution is one run of an evaluator against a candidate set of
spans. It is created ``pending`` by a trigger, claimed into
``running`` by exactly one worker and ends in one terminal state.
ExecutionDetail adds the per-span outcomes and the evaluator
configuration frozen at trigger time.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from spanscore.models.evaluator import (
    Evaluator,
    FilterClause,
    LLMMessage,
    ScorerConfig,
    ScorerType,
    TargetScope,
    VariableMapping,
    VariableSource,
)


class ExecutionStatus(str, Enum):
    """State of an execution."""

    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


class ExecutionTrigger(str, Enum):
    """What created an execution."""

    automatic = "automatic"
    manual = "manual"


class SpanResultStatus(str, Enum):
    success = "success"
    failed = "failed"
    skipped = "skipped"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ScoreResult(BaseModel):
    """A single named score produced by a scorer."""

    score_name: str
    value: float | bool | str
    reasoning: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)


class ResolvedVariable(BaseModel):
    """The value a variable mapping resolved to (None when unresolvable)."""

    variable_name: str
    source: VariableSource
    json_path: str | None = None
    resolved_value: Any = None


class SpanExecutionDetail(BaseModel):
    """Outcome of scoring one span inside an execution."""

    span_id: str
    trace_id: str = ""
    span_name: str = ""
    status: SpanResultStatus
    score_results: list[ScoreResult] = Field(default_factory=list)
    variables_resolved: list[ResolvedVariable] = Field(default_factory=list)
    prompt_sent: list[LLMMessage] | None = None
    llm_response_raw: str | None = None
    llm_response_parsed: dict[str, Any] | None = None
    error_message: str | None = None
    latency_ms: float | None = None
    created_at: datetime = Field(default_factory=_utc_now)


class EvaluatorSnapshot(BaseModel):
    """Evaluator configuration as of trigger time."""

    evaluator_id: str
    name: str
    scorer_type: ScorerType
    scorer_config: ScorerConfig
    variable_mapping: list[VariableMapping] = Field(default_factory=list)
    filter: list[FilterClause] = Field(default_factory=list)
    span_names: list[str] = Field(default_factory=list)
    sampling_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    target_scope: TargetScope = TargetScope.span

    @classmethod
    def from_evaluator(cls, evaluator: Evaluator) -> EvaluatorSnapshot:
        return cls(
            evaluator_id=evaluator.id,
            name=evaluator.name,
            scorer_type=evaluator.scorer_type,
            scorer_config=evaluator.scorer_config.model_copy(deep=True),
            variable_mapping=[m.model_copy() for m in evaluator.variable_mapping],
            filter=[c.model_copy(deep=True) for c in evaluator.filter],
            span_names=list(evaluator.span_names),
            sampling_rate=evaluator.sampling_rate,
            target_scope=evaluator.target_scope,
        )


class TriggerScope(BaseModel):
    """Candidate selection for a triggered execution."""

    model_config = {"extra": "forbid"}

    trace_id: str | None = None
    span_id: str | None = None
    span_ids: list[str] = Field(default_factory=list)
    start_time: datetime | None = None
    end_time: datetime | None = None
    sample_limit: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _check_window(self) -> TriggerScope:
        if (
            self.start_time is not None
            and self.end_time is not None
            and self.start_time >= self.end_time
        ):
            raise ValueError("start_time must be before end_time")
        return self


class Execution(BaseModel):
    """Aggregate record of one evaluator run."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    evaluator_id: str
    project_id: str
    status: ExecutionStatus = ExecutionStatus.pending
    trigger_type: ExecutionTrigger = ExecutionTrigger.manual
    spans_matched: int = Field(default=0, ge=0)
    spans_scored: int = Field(default=0, ge=0)
    errors_count: int = Field(default=0, ge=0)
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    worker_id: str | None = None
    scope: TriggerScope = Field(default_factory=TriggerScope)

    @model_validator(mode="after")
    def _scored_within_matched(self) -> Execution:
        if self.spans_scored > self.spans_matched:
            raise ValueError("spans_scored cannot exceed spans_matched")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in (
            ExecutionStatus.completed,
            ExecutionStatus.failed,
            ExecutionStatus.cancelled,
        )


class ExecutionDetail(Execution):
    """Execution plus per-span outcomes and the frozen evaluator config."""

    spans: list[SpanExecutionDetail] = Field(default_factory=list)
    evaluator_snapshot: EvaluatorSnapshot

    @classmethod
    def build(
        cls,
        execution: Execution,
        snapshot: EvaluatorSnapshot,
        spans: list[SpanExecutionDetail],
    ) -> ExecutionDetail:
        return cls(
            **execution.model_dump(),
            spans=spans,
            evaluator_snapshot=snapshot,
        )


class TriggerResponse(BaseModel):
    execution_id: str
    message: str


class ExecutionQuery(BaseModel):
    """Filters and paging for listing an evaluator's executions."""

    model_config = {"extra": "forbid"}

    status: ExecutionStatus | None = None
    trigger_type: ExecutionTrigger | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


class ExecutionPage(BaseModel):
    items: list[Execution]
    total: int
    page: int
    limit: int

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total
