"""spanscore data models - re-exports the public model classes."""

from spanscore.models.analytics import EvaluatorAnalytics
from spanscore.models.config import ProjectConfig
from spanscore.models.evaluator import (
    BuiltinScorerConfig,
    Evaluator,
    EvaluatorDraft,
    EvaluatorStatus,
    EvaluatorUpdate,
    FilterClause,
    FilterOperator,
    LLMMessage,
    LLMScorerConfig,
    OutputField,
    RegexScorerConfig,
    ScorerType,
    TargetScope,
    VariableMapping,
    VariableSource,
)
from spanscore.models.execution import (
    EvaluatorSnapshot,
    Execution,
    ExecutionDetail,
    ExecutionStatus,
    ExecutionTrigger,
    ResolvedVariable,
    ScoreResult,
    SpanExecutionDetail,
    SpanResultStatus,
    TriggerScope,
    TriggerResponse,
)
from spanscore.models.span import Span, Trace

__all__ = [
    "BuiltinScorerConfig",
    "Evaluator",
    "EvaluatorAnalytics",
    "EvaluatorDraft",
    "EvaluatorSnapshot",
    "EvaluatorStatus",
    "EvaluatorUpdate",
    "Execution",
    "ExecutionDetail",
    "ExecutionStatus",
    "ExecutionTrigger",
    "FilterClause",
    "FilterOperator",
    "LLMMessage",
    "LLMScorerConfig",
    "OutputField",
    "ProjectConfig",
    "RegexScorerConfig",
    "ResolvedVariable",
    "ScoreResult",
    "ScorerType",
    "Span",
    "SpanExecutionDetail",
    "SpanResultStatus",
    "TargetScope",
    "Trace",
    "TriggerResponse",
    "TriggerScope",
    "VariableMapping",
    "VariableSource",
]
