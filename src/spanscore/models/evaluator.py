"""Evaluator data models.

These models encode the user-facing contract for an evaluator: which
spans it targets (filter clauses, span names, sampling), how it scores
them (a tagged scorer configuration) and where scorer inputs come from
(variable mappings). Everything here is validated at construction time
so configuration errors never reach an execution.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, field_validator, model_validator


class EvaluatorStatus(str, Enum):
    """Lifecycle status of an evaluator."""

    active = "active"
    inactive = "inactive"
    paused = "paused"


class EvaluatorTrigger(str, Enum):
    """Event that drives automatic executions."""

    on_span_complete = "on_span_complete"


class TargetScope(str, Enum):
    """Granularity an evaluator scores at."""

    span = "span"
    trace = "trace"


class ScorerType(str, Enum):
    """Closed set of scoring strategies."""

    llm = "llm"
    builtin = "builtin"
    regex = "regex"


class FilterOperator(str, Enum):
    """Operators available to a filter clause."""

    equals = "equals"
    not_equals = "not_equals"
    contains = "contains"
    gt = "gt"
    lt = "lt"
    gte = "gte"
    lte = "lte"
    is_empty = "is_empty"
    is_not_empty = "is_not_empty"


VALUELESS_OPERATORS: frozenset[FilterOperator] = frozenset(
    {FilterOperator.is_empty, FilterOperator.is_not_empty}
)
NUMERIC_OPERATORS: frozenset[FilterOperator] = frozenset(
    {FilterOperator.gt, FilterOperator.lt, FilterOperator.gte, FilterOperator.lte}
)

# Fields exposed by a span's filter record (see matching.filters.span_record).
FILTER_FIELDS: frozenset[str] = frozenset(
    {
        "span_id",
        "trace_id",
        "parent_span_id",
        "span_name",
        "name",
        "span_kind",
        "status",
        "model",
        "provider",
        "latency_ms",
        "duration_ms",
        "input_tokens",
        "output_tokens",
        "total_tokens",
        "input",
        "output",
        "metadata",
    }
)
FILTER_FIELD_PREFIXES: tuple[str, ...] = ("metadata.", "input.", "output.", "attributes.")


class VariableSource(str, Enum):
    """Payload a variable mapping reads from."""

    span_input = "span_input"
    span_output = "span_output"
    span_metadata = "span_metadata"
    trace_input = "trace_input"


class OutputFieldType(str, Enum):
    numeric = "numeric"
    categorical = "categorical"
    boolean = "boolean"


class ResponseFormat(str, Enum):
    json = "json"
    text = "text"


class BuiltinScorerName(str, Enum):
    contains = "contains"
    json_valid = "json_valid"
    length_check = "length_check"
    sentiment = "sentiment"
    toxicity = "toxicity"


def is_numeric(value: Any) -> bool:
    """True for int/float values. Booleans are not numbers here."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class FilterClause(BaseModel):
    """A single `field operator value` condition."""

    model_config = {"extra": "forbid"}

    field: str = Field(min_length=1)
    operator: FilterOperator
    value: Any = None

    @field_validator("field")
    @classmethod
    def _known_field(cls, value: str) -> str:
        if value in FILTER_FIELDS or value.startswith(FILTER_FIELD_PREFIXES):
            return value
        raise ValueError(
            f"unknown filter field '{value}'; expected one of "
            f"{sorted(FILTER_FIELDS)} or a metadata./input./output. path"
        )

    @model_validator(mode="after")
    def _check_value(self) -> FilterClause:
        op = self.operator
        if op in VALUELESS_OPERATORS:
            return self
        if self.value is None:
            raise ValueError(f"operator '{op.value}' requires a value")
        if op in NUMERIC_OPERATORS and not is_numeric(self.value):
            raise ValueError(f"operator '{op.value}' requires a numeric value")
        if op == FilterOperator.contains and not isinstance(self.value, str):
            raise ValueError("operator 'contains' requires a string value")
        return self


class VariableMapping(BaseModel):
    """Maps a scorer variable to a path inside a span or trace payload."""

    model_config = {"extra": "forbid"}

    variable_name: str = Field(pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    source: VariableSource
    json_path: str = ""


class LLMMessage(BaseModel):
    """One templated chat message; `{variable}` placeholders are substituted."""

    model_config = {"extra": "forbid"}

    role: Literal["system", "user", "assistant"]
    content: str


class OutputField(BaseModel):
    """A named score the LLM judge must return."""

    model_config = {"extra": "forbid"}

    name: str = Field(min_length=1)
    type: OutputFieldType
    description: str | None = None
    min_value: float | None = None
    max_value: float | None = None
    categories: list[str] | None = None

    @model_validator(mode="after")
    def _check_bounds(self) -> OutputField:
        if (
            self.min_value is not None
            and self.max_value is not None
            and self.min_value > self.max_value
        ):
            raise ValueError(
                f"output field '{self.name}': min_value must not exceed max_value"
            )
        if self.type == OutputFieldType.categorical and not self.categories:
            raise ValueError(
                f"output field '{self.name}': categorical fields need categories"
            )
        return self


class LLMScorerConfig(BaseModel):
    """LLM-as-judge scorer settings."""

    model_config = {"extra": "forbid"}

    type: Literal["llm"] = "llm"
    credential_id: str = Field(min_length=1)
    model: str = Field(min_length=1)
    messages: list[LLMMessage] = Field(min_length=1)
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=1)
    response_format: ResponseFormat = ResponseFormat.json
    output_schema: list[OutputField] = Field(default_factory=list)

    @field_validator("output_schema")
    @classmethod
    def _unique_output_names(cls, fields: list[OutputField]) -> list[OutputField]:
        seen: set[str] = set()
        for f in fields:
            if f.name in seen:
                raise ValueError(f"duplicate output field '{f.name}'")
            seen.add(f.name)
        return fields


class BuiltinScorerConfig(BaseModel):
    """Deterministic builtin scorer selection plus its options."""

    model_config = {"extra": "forbid"}

    type: Literal["builtin"] = "builtin"
    scorer_name: BuiltinScorerName
    config: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_options(self) -> BuiltinScorerConfig:
        opts = self.config
        name = self.scorer_name.value
        if "score_name" in opts and (
            not isinstance(opts["score_name"], str) or not opts["score_name"]
        ):
            raise ValueError(f"builtin '{name}': score_name must be a non-empty string")
        if self.scorer_name == BuiltinScorerName.contains:
            if not isinstance(opts.get("substring"), str) or not opts["substring"]:
                raise ValueError("builtin 'contains' requires a non-empty 'substring'")
            if not isinstance(opts.get("case_sensitive", True), bool):
                raise ValueError("builtin 'contains': case_sensitive must be true or false")
        elif self.scorer_name == BuiltinScorerName.length_check:
            lo = opts.get("min_length", 0)
            hi = opts.get("max_length")
            if not isinstance(lo, int) or lo < 0:
                raise ValueError("builtin 'length_check': min_length must be >= 0")
            # max_length -1 means unbounded
            if hi is not None and hi != -1 and (not isinstance(hi, int) or hi < lo):
                raise ValueError(
                    "builtin 'length_check': max_length must be an int >= min_length"
                )
        elif self.scorer_name == BuiltinScorerName.toxicity:
            threshold = opts.get("threshold")
            if threshold is not None and not (
                is_numeric(threshold) and 0.0 <= threshold <= 1.0
            ):
                raise ValueError("builtin 'toxicity': threshold must be in [0, 1]")
        return self


MAX_PATTERN_LENGTH = 200
MAX_PATTERN_QUANTIFIERS = 10


class RegexScorerConfig(BaseModel):
    """Regex match scorer settings."""

    model_config = {"extra": "forbid"}

    type: Literal["regex"] = "regex"
    pattern: str = Field(min_length=1)
    score_name: str = "regex_match"
    match_score: float = 1.0
    no_match_score: float = 0.0
    capture_group: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_pattern(self) -> RegexScorerConfig:
        if len(self.pattern) > MAX_PATTERN_LENGTH:
            raise ValueError(
                f"regex pattern too long (max {MAX_PATTERN_LENGTH} characters)"
            )
        quantifiers = self.pattern.count("*") + self.pattern.count("+")
        if quantifiers > MAX_PATTERN_QUANTIFIERS:
            raise ValueError("regex pattern too complex")
        try:
            compiled = re.compile(self.pattern)
        except re.error as exc:
            raise ValueError(f"invalid regex pattern: {exc}") from exc
        if self.capture_group is not None and self.capture_group > compiled.groups:
            raise ValueError(
                f"capture_group {self.capture_group} exceeds the "
                f"{compiled.groups} group(s) in the pattern"
            )
        return self


ScorerConfig = Annotated[
    Union[LLMScorerConfig, BuiltinScorerConfig, RegexScorerConfig],
    Field(discriminator="type"),
]


class EvaluatorDraft(BaseModel):
    """User-authored evaluator definition, as loaded from YAML or a request."""

    model_config = {"extra": "forbid"}

    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    status: EvaluatorStatus = EvaluatorStatus.inactive
    target_scope: TargetScope = TargetScope.span
    filter: list[FilterClause] = Field(default_factory=list)
    span_names: list[str] = Field(default_factory=list)
    sampling_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    scorer_type: ScorerType
    scorer_config: ScorerConfig
    variable_mapping: list[VariableMapping] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _default_scorer_tag(cls, data: Any) -> Any:
        # An untagged scorer_config mapping takes its tag from scorer_type.
        if isinstance(data, dict):
            config = data.get("scorer_config")
            scorer_type = data.get("scorer_type")
            if isinstance(config, dict) and "type" not in config and scorer_type:
                tag = scorer_type.value if isinstance(scorer_type, Enum) else scorer_type
                data = {**data, "scorer_config": {**config, "type": tag}}
        return data

    @field_validator("span_names")
    @classmethod
    def _dedupe_span_names(cls, names: list[str]) -> list[str]:
        return list(dict.fromkeys(names))

    @model_validator(mode="after")
    def _check_consistency(self) -> EvaluatorDraft:
        if self.scorer_config.type != self.scorer_type.value:
            raise ValueError(
                f"scorer_config type '{self.scorer_config.type}' does not match "
                f"scorer_type '{self.scorer_type.value}'"
            )
        seen: set[str] = set()
        for mapping in self.variable_mapping:
            if mapping.variable_name in seen:
                raise ValueError(
                    f"duplicate variable_name '{mapping.variable_name}'"
                )
            seen.add(mapping.variable_name)
        return self


class EvaluatorUpdate(BaseModel):
    """Partial update; unset fields keep their current value."""

    model_config = {"extra": "forbid"}

    name: str | None = None
    description: str | None = None
    target_scope: TargetScope | None = None
    filter: list[FilterClause] | None = None
    span_names: list[str] | None = None
    sampling_rate: float | None = None
    scorer_type: ScorerType | None = None
    scorer_config: dict[str, Any] | None = None
    variable_mapping: list[VariableMapping] | None = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Evaluator(EvaluatorDraft):
    """A stored evaluator owned by a project."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    project_id: str
    trigger_type: EvaluatorTrigger = EvaluatorTrigger.on_span_complete
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
    last_automatic_run_at: datetime | None = None

    def draft(self) -> EvaluatorDraft:
        """Return the user-authored portion of this evaluator."""
        return EvaluatorDraft.model_validate(
            self.model_dump(include=set(EvaluatorDraft.model_fields))
        )

    @property
    def variable_names(self) -> list[str]:
        return [m.variable_name for m in self.variable_mapping]
