"""Evaluator definition validation: YAML parsing plus the pydantic model.

Errors from both stages are collected with source positions so a whole
file can be reported at once.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from spanscore.loader.yaml_parser import (
    LineMap,
    YAMLParseError,
    parse_yaml_file,
    parse_yaml_with_lines,
)
from spanscore.models.evaluator import (
    BuiltinScorerConfig,
    EvaluatorDraft,
    FilterClause,
    LLMMessage,
    LLMScorerConfig,
    OutputField,
    RegexScorerConfig,
    ScorerType,
    VariableMapping,
)

# Known keys per section, used for typo suggestions.
KNOWN_FIELDS: dict[str, list[str]] = {
    "": list(EvaluatorDraft.model_fields),
    "filter": list(FilterClause.model_fields),
    "variable_mapping": list(VariableMapping.model_fields),
    "scorer_config": sorted(
        set(LLMScorerConfig.model_fields)
        | set(BuiltinScorerConfig.model_fields)
        | set(RegexScorerConfig.model_fields)
    ),
    "scorer_config.messages": list(LLMMessage.model_fields),
    "scorer_config.output_schema": list(OutputField.model_fields),
}

_SCORER_TAGS = {t.value for t in ScorerType}


@dataclass
class ValidationErrorDetail:
    """A single validation error with source position and context.

    Attributes:
        field: Dotted path of the offending field ('' for the whole document).
        message: Human-readable error description.
        type: Pydantic error type string (e.g. 'missing', 'extra_forbidden').
        line: 1-indexed line in the source YAML, or None if unknown.
        col: 1-indexed column in the source YAML, or None if unknown.
        suggestion: 'Did you mean X?' for typos, or None.
        input_value: The invalid input value, if available.
    """

    field: str
    message: str
    type: str
    line: int | None = None
    col: int | None = None
    suggestion: str | None = None
    input_value: Any = field(default=None)


def _loc_to_field_path(loc: tuple[str | int, ...]) -> str:
    """Dotted path for a pydantic loc, without the scorer_config union tag."""
    parts = [str(part) for part in loc]
    if len(parts) > 1 and parts[0] == "scorer_config" and parts[1] in _SCORER_TAGS:
        del parts[1]
    return ".".join(parts)


def _find_line_for_field(field_path: str, line_map: LineMap) -> tuple[int | None, int | None]:
    """Exact path first, then progressively shorter prefixes."""
    parts = field_path.split(".") if field_path else []
    while parts:
        prefix = ".".join(parts)
        if prefix in line_map:
            return line_map[prefix]
        parts.pop()
    return None, None


def _section_of(field_path: str) -> str:
    # "filter.0.fiel" -> "filter"; "scorer_config.messages.1.rol" -> "scorer_config.messages"
    parts = [p for p in field_path.split(".")[:-1] if not p.isdigit()]
    return ".".join(parts)


def _get_suggestion(field_path: str) -> str | None:
    """'Did you mean?' for an unknown key, among the keys valid at its level."""
    name = field_path.rsplit(".", 1)[-1]
    candidates = KNOWN_FIELDS.get(_section_of(field_path), [])
    matches = difflib.get_close_matches(name, candidates, n=1, cutoff=0.6)
    if matches:
        return f"Did you mean '{matches[0]}'?"
    return None


def validate_evaluator(
    raw_data: dict[str, Any],
    line_map: LineMap,
) -> tuple[EvaluatorDraft | None, list[ValidationErrorDetail]]:
    """Validate parsed YAML data against EvaluatorDraft.

    Returns:
        (draft, []) on success, or (None, errors) on failure.
    """
    try:
        return EvaluatorDraft.model_validate(raw_data), []
    except ValidationError as e:
        errors: list[ValidationErrorDetail] = []
        for err in e.errors():
            field_path = _loc_to_field_path(err.get("loc", ()))
            error_type = err.get("type", "unknown")
            line, col = _find_line_for_field(field_path, line_map)
            suggestion = None
            if error_type == "extra_forbidden":
                suggestion = _get_suggestion(field_path)
            errors.append(
                ValidationErrorDetail(
                    field=field_path,
                    message=err.get("msg", "Validation error"),
                    type=error_type,
                    line=line,
                    col=col,
                    suggestion=suggestion,
                    input_value=err.get("input"),
                )
            )
        return None, errors


def _yaml_error(e: YAMLParseError) -> ValidationErrorDetail:
    return ValidationErrorDetail(
        field="<yaml>",
        message=e.message,
        type="yaml_syntax_error",
        line=e.line,
        col=e.column,
    )


def validate_evaluator_file(
    filepath: Path,
) -> tuple[EvaluatorDraft | None, list[ValidationErrorDetail]]:
    """Parse and validate an evaluator YAML file, returning all errors at once."""
    try:
        raw_data, line_map = parse_yaml_file(filepath)
    except YAMLParseError as e:
        return None, [_yaml_error(e)]

    if raw_data is None:
        return None, [
            ValidationErrorDetail(
                field="<yaml>",
                message="File is empty or is not a mapping",
                type="empty_file",
            )
        ]
    return validate_evaluator(raw_data, line_map)


def validate_evaluator_string(
    source: str,
    filename: str = "<string>",
) -> tuple[EvaluatorDraft | None, list[ValidationErrorDetail]]:
    """Parse and validate an evaluator definition held in a string."""
    try:
        raw_data, line_map = parse_yaml_with_lines(source, filename=filename)
    except YAMLParseError as e:
        return None, [_yaml_error(e)]

    if raw_data is None:
        return None, [
            ValidationErrorDetail(
                field="<yaml>",
                message="Input is empty or is not a mapping",
                type="empty_input",
            )
        ]
    return validate_evaluator(raw_data, line_map)
