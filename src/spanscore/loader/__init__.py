"""Evaluator YAML loader - parsing, validation, and error reporting."""

from spanscore.loader.errors import ErrorFormatter
from spanscore.loader.validator import (
    ValidationErrorDetail,
    validate_evaluator,
    validate_evaluator_file,
    validate_evaluator_string,
)
from spanscore.loader.yaml_parser import (
    YAMLParseError,
    parse_yaml_file,
    parse_yaml_with_lines,
)

__all__ = [
    "ErrorFormatter",
    "ValidationErrorDetail",
    "YAMLParseError",
    "parse_yaml_file",
    "parse_yaml_with_lines",
    "validate_evaluator",
    "validate_evaluator_file",
    "validate_evaluator_string",
]
