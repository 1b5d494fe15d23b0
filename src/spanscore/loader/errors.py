"""Validation error reporting in two modes: annotated (human) and concise (CI).

Human mode prints each error with its code, location and the source line
underlined at the offending key. CI mode prints one
``file:line:col -- field: message`` line per error.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from spanscore.loader.validator import ValidationErrorDetail


ERROR_CODES: dict[str, str] = {
    "extra_forbidden": "E001",
    "missing": "E002",
    "value_error": "E003",
    "less_than_equal": "E003",
    "greater_than_equal": "E003",
    "greater_than": "E003",
    "less_than": "E003",
    "too_short": "E003",
    "too_long": "E003",
    "string_too_short": "E003",
    "string_too_long": "E003",
    "string_pattern_mismatch": "E003",
    "string_type": "E004",
    "int_type": "E004",
    "int_parsing": "E004",
    "float_type": "E004",
    "float_parsing": "E004",
    "bool_type": "E004",
    "list_type": "E004",
    "dict_type": "E004",
    "model_type": "E004",
    "enum": "E005",
    "literal_error": "E005",
    "yaml_syntax_error": "E006",
    "empty_file": "E007",
    "empty_input": "E007",
    "union_tag_invalid": "E008",
    "union_tag_not_found": "E008",
}

ERROR_DESCRIPTIONS: dict[str, str] = {
    "E001": "unknown field",
    "E002": "required field missing",
    "E003": "invalid value",
    "E004": "type mismatch",
    "E005": "invalid choice",
    "E006": "YAML syntax error",
    "E007": "empty input",
    "E008": "unknown scorer type",
}


def error_code(error_type: str) -> str:
    """Error code for a pydantic error type; E999 when unmapped."""
    if error_type in ERROR_CODES:
        return ERROR_CODES[error_type]
    for key, code in ERROR_CODES.items():
        if key in error_type:
            return code
    return "E999"


class ErrorFormatter:
    """Formats ValidationErrorDetail lists for terminals or CI logs.

    Args:
        ci_mode: Concise output when True. None auto-detects from the
            ``CI`` environment variable.
    """

    def __init__(self, ci_mode: bool | None = None) -> None:
        if ci_mode is None:
            ci_mode = os.environ.get("CI", "").lower() in ("true", "1", "yes")
        self.ci_mode = ci_mode

    def format_error(
        self,
        error: ValidationErrorDetail,
        source_lines: list[str],
        filename: str,
    ) -> str:
        if self.ci_mode:
            hint = f" ({error.suggestion})" if error.suggestion else ""
            location = f"{filename}:{error.line or 0}:{error.col or 0}"
            return f"{location} -- {error.field or '<evaluator>'}: {error.message}{hint}"
        return self._format_annotated(error, source_lines, filename)

    def _format_annotated(
        self,
        error: ValidationErrorDetail,
        source_lines: list[str],
        filename: str,
    ) -> str:
        """Render an error like::

            error[E001]: unknown field
              --> sentiment.yaml:4:1
               |
             4 | smapling_rate: 0.5
               | ^^^^^^^^^^^^^ Extra inputs are not permitted
               |
               = help: Did you mean 'sampling_rate'?
        """
        code = error_code(error.type)
        out = [f"error[{code}]: {ERROR_DESCRIPTIONS.get(code, 'validation error')}"]

        index = (error.line or 0) - 1
        if error.line is None or not 0 <= index < len(source_lines):
            where = f"{filename}:{error.line}" if error.line is not None else filename
            out += [f"  --> {where}", "   |", f"   | {error.field or '<evaluator>'}: {error.message}", "   |"]
        else:
            text = source_lines[index].rstrip()
            gutter = " " * len(str(error.line))
            out += [f"  --> {filename}:{error.line}:{error.col or 1}", "   |", f" {error.line} | {text}"]
            key = error.field.rsplit(".", 1)[-1]
            start = text.find(key) if key and not key.isdigit() else -1
            if start >= 0:
                out.append(f" {gutter} | {' ' * start}{'^' * len(key)} {error.message}")
            else:
                out.append(f" {gutter} | {error.message}")
            out.append("   |")

        if error.suggestion:
            out.append(f"   = help: {error.suggestion}")
        return "\n".join(out)

    def format_all(
        self,
        errors: list[ValidationErrorDetail],
        source: str,
        filename: str,
    ) -> str:
        """All errors, separated by blank lines."""
        lines = source.splitlines()
        return "\n\n".join(self.format_error(e, lines, filename) for e in errors)

    def print_errors(
        self,
        errors: list[ValidationErrorDetail],
        source: str,
        filename: str,
    ) -> None:
        print(self.format_all(errors, source, filename), file=sys.stderr)

    def print_success(self, filename: str) -> None:
        print(f"  {filename} ... valid")
