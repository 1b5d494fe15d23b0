"""JSON extraction and output-schema mapping for LLM judge replies."""

from __future__ import annotations

import json
import re
from typing import Any

from spanscore.errors import ScorerError
from spanscore.models.evaluator import OutputField, OutputFieldType, is_numeric
from spanscore.models.execution import ScoreResult

_FENCED = re.compile(r"```(?:json)?\s*\n(.*?)\n\s*```", re.DOTALL)
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")

_TRUE = {"true", "yes", "pass", "1"}
_FALSE = {"false", "no", "fail", "0"}


def extract_json_from_text(text: str) -> dict | None:
    """Extract a JSON object from a model reply.

    Tries three strategies in order:
    1. Direct json.loads on the full text
    2. Fenced code block (```json ... ```)
    3. Brace extraction (first '{' to last '}')

    Returns the parsed dict or None if all strategies fail.
    """
    if not text:
        return None

    candidates = [text.strip()]
    match = _FENCED.search(text)
    if match:
        candidates.append(match.group(1))
    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if first_brace != -1 and last_brace > first_brace:
        candidates.append(text[first_brace : last_brace + 1])

    for candidate in candidates:
        try:
            result = json.loads(candidate)
        except (ValueError, RecursionError):
            continue
        if isinstance(result, dict):
            return result
    return None


def _coerce_number(value: Any) -> float | None:
    if is_numeric(value):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
        return value.strip().lower() in _TRUE
    if is_numeric(value) and value in (0, 1):
        return bool(value)
    return None


def _reasoning(parsed: dict, name: str, single: bool) -> str | None:
    for key in (f"{name}_reason", f"{name}_reasoning"):
        if isinstance(parsed.get(key), str):
            return parsed[key]
    if single:
        for key in ("reasoning", "reason"):
            if isinstance(parsed.get(key), str):
                return parsed[key]
    return None


def _confidence(parsed: dict, name: str, single: bool) -> float | None:
    keys = [f"{name}_confidence"] + (["confidence"] if single else [])
    for key in keys:
        value = _coerce_number(parsed.get(key))
        if value is not None and 0.0 <= value <= 1.0:
            return value
    return None


def map_output_schema(parsed: dict, schema: list[OutputField]) -> list[ScoreResult]:
    """Convert a parsed judge reply into ScoreResults.

    Raises:
        ScorerError: A schema field is missing or has an invalid value.
    """
    if not schema:
        return infer_scores(parsed)

    single = len(schema) == 1
    results: list[ScoreResult] = []
    for f in schema:
        if f.name not in parsed:
            raise ScorerError(f"response is missing output field '{f.name}'")
        raw = parsed[f.name]
        value: float | bool | str
        if f.type == OutputFieldType.numeric:
            number = _coerce_number(raw)
            if number is None:
                raise ScorerError(f"output field '{f.name}' is not a number: {raw!r}")
            if f.min_value is not None:
                number = max(f.min_value, number)
            if f.max_value is not None:
                number = min(f.max_value, number)
            value = number
        elif f.type == OutputFieldType.boolean:
            flag = _coerce_bool(raw)
            if flag is None:
                raise ScorerError(f"output field '{f.name}' is not a boolean: {raw!r}")
            value = flag
        else:
            if not isinstance(raw, str) or raw not in (f.categories or []):
                raise ScorerError(
                    f"output field '{f.name}' must be one of {f.categories}, got {raw!r}"
                )
            value = raw
        results.append(
            ScoreResult(
                score_name=f.name,
                value=value,
                reasoning=_reasoning(parsed, f.name, single),
                confidence=_confidence(parsed, f.name, single),
            )
        )
    return results


def infer_scores(parsed: dict) -> list[ScoreResult]:
    """Without a schema, every numeric or boolean top-level key is a score."""
    score_keys = [
        k
        for k, v in parsed.items()
        if (is_numeric(v) or isinstance(v, bool))
        and not k.endswith(("_confidence", "_reason", "_reasoning"))
        and k != "confidence"
    ]
    single = len(score_keys) == 1
    results = [
        ScoreResult(
            score_name=k,
            value=parsed[k] if isinstance(parsed[k], bool) else float(parsed[k]),
            reasoning=_reasoning(parsed, k, single),
            confidence=_confidence(parsed, k, single),
        )
        for k in score_keys
    ]
    if not results:
        raise ScorerError("response contains no numeric or boolean scores")
    return results


def score_from_text(text: str, field: OutputField) -> dict | None:
    """Plain-text fallback for a single numeric field: first number wins."""
    if field.type != OutputFieldType.numeric:
        return None
    match = _NUMBER.search(text)
    if match is None:
        return None
    return {field.name: float(match.group(0)), f"{field.name}_reason": text.strip()}
