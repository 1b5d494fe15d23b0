"""Builtin deterministic scorers.

Each function takes the target text and the scorer's option dict and
returns one ScoreResult. Sentiment and toxicity are small lexicon
heuristics meant as cheap first-pass signals, not classifiers.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any

from spanscore.errors import ScorerError
from spanscore.models.evaluator import BuiltinScorerConfig, BuiltinScorerName
from spanscore.models.execution import ResolvedVariable, ScoreResult
from spanscore.scoring.base import BaseScorer, ScorerOutcome, ScoringContext, target_text

_WORD = re.compile(r"[a-z']+")

POSITIVE_WORDS: frozenset[str] = frozenset(
    {
        "good", "great", "excellent", "helpful", "thanks", "thank", "love",
        "happy", "glad", "perfect", "awesome", "correct", "clear", "nice",
        "wonderful", "pleased", "useful", "amazing", "fantastic", "best",
    }
)
NEGATIVE_WORDS: frozenset[str] = frozenset(
    {
        "bad", "terrible", "awful", "wrong", "useless", "hate", "angry",
        "sad", "poor", "broken", "worst", "confusing", "unhelpful", "sorry",
        "fail", "failed", "error", "disappointed", "horrible", "annoying",
    }
)
TOXIC_WORDS: frozenset[str] = frozenset(
    {
        "idiot", "stupid", "dumb", "moron", "hate", "shut", "kill", "loser",
        "pathetic", "worthless", "disgusting", "trash", "ugly", "fool",
    }
)


def _words(text: str) -> list[str]:
    return _WORD.findall(text.lower())


def score_contains(text: str, options: dict[str, Any]) -> ScoreResult:
    substring = str(options["substring"])
    case_sensitive = options.get("case_sensitive", True)
    haystack, needle = (text, substring) if case_sensitive else (text.lower(), substring.lower())
    found = needle in haystack
    return ScoreResult(
        score_name=options.get("score_name", "contains"),
        value=1.0 if found else 0.0,
        reasoning=f"{'found' if found else 'did not find'} {substring!r}",
    )


def score_json_valid(text: str, options: dict[str, Any]) -> ScoreResult:
    try:
        json.loads(text)
    except (ValueError, RecursionError) as exc:
        return ScoreResult(
            score_name=options.get("score_name", "json_valid"),
            value=0.0,
            reasoning=f"invalid JSON: {exc}",
        )
    return ScoreResult(
        score_name=options.get("score_name", "json_valid"),
        value=1.0,
        reasoning="valid JSON",
    )


def score_length_check(text: str, options: dict[str, Any]) -> ScoreResult:
    min_length = options.get("min_length", 0)
    max_length = options.get("max_length")
    length = len(text)
    too_short = length < min_length
    too_long = max_length is not None and max_length >= 0 and length > max_length
    bounds = f"[{min_length}, {max_length if max_length is not None else 'inf'}]"
    return ScoreResult(
        score_name=options.get("score_name", "length_check"),
        value=0.0 if (too_short or too_long) else 1.0,
        reasoning=f"length {length} {'outside' if too_short or too_long else 'within'} {bounds}",
    )


def score_sentiment(text: str, options: dict[str, Any]) -> ScoreResult:
    words = _words(text)
    pos = sum(1 for w in words if w in POSITIVE_WORDS)
    neg = sum(1 for w in words if w in NEGATIVE_WORDS)
    polarity = (pos - neg) / (pos + neg) if pos + neg else 0.0
    return ScoreResult(
        score_name=options.get("score_name", "sentiment"),
        value=round((polarity + 1.0) / 2.0, 4),
        reasoning=f"{pos} positive, {neg} negative terms",
    )


def score_toxicity(text: str, options: dict[str, Any]) -> ScoreResult:
    words = _words(text)
    hits = sum(1 for w in words if w in TOXIC_WORDS)
    ratio = hits / len(words) if words else 0.0
    threshold = options.get("threshold")
    name = options.get("score_name", "toxicity")
    if threshold is not None:
        flagged = ratio >= threshold
        return ScoreResult(
            score_name=name,
            value=flagged,
            reasoning=f"{hits}/{len(words)} toxic terms (threshold {threshold})",
        )
    return ScoreResult(
        score_name=name,
        value=round(ratio, 4),
        reasoning=f"{hits}/{len(words)} toxic terms",
    )


BUILTIN_SCORERS: dict[BuiltinScorerName, Callable[[str, dict[str, Any]], ScoreResult]] = {
    BuiltinScorerName.contains: score_contains,
    BuiltinScorerName.json_valid: score_json_valid,
    BuiltinScorerName.length_check: score_length_check,
    BuiltinScorerName.sentiment: score_sentiment,
    BuiltinScorerName.toxicity: score_toxicity,
}


class BuiltinScorer(BaseScorer):
    """Dispatches to one of the builtin scoring functions."""

    def score(
        self,
        config: BuiltinScorerConfig,
        variables: list[ResolvedVariable],
        context: ScoringContext,
    ) -> ScorerOutcome:
        fn = BUILTIN_SCORERS.get(config.scorer_name)
        if fn is None:
            raise ScorerError(f"unknown builtin scorer '{config.scorer_name}'")
        text = target_text(variables, context.span)
        return ScorerOutcome(score_results=[fn(text, config.config)])
