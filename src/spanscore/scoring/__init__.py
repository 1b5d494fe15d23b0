"""Scorer registry -- maps scorer types to scorer classes, plus dispatch."""

from __future__ import annotations

from spanscore.errors import ScorerConfigMismatchError
from spanscore.models.evaluator import ScorerConfig, ScorerType
from spanscore.models.execution import ResolvedVariable
from spanscore.scoring.base import BaseScorer, ScorerOutcome, ScoringContext
from spanscore.scoring.builtin import BuiltinScorer
from spanscore.scoring.llm import LLMScorer
from spanscore.scoring.regex_scorer import RegexScorer

SCORER_REGISTRY: dict[ScorerType, type[BaseScorer]] = {
    ScorerType.llm: LLMScorer,
    ScorerType.builtin: BuiltinScorer,
    ScorerType.regex: RegexScorer,
}


def get_scorer(scorer_type: ScorerType | str) -> BaseScorer:
    """Look up and instantiate the scorer for *scorer_type*.

    Raises:
        ValueError: If *scorer_type* is not in the registry.
    """
    try:
        cls = SCORER_REGISTRY[ScorerType(scorer_type)]
    except (KeyError, ValueError):
        available = sorted(t.value for t in SCORER_REGISTRY)
        raise ValueError(
            f"Unknown scorer type {scorer_type!r}. Available types: {available}"
        ) from None
    return cls()


async def dispatch(
    scorer_type: ScorerType,
    scorer_config: ScorerConfig,
    variables: list[ResolvedVariable],
    context: ScoringContext | None = None,
) -> ScorerOutcome:
    """Check the config variant against scorer_type, then score.

    Raises:
        ScorerConfigMismatchError: The variant tag differs from scorer_type.
        ScorerError: Span-level scoring failure.
        ScorerUnavailableError: The provider cannot be used at all.
    """
    if scorer_config.type != ScorerType(scorer_type).value:
        raise ScorerConfigMismatchError(
            f"scorer_config is '{scorer_config.type}' but scorer_type is "
            f"'{ScorerType(scorer_type).value}'"
        )
    scorer = get_scorer(scorer_type)
    return await scorer.score_async(scorer_config, variables, context or ScoringContext())


__all__ = [
    "SCORER_REGISTRY",
    "BaseScorer",
    "ScorerOutcome",
    "ScoringContext",
    "dispatch",
    "get_scorer",
]
