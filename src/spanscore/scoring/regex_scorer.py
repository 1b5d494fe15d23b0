"""Regex scorer -- scores whether the target text matches a pattern."""

from __future__ import annotations

import re

from spanscore.models.evaluator import RegexScorerConfig
from spanscore.models.execution import ResolvedVariable, ScoreResult
from spanscore.scoring.base import BaseScorer, ScorerOutcome, ScoringContext, target_text


class RegexScorer(BaseScorer):
    """match_score on a match, no_match_score otherwise.

    With capture_group set, a numeric capture becomes the score value and
    a non-numeric capture is reported in the reasoning.
    """

    def score(
        self,
        config: RegexScorerConfig,
        variables: list[ResolvedVariable],
        context: ScoringContext,
    ) -> ScorerOutcome:
        text = target_text(variables, context.span)
        if not text:
            return ScorerOutcome()

        match = re.search(config.pattern, text)
        if match is None:
            result = ScoreResult(
                score_name=config.score_name,
                value=config.no_match_score,
                reasoning=f"no match for pattern {config.pattern!r}",
            )
            return ScorerOutcome(score_results=[result])

        value = config.match_score
        reasoning = f"matched {match.group(0)!r}"
        if config.capture_group is not None:
            captured = match.group(config.capture_group)
            if captured is not None:
                reasoning = f"captured {captured!r}"
                try:
                    value = float(captured)
                except ValueError:
                    pass

        result = ScoreResult(score_name=config.score_name, value=value, reasoning=reasoning)
        return ScorerOutcome(score_results=[result])
