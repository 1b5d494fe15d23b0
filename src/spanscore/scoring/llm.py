"""LLM-as-judge scorer.

Orchestrates the judge pipeline for one span: prompt rendering, the
provider call (with transient retry), JSON extraction and mapping onto
the configured output schema. The rendered prompt and the raw and
parsed replies are returned for audit whether scoring succeeds or not.
"""

from __future__ import annotations

import asyncio
import logging

from spanscore.adapters.base import AdapterConfig, Message
from spanscore.errors import ScorerError, ScorerUnavailableError
from spanscore.execution.retry import is_connection_failure, retry_with_backoff
from spanscore.matching.variables import variables_as_text
from spanscore.models.evaluator import LLMScorerConfig, ResponseFormat
from spanscore.models.execution import ResolvedVariable
from spanscore.scoring.base import BaseScorer, ScorerOutcome, ScoringContext
from spanscore.scoring.extraction import (
    extract_json_from_text,
    map_output_schema,
    score_from_text,
)
from spanscore.scoring.prompt import render_messages, with_schema_instruction

logger = logging.getLogger(__name__)


class LLMScorer(BaseScorer):
    """Scores a span by asking a judge model and parsing its JSON reply."""

    def score(
        self,
        config: LLMScorerConfig,
        variables: list[ResolvedVariable],
        context: ScoringContext,
    ) -> ScorerOutcome:
        """Sync entry point -- only valid outside a running event loop."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self.score_async(config, variables, context))
        raise RuntimeError(
            "LLMScorer.score() called from within an async context. "
            "Use score_async() instead."
        )

    async def score_async(
        self,
        config: LLMScorerConfig,
        variables: list[ResolvedVariable],
        context: ScoringContext,
    ) -> ScorerOutcome:
        sent = with_schema_instruction(
            render_messages(config.messages, variables_as_text(variables)),
            config.output_schema,
        )
        adapter, credential = context.adapter_for(config.credential_id)

        adapter_config = AdapterConfig(
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens or credential.max_tokens,
            json_mode=config.response_format == ResponseFormat.json,
        )
        messages = [Message(role=m.role, content=m.content) for m in sent]

        try:
            outcome = await retry_with_backoff(
                lambda: adapter.complete(messages, adapter_config),
                context.retry_policy,
            )
        except Exception as exc:
            if is_connection_failure(exc):
                raise ScorerUnavailableError(
                    f"scorer provider {adapter.provider_name()} unreachable: {exc}"
                ) from exc
            raise ScorerError(f"provider error: {exc}", prompt_sent=sent) from exc

        if outcome.retries_used:
            logger.debug(
                "judge call succeeded after %d retries (%s)",
                outcome.retries_used,
                ", ".join(outcome.error_types),
            )

        raw = outcome.result.content or ""
        parsed = extract_json_from_text(raw)
        if parsed is None and config.response_format == ResponseFormat.text:
            if len(config.output_schema) == 1:
                parsed = score_from_text(raw, config.output_schema[0])
        if parsed is None:
            raise ScorerError(
                "judge response is not a JSON object",
                raw_response=raw,
                prompt_sent=sent,
            )

        try:
            results = map_output_schema(parsed, config.output_schema)
        except ScorerError as exc:
            exc.raw_response = raw
            exc.parsed_response = parsed
            exc.prompt_sent = sent
            raise

        return ScorerOutcome(
            score_results=results,
            raw_response=raw,
            parsed_response=parsed,
            prompt_sent=sent,
        )
