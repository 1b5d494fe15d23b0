"""Base scorer abstract class and the per-execution scoring context."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from spanscore.adapters.base import BaseAdapter
from spanscore.adapters.registry import get_adapter
from spanscore.errors import ScorerUnavailableError
from spanscore.execution.retry import RetryPolicy
from spanscore.matching.variables import value_as_text
from spanscore.models.config import CredentialConfig
from spanscore.models.evaluator import LLMMessage
from spanscore.models.execution import ResolvedVariable, ScoreResult
from spanscore.models.span import Span


@dataclass
class ScorerOutcome:
    """What a scorer produced for one span.

    raw_response, parsed_response and prompt_sent are only set by the
    llm scorer and are kept for audit whether or not scoring succeeded.
    """

    score_results: list[ScoreResult] = field(default_factory=list)
    raw_response: str | None = None
    parsed_response: dict[str, Any] | None = None
    prompt_sent: list[LLMMessage] | None = None


@dataclass
class ScoringContext:
    """Collaborators a scorer may need, shared across one execution.

    Adapters are created once per credential and reused for every span.
    """

    credentials: dict[str, CredentialConfig] = field(default_factory=dict)
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    adapter_factory: Callable[[str], BaseAdapter] = get_adapter
    span: Span | None = None
    _adapters: dict[str, BaseAdapter] = field(default_factory=dict, repr=False)

    def for_span(self, span: Span | None) -> ScoringContext:
        """Same collaborators (and adapter cache), different current span."""
        return ScoringContext(
            credentials=self.credentials,
            retry_policy=self.retry_policy,
            adapter_factory=self.adapter_factory,
            span=span,
            _adapters=self._adapters,
        )

    def adapter_for(self, credential_id: str) -> tuple[BaseAdapter, CredentialConfig]:
        """Resolve a credential to a provider adapter.

        Raises:
            ScorerUnavailableError: Unknown credential or unusable adapter.
        """
        credential = self.credentials.get(credential_id)
        if credential is None:
            raise ScorerUnavailableError(f"unknown credential '{credential_id}'")
        if credential_id not in self._adapters:
            try:
                self._adapters[credential_id] = self.adapter_factory(credential.adapter)
            except (ImportError, ValueError, TypeError) as exc:
                raise ScorerUnavailableError(
                    f"credential '{credential_id}': {exc}"
                ) from exc
        return self._adapters[credential_id], credential


def target_text(variables: list[ResolvedVariable], span: Span | None = None) -> str:
    """Pick the text a deterministic scorer inspects.

    Order: the variable named ``output``, then ``input``, then the first
    resolved variable, then the span's own output and input.
    """
    by_name = {rv.variable_name: rv.resolved_value for rv in variables}
    for name in ("output", "input"):
        text = value_as_text(by_name.get(name))
        if text:
            return text
    for rv in variables:
        text = value_as_text(rv.resolved_value)
        if text:
            return text
    if span is not None:
        for value in (span.output, span.input):
            text = value_as_text(value)
            if text:
                return text
    return ""


class BaseScorer(ABC):
    """Abstract base class for scorers.

    Each scorer receives its (already validated) config variant and the
    resolved variables for one span, and returns a ScorerOutcome or
    raises ScorerError for a span-level failure.
    """

    @abstractmethod
    def score(
        self,
        config: Any,
        variables: list[ResolvedVariable],
        context: ScoringContext,
    ) -> ScorerOutcome:
        """Score one span synchronously."""

    async def score_async(
        self,
        config: Any,
        variables: list[ResolvedVariable],
        context: ScoringContext,
    ) -> ScorerOutcome:
        """Async scoring. Default delegates to sync score().

        Scorers that call out to a provider override this.
        """
        return self.score(config, variables, context)
