"""Exception hierarchy shared across spanscore.

Configuration and trigger errors surface synchronously to callers.
Scorer errors are split by blast radius: ScorerError fails one span,
ScorerUnavailableError fails the whole execution.
"""

from __future__ import annotations

from typing import Any


class SpanscoreError(Exception):
    """Base class for all spanscore errors."""


class EvaluatorValidationError(SpanscoreError):
    """An evaluator definition or update was rejected.

    Attributes:
        field: Dotted path of the first offending field.
        message: Human-readable description of the first error.
        errors: All pydantic error dicts, when available.
    """

    def __init__(
        self,
        message: str,
        field: str = "",
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        self.message = message
        self.field = field
        self.errors = errors or []
        super().__init__(f"{field}: {message}" if field else message)

    @classmethod
    def from_pydantic(cls, exc: Any) -> EvaluatorValidationError:
        """Build from a pydantic ValidationError, keeping the first error."""
        errors = exc.errors()
        if not errors:
            return cls(str(exc))
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        return cls(first.get("msg", "invalid value"), field=field, errors=errors)


class NotFoundError(SpanscoreError):
    """Raised when an evaluator or execution does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} '{identifier}' not found")


class ConflictError(SpanscoreError):
    """Raised on duplicate names or writes against terminal records."""


class TriggerRejectedError(SpanscoreError):
    """A trigger or test request was refused; nothing was created."""


class InvalidTransitionError(SpanscoreError):
    """Raised when an execution state transition is not allowed."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"cannot transition execution from {current} to {target}")


class ScorerError(SpanscoreError):
    """Span-level scoring failure; the execution continues.

    Carries whatever audit data was produced before the failure so it
    can still be recorded on the span detail.
    """

    def __init__(
        self,
        message: str,
        *,
        raw_response: str | None = None,
        parsed_response: dict[str, Any] | None = None,
        prompt_sent: list[Any] | None = None,
    ) -> None:
        self.message = message
        self.raw_response = raw_response
        self.parsed_response = parsed_response
        self.prompt_sent = prompt_sent
        super().__init__(message)


class ScorerUnavailableError(SpanscoreError):
    """The scorer provider cannot be reached or used at all."""


class ScorerConfigMismatchError(SpanscoreError):
    """scorer_config's tag does not match scorer_type at dispatch time."""
