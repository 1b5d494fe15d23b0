"""BaseAdapter ABC and the message/result dataclasses for LLM scorers.

Provider adapters (OpenAI, Anthropic, custom) subclass BaseAdapter and
implement complete(). A scorer sends one rendered conversation and gets
one completion back; there is no tool calling.

These are plain dataclasses (not Pydantic) to keep the per-span
scoring path light.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class TokenUsage:
    """Token usage counts from a single completion."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


@dataclass
class Message:
    """A chat message. Roles: system, user, assistant."""

    role: str
    content: str


@dataclass
class AdapterConfig:
    """Generation settings for a single completion.

    json_mode asks the provider for a JSON object response where the
    provider supports it.
    """

    model: str
    temperature: float | None = None
    max_tokens: int | None = None
    json_mode: bool = False
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass
class Completion:
    """Result of one complete() call.

    raw_response keeps the provider payload for debugging.
    """

    content: str | None
    usage: TokenUsage
    raw_response: dict[str, Any]
    finish_reason: str | None = None


class BaseAdapter(ABC):
    """Abstract base class for all provider adapters."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        config: AdapterConfig,
    ) -> Completion:
        """Send the conversation and return the model's completion."""
        ...

    def provider_name(self) -> str:
        """Return the provider name. Defaults to the class name."""
        return type(self).__name__
