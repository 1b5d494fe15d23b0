"""Anthropic adapter for LLM scorers."""

from __future__ import annotations

from typing import Any

from spanscore.adapters.base import (
    AdapterConfig,
    BaseAdapter,
    Completion,
    Message,
    TokenUsage,
)

JSON_INSTRUCTION = "Respond with a single JSON object and nothing else."


class AnthropicAdapter(BaseAdapter):
    """Adapter for the Anthropic messages API.

    Uses a lazily created AsyncAnthropic client that reads
    ANTHROPIC_API_KEY from the environment. Anthropic has no JSON
    response mode, so json_mode appends an instruction to the system
    prompt instead.
    """

    def __init__(self) -> None:
        self._client: Any = None

    def _get_client(self) -> Any:
        if self._client is None:
            from anthropic import AsyncAnthropic

            self._client = AsyncAnthropic()
        return self._client

    @staticmethod
    def _split_system(messages: list[Message]) -> tuple[str | None, list[Message]]:
        """Anthropic takes the system prompt as a separate parameter."""
        system_parts = [m.content for m in messages if m.role == "system"]
        remaining = [m for m in messages if m.role != "system"]
        system = "\n\n".join(system_parts) if system_parts else None
        return system, remaining

    async def complete(
        self,
        messages: list[Message],
        config: AdapterConfig,
    ) -> Completion:
        client = self._get_client()
        system, remaining = self._split_system(messages)
        if config.json_mode:
            system = f"{system}\n\n{JSON_INSTRUCTION}" if system else JSON_INSTRUCTION

        kwargs: dict[str, Any] = {
            "model": config.model,
            "messages": [{"role": m.role, "content": m.content} for m in remaining],
            "max_tokens": config.max_tokens if config.max_tokens is not None else 1024,
        }
        if system is not None:
            kwargs["system"] = system
        if config.temperature is not None:
            kwargs["temperature"] = config.temperature
        kwargs.update(config.extras)

        response = await client.messages.create(**kwargs)

        parts = [block.text for block in response.content if block.type == "text"]
        usage = TokenUsage(
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            total_tokens=response.usage.input_tokens + response.usage.output_tokens,
        )

        return Completion(
            content="\n".join(parts) if parts else None,
            usage=usage,
            raw_response=response.model_dump(),
            finish_reason=response.stop_reason,
        )

    def provider_name(self) -> str:
        return "anthropic"
