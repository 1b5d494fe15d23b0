"""OpenAI adapter for LLM scorers."""

from __future__ import annotations

from typing import Any

from spanscore.adapters.base import (
    AdapterConfig,
    BaseAdapter,
    Completion,
    Message,
    TokenUsage,
)


class OpenAIAdapter(BaseAdapter):
    """Adapter for the OpenAI chat completion API.

    Uses a lazily created AsyncOpenAI client that reads OPENAI_API_KEY
    from the environment.
    """

    def __init__(self) -> None:
        self._client: Any = None

    def _get_client(self) -> Any:
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI()
        return self._client

    async def complete(
        self,
        messages: list[Message],
        config: AdapterConfig,
    ) -> Completion:
        client = self._get_client()

        kwargs: dict[str, Any] = {
            "model": config.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
        }
        if config.temperature is not None:
            kwargs["temperature"] = config.temperature
        if config.max_tokens is not None:
            kwargs["max_tokens"] = config.max_tokens
        if config.json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        kwargs.update(config.extras)

        response = await client.chat.completions.create(**kwargs)
        choice = response.choices[0]

        usage = TokenUsage()
        if response.usage is not None:
            usage = TokenUsage(
                input_tokens=response.usage.prompt_tokens,
                output_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        return Completion(
            content=choice.message.content,
            usage=usage,
            raw_response=response.model_dump(),
            finish_reason=choice.finish_reason,
        )

    def provider_name(self) -> str:
        return "openai"
