"""spanscore adapters - LLM provider abstraction used by the llm scorer."""

from spanscore.adapters.base import (
    AdapterConfig,
    BaseAdapter,
    Completion,
    Message,
    TokenUsage,
)
from spanscore.adapters.registry import get_adapter, register_adapter

__all__ = [
    "AdapterConfig",
    "BaseAdapter",
    "Completion",
    "Message",
    "TokenUsage",
    "get_adapter",
    "register_adapter",
]
