"""Evaluator and execution persistence."""

from spanscore.storage.base import EvaluatorStore, ExecutionStore
from spanscore.storage.json_store import JsonEvaluatorStore, JsonExecutionStore
from spanscore.storage.memory import InMemoryEvaluatorStore, InMemoryExecutionStore

__all__ = [
    "EvaluatorStore",
    "ExecutionStore",
    "InMemoryEvaluatorStore",
    "InMemoryExecutionStore",
    "JsonEvaluatorStore",
    "JsonExecutionStore",
]
