"""In-process stores backed by dicts.

Used by tests and by embedders that keep state in memory. A single
re-entrant lock serializes every read-modify-write, so concurrent
workers in one process (threads or asyncio tasks) see a consistent
compare-and-set.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import AbstractContextManager

from spanscore.models.evaluator import Evaluator
from spanscore.models.execution import (
    EvaluatorSnapshot,
    Execution,
    SpanExecutionDetail,
)
from spanscore.storage.base import EvaluatorStore, ExecutionStore


class InMemoryEvaluatorStore(EvaluatorStore):
    def __init__(self) -> None:
        self._evaluators: dict[str, Evaluator] = {}
        self._lock = threading.Lock()

    def save(self, evaluator: Evaluator) -> None:
        with self._lock:
            self._evaluators[evaluator.id] = evaluator.model_copy(deep=True)

    def load(self, evaluator_id: str) -> Evaluator | None:
        with self._lock:
            found = self._evaluators.get(evaluator_id)
        return found.model_copy(deep=True) if found is not None else None

    def delete(self, evaluator_id: str) -> bool:
        with self._lock:
            return self._evaluators.pop(evaluator_id, None) is not None

    def list_all(self) -> Iterator[Evaluator]:
        with self._lock:
            snapshot = list(self._evaluators.values())
        for evaluator in snapshot:
            yield evaluator.model_copy(deep=True)


class InMemoryExecutionStore(ExecutionStore):
    def __init__(self) -> None:
        self._executions: dict[str, Execution] = {}
        self._snapshots: dict[str, EvaluatorSnapshot] = {}
        self._details: dict[str, list[SpanExecutionDetail]] = {}
        self._index: dict[str, list[str]] = {}
        self._lock = threading.RLock()

    def _locked(self, execution_id: str) -> AbstractContextManager[None]:
        return self._lock  # type: ignore[return-value]

    def _read(self, execution_id: str) -> Execution | None:
        with self._lock:
            return self._executions.get(execution_id)

    def _write(self, execution: Execution) -> None:
        with self._lock:
            self._executions[execution.id] = execution

    def _write_snapshot(self, execution_id: str, snapshot: EvaluatorSnapshot) -> None:
        self._snapshots[execution_id] = snapshot

    def _read_snapshot(self, execution_id: str) -> EvaluatorSnapshot | None:
        return self._snapshots.get(execution_id)

    def _append_detail(self, execution_id: str, detail: SpanExecutionDetail) -> None:
        self._details.setdefault(execution_id, []).append(detail)

    def list_span_details(self, execution_id: str) -> list[SpanExecutionDetail]:
        with self._lock:
            return list(self._details.get(execution_id, []))

    def _execution_ids(self, evaluator_id: str) -> list[str]:
        with self._lock:
            return list(self._index.get(evaluator_id, []))

    def _register(self, execution: Execution) -> None:
        self._index.setdefault(execution.evaluator_id, []).append(execution.id)
