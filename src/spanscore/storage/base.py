"""Storage interfaces for evaluators and executions.

ExecutionStore implements the conditional (compare-and-set) updates on
top of a handful of primitives. Subclasses provide the primitives and a
per-execution mutex; every read-modify-write below runs under it. This
gives the single-owner claim and the atomic counter updates.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import AbstractContextManager

from spanscore.errors import NotFoundError
from spanscore.execution.state import is_terminal, transition
from spanscore.models.evaluator import Evaluator
from spanscore.models.execution import (
    EvaluatorSnapshot,
    Execution,
    ExecutionDetail,
    ExecutionStatus,
    SpanExecutionDetail,
)

logger = logging.getLogger(__name__)


class EvaluatorStore(ABC):
    """Persistence for evaluator definitions."""

    @abstractmethod
    def save(self, evaluator: Evaluator) -> None: ...

    @abstractmethod
    def load(self, evaluator_id: str) -> Evaluator | None: ...

    @abstractmethod
    def delete(self, evaluator_id: str) -> bool: ...

    @abstractmethod
    def list_all(self) -> Iterator[Evaluator]: ...

    def get(self, evaluator_id: str) -> Evaluator:
        evaluator = self.load(evaluator_id)
        if evaluator is None:
            raise NotFoundError("evaluator", evaluator_id)
        return evaluator

    def list_for_project(self, project_id: str) -> list[Evaluator]:
        found = [e for e in self.list_all() if e.project_id == project_id]
        return sorted(found, key=lambda e: e.created_at)


class ExecutionStore(ABC):
    """Persistence for executions, their snapshots and span details."""

    # -- primitives -------------------------------------------------------

    @abstractmethod
    def _locked(self, execution_id: str) -> AbstractContextManager[None]:
        """Mutex held for the duration of one read-modify-write."""

    @abstractmethod
    def _read(self, execution_id: str) -> Execution | None: ...

    @abstractmethod
    def _write(self, execution: Execution) -> None: ...

    @abstractmethod
    def _write_snapshot(self, execution_id: str, snapshot: EvaluatorSnapshot) -> None: ...

    @abstractmethod
    def _read_snapshot(self, execution_id: str) -> EvaluatorSnapshot | None: ...

    @abstractmethod
    def _append_detail(self, execution_id: str, detail: SpanExecutionDetail) -> None: ...

    @abstractmethod
    def list_span_details(self, execution_id: str) -> list[SpanExecutionDetail]: ...

    @abstractmethod
    def _execution_ids(self, evaluator_id: str) -> list[str]: ...

    @abstractmethod
    def _register(self, execution: Execution) -> None:
        """Record a new execution id in the evaluator's index."""

    # -- operations -------------------------------------------------------

    def create(self, execution: Execution, snapshot: EvaluatorSnapshot) -> Execution:
        with self._locked(execution.id):
            self._write_snapshot(execution.id, snapshot)
            self._write(execution)
            self._register(execution)
        return execution

    def get(self, execution_id: str) -> Execution:
        execution = self._read(execution_id)
        if execution is None:
            raise NotFoundError("execution", execution_id)
        return execution

    def get_snapshot(self, execution_id: str) -> EvaluatorSnapshot:
        snapshot = self._read_snapshot(execution_id)
        if snapshot is None:
            raise NotFoundError("execution snapshot", execution_id)
        return snapshot

    def get_detail(self, execution_id: str) -> ExecutionDetail:
        return ExecutionDetail.build(
            self.get(execution_id),
            self.get_snapshot(execution_id),
            self.list_span_details(execution_id),
        )

    def list_for_evaluator(self, evaluator_id: str) -> list[Execution]:
        """Executions of one evaluator, newest first."""
        found = [self._read(eid) for eid in self._execution_ids(evaluator_id)]
        executions = [e for e in found if e is not None]
        return sorted(executions, key=lambda e: e.created_at, reverse=True)

    def claim(self, execution_id: str, worker_id: str) -> Execution | None:
        """Move pending -> running for *worker_id*.

        Returns the claimed record, or None if the execution was not
        pending (already claimed by another worker, or cancelled).
        """
        with self._locked(execution_id):
            current = self.get(execution_id)
            if current.status != ExecutionStatus.pending:
                return None
            claimed = transition(current, ExecutionStatus.running, worker_id=worker_id)
            self._write(claimed)
        logger.info("execution %s claimed by worker %s", execution_id, worker_id)
        return claimed

    def apply_progress(
        self,
        execution_id: str,
        *,
        matched: int = 0,
        scored: int = 0,
        errors: int = 0,
    ) -> Execution | None:
        """Atomically add to the counters of a running execution.

        Returns None (and changes nothing) once the execution is terminal.
        """
        with self._locked(execution_id):
            current = self.get(execution_id)
            if current.status != ExecutionStatus.running:
                return None
            updated = current.model_copy(
                update={
                    "spans_matched": current.spans_matched + matched,
                    "spans_scored": current.spans_scored + scored,
                    "errors_count": current.errors_count + errors,
                }
            )
            self._write(updated)
        return updated

    def add_span_detail(self, execution_id: str, detail: SpanExecutionDetail) -> bool:
        """Append a span outcome; refused once the execution is terminal."""
        with self._locked(execution_id):
            if is_terminal(self.get(execution_id).status):
                return False
            self._append_detail(execution_id, detail)
        return True

    def finish(
        self,
        execution_id: str,
        target: ExecutionStatus,
        error_message: str | None = None,
    ) -> Execution | None:
        """Conditionally move to a terminal state.

        Returns None when the execution already reached a terminal state
        (e.g. it was cancelled while the worker was finishing).
        """
        with self._locked(execution_id):
            current = self.get(execution_id)
            if is_terminal(current.status):
                return None
            fields = {"error_message": error_message} if error_message else {}
            finished = transition(current, target, **fields)
            self._write(finished)
        logger.info(
            "execution %s %s spans_matched=%d spans_scored=%d errors=%d",
            execution_id,
            target.value,
            finished.spans_matched,
            finished.spans_scored,
            finished.errors_count,
        )
        return finished
