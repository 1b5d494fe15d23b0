"""EvaluatorService: the operations a transport layer would expose.

Evaluator CRUD and activation, manual triggers, dry runs, execution
reads and analytics. Writes validate synchronously and raise
SpanscoreError subclasses; reads return the last stored state and
never retry.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from spanscore.adapters.base import BaseAdapter
from spanscore.adapters.registry import get_adapter
from spanscore.errors import (
    ConflictError,
    EvaluatorValidationError,
    NotFoundError,
    TriggerRejectedError,
)
from spanscore.evaluation.analytics import PERIODS, compute_analytics
from spanscore.execution.candidates import SpanSource
from spanscore.execution.dry_run import run_test
from spanscore.execution.manager import ExecutionManager
from spanscore.execution.retry import RetryPolicy
from spanscore.models.analytics import EvaluatorAnalytics
from spanscore.models.config import ProjectConfig
from spanscore.models.evaluator import (
    Evaluator,
    EvaluatorDraft,
    EvaluatorStatus,
    EvaluatorUpdate,
    ScorerType,
)
from spanscore.models.execution import (
    Execution,
    ExecutionDetail,
    ExecutionPage,
    ExecutionQuery,
    TriggerResponse,
    TriggerScope,
)
from spanscore.models.preview import TestEvaluatorResponse, TestSampleSpec
from spanscore.models.span import Span, Trace
from spanscore.storage.base import EvaluatorStore, ExecutionStore
from spanscore.storage.json_store import JsonEvaluatorStore, JsonExecutionStore

logger = logging.getLogger(__name__)


def _validated_draft(data: dict[str, Any]) -> EvaluatorDraft:
    try:
        return EvaluatorDraft.model_validate(data)
    except ValidationError as exc:
        raise EvaluatorValidationError.from_pydantic(exc) from exc


class EvaluatorService:
    """Facade over the stores, the execution manager and the dry-run pipeline."""

    def __init__(
        self,
        evaluators: EvaluatorStore,
        executions: ExecutionStore,
        spans: SpanSource,
        *,
        config: ProjectConfig | None = None,
        adapter_factory: Callable[[str], BaseAdapter] = get_adapter,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or ProjectConfig()
        self.evaluators = evaluators
        self.executions = executions
        self.spans = spans
        self._adapter_factory = adapter_factory
        self._rng = rng
        self.manager = ExecutionManager(
            evaluators,
            executions,
            spans,
            worker_config=self.config.worker,
            credentials=self.config.credentials,
            adapter_factory=adapter_factory,
            project_id=self.config.project_id,
            rng=rng,
        )

    @classmethod
    def from_project(
        cls,
        project_root: Path,
        spans: SpanSource,
        config: ProjectConfig | None = None,
        **kwargs: Any,
    ) -> EvaluatorService:
        """Service backed by the JSON stores under the project's storage_dir."""
        config = config or ProjectConfig()
        return cls(
            JsonEvaluatorStore(project_root, config.storage_dir),
            JsonExecutionStore(project_root, config.storage_dir),
            spans,
            config=config,
            **kwargs,
        )

    # -- evaluators ---------------------------------------------------------

    def _check_unique_name(self, project_id: str, name: str, exclude_id: str | None = None) -> None:
        for existing in self.evaluators.list_for_project(project_id):
            if existing.name == name and existing.id != exclude_id:
                raise ConflictError(
                    f"an evaluator named '{name}' already exists in project '{project_id}'"
                )

    def create_evaluator(
        self, project_id: str, draft: EvaluatorDraft | dict[str, Any]
    ) -> Evaluator:
        """Validate and store a new evaluator.

        Raises:
            EvaluatorValidationError: Invalid definition.
            ConflictError: Name already used in the project.
        """
        if isinstance(draft, dict):
            draft = _validated_draft(draft)
        self._check_unique_name(project_id, draft.name)
        evaluator = Evaluator.model_validate(
            {**draft.model_dump(), "project_id": project_id}
        )
        self.evaluators.save(evaluator)
        logger.info("evaluator %s created name=%r project=%s", evaluator.id, evaluator.name, project_id)
        return evaluator

    def update_evaluator(
        self, evaluator_id: str, update: EvaluatorUpdate | dict[str, Any]
    ) -> Evaluator:
        """Apply a partial update; the result is re-validated as a whole.

        Changing scorer_type requires a matching scorer_config in the same
        update.
        """
        current = self.evaluators.get(evaluator_id)
        if isinstance(update, dict):
            try:
                update = EvaluatorUpdate.model_validate(update)
            except ValidationError as exc:
                raise EvaluatorValidationError.from_pydantic(exc) from exc

        merged = current.draft().model_dump()
        merged.update(update.model_dump(exclude_unset=True))
        draft = _validated_draft(merged)
        if draft.name != current.name:
            self._check_unique_name(current.project_id, draft.name, exclude_id=current.id)

        updated = Evaluator.model_validate(
            {
                **draft.model_dump(),
                "id": current.id,
                "project_id": current.project_id,
                "trigger_type": current.trigger_type,
                "created_at": current.created_at,
                "updated_at": datetime.now(timezone.utc),
                "last_automatic_run_at": current.last_automatic_run_at,
            }
        )
        self.evaluators.save(updated)
        logger.info("evaluator %s updated", evaluator_id)
        return updated

    def delete_evaluator(self, evaluator_id: str) -> None:
        """Remove an evaluator. Its executions are kept for audit."""
        if not self.evaluators.delete(evaluator_id):
            raise NotFoundError("evaluator", evaluator_id)
        logger.info("evaluator %s deleted", evaluator_id)

    def get_evaluator(self, evaluator_id: str) -> Evaluator:
        return self.evaluators.get(evaluator_id)

    def list_evaluators(
        self,
        project_id: str,
        *,
        status: EvaluatorStatus | None = None,
        scorer_type: ScorerType | None = None,
        search: str | None = None,
    ) -> list[Evaluator]:
        """Evaluators of a project, oldest first, optionally filtered.

        *search* is a case-insensitive substring of name or description.
        """
        found = self.evaluators.list_for_project(project_id)
        if status is not None:
            found = [e for e in found if e.status == status]
        if scorer_type is not None:
            found = [e for e in found if e.scorer_type == scorer_type]
        if search:
            needle = search.lower()
            found = [
                e
                for e in found
                if needle in e.name.lower() or needle in (e.description or "").lower()
            ]
        return found

    def _set_status(self, evaluator_id: str, status: EvaluatorStatus) -> Evaluator:
        current = self.evaluators.get(evaluator_id)
        if current.status == status:
            return current
        updated = current.model_copy(
            update={"status": status, "updated_at": datetime.now(timezone.utc)}
        )
        self.evaluators.save(updated)
        logger.info("evaluator %s %s -> %s", evaluator_id, current.status.value, status.value)
        return updated

    def activate_evaluator(self, evaluator_id: str) -> Evaluator:
        return self._set_status(evaluator_id, EvaluatorStatus.active)

    def deactivate_evaluator(self, evaluator_id: str) -> Evaluator:
        return self._set_status(evaluator_id, EvaluatorStatus.inactive)

    def pause_evaluator(self, evaluator_id: str) -> Evaluator:
        return self._set_status(evaluator_id, EvaluatorStatus.paused)

    # -- triggers -----------------------------------------------------------

    def trigger_evaluator(
        self,
        evaluator_id: str,
        scope: TriggerScope | dict[str, Any] | None = None,
    ) -> TriggerResponse:
        """Queue a manual execution; returns before any scoring happens.

        Raises:
            NotFoundError: Unknown evaluator.
            TriggerRejectedError: Inactive evaluator or invalid scope.
        """
        if isinstance(scope, dict):
            try:
                scope = TriggerScope.model_validate(scope)
            except ValidationError as exc:
                raise TriggerRejectedError(
                    f"invalid trigger scope: {exc.errors()[0]['msg']}"
                ) from exc
        return self.manager.trigger(evaluator_id, scope)

    def record_span(self, span: Span, trace: Trace | None = None) -> list[TriggerResponse]:
        """Automatic trigger entry point for a completed span."""
        return self.manager.on_span_complete(span, trace)

    async def test_evaluator(
        self,
        evaluator_id: str,
        sample: TestSampleSpec | dict[str, Any] | None = None,
        *,
        now: datetime | None = None,
    ) -> TestEvaluatorResponse:
        """Dry-run an evaluator (active or not). Nothing is persisted."""
        evaluator = self.evaluators.get(evaluator_id)
        if isinstance(sample, dict):
            try:
                sample = TestSampleSpec.model_validate(sample)
            except ValidationError as exc:
                raise TriggerRejectedError(
                    f"invalid test request: {exc.errors()[0]['msg']}"
                ) from exc
        worker = self.config.worker
        return await run_test(
            evaluator,
            self.spans,
            sample,
            credentials=self.config.credentials,
            adapter_factory=self._adapter_factory,
            retry_policy=RetryPolicy(
                max_retries=worker.max_retries,
                base_delay=worker.retry_base_delay,
                max_delay=worker.retry_max_delay,
            ),
            max_parallel=worker.max_parallel_spans,
            rng=self._rng,
            now=now,
        )

    # -- executions ---------------------------------------------------------

    def get_execution(self, execution_id: str) -> Execution:
        return self.executions.get(execution_id)

    def get_execution_detail(self, execution_id: str) -> ExecutionDetail:
        return self.executions.get_detail(execution_id)

    def list_executions(
        self, evaluator_id: str, query: ExecutionQuery | None = None
    ) -> ExecutionPage:
        """One page of an evaluator's executions, newest first."""
        query = query or ExecutionQuery()
        found = self.executions.list_for_evaluator(evaluator_id)
        if query.status is not None:
            found = [e for e in found if e.status == query.status]
        if query.trigger_type is not None:
            found = [e for e in found if e.trigger_type == query.trigger_type]
        offset = (query.page - 1) * query.limit
        return ExecutionPage(
            items=found[offset : offset + query.limit],
            total=len(found),
            page=query.page,
            limit=query.limit,
        )

    def cancel_execution(self, execution_id: str) -> Execution:
        return self.manager.cancel(execution_id)

    def get_evaluator_analytics(
        self,
        evaluator_id: str,
        period: str = "24h",
        *,
        now: datetime | None = None,
    ) -> EvaluatorAnalytics:
        if period not in PERIODS:
            raise EvaluatorValidationError(
                f"period must be one of {sorted(PERIODS)}", field="period"
            )
        self.evaluators.get(evaluator_id)
        executions = self.executions.list_for_evaluator(evaluator_id)
        details = {e.id: self.executions.list_span_details(e.id) for e in executions}
        return compute_analytics(evaluator_id, period, executions, details, now=now)  # type: ignore[arg-type]
