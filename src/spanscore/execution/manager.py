"""ExecutionManager: trigger, run and cancel evaluator executions.

trigger() is a synchronous accept: it freezes the evaluator, persists a
``pending`` Execution and enqueues its id. Scoring happens later, when a
worker calls run(). run() first claims the execution through the store's
compare-and-set, so concurrent workers can never both own one execution.
Spans are scored concurrently via asyncio.Semaphore + TaskGroup and each
span's counters land in a single atomic store update.
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from pydantic import ValidationError

from spanscore.adapters.base import BaseAdapter
from spanscore.adapters.registry import get_adapter
from spanscore.errors import (
    ConflictError,
    ScorerConfigMismatchError,
    ScorerUnavailableError,
    TriggerRejectedError,
)
from spanscore.execution.candidates import Candidate, SpanSource, select_candidates, window_start
from spanscore.execution.pipeline import SpanOutcome, evaluate_span
from spanscore.execution.retry import RetryPolicy
from spanscore.matching.filters import span_matches
from spanscore.matching.sampling import Sampler
from spanscore.models.config import CredentialConfig, WorkerConfig
from spanscore.models.evaluator import Evaluator, EvaluatorStatus, ScorerType, TargetScope
from spanscore.models.execution import (
    EvaluatorSnapshot,
    Execution,
    ExecutionStatus,
    ExecutionTrigger,
    TriggerResponse,
    TriggerScope,
)
from spanscore.models.span import Span, Trace
from spanscore.scoring.base import ScoringContext
from spanscore.storage.base import EvaluatorStore, ExecutionStore

logger = logging.getLogger(__name__)

MANUAL_TRIGGER_MESSAGE = "Manual evaluation queued successfully"
AUTOMATIC_TRIGGER_MESSAGE = "Automatic evaluation queued"


def _has_selector(scope: TriggerScope) -> bool:
    return bool(
        scope.span_ids
        or scope.span_id
        or scope.trace_id
        or scope.start_time is not None
        or scope.end_time is not None
    )


class ExecutionManager:
    """Drives executions from trigger to terminal state.

    Several managers (one per worker process) may share the same stores;
    the claim in run() keeps each execution single-owner.
    """

    def __init__(
        self,
        evaluators: EvaluatorStore,
        executions: ExecutionStore,
        spans: SpanSource,
        *,
        worker_config: WorkerConfig | None = None,
        credentials: dict[str, CredentialConfig] | None = None,
        adapter_factory: Callable[[str], BaseAdapter] = get_adapter,
        project_id: str = "default",
        rng: random.Random | None = None,
    ) -> None:
        self._evaluators = evaluators
        self._executions = executions
        self._spans = spans
        self._config = worker_config or WorkerConfig()
        self._credentials = credentials or {}
        self._adapter_factory = adapter_factory
        self._project_id = project_id
        self._rng = rng or random.Random()  # noqa: S311
        self.queue: asyncio.Queue[str] = asyncio.Queue()

    @property
    def config(self) -> WorkerConfig:
        return self._config

    @property
    def executions(self) -> ExecutionStore:
        return self._executions

    # -- trigger ------------------------------------------------------------

    def trigger(
        self,
        evaluator_id: str,
        scope: TriggerScope | None = None,
        trigger_type: ExecutionTrigger = ExecutionTrigger.manual,
        *,
        now: datetime | None = None,
    ) -> TriggerResponse:
        """Accept a trigger and enqueue a pending execution.

        Raises:
            NotFoundError: Unknown evaluator.
            TriggerRejectedError: Evaluator not active, or no usable scope.
                No execution is created.
        """
        evaluator = self._evaluators.get(evaluator_id)
        if evaluator.status != EvaluatorStatus.active:
            raise TriggerRejectedError(
                f"evaluator '{evaluator.name}' is {evaluator.status.value}; "
                "only active evaluators can be triggered"
            )
        resolved = self._resolve_scope(evaluator, scope, trigger_type, now)

        execution = Execution(
            evaluator_id=evaluator.id,
            project_id=evaluator.project_id,
            trigger_type=trigger_type,
            scope=resolved,
        )
        self._executions.create(execution, EvaluatorSnapshot.from_evaluator(evaluator))
        self.queue.put_nowait(execution.id)
        logger.info(
            "execution %s queued evaluator=%s trigger=%s",
            execution.id,
            evaluator.id,
            trigger_type.value,
        )
        message = (
            MANUAL_TRIGGER_MESSAGE
            if trigger_type == ExecutionTrigger.manual
            else AUTOMATIC_TRIGGER_MESSAGE
        )
        return TriggerResponse(execution_id=execution.id, message=message)

    def _resolve_scope(
        self,
        evaluator: Evaluator,
        scope: TriggerScope | None,
        trigger_type: ExecutionTrigger,
        now: datetime | None,
    ) -> TriggerScope:
        scope = scope or TriggerScope()
        if _has_selector(scope):
            return scope

        now = now or datetime.now(timezone.utc)
        if trigger_type == ExecutionTrigger.automatic:
            start = evaluator.last_automatic_run_at
        else:
            start = window_start(self._config.manual_window, now)
        try:
            return TriggerScope(
                start_time=start,
                end_time=now,
                sample_limit=scope.sample_limit or self._config.default_sample_limit,
            )
        except ValidationError as exc:
            raise TriggerRejectedError(f"invalid trigger scope: {exc.errors()[0]['msg']}") from exc

    def on_span_complete(self, span: Span, trace: Trace | None = None) -> list[TriggerResponse]:
        """Automatic trigger: queue one execution per matching active evaluator.

        Span-scoped evaluators are scoped to the completed span. Trace-scoped
        evaluators fire when the trace's root span completes and passes their
        filter and span-name restriction.
        """
        self._spans.add(span)
        if trace is not None:
            for member in trace.spans:
                self._spans.add(member)

        responses: list[TriggerResponse] = []
        project_id = span.project_id or self._project_id
        for evaluator in self._evaluators.list_for_project(project_id):
            if evaluator.status != EvaluatorStatus.active:
                continue
            if evaluator.target_scope == TargetScope.trace:
                if not span.is_root or not span.trace_id:
                    continue
                if not span_matches(evaluator.filter, evaluator.span_names, span):
                    continue
                scope = TriggerScope(trace_id=span.trace_id)
            else:
                if not span_matches(evaluator.filter, evaluator.span_names, span):
                    continue
                scope = TriggerScope(span_id=span.span_id)
            responses.append(
                self.trigger(evaluator.id, scope, ExecutionTrigger.automatic)
            )
        return responses

    # -- run ----------------------------------------------------------------

    def _scoring_context(self) -> ScoringContext:
        return ScoringContext(
            credentials=self._credentials,
            retry_policy=RetryPolicy(
                max_retries=self._config.max_retries,
                base_delay=self._config.retry_base_delay,
                max_delay=self._config.retry_max_delay,
            ),
            adapter_factory=self._adapter_factory,
        )

    def _preflight(self, snapshot: EvaluatorSnapshot, context: ScoringContext) -> None:
        """Fail fast on faults that would fail every span."""
        if snapshot.scorer_config.type != snapshot.scorer_type.value:
            raise ScorerConfigMismatchError(
                f"scorer_config is '{snapshot.scorer_config.type}' but scorer_type "
                f"is '{snapshot.scorer_type.value}'"
            )
        if snapshot.scorer_type == ScorerType.llm:
            context.adapter_for(snapshot.scorer_config.credential_id)

    async def run(self, execution_id: str, worker_id: str | None = None) -> bool:
        """Claim and drive one execution to a terminal state.

        Returns False when the execution could not be claimed (another
        worker owns it, or it is no longer pending).
        """
        worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"
        claimed = self._executions.claim(execution_id, worker_id)
        if claimed is None:
            logger.info("execution %s not claimable by %s", execution_id, worker_id)
            return False

        try:
            snapshot = self._executions.get_snapshot(execution_id)
            context = self._scoring_context()
            self._preflight(snapshot, context)
            candidates = select_candidates(
                self._spans,
                claimed.scope,
                project_id=claimed.project_id,
                target_scope=snapshot.target_scope,
                default_limit=self._config.default_sample_limit,
            )
            logger.info(
                "execution %s scoring %d candidate span(s)", execution_id, len(candidates)
            )
            await self._score_candidates(execution_id, snapshot, candidates, context)
        except (ScorerUnavailableError, ScorerConfigMismatchError) as exc:
            logger.error("execution %s failed: %s", execution_id, exc)
            self._executions.finish(execution_id, ExecutionStatus.failed, str(exc))
            return True
        except Exception as exc:
            logger.exception("execution %s failed unexpectedly", execution_id)
            self._executions.finish(
                execution_id,
                ExecutionStatus.failed,
                f"{type(exc).__name__}: {exc}",
            )
            return True

        finished = self._executions.finish(execution_id, ExecutionStatus.completed)
        if finished is None:
            logger.info("execution %s was cancelled before completion", execution_id)
        elif finished.trigger_type == ExecutionTrigger.automatic:
            self._record_automatic_run(finished)
        return True

    async def _score_candidates(
        self,
        execution_id: str,
        snapshot: EvaluatorSnapshot,
        candidates: list[Candidate],
        context: ScoringContext,
    ) -> None:
        semaphore = asyncio.Semaphore(self._config.max_parallel_spans)
        stop_event = asyncio.Event()
        sampler = Sampler(snapshot.sampling_rate, self._rng)

        async def score_one(candidate: Candidate) -> None:
            if stop_event.is_set():
                return

            async with semaphore:
                if stop_event.is_set():
                    return
                if self._executions.get(execution_id).is_terminal:
                    logger.info("execution %s stopped: no longer running", execution_id)
                    stop_event.set()
                    return

                evaluation = await evaluate_span(
                    snapshot, candidate.span, candidate.trace, sampler, context
                )
                if evaluation.outcome == SpanOutcome.filtered:
                    return
                if evaluation.outcome != SpanOutcome.skipped:
                    succeeded = evaluation.outcome == SpanOutcome.success
                    progressed = self._executions.apply_progress(
                        execution_id,
                        matched=1,
                        scored=1 if succeeded else 0,
                        errors=0 if succeeded else 1,
                    )
                    if progressed is None:
                        stop_event.set()
                        return
                self._executions.add_span_detail(execution_id, evaluation.to_detail())

        try:
            async with asyncio.TaskGroup() as tg:
                for candidate in candidates:
                    tg.create_task(score_one(candidate))
        except ExceptionGroup as group:
            # Surface the first execution-wide fault to run().
            raise group.exceptions[0] from None

    def _record_automatic_run(self, execution: Execution) -> None:
        evaluator = self._evaluators.load(execution.evaluator_id)
        if evaluator is None:
            return
        ran_until = execution.scope.end_time or execution.created_at
        last = evaluator.last_automatic_run_at
        if last is None or ran_until > last:
            self._evaluators.save(
                evaluator.model_copy(update={"last_automatic_run_at": ran_until})
            )

    # -- cancel -------------------------------------------------------------

    def cancel(self, execution_id: str) -> Execution:
        """Request an abort of a pending or running execution.

        Raises:
            NotFoundError: Unknown execution.
            ConflictError: The execution is already terminal.
        """
        current = self._executions.get(execution_id)
        if current.is_terminal:
            raise ConflictError(
                f"execution '{execution_id}' is already {current.status.value}"
            )
        cancelled = self._executions.finish(execution_id, ExecutionStatus.cancelled)
        if cancelled is None:
            latest = self._executions.get(execution_id)
            raise ConflictError(
                f"execution '{execution_id}' is already {latest.status.value}"
            )
        return cancelled
