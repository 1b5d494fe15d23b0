"""Tests for spanscore.service.EvaluatorService -- the operation surface."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

import pytest

from spanscore.errors import (
    ConflictError,
    EvaluatorValidationError,
    NotFoundError,
    TriggerRejectedError,
)
from spanscore.execution.candidates import InMemorySpanSource
from spanscore.models.config import ProjectConfig, WorkerConfig
from spanscore.models.evaluator import EvaluatorStatus, ScorerType
from spanscore.models.execution import (
    Execution,
    ExecutionQuery,
    ExecutionStatus,
    ExecutionTrigger,
)
from spanscore.models.span import Span
from spanscore.service import EvaluatorService
from spanscore.storage.memory import InMemoryEvaluatorStore, InMemoryExecutionStore

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def _make_service(spans: list[Span] | None = None) -> EvaluatorService:
    return EvaluatorService(
        InMemoryEvaluatorStore(),
        InMemoryExecutionStore(),
        InMemorySpanSource(spans or [Span(span_id="s1", output="OK"), Span(span_id="s2", output="no")]),
        config=ProjectConfig(project_id="p", worker=WorkerConfig(max_retries=0)),
        rng=random.Random(0),
    )


def _draft(**overrides) -> dict:
    data = {
        "name": "ok-check",
        "description": "Checks for a literal OK",
        "scorer_type": "regex",
        "scorer_config": {"pattern": "^OK$"},
        "variable_mapping": [{"variable_name": "output", "source": "span_output"}],
    }
    data.update(overrides)
    return data


# ---------------------------------------------------------------------------
# Evaluator CRUD
# ---------------------------------------------------------------------------


class TestEvaluatorCrud:
    """Create, read, update, delete and list."""

    def test_create(self):
        service = _make_service()
        evaluator = service.create_evaluator("p", _draft())
        assert evaluator.project_id == "p"
        assert evaluator.status == EvaluatorStatus.inactive
        assert service.get_evaluator(evaluator.id) == evaluator

    def test_create_invalid_reports_field(self):
        service = _make_service()
        with pytest.raises(EvaluatorValidationError) as exc_info:
            service.create_evaluator("p", _draft(sampling_rate=2))
        assert exc_info.value.field == "sampling_rate"

    def test_duplicate_name_conflicts(self):
        service = _make_service()
        service.create_evaluator("p", _draft())
        with pytest.raises(ConflictError, match="already exists"):
            service.create_evaluator("p", _draft())

    def test_same_name_other_project(self):
        service = _make_service()
        service.create_evaluator("p", _draft())
        other = service.create_evaluator("q", _draft())
        assert other.project_id == "q"

    def test_update_partial(self):
        service = _make_service()
        evaluator = service.create_evaluator("p", _draft())
        updated = service.update_evaluator(evaluator.id, {"sampling_rate": 0.5})
        assert updated.sampling_rate == 0.5
        assert updated.name == "ok-check"
        assert updated.id == evaluator.id
        assert updated.created_at == evaluator.created_at
        assert updated.updated_at >= evaluator.updated_at

    def test_update_scorer_type_needs_matching_config(self):
        service = _make_service()
        evaluator = service.create_evaluator("p", _draft())
        with pytest.raises(EvaluatorValidationError, match="does not match"):
            service.update_evaluator(evaluator.id, {"scorer_type": "builtin"})

    def test_update_scorer_type_with_config(self):
        service = _make_service()
        evaluator = service.create_evaluator("p", _draft())
        updated = service.update_evaluator(
            evaluator.id,
            {
                "scorer_type": "builtin",
                "scorer_config": {"scorer_name": "contains", "config": {"substring": "OK"}},
            },
        )
        assert updated.scorer_type == ScorerType.builtin
        assert updated.scorer_config.type == "builtin"

    def test_update_unknown_field(self):
        service = _make_service()
        evaluator = service.create_evaluator("p", _draft())
        with pytest.raises(EvaluatorValidationError):
            service.update_evaluator(evaluator.id, {"colour": "red"})

    def test_rename_into_conflict(self):
        service = _make_service()
        service.create_evaluator("p", _draft(name="a"))
        second = service.create_evaluator("p", _draft(name="b"))
        with pytest.raises(ConflictError):
            service.update_evaluator(second.id, {"name": "a"})

    def test_delete(self):
        service = _make_service()
        evaluator = service.create_evaluator("p", _draft())
        service.delete_evaluator(evaluator.id)
        with pytest.raises(NotFoundError):
            service.get_evaluator(evaluator.id)
        with pytest.raises(NotFoundError):
            service.delete_evaluator(evaluator.id)

    def test_list_filters(self):
        service = _make_service()
        regex = service.create_evaluator("p", _draft(name="Regex OK"))
        builtin = service.create_evaluator(
            "p",
            _draft(
                name="json",
                description="valid JSON output",
                scorer_type="builtin",
                scorer_config={"scorer_name": "json_valid"},
            ),
        )
        service.activate_evaluator(builtin.id)

        assert [e.id for e in service.list_evaluators("p")] == [regex.id, builtin.id]
        assert [e.id for e in service.list_evaluators("p", status=EvaluatorStatus.active)] == [builtin.id]
        assert [e.id for e in service.list_evaluators("p", scorer_type=ScorerType.regex)] == [regex.id]
        assert [e.id for e in service.list_evaluators("p", search="json")] == [builtin.id]
        assert [e.id for e in service.list_evaluators("p", search="regex")] == [regex.id]

    def test_status_changes(self):
        service = _make_service()
        evaluator = service.create_evaluator("p", _draft())
        assert service.activate_evaluator(evaluator.id).status == EvaluatorStatus.active
        assert service.pause_evaluator(evaluator.id).status == EvaluatorStatus.paused
        assert service.deactivate_evaluator(evaluator.id).status == EvaluatorStatus.inactive


# ---------------------------------------------------------------------------
# Triggers and executions
# ---------------------------------------------------------------------------


class TestTriggerAndExecutions:
    def test_trigger_requires_active(self):
        service = _make_service()
        evaluator = service.create_evaluator("p", _draft())
        with pytest.raises(TriggerRejectedError):
            service.trigger_evaluator(evaluator.id)

    def test_trigger_invalid_scope(self):
        service = _make_service()
        evaluator = service.create_evaluator("p", _draft())
        service.activate_evaluator(evaluator.id)
        with pytest.raises(TriggerRejectedError, match="invalid trigger scope"):
            service.trigger_evaluator(
                evaluator.id,
                {"start_time": NOW.isoformat(), "end_time": (NOW - timedelta(hours=1)).isoformat()},
            )
        assert service.list_executions(evaluator.id).total == 0

    @pytest.mark.asyncio
    async def test_trigger_run_and_read(self):
        service = _make_service()
        evaluator = service.create_evaluator("p", _draft())
        service.activate_evaluator(evaluator.id)

        response = service.trigger_evaluator(evaluator.id, {"span_ids": ["s1", "s2"]})
        assert service.get_execution(response.execution_id).status == ExecutionStatus.pending

        await service.manager.run(response.execution_id)

        detail = service.get_execution_detail(response.execution_id)
        assert detail.status == ExecutionStatus.completed
        assert detail.spans_scored == 2
        assert detail.evaluator_snapshot.name == "ok-check"

    def test_cancel(self):
        service = _make_service()
        evaluator = service.create_evaluator("p", _draft())
        service.activate_evaluator(evaluator.id)
        response = service.trigger_evaluator(evaluator.id)
        assert service.cancel_execution(response.execution_id).status == ExecutionStatus.cancelled
        with pytest.raises(ConflictError):
            service.cancel_execution(response.execution_id)

    def test_list_executions_paging_and_filters(self):
        service = _make_service()
        evaluator = service.create_evaluator("p", _draft())
        service.activate_evaluator(evaluator.id)
        ids = [service.trigger_evaluator(evaluator.id).execution_id for _ in range(5)]
        service.cancel_execution(ids[0])

        first = service.list_executions(evaluator.id, ExecutionQuery(limit=2))
        assert first.total == 5
        assert len(first.items) == 2
        assert first.has_more

        last = service.list_executions(evaluator.id, ExecutionQuery(page=3, limit=2))
        assert len(last.items) == 1
        assert not last.has_more

        cancelled = service.list_executions(
            evaluator.id, ExecutionQuery(status=ExecutionStatus.cancelled)
        )
        assert [e.id for e in cancelled.items] == [ids[0]]

        automatic = service.list_executions(
            evaluator.id, ExecutionQuery(trigger_type=ExecutionTrigger.automatic)
        )
        assert automatic.total == 0

    def test_record_span_triggers_automatic(self):
        service = _make_service()
        evaluator = service.create_evaluator("p", _draft())
        service.activate_evaluator(evaluator.id)
        [response] = service.record_span(Span(span_id="live", output="OK"))
        execution = service.get_execution(response.execution_id)
        assert execution.trigger_type == ExecutionTrigger.automatic


# ---------------------------------------------------------------------------
# Dry run and analytics
# ---------------------------------------------------------------------------


class TestDryRunAndAnalytics:
    @pytest.mark.asyncio
    async def test_test_evaluator_persists_nothing(self):
        service = _make_service()
        evaluator = service.create_evaluator("p", _draft())

        response = await service.test_evaluator(evaluator.id, {"limit": 5}, now=NOW)

        assert response.summary.total_spans == 2
        assert response.summary.success_count == 2
        assert response.summary.average_score == 0.5
        assert service.list_executions(evaluator.id).total == 0
        assert service.get_evaluator(evaluator.id) == evaluator

    @pytest.mark.asyncio
    async def test_test_evaluator_invalid_request(self):
        service = _make_service()
        evaluator = service.create_evaluator("p", _draft())
        with pytest.raises(TriggerRejectedError, match="invalid test request"):
            await service.test_evaluator(evaluator.id, {"limit": 50})

    @pytest.mark.asyncio
    async def test_test_evaluator_unknown(self):
        service = _make_service()
        with pytest.raises(NotFoundError):
            await service.test_evaluator("missing")

    def test_analytics_bad_period(self):
        service = _make_service()
        evaluator = service.create_evaluator("p", _draft())
        with pytest.raises(EvaluatorValidationError) as exc_info:
            service.get_evaluator_analytics(evaluator.id, "1y")
        assert exc_info.value.field == "period"

    def test_analytics_unknown_evaluator(self):
        service = _make_service()
        with pytest.raises(NotFoundError):
            service.get_evaluator_analytics("missing")

    @pytest.mark.asyncio
    async def test_analytics_after_run(self):
        service = _make_service()
        evaluator = service.create_evaluator("p", _draft())
        service.activate_evaluator(evaluator.id)
        response = service.trigger_evaluator(evaluator.id, {"span_ids": ["s1", "s2"]})
        await service.manager.run(response.execution_id)

        result = service.get_evaluator_analytics(evaluator.id, "24h")

        assert result.total_executions == 1
        assert result.total_spans_scored == 2
        assert result.success_rate == 1.0
        assert result.average_score == 0.5

    def test_from_project_uses_json_stores(self, tmp_path):
        service = EvaluatorService.from_project(tmp_path, InMemorySpanSource())
        evaluator = service.create_evaluator("default", _draft())
        assert (tmp_path / ".spanscore" / "evaluators" / f"{evaluator.id}.json").exists()

        service.activate_evaluator(evaluator.id)
        response = service.trigger_evaluator(evaluator.id)
        reopened = EvaluatorService.from_project(tmp_path, InMemorySpanSource())
        execution = reopened.get_execution(response.execution_id)
        assert isinstance(execution, Execution)
        assert execution.status == ExecutionStatus.pending
        with pytest.raises(NotFoundError):
            reopened.get_execution("missing")
