"""Tests for the evaluator and execution stores (in-memory and JSON)."""

from __future__ import annotations

import json
import os
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from spanscore.errors import NotFoundError
from spanscore.models.evaluator import Evaluator
from spanscore.models.execution import (
    EvaluatorSnapshot,
    Execution,
    ExecutionStatus,
    SpanExecutionDetail,
    SpanResultStatus,
)
from spanscore.storage.json_store import (
    JsonEvaluatorStore,
    JsonExecutionStore,
    file_lock,
    lock_is_stale,
)
from spanscore.storage.memory import InMemoryEvaluatorStore, InMemoryExecutionStore


def _make_evaluator(**overrides) -> Evaluator:
    data = {
        "name": "ok-check",
        "project_id": "p",
        "scorer_type": "regex",
        "scorer_config": {"type": "regex", "pattern": "^OK$"},
    }
    data.update(overrides)
    return Evaluator.model_validate(data)


def _make_execution(evaluator: Evaluator, **overrides) -> Execution:
    data = {"evaluator_id": evaluator.id, "project_id": evaluator.project_id}
    data.update(overrides)
    return Execution(**data)


def _detail(span_id: str = "s1") -> SpanExecutionDetail:
    return SpanExecutionDetail(span_id=span_id, status=SpanResultStatus.success)


@pytest.fixture(params=["memory", "json"])
def execution_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryExecutionStore()
    return JsonExecutionStore(tmp_path)


@pytest.fixture(params=["memory", "json"])
def evaluator_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryEvaluatorStore()
    return JsonEvaluatorStore(tmp_path)


def _created(store, evaluator=None) -> Execution:
    evaluator = evaluator or _make_evaluator()
    execution = _make_execution(evaluator)
    store.create(execution, EvaluatorSnapshot.from_evaluator(evaluator))
    return execution


# ---------------------------------------------------------------------------
# EvaluatorStore
# ---------------------------------------------------------------------------


class TestEvaluatorStore:
    def test_save_and_load(self, evaluator_store):
        evaluator = _make_evaluator()
        evaluator_store.save(evaluator)
        loaded = evaluator_store.load(evaluator.id)
        assert loaded == evaluator

    def test_load_missing(self, evaluator_store):
        assert evaluator_store.load("nope") is None

    def test_get_missing_raises(self, evaluator_store):
        with pytest.raises(NotFoundError, match="evaluator 'nope' not found"):
            evaluator_store.get("nope")

    def test_delete(self, evaluator_store):
        evaluator = _make_evaluator()
        evaluator_store.save(evaluator)
        assert evaluator_store.delete(evaluator.id) is True
        assert evaluator_store.delete(evaluator.id) is False
        assert evaluator_store.load(evaluator.id) is None

    def test_list_for_project(self, evaluator_store):
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        older = _make_evaluator(name="a", created_at=base)
        newer = _make_evaluator(name="b", created_at=base + timedelta(hours=1))
        other = _make_evaluator(name="c", project_id="other")
        for evaluator in (newer, other, older):
            evaluator_store.save(evaluator)
        assert [e.name for e in evaluator_store.list_for_project("p")] == ["a", "b"]

    def test_memory_store_returns_copies(self):
        store = InMemoryEvaluatorStore()
        evaluator = _make_evaluator()
        store.save(evaluator)
        loaded = store.load(evaluator.id)
        loaded.name = "changed"
        assert store.load(evaluator.id).name == "ok-check"


# ---------------------------------------------------------------------------
# ExecutionStore
# ---------------------------------------------------------------------------


class TestExecutionStore:
    """Conditional updates shared by both backends."""

    def test_create_and_get(self, execution_store):
        execution = _created(execution_store)
        assert execution_store.get(execution.id).status == ExecutionStatus.pending
        assert execution_store.get_snapshot(execution.id).name == "ok-check"

    def test_get_missing(self, execution_store):
        with pytest.raises(NotFoundError):
            execution_store.get("missing")

    def test_claim_once(self, execution_store):
        execution = _created(execution_store)
        claimed = execution_store.claim(execution.id, "w1")
        assert claimed.status == ExecutionStatus.running
        assert claimed.worker_id == "w1"
        assert claimed.started_at is not None
        assert execution_store.claim(execution.id, "w2") is None
        assert execution_store.get(execution.id).worker_id == "w1"

    def test_concurrent_claims_single_winner(self, execution_store):
        execution = _created(execution_store)
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(
                pool.map(lambda i: execution_store.claim(execution.id, f"w{i}"), range(8))
            )
        winners = [r for r in results if r is not None]
        assert len(winners) == 1
        assert execution_store.get(execution.id).worker_id == winners[0].worker_id

    def test_apply_progress_accumulates(self, execution_store):
        execution = _created(execution_store)
        execution_store.claim(execution.id, "w1")
        execution_store.apply_progress(execution.id, matched=1, scored=1)
        execution_store.apply_progress(execution.id, matched=1, errors=1)
        current = execution_store.get(execution.id)
        assert (current.spans_matched, current.spans_scored, current.errors_count) == (2, 1, 1)

    def test_concurrent_progress_is_not_lost(self, execution_store):
        execution = _created(execution_store)
        execution_store.claim(execution.id, "w1")
        with ThreadPoolExecutor(max_workers=4) as pool:
            list(
                pool.map(
                    lambda _: execution_store.apply_progress(execution.id, matched=1, scored=1),
                    range(20),
                )
            )
        current = execution_store.get(execution.id)
        assert current.spans_matched == 20
        assert current.spans_scored == 20

    def test_progress_refused_when_pending(self, execution_store):
        execution = _created(execution_store)
        assert execution_store.apply_progress(execution.id, matched=1) is None

    def test_finish(self, execution_store):
        execution = _created(execution_store)
        execution_store.claim(execution.id, "w1")
        done = execution_store.finish(execution.id, ExecutionStatus.completed)
        assert done.status == ExecutionStatus.completed
        assert done.completed_at is not None
        assert done.duration_ms is not None

    def test_finish_records_error_message(self, execution_store):
        execution = _created(execution_store)
        execution_store.claim(execution.id, "w1")
        failed = execution_store.finish(execution.id, ExecutionStatus.failed, "provider down")
        assert failed.error_message == "provider down"

    def test_terminal_record_is_frozen(self, execution_store):
        execution = _created(execution_store)
        execution_store.claim(execution.id, "w1")
        execution_store.finish(execution.id, ExecutionStatus.cancelled)

        assert execution_store.finish(execution.id, ExecutionStatus.completed) is None
        assert execution_store.apply_progress(execution.id, matched=1) is None
        assert execution_store.add_span_detail(execution.id, _detail()) is False
        current = execution_store.get(execution.id)
        assert current.status == ExecutionStatus.cancelled
        assert current.spans_matched == 0
        assert execution_store.list_span_details(execution.id) == []

    def test_span_details_in_order(self, execution_store):
        execution = _created(execution_store)
        execution_store.claim(execution.id, "w1")
        for span_id in ("a", "b", "c"):
            assert execution_store.add_span_detail(execution.id, _detail(span_id))
        details = execution_store.list_span_details(execution.id)
        assert [d.span_id for d in details] == ["a", "b", "c"]

    def test_get_detail(self, execution_store):
        execution = _created(execution_store)
        execution_store.claim(execution.id, "w1")
        execution_store.add_span_detail(execution.id, _detail())
        detail = execution_store.get_detail(execution.id)
        assert detail.id == execution.id
        assert detail.evaluator_snapshot.evaluator_id == execution.evaluator_id
        assert len(detail.spans) == 1

    def test_list_for_evaluator_newest_first(self, execution_store):
        evaluator = _make_evaluator()
        snapshot = EvaluatorSnapshot.from_evaluator(evaluator)
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        ids = []
        for hours in (0, 2, 1):
            execution = _make_execution(evaluator, created_at=base + timedelta(hours=hours))
            execution_store.create(execution, snapshot)
            ids.append(execution.id)
        listed = execution_store.list_for_evaluator(evaluator.id)
        assert [e.id for e in listed] == [ids[1], ids[2], ids[0]]
        assert execution_store.list_for_evaluator("other") == []

    def test_snapshot_unaffected_by_later_edits(self, execution_store):
        evaluator = _make_evaluator()
        execution = _created(execution_store, evaluator)
        evaluator.scorer_config.pattern = "changed"
        assert execution_store.get_snapshot(execution.id).scorer_config.pattern == "^OK$"


class TestJsonLayout:
    def test_files_written(self, tmp_path):
        store = JsonExecutionStore(tmp_path)
        execution = _created(store)
        root = tmp_path / ".spanscore"
        assert (root / "executions" / f"{execution.id}.json").exists()
        assert (root / "executions" / f"{execution.id}.snapshot.json").exists()
        index = json.loads((root / "index.json").read_text())
        assert index[execution.evaluator_id] == [execution.id]

    def test_no_lock_or_tmp_files_left(self, tmp_path):
        store = JsonExecutionStore(tmp_path)
        execution = _created(store)
        store.claim(execution.id, "w1")
        store.add_span_detail(execution.id, _detail())
        root = tmp_path / ".spanscore"
        assert list((root / "locks").iterdir()) == []
        assert list(root.rglob("*.tmp")) == []

    def test_state_shared_between_instances(self, tmp_path):
        first = JsonExecutionStore(tmp_path)
        second = JsonExecutionStore(tmp_path)
        execution = _created(first)
        assert second.claim(execution.id, "w2") is not None
        assert first.claim(execution.id, "w1") is None


# An id no live process has (above the Linux pid_max ceiling).
_DEAD_PID = 2**31 - 1


class TestStaleLocks:
    """Lock files left behind by a crashed holder are recovered."""

    def _leave_lock(self, store: JsonExecutionStore, execution_id: str, content: str):
        path = store.locks_dir / f"{execution_id}.lock"
        path.write_text(content)
        return path

    @pytest.mark.skipif(os.name != "posix", reason="pid liveness check is POSIX only")
    def test_claim_after_dead_holder(self, tmp_path):
        store = JsonExecutionStore(tmp_path)
        execution = _created(store)
        lock = self._leave_lock(store, execution.id, str(_DEAD_PID))

        claimed = store.claim(execution.id, "w1")

        assert claimed is not None
        assert claimed.status == ExecutionStatus.running
        assert not lock.exists()

    def test_claim_after_old_lock(self, tmp_path):
        store = JsonExecutionStore(tmp_path)
        execution = _created(store)
        lock = self._leave_lock(store, execution.id, str(os.getpid() + 1))
        old = time.time() - 3600
        os.utime(lock, (old, old))

        assert store.claim(execution.id, "w1") is not None
        assert list(store.locks_dir.iterdir()) == []

    def test_live_lock_still_excludes(self, tmp_path):
        path = tmp_path / "busy.lock"
        path.write_text(str(os.getpid()))
        assert not lock_is_stale(path)
        with pytest.raises(TimeoutError):
            with file_lock(path, timeout=0.05):
                pass
        assert path.exists()

    def test_missing_lock_not_stale(self, tmp_path):
        assert not lock_is_stale(tmp_path / "gone.lock")
