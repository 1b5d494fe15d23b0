"""JSON file storage for evaluators and executions.

File layout::

    .spanscore/
        evaluators/
            {evaluator-id}.json
        executions/
            {execution-id}.json            # Execution record
            {execution-id}.snapshot.json   # EvaluatorSnapshot at trigger time
            {execution-id}.spans.json      # list of SpanExecutionDetail
        locks/
            {execution-id}.lock            # held during read-modify-write
        index.json                         # evaluator id -> [execution ids]

Writes are atomic (write to .tmp, then rename). Read-modify-write
sequences take an exclusive lock file created with O_CREAT | O_EXCL, so
two processes sharing one directory cannot both claim an execution.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import TypeAdapter

from spanscore.models.evaluator import Evaluator
from spanscore.models.execution import (
    EvaluatorSnapshot,
    Execution,
    SpanExecutionDetail,
)
from spanscore.storage.base import EvaluatorStore, ExecutionStore

logger = logging.getLogger(__name__)

_DETAILS = TypeAdapter(list[SpanExecutionDetail])

LOCK_TIMEOUT_SECONDS = 10.0
LOCK_POLL_SECONDS = 0.005
# A lock older than this is treated as left behind by a dead holder.
LOCK_STALE_SECONDS = 30.0


def _atomic_write(path: Path, content: str) -> None:
    tmp_file = path.with_name(path.name + ".tmp")
    tmp_file.write_text(content, encoding="utf-8")
    os.replace(tmp_file, path)


def _pid_alive(pid: int) -> bool:
    if os.name != "posix":
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def lock_is_stale(path: Path, stale_after: float = LOCK_STALE_SECONDS) -> bool:
    """True when the holder recorded in *path* is gone or the lock is too old."""
    try:
        age = time.time() - path.stat().st_mtime
        content = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return False
    if age >= stale_after:
        return True
    if content.isdigit():
        pid = int(content)
        return pid != os.getpid() and not _pid_alive(pid)
    return False


def _break_lock(path: Path) -> None:
    # Only one breaker's rename succeeds.
    grave = path.with_name(f"{path.name}.stale-{os.getpid()}-{time.monotonic_ns()}")
    try:
        os.rename(path, grave)
    except FileNotFoundError:
        return
    grave.unlink(missing_ok=True)
    logger.warning("removed stale lock %s", path)


@contextmanager
def file_lock(
    path: Path,
    timeout: float = LOCK_TIMEOUT_SECONDS,
    stale_after: float = LOCK_STALE_SECONDS,
) -> Iterator[None]:
    """Exclusive lock file holding the owner's pid.

    A lock whose owner process has exited, or that is older than
    *stale_after* seconds, is broken. Raises TimeoutError if a live lock
    is not released within *timeout*.
    """
    deadline = time.monotonic() + timeout
    while True:
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            break
        except FileExistsError:
            if lock_is_stale(path, stale_after):
                _break_lock(path)
                continue
            if time.monotonic() >= deadline:
                raise TimeoutError(f"could not acquire lock {path}") from None
            time.sleep(LOCK_POLL_SECONDS)
    try:
        os.write(fd, str(os.getpid()).encode())
        os.close(fd)
        yield
    finally:
        path.unlink(missing_ok=True)


class JsonEvaluatorStore(EvaluatorStore):
    """Evaluator definitions as one JSON file each."""

    def __init__(self, project_root: Path, storage_dir: str = ".spanscore") -> None:
        self.evaluators_dir = project_root / storage_dir / "evaluators"

    def save(self, evaluator: Evaluator) -> None:
        self.evaluators_dir.mkdir(parents=True, exist_ok=True)
        _atomic_write(
            self.evaluators_dir / f"{evaluator.id}.json",
            evaluator.model_dump_json(indent=2),
        )

    def load(self, evaluator_id: str) -> Evaluator | None:
        path = self.evaluators_dir / f"{evaluator_id}.json"
        if not path.exists():
            return None
        return Evaluator.model_validate_json(path.read_text(encoding="utf-8"))

    def delete(self, evaluator_id: str) -> bool:
        path = self.evaluators_dir / f"{evaluator_id}.json"
        existed = path.exists()
        path.unlink(missing_ok=True)
        return existed

    def list_all(self) -> Iterator[Evaluator]:
        if not self.evaluators_dir.exists():
            return
        for path in sorted(self.evaluators_dir.glob("*.json")):
            yield Evaluator.model_validate_json(path.read_text(encoding="utf-8"))


class JsonExecutionStore(ExecutionStore):
    """Executions, snapshots and span details as JSON files."""

    def __init__(self, project_root: Path, storage_dir: str = ".spanscore") -> None:
        self.root = project_root / storage_dir
        self.executions_dir = self.root / "executions"
        self.locks_dir = self.root / "locks"
        self.index_path = self.root / "index.json"
        # Lock files exclude other processes; this excludes other threads.
        self._thread_lock = threading.Lock()

    def ensure_dirs(self) -> None:
        self.executions_dir.mkdir(parents=True, exist_ok=True)
        self.locks_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _locked(self, execution_id: str) -> Iterator[None]:
        self.ensure_dirs()
        with self._thread_lock, file_lock(self.locks_dir / f"{execution_id}.lock"):
            yield

    def _path(self, execution_id: str, suffix: str = "") -> Path:
        return self.executions_dir / f"{execution_id}{suffix}.json"

    def _read(self, execution_id: str) -> Execution | None:
        path = self._path(execution_id)
        if not path.exists():
            return None
        return Execution.model_validate_json(path.read_text(encoding="utf-8"))

    def _write(self, execution: Execution) -> None:
        _atomic_write(self._path(execution.id), execution.model_dump_json(indent=2))

    def _write_snapshot(self, execution_id: str, snapshot: EvaluatorSnapshot) -> None:
        _atomic_write(
            self._path(execution_id, ".snapshot"), snapshot.model_dump_json(indent=2)
        )

    def _read_snapshot(self, execution_id: str) -> EvaluatorSnapshot | None:
        path = self._path(execution_id, ".snapshot")
        if not path.exists():
            return None
        return EvaluatorSnapshot.model_validate_json(path.read_text(encoding="utf-8"))

    def list_span_details(self, execution_id: str) -> list[SpanExecutionDetail]:
        path = self._path(execution_id, ".spans")
        if not path.exists():
            return []
        return _DETAILS.validate_json(path.read_text(encoding="utf-8"))

    def _append_detail(self, execution_id: str, detail: SpanExecutionDetail) -> None:
        details = self.list_span_details(execution_id)
        details.append(detail)
        _atomic_write(
            self._path(execution_id, ".spans"),
            _DETAILS.dump_json(details, indent=2).decode("utf-8"),
        )

    def _load_index(self) -> dict[str, list[str]]:
        if not self.index_path.exists():
            return {}
        return json.loads(self.index_path.read_text(encoding="utf-8"))

    def _execution_ids(self, evaluator_id: str) -> list[str]:
        return self._load_index().get(evaluator_id, [])

    def _register(self, execution: Execution) -> None:
        with file_lock(self.locks_dir / "index.lock"):
            index = self._load_index()
            index.setdefault(execution.evaluator_id, []).append(execution.id)
            _atomic_write(self.index_path, json.dumps(index, indent=2))
