"""Execution state machine.

    pending --> running --> completed
       |           |------> failed
       |           '------> cancelled
       '------------------> cancelled

Terminal records are immutable; every transition returns a new record.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from spanscore.errors import InvalidTransitionError
from spanscore.models.execution import Execution, ExecutionStatus

TERMINAL_STATES: frozenset[ExecutionStatus] = frozenset(
    {ExecutionStatus.completed, ExecutionStatus.failed, ExecutionStatus.cancelled}
)

ALLOWED_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.pending: frozenset(
        {ExecutionStatus.running, ExecutionStatus.cancelled}
    ),
    ExecutionStatus.running: frozenset(
        {ExecutionStatus.completed, ExecutionStatus.failed, ExecutionStatus.cancelled}
    ),
    ExecutionStatus.completed: frozenset(),
    ExecutionStatus.failed: frozenset(),
    ExecutionStatus.cancelled: frozenset(),
}


def is_terminal(status: ExecutionStatus) -> bool:
    return status in TERMINAL_STATES


def can_transition(current: ExecutionStatus, target: ExecutionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition(
    execution: Execution,
    target: ExecutionStatus,
    *,
    now: datetime | None = None,
    **fields: Any,
) -> Execution:
    """Return a copy of *execution* moved to *target*.

    Stamps started_at on entering running, and completed_at plus
    duration_ms (wall clock since started_at) on entering a terminal state.

    Raises:
        InvalidTransitionError: If the move is not allowed.
    """
    if not can_transition(execution.status, target):
        raise InvalidTransitionError(execution.status.value, target.value)

    now = now or datetime.now(timezone.utc)
    update: dict[str, Any] = {"status": target, **fields}
    if target == ExecutionStatus.running:
        update["started_at"] = now
    elif is_terminal(target):
        update["completed_at"] = now
        if execution.started_at is not None:
            elapsed = (now - execution.started_at).total_seconds() * 1000
            update["duration_ms"] = max(0, int(elapsed))
    return execution.model_copy(update=update)
