"""Transient error retry with exponential backoff and full jitter.

Used by the worker around scorer provider calls. Readers never retry.
Timeouts, connection errors and HTTP 429/500/502/503 responses are
treated as transient; anything else propagates immediately.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

TRANSIENT_EXCEPTIONS: tuple[type[Exception], ...] = (TimeoutError, ConnectionError)

TRANSIENT_STATUS_CODES: frozenset[int] = frozenset({429, 500, 502, 503})


def is_transient(exc: BaseException) -> bool:
    """Check if an exception represents a transient error.

    Matches known transient exception types, then HTTP status code
    attributes commonly set by provider SDK exceptions.
    """
    if isinstance(exc, TRANSIENT_EXCEPTIONS):
        return True
    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    return status is not None and status in TRANSIENT_STATUS_CODES


def is_connection_failure(exc: BaseException) -> bool:
    """True when the provider could not be reached at all.

    Provider SDKs wrap network failures in their own exception types
    (``APIConnectionError``); those are matched by name so the SDKs stay
    optional imports.
    """
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True
    return any(
        cls.__name__ in ("APIConnectionError", "APITimeoutError")
        for cls in type(exc).__mro__
    )


@dataclass
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay(self, attempt: int, rng: random.Random) -> float:
        cap = min(self.base_delay * (2 ** attempt), self.max_delay)
        return rng.uniform(0, cap)


@dataclass
class RetryOutcome:
    result: Any
    retries_used: int = 0
    error_types: list[str] = field(default_factory=list)


async def retry_with_backoff(
    coro_factory: Callable[[], Awaitable[Any]],
    policy: RetryPolicy | None = None,
    *,
    rng: random.Random | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> RetryOutcome:
    """Await coro_factory() until it succeeds or a non-transient error occurs.

    Total calls are at most ``policy.max_retries + 1``. The last exception
    is re-raised when retries are exhausted.
    """
    policy = policy or RetryPolicy()
    rng = rng or random.Random()  # noqa: S311
    outcome = RetryOutcome(result=None)

    for attempt in range(policy.max_retries + 1):
        try:
            outcome.result = await coro_factory()
            return outcome
        except Exception as exc:
            if not is_transient(exc) or attempt == policy.max_retries:
                raise
            outcome.retries_used += 1
            outcome.error_types.append(type(exc).__name__)
            delay = policy.delay(attempt, rng)
            logger.debug(
                "transient %s on attempt %d, retrying in %.2fs",
                type(exc).__name__,
                attempt + 1,
                delay,
            )
            await sleep(delay)

    raise RuntimeError("Retry loop exited unexpectedly")  # pragma: no cover
