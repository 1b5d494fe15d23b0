"""Client-side adaptive polling of executions.

While anything in view is non-terminal, re-fetch every interval; once
everything is terminal, stop. poll_interval() is the whole policy, the
poller is just a loop-with-sleep around it.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Union

from spanscore.models.execution import Execution

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 5.0

FetchFn = Callable[[], Union[Sequence[Execution], Awaitable[Sequence[Execution]]]]


def poll_interval(
    has_non_terminal: bool, interval: float = POLL_INTERVAL_SECONDS
) -> float | None:
    """Seconds until the next fetch, or None to stop polling."""
    return interval if has_non_terminal else None


class ExecutionPoller:
    """Re-fetches a view of executions until all of them are terminal.

    ``fetch`` may be sync or async. After cancel() no further fetch is
    issued, and a fetch already in flight has its result discarded.
    """

    def __init__(
        self,
        fetch: FetchFn,
        on_update: Callable[[list[Execution]], None] | None = None,
        *,
        interval: float = POLL_INTERVAL_SECONDS,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._fetch = fetch
        self._on_update = on_update
        self._interval = interval
        self._sleep = sleep
        self._cancelled = False
        self._task: asyncio.Task[list[Execution]] | None = None
        self.fetch_count = 0
        self.latest: list[Execution] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def _fetch_once(self) -> list[Execution]:
        self.fetch_count += 1
        result = self._fetch()
        if inspect.isawaitable(result):
            result = await result
        return list(result)

    async def run(self) -> list[Execution]:
        """Poll until every execution in view is terminal (or cancelled).

        Returns the last fetched view.
        """
        while not self._cancelled:
            executions = await self._fetch_once()
            if self._cancelled:
                break
            self.latest = executions
            if self._on_update is not None:
                self._on_update(executions)
            delay = poll_interval(
                any(not e.is_terminal for e in executions), self._interval
            )
            if delay is None:
                logger.debug("polling stopped after %d fetch(es)", self.fetch_count)
                break
            await self._sleep(delay)
        return self.latest

    def start(self) -> asyncio.Task[list[Execution]]:
        """Run the poll loop as a background task."""
        self._task = asyncio.create_task(self.run())
        return self._task

    def cancel(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
