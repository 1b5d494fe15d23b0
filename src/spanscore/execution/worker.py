"""Background consumer of the trigger queue."""

from __future__ import annotations

import asyncio
import logging
import uuid

from spanscore.execution.manager import ExecutionManager

logger = logging.getLogger(__name__)


class ExecutionWorker:
    """Pulls execution ids off the manager's queue and runs them.

    At most ``max_concurrent`` executions run at once. Several workers may
    consume the same queue (or share the same stores from different
    processes); the claim in ExecutionManager.run() keeps each execution
    single-owner.
    """

    def __init__(
        self,
        manager: ExecutionManager,
        *,
        worker_id: str | None = None,
        max_concurrent: int | None = None,
    ) -> None:
        self._manager = manager
        self.worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"
        self._max_concurrent = max_concurrent or manager.config.max_concurrent_executions
        self._loop_task: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[None]] = set()
        self.processed = 0

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        """Start consuming. Must be called from a running event loop."""
        if self.running:
            return
        self._loop_task = asyncio.create_task(self._consume(), name=self.worker_id)
        logger.info("worker %s started", self.worker_id)

    async def _consume(self) -> None:
        queue = self._manager.queue
        semaphore = asyncio.Semaphore(self._max_concurrent)
        while True:
            execution_id = await queue.get()
            await semaphore.acquire()
            task = asyncio.create_task(self._process(execution_id, semaphore))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def _process(self, execution_id: str, semaphore: asyncio.Semaphore) -> None:
        try:
            await self._manager.run(execution_id, self.worker_id)
            self.processed += 1
        except Exception:
            logger.exception("worker %s: execution %s crashed", self.worker_id, execution_id)
        finally:
            semaphore.release()
            self._manager.queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued execution has been processed."""
        await self._manager.queue.join()

    async def stop(self) -> None:
        """Stop consuming and wait for in-flight executions to finish."""
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        logger.info("worker %s stopped after %d execution(s)", self.worker_id, self.processed)
