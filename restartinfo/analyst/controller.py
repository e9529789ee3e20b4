"""Controller -- worker pool draining the work queue, plus the retry policy.

Each worker loops ``get -> reconcile -> handle_error -> done`` until the
queue shuts down.  ``handle_error`` is the only place a reconcile outcome is
turned into a retry or drop decision:

- success: the key's retry history is forgotten;
- failure with fewer than ``max_retries`` requeues: re-added with back-off;
- otherwise: forgotten and logged as dropped.

A key is therefore attempted at most ``max_retries + 1`` times.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable

import structlog

from restartinfo.analyst.queue import QueueShutDownError, WorkQueue

_log = structlog.get_logger(component="analyst.controller")


class Controller:
    """Runs *workers* concurrent reconcile loops over *queue*.

    Args:
        queue:       Work queue of pod keys.
        reconcile:   Coroutine function handling one key.
        workers:     Number of concurrent workers.
        max_retries: Requeues allowed before a key is dropped.
        wait_synced: Awaited before any worker starts.
    """

    def __init__(
        self,
        queue: WorkQueue,
        reconcile: Callable[[str], Awaitable[None]],
        workers: int = 1,
        max_retries: int = 3,
        wait_synced: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._queue = queue
        self._reconcile = reconcile
        self._workers = workers
        self._max_retries = max_retries
        self._wait_synced = wait_synced
        self._tasks: list[asyncio.Task[None]] = []
        self._startup: asyncio.Task[None] | None = None

    async def run(self) -> None:
        """Start the worker pool in the background; workers begin once the pod index is synced."""
        if self._startup is not None:
            return
        self._startup = asyncio.create_task(self._start_workers(), name="restartinfo-controller-startup")

    async def _start_workers(self) -> None:
        if self._wait_synced is not None:
            _log.info("waiting_for_cache_sync")
            await self._wait_synced()
        if self._queue.shutting_down:
            return
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"restartinfo-worker-{i}") for i in range(self._workers)
        ]
        _log.info("controller_started", workers=self._workers, max_retries=self._max_retries)

    async def _worker(self, worker_id: int) -> None:
        while await self.process_next_item():
            pass
        _log.debug("worker_exited", worker=worker_id)

    async def process_next_item(self) -> bool:
        """Process one key.  Returns False once the queue is shut down."""
        try:
            key = await self._queue.get()
        except QueueShutDownError:
            return False

        try:
            await self._reconcile(key)
        except Exception as exc:
            self.handle_error(exc, key)
        else:
            self.handle_error(None, key)
        finally:
            self._queue.done(key)
        return True

    def handle_error(self, error: Exception | None, key: str) -> None:
        if error is None:
            self._queue.forget(key)
            return

        requeues = self._queue.num_requeues(key)
        if requeues < self._max_retries:
            _log.warning(
                "reconcile_failed",
                key=key,
                attempt=requeues + 1,
                error=str(error),
                error_type=type(error).__name__,
            )
            self._queue.add_rate_limited(key)
            return

        self._queue.forget(key)
        _log.error(
            "alert_dropped",
            key=key,
            attempts=requeues + 1,
            error=str(error),
            error_type=type(error).__name__,
        )

    async def stop(self) -> None:
        """Drain in-flight keys, then wait for every worker to exit."""
        await self._queue.shut_down_with_drain()
        if self._startup is not None and not self._startup.done():
            self._startup.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._startup
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        _log.info("controller_stopped")
