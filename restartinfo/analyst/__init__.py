"""Analyst package -- work queue, reconciler and worker pool.

Submodules:
    queue      -- Deduplicating, rate-limited WorkQueue.
    reconciler -- Reconciler: one pod key in, at most one notification out.
    controller -- Controller: worker pool and bounded-retry policy.
"""

from restartinfo.analyst.controller import Controller
from restartinfo.analyst.queue import QueueShutDownError, WorkQueue, default_rate_limiter
from restartinfo.analyst.reconciler import PodNotFoundError, Reconciler

__all__ = [
    "Controller",
    "PodNotFoundError",
    "QueueShutDownError",
    "Reconciler",
    "WorkQueue",
    "default_rate_limiter",
]
