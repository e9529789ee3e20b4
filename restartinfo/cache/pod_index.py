"""Point-in-time pod index.

Holds the latest raw snapshot of every pod the watcher has seen, keyed by
``namespace/name``.  Snapshots are replaced wholesale on every update and
never mutated in place, so a reader holding a snapshot keeps a consistent
view while the watcher keeps writing.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Iterable
from typing import Any

import structlog

from restartinfo.models.pods import pod_key

_log = structlog.get_logger(component="cache.pod_index")


class PodIndex:
    """Thread-safe map of pod key -> latest pod snapshot."""

    def __init__(self) -> None:
        self._pods: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._synced = asyncio.Event()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pods)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._pods

    @property
    def synced(self) -> bool:
        """True once the first full listing has been loaded."""
        return self._synced.is_set()

    async def wait_synced(self) -> None:
        await self._synced.wait()

    def update(self, pod: dict[str, Any]) -> dict[str, Any] | None:
        """Store *pod* and return the snapshot it replaced, if any."""
        key = pod_key(pod)
        with self._lock:
            old = self._pods.get(key)
            self._pods[key] = pod
        return old

    def remove(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            return self._pods.pop(key, None)

    def get(self, namespace: str, name: str) -> dict[str, Any] | None:
        return self.get_by_key(f"{namespace}/{name}")

    def get_by_key(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            return self._pods.get(key)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._pods)

    def replace(self, pods: Iterable[dict[str, Any]]) -> tuple[dict[str, dict[str, Any]], list[str]]:
        """Swap in a full listing.

        Returns the previous snapshot of every pod present in both the old and
        the new listing, and the keys of pods that disappeared.  The index is
        marked synced afterwards.
        """
        fresh = {pod_key(pod): pod for pod in pods}
        with self._lock:
            previous = self._pods
            self._pods = fresh
        carried = {key: previous[key] for key in fresh if key in previous}
        vanished = sorted(key for key in previous if key not in fresh)
        if not self._synced.is_set():
            self._synced.set()
            _log.info("pod_index_synced", pods=len(fresh))
        return carried, vanished
