"""PodWatcher: keeps the PodIndex current and reports (old, new) pairs.

Every ADDED or MODIFIED event for a pod already in the index is passed to
the update callback together with the snapshot it replaces; pods seen for
the first time only populate the index.  A relist also reports a pair for
every pod that survived it, so restarts that happened while the watch was
down are still noticed.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog

from restartinfo.cache.pod_index import PodIndex
from restartinfo.collector.watcher import BaseWatcher
from restartinfo.models.pods import pod_key

_log = structlog.get_logger(component="collector.pod_watcher")

UpdateCallback = Callable[[dict[str, Any], dict[str, Any]], None]


class PodWatcher(BaseWatcher):
    """Watches pods in all namespaces.

    Args:
        api:       ``CoreV1Api`` instance.
        index:     Index to keep current.
        on_update: Called with ``(old, new)`` for every changed pod.
    """

    def __init__(self, api: Any, index: PodIndex, on_update: UpdateCallback) -> None:
        super().__init__(api, name="pods")
        self._index = index
        self._on_update = on_update

    def _list_func(self) -> Callable[..., Any]:
        return self._api.list_pod_for_all_namespaces  # type: ignore[no-any-return]

    async def _replace(self, items: list[dict[str, Any]]) -> None:
        carried, vanished = self._index.replace(items)
        for pod in items:
            old = carried.get(pod_key(pod))
            if old is not None:
                self._on_update(old, pod)
        if vanished:
            _log.debug("pods_vanished_during_relist", count=len(vanished))

    async def _handle_event(self, event_type: str, obj: Any, raw: dict[str, Any]) -> None:
        if not isinstance(raw, dict) or not (raw.get("metadata") or {}).get("name"):
            return

        if event_type == "DELETED":
            self._index.remove(pod_key(raw))
            return
        if event_type not in ("ADDED", "MODIFIED"):
            return

        old = self._index.update(raw)
        if old is not None:
            self._on_update(old, raw)
