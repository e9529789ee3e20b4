"""BaseWatcher: list+watch loop with reconnect, back-off and relist.

Subclasses provide the list call and the per-event handling; this class
owns the stream lifecycle:

- On start (and whenever a relist is scheduled) the full collection is
  listed and handed to ``_replace``; the listing's resourceVersion seeds the
  next watch.
- Watch streams time out server-side every few minutes and are reopened
  from the last seen resourceVersion.
- ``410 Gone`` means the resourceVersion expired: relist immediately.
- Any other failure sleeps with exponential back-off (1 s doubling to 60 s);
  after 3 consecutive failures the next attempt relists from scratch.
"""

from __future__ import annotations

import asyncio
import contextlib
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import structlog
from kubernetes_asyncio import watch
from kubernetes_asyncio.client.exceptions import ApiException

_log = structlog.get_logger(component="collector.watcher")

_BACKOFF_MIN_S = 1.0
_BACKOFF_MAX_S = 60.0
_RELIST_AFTER_FAILURES = 3
_WATCH_TIMEOUT_S = 300


def _extract_rv(raw: dict[str, Any]) -> str:
    metadata = raw.get("metadata") if isinstance(raw, dict) else None
    if not isinstance(metadata, dict):
        return ""
    return str(metadata.get("resourceVersion") or "")


class BaseWatcher(ABC):
    """Abstract list+watch loop over one Kubernetes collection.

    Args:
        api:  A kubernetes-asyncio API object (e.g. ``CoreV1Api``).
        name: Short label used in logs and the task name.
    """

    def __init__(self, api: Any, name: str) -> None:
        self._api = api
        self._name = name
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._backoff_s = _BACKOFF_MIN_S
        self._consecutive_failures = 0
        self._resource_version = ""
        self._needs_relist = True
        self._log = _log.bind(watcher=name)

    # ------------------------------------------------------------------
    # Subclass hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _list_func(self) -> Callable[..., Any]:
        """Return the API list method used for both list and watch calls."""

    @abstractmethod
    async def _replace(self, items: list[dict[str, Any]]) -> None:
        """Apply a full listing of raw objects."""

    @abstractmethod
    async def _handle_event(self, event_type: str, obj: Any, raw: dict[str, Any]) -> None:
        """Apply one ADDED / MODIFIED / DELETED watch event."""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"watcher-{self._name}")
        self._log.info("watcher_started")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._log.info("watcher_stopped")

    async def _run(self) -> None:
        while self._running:
            try:
                if self._needs_relist:
                    await self._do_relist()
                await self._watch_once()
            except asyncio.CancelledError:
                raise
            except ApiException as exc:
                await self._handle_api_exception(exc)
            except Exception as exc:
                self._log.error("watch_unexpected_error", error=str(exc), exc_info=True)
                self._consecutive_failures += 1
                if self._consecutive_failures >= _RELIST_AFTER_FAILURES:
                    self._relist(reason="consecutive_failures")
                await self._backoff("unexpected_error")

    # ------------------------------------------------------------------
    # Back-off
    # ------------------------------------------------------------------

    async def _backoff(self, reason: str) -> None:
        delay = self._backoff_s
        self._log.warning("watch_backoff", reason=reason, delay_s=delay, failures=self._consecutive_failures)
        await asyncio.sleep(delay)
        self._backoff_s = min(self._backoff_s * 2, _BACKOFF_MAX_S)

    def _reset_backoff(self) -> None:
        self._backoff_s = _BACKOFF_MIN_S
        self._consecutive_failures = 0

    # ------------------------------------------------------------------
    # Error handling and relist
    # ------------------------------------------------------------------

    async def _handle_api_exception(self, exc: ApiException) -> None:
        if exc.status == 410:
            self._log.info("watch_resource_version_expired")
            self._relist(reason="410")
            return

        self._consecutive_failures += 1
        self._log.warning(
            "watch_api_error",
            status=exc.status,
            reason=exc.reason,
            failures=self._consecutive_failures,
        )
        if self._consecutive_failures >= _RELIST_AFTER_FAILURES:
            self._relist(reason="consecutive_failures")
        await self._backoff(f"api_{exc.status}")

    def _relist(self, reason: str) -> None:
        """Schedule a full relist before the next watch."""
        self._log.info("watch_relist_scheduled", reason=reason)
        self._resource_version = ""
        self._needs_relist = True

    async def _do_relist(self) -> None:
        result = await self._list_func()()
        raw = self._api.api_client.sanitize_for_serialization(result)
        items = list(raw.get("items") or [])
        self._resource_version = _extract_rv(raw)
        await self._replace(items)
        self._needs_relist = False
        self._reset_backoff()
        self._log.info("relist_complete", items=len(items), resource_version=self._resource_version)

    # ------------------------------------------------------------------
    # Watch stream
    # ------------------------------------------------------------------

    async def _watch_once(self) -> None:
        kwargs: dict[str, Any] = {
            "timeout_seconds": _WATCH_TIMEOUT_S,
            "allow_watch_bookmarks": True,
        }
        if self._resource_version:
            kwargs["resource_version"] = self._resource_version

        async with watch.Watch().stream(self._list_func(), **kwargs) as stream:
            async for event in stream:
                if not self._running:
                    break
                await self._dispatch(event)

    async def _dispatch(self, event: dict[str, Any]) -> None:
        event_type = str(event.get("type") or "")
        raw = event.get("raw_object") or {}

        if event_type == "ERROR":
            raise ApiException(status=raw.get("code"), reason=raw.get("reason") or raw.get("message"))

        rv = _extract_rv(raw)
        if rv:
            self._resource_version = rv
        if event_type == "BOOKMARK":
            return

        await self._handle_event(event_type, event.get("object"), raw)
        if self._consecutive_failures:
            self._reset_backoff()
