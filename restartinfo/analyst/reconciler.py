"""Reconciler -- turns one dequeued pod key into at most one notification.

Business logic only: every failure propagates unchanged to the controller,
which alone decides whether the key is retried or dropped.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol

import structlog

from restartinfo.cache.pod_index import PodIndex
from restartinfo.ledger.mute_ledger import MuteLedger
from restartinfo.models.config import FilterConfig
from restartinfo.models.notifications import DiagnosticBundle, Notification
from restartinfo.models.pods import container_statuses, pod_name, pod_namespace, slack_channel_for
from restartinfo.scout.restart_filter import ignored_error, is_clean_exit

_log = structlog.get_logger(component="analyst.reconciler")


class PodNotFoundError(Exception):
    """Raised when a queued key is no longer present in the pod index."""

    def __init__(self, key: str) -> None:
        super().__init__(f"pod {key} not found in index")
        self.key = key


class Assembler(Protocol):
    async def assemble(self, pod: dict[str, Any], status: dict[str, Any]) -> DiagnosticBundle: ...


class Dispatcher(Protocol):
    def resolve_channel(self, override: str) -> str: ...

    async def dispatch(self, notification: Notification) -> Notification: ...


def build_title(cluster: str, pod: str, namespace: str) -> str:
    return f"*Pod restarted!*\n*cluster: `{cluster}`, pod: `{pod}`, namespace: `{namespace}`*"


def build_footer(cluster: str, pod: str, namespace: str) -> str:
    return f"{cluster}, {pod}, {namespace}"


class Reconciler:
    """Alerts on the first restarted container of a pod, honouring the mute window.

    Args:
        index:        Point-in-time pod store.
        ledger:       Mute ledger shared by all workers.
        assembler:    Renders diagnostics for one container.
        dispatcher:   Sends the finished notification.
        filters:      Exit-code-zero and ignored-error settings.
        cluster_name: Shown in the title and footer.
        clock:        Returns "now" (UTC); injectable for tests.
    """

    def __init__(
        self,
        index: PodIndex,
        ledger: MuteLedger,
        assembler: Assembler,
        dispatcher: Dispatcher,
        filters: FilterConfig,
        cluster_name: str,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._index = index
        self._ledger = ledger
        self._assembler = assembler
        self._dispatcher = dispatcher
        self._filters = filters
        self._cluster_name = cluster_name
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    async def reconcile(self, key: str) -> None:
        """Handle one pod key.

        Raises:
            PodNotFoundError: *key* is not in the index.
            DiagnosticsError, ApiException, NotificationDeliveryError:
                propagated from the collaborators.
        """
        pod = self._index.get_by_key(key)
        if pod is None:
            raise PodNotFoundError(key)

        now = self._clock()
        if not self._ledger.should_alert(key, now):
            return

        namespace = pod_namespace(pod)
        name = pod_name(pod)
        for status in container_statuses(pod):
            restarts = int(status.get("restartCount") or 0)
            if restarts == 0:
                continue
            container = status.get("name")
            if is_clean_exit(status, self._filters):
                _log.info("clean_exit_ignored", key=key, container=container)
                continue

            _log.info("handling_restart", key=key, container=container, restart_count=restarts)
            bundle = await self._assembler.assemble(pod, status)
            if ignored_error(name, bundle.last_log_line, self._filters) is not None:
                return

            notification = Notification(
                title=build_title(self._cluster_name, name, namespace),
                body=bundle.body,
                footer=build_footer(self._cluster_name, name, namespace),
                channel=self._dispatcher.resolve_channel(slack_channel_for(pod)),
            )
            await self._dispatcher.dispatch(notification)

            self._ledger.record(key, now)
            self._ledger.sweep(now)
            return
