"""Shared fixtures for restartinfo integration tests.

Provides the full pipeline (pod index, restart filter, work queue,
controller, reconciler, diagnostics, Slack channel) wired together with
realistic pod, node and event dicts, so integration tests can exercise the
watch-event-to-Slack path without touching a real cluster or Slack.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest

from restartinfo.analyst import Controller, Reconciler, WorkQueue
from restartinfo.analyst.queue import ExponentialBackoffRateLimiter
from restartinfo.cache import PodIndex
from restartinfo.collector import PodWatcher
from restartinfo.diagnostics import DiagnosticsAssembler
from restartinfo.ledger import MuteLedger
from restartinfo.models.config import FilterConfig
from restartinfo.notifications.manager import NotificationDispatcher
from restartinfo.notifications.slack import SlackNotificationChannel
from restartinfo.scout import RestartFilter

WEBHOOK_URL = "https://hooks.slack.com/services/T000/B000/XXXX"
CLUSTER_NAME = "test-cluster"

_NOW = datetime(2026, 2, 18, 12, 0, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Object factories
# ---------------------------------------------------------------------------


def make_pod(
    name: str = "foo",
    namespace: str = "ns",
    restarts: int = 0,
    exit_code: int = 1,
    node_name: str = "node-1",
    annotations: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Create a raw pod dict with one container named ``app``."""
    status: dict[str, Any] = {
        "name": "app",
        "ready": True,
        "restartCount": restarts,
        "state": {"running": {"startedAt": "2026-02-18T11:59:00Z"}},
    }
    if restarts:
        status["lastState"] = {
            "terminated": {
                "exitCode": exit_code,
                "reason": "Completed" if exit_code == 0 else "Error",
                "startedAt": "2026-02-18T11:50:00Z",
                "finishedAt": "2026-02-18T11:58:00Z",
            }
        }
    return {
        "metadata": {
            "name": name,
            "namespace": namespace,
            "creationTimestamp": "2026-02-18T11:00:00Z",
            "annotations": annotations or {},
        },
        "spec": {
            "nodeName": node_name,
            "containers": [{"name": "app", "resources": {"limits": {"memory": "128Mi"}}}],
        },
        "status": {"phase": "Running", "containerStatuses": [status]},
    }


def make_node(name: str = "node-1") -> dict[str, Any]:
    return {
        "metadata": {"name": name, "creationTimestamp": "2026-01-01T00:00:00Z"},
        "status": {
            "conditions": [{"type": "Ready", "status": "True"}],
            "nodeInfo": {"kubeletVersion": "v1.29.1"},
        },
    }


def make_event(
    reason: str = "BackOff",
    message: str = "Back-off restarting failed container",
    kind: str = "Pod",
    name: str = "foo",
) -> dict[str, Any]:
    return {
        "type": "Warning",
        "reason": reason,
        "message": message,
        "count": 1,
        "involvedObject": {"kind": kind, "name": name},
        "lastTimestamp": "2026-02-18T11:58:30Z",
        "source": {"component": "kubelet"},
    }


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeCluster:
    """In-memory stand-in for ClusterClient."""

    def __init__(self) -> None:
        self.pod_events: list[dict[str, Any]] = [make_event()]
        self.node_events: list[dict[str, Any]] = []
        self.nodes: dict[str, dict[str, Any]] = {"node-1": make_node()}
        self.log_text = "2026-02-18T11:57:59Z starting\n2026-02-18T11:58:00Z panic: boom\n"
        self.log_error: Exception | None = None
        self.log_reads = 0

    async def list_events(self, namespace: str, field_selector: str = "type!=Normal") -> list[dict[str, Any]]:
        return list(self.pod_events)

    async def list_node_events(self) -> list[dict[str, Any]]:
        return list(self.node_events)

    async def get_node(self, name: str) -> dict[str, Any]:
        return self.nodes[name]

    async def read_previous_log(
        self,
        namespace: str,
        pod: str,
        container: str,
        tail_lines: int = 50,
        timestamps: bool = True,
    ) -> str:
        self.log_reads += 1
        if self.log_error is not None:
            raise self.log_error
        return self.log_text


class FakeClock:
    """Settable "now" shared by the reconciler and the assembler."""

    def __init__(self, now: datetime = _NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@dataclass
class SlackRecorder:
    """Collects every request posted to the mock Slack webhook."""

    status_code: int = 200
    requests: list[httpx.Request] = field(default_factory=list)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, text="ok")


@dataclass
class Pipeline:
    index: PodIndex
    ledger: MuteLedger
    queue: WorkQueue
    watcher: PodWatcher
    controller: Controller
    dispatcher: NotificationDispatcher
    cluster: FakeCluster
    slack: SlackRecorder
    clock: FakeClock

    async def wait_for(self, predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.01)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def filter_config() -> FilterConfig:
    return FilterConfig(ignored_namespaces=["kube-system"])


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def slack() -> SlackRecorder:
    return SlackRecorder()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def pipeline(
    filter_config: FilterConfig, cluster: FakeCluster, slack: SlackRecorder, clock: FakeClock
) -> AsyncIterator[Pipeline]:
    """Fully wired pipeline; the pod watcher's stream is driven by the test."""
    index = PodIndex()
    ledger = MuteLedger(mute_window=timedelta(minutes=10))
    queue = WorkQueue(ExponentialBackoffRateLimiter(base_delay=0.001, max_delay=0.01))
    channel = SlackNotificationChannel(WEBHOOK_URL, transport=httpx.MockTransport(slack.handler))
    dispatcher = NotificationDispatcher(channel, default_channel="restart-info-nonprod")
    reconciler = Reconciler(
        index=index,
        ledger=ledger,
        assembler=DiagnosticsAssembler(cluster, clock=clock),
        dispatcher=dispatcher,
        filters=filter_config,
        cluster_name=CLUSTER_NAME,
        clock=clock,
    )
    restart_filter = RestartFilter(filter_config, sink=queue.add)
    watcher = PodWatcher(MagicMock(), index, on_update=restart_filter.on_update)
    controller = Controller(queue, reconciler.reconcile, workers=2, max_retries=3, wait_synced=index.wait_synced)

    await controller.run()
    yield Pipeline(
        index=index,
        ledger=ledger,
        queue=queue,
        watcher=watcher,
        controller=controller,
        dispatcher=dispatcher,
        cluster=cluster,
        slack=slack,
        clock=clock,
    )
    await controller.stop()
    await dispatcher.stop()
