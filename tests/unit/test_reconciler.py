"""Tests for the Reconciler: mute window, container selection, channel routing."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from restartinfo.analyst.reconciler import PodNotFoundError, Reconciler, build_footer, build_title
from restartinfo.cache.pod_index import PodIndex
from restartinfo.ledger.mute_ledger import MuteLedger
from restartinfo.models.config import FilterConfig
from restartinfo.models.notifications import DiagnosticBundle, Notification
from restartinfo.notifications.manager import NotificationDeliveryError

_NOW = datetime(2026, 2, 18, 12, 0, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Helper factories
# ---------------------------------------------------------------------------


def _make_pod(
    statuses: list[dict[str, Any]],
    annotations: dict[str, str] | None = None,
    labels: dict[str, str] | None = None,
) -> dict[str, Any]:
    return {
        "metadata": {
            "name": "foo",
            "namespace": "ns",
            "annotations": annotations or {},
            "labels": labels or {},
        },
        "spec": {"nodeName": "node-1", "containers": [{"name": s["name"]} for s in statuses]},
        "status": {"containerStatuses": statuses},
    }


def _status(name: str, restarts: int, exit_code: int = 1) -> dict[str, Any]:
    return {
        "name": name,
        "restartCount": restarts,
        "lastState": {"terminated": {"exitCode": exit_code}} if restarts else {},
    }


def _make_bundle(last_log_line: str = "fatal: boom") -> DiagnosticBundle:
    return DiagnosticBundle(
        pod_summary="NAME ...",
        restart_reason="Error (ExitCode 1)",
        container_state="app:\n",
        resources="",
        pod_events="• No Warning Pod Events\n",
        node_block="• Node Status and Events\n```\n```\n",
        logs="• No Logs Before Restart\n",
        exit_code=1,
        last_log_line=last_log_line,
    )


def _make_dispatcher(default_channel: str = "restart-info-nonprod") -> MagicMock:
    dispatcher = MagicMock()
    dispatcher.resolve_channel = MagicMock(side_effect=lambda override: override or default_channel)
    dispatcher.dispatch = AsyncMock(side_effect=lambda notification: notification)
    return dispatcher


def _make_reconciler(
    pod: dict[str, Any] | None,
    ledger: MuteLedger | None = None,
    dispatcher: MagicMock | None = None,
    filters: FilterConfig | None = None,
    bundle: DiagnosticBundle | None = None,
    now: datetime = _NOW,
) -> tuple[Reconciler, MagicMock, MagicMock, MuteLedger]:
    index = PodIndex()
    if pod is not None:
        index.update(pod)
    if ledger is None:
        ledger = MuteLedger(mute_window=timedelta(seconds=600))
    assembler = MagicMock()
    assembler.assemble = AsyncMock(return_value=bundle or _make_bundle())
    dispatcher = dispatcher or _make_dispatcher()
    reconciler = Reconciler(
        index=index,
        ledger=ledger,
        assembler=assembler,
        dispatcher=dispatcher,
        filters=filters or FilterConfig(),
        cluster_name="prod-eu",
        clock=lambda: now,
    )
    return reconciler, assembler, dispatcher, ledger


def _sent(dispatcher: MagicMock) -> Notification:
    return dispatcher.dispatch.await_args.args[0]


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestReconcileSends:
    async def test_sends_one_notification_and_records(self) -> None:
        pod = _make_pod([_status("app", 3)])
        reconciler, assembler, dispatcher, ledger = _make_reconciler(pod)

        await reconciler.reconcile("ns/foo")

        dispatcher.dispatch.assert_awaited_once()
        assert ledger.last_sent("ns/foo") == _NOW
        notification = _sent(dispatcher)
        assert notification.title == "*Pod restarted!*\n*cluster: `prod-eu`, pod: `foo`, namespace: `ns`*"
        assert notification.footer == "prod-eu, foo, ns"
        assert notification.body == _make_bundle().body
        assert notification.channel == "restart-info-nonprod"

    async def test_only_first_restarted_container_is_reported(self) -> None:
        pod = _make_pod([_status("sidecar", 0), _status("app", 2), _status("worker", 5)])
        reconciler, assembler, dispatcher, _ = _make_reconciler(pod)

        await reconciler.reconcile("ns/foo")

        assembler.assemble.assert_awaited_once()
        status = assembler.assemble.await_args.args[1]
        assert status["name"] == "app"
        assert dispatcher.dispatch.await_count == 1

    async def test_no_restarted_container_sends_nothing(self) -> None:
        pod = _make_pod([_status("app", 0)])
        reconciler, assembler, dispatcher, ledger = _make_reconciler(pod)

        await reconciler.reconcile("ns/foo")

        assembler.assemble.assert_not_awaited()
        dispatcher.dispatch.assert_not_awaited()
        assert "ns/foo" not in ledger


# ---------------------------------------------------------------------------
# Channel routing
# ---------------------------------------------------------------------------


class TestChannelRouting:
    async def test_annotation_wins_over_label(self) -> None:
        pod = _make_pod(
            [_status("app", 1)],
            annotations={"alert-slack-channel": "team-a"},
            labels={"alert-slack-channel": "team-b"},
        )
        reconciler, _, dispatcher, _ = _make_reconciler(pod)

        await reconciler.reconcile("ns/foo")

        assert _sent(dispatcher).channel == "team-a"

    async def test_label_used_without_annotation(self) -> None:
        pod = _make_pod([_status("app", 1)], labels={"alert-slack-channel": "team-b"})
        reconciler, _, dispatcher, _ = _make_reconciler(pod)

        await reconciler.reconcile("ns/foo")

        assert _sent(dispatcher).channel == "team-b"


# ---------------------------------------------------------------------------
# Mute window
# ---------------------------------------------------------------------------


class TestMuteWindow:
    async def test_muted_pod_returns_without_work(self) -> None:
        """A pod alerted 100 s ago is skipped entirely, with no cluster calls."""
        ledger = MuteLedger(mute_window=timedelta(seconds=600))
        ledger.record("ns/foo", _NOW - timedelta(seconds=100))
        pod = _make_pod([_status("app", 4)])
        reconciler, assembler, dispatcher, _ = _make_reconciler(pod, ledger=ledger)

        await reconciler.reconcile("ns/foo")

        assembler.assemble.assert_not_awaited()
        dispatcher.dispatch.assert_not_awaited()
        assert ledger.last_sent("ns/foo") == _NOW - timedelta(seconds=100)

    async def test_second_reconcile_within_window_is_idempotent(self) -> None:
        pod = _make_pod([_status("app", 4)])
        reconciler, _, dispatcher, ledger = _make_reconciler(pod)

        await reconciler.reconcile("ns/foo")
        await reconciler.reconcile("ns/foo")

        assert dispatcher.dispatch.await_count == 1
        assert len(ledger) == 1

    async def test_restart_after_window_elapsed_alerts_again(self) -> None:
        """Alerts at t0 and t0+601 s; the attempt at t0+300 s is muted."""
        pod = _make_pod([_status("app", 4)])
        ledger = MuteLedger(mute_window=timedelta(seconds=600))
        dispatcher = _make_dispatcher()

        for offset in (0, 300, 601):
            reconciler, _, _, _ = _make_reconciler(
                pod, ledger=ledger, dispatcher=dispatcher, now=_NOW + timedelta(seconds=offset)
            )
            await reconciler.reconcile("ns/foo")

        assert dispatcher.dispatch.await_count == 2
        assert ledger.last_sent("ns/foo") == _NOW + timedelta(seconds=601)

    async def test_empty_shared_ledger_is_used(self) -> None:
        ledger = MuteLedger(mute_window=timedelta(seconds=600))
        pod = _make_pod([_status("app", 1)])
        reconciler, _, _, returned = _make_reconciler(pod, ledger=ledger)

        await reconciler.reconcile("ns/foo")

        assert returned is ledger
        assert ledger.last_sent("ns/foo") == _NOW


# ---------------------------------------------------------------------------
# Failures propagate
# ---------------------------------------------------------------------------


class TestFailures:
    async def test_missing_pod_raises(self) -> None:
        reconciler, _, _, _ = _make_reconciler(None)

        with pytest.raises(PodNotFoundError):
            await reconciler.reconcile("ns/gone")

    async def test_assembly_error_propagates_without_send(self) -> None:
        pod = _make_pod([_status("app", 2)])
        reconciler, assembler, dispatcher, ledger = _make_reconciler(pod)
        assembler.assemble = AsyncMock(side_effect=RuntimeError("log fetch failed"))

        with pytest.raises(RuntimeError, match="log fetch failed"):
            await reconciler.reconcile("ns/foo")

        dispatcher.dispatch.assert_not_awaited()
        assert "ns/foo" not in ledger

    async def test_delivery_error_leaves_ledger_untouched(self) -> None:
        pod = _make_pod([_status("app", 2)])
        dispatcher = _make_dispatcher()
        dispatcher.dispatch = AsyncMock(
            side_effect=NotificationDeliveryError("slack", Notification(title="t", body="b", footer="f"))
        )
        reconciler, _, _, ledger = _make_reconciler(pod, dispatcher=dispatcher)

        with pytest.raises(NotificationDeliveryError):
            await reconciler.reconcile("ns/foo")

        assert "ns/foo" not in ledger


# ---------------------------------------------------------------------------
# Exit-code-zero and ignored errors
# ---------------------------------------------------------------------------


class TestOptionalSuppression:
    async def test_clean_exit_moves_to_next_container(self) -> None:
        pod = _make_pod([_status("init-like", 1, exit_code=0), _status("app", 1, exit_code=2)])
        filters = FilterConfig(ignore_restarts_with_exit_code_zero=True)
        reconciler, assembler, dispatcher, _ = _make_reconciler(pod, filters=filters)

        await reconciler.reconcile("ns/foo")

        assert assembler.assemble.await_args.args[1]["name"] == "app"
        dispatcher.dispatch.assert_awaited_once()

    async def test_only_clean_exits_sends_nothing(self) -> None:
        pod = _make_pod([_status("app", 1, exit_code=0)])
        filters = FilterConfig(ignore_restarts_with_exit_code_zero=True)
        reconciler, _, dispatcher, ledger = _make_reconciler(pod, filters=filters)

        await reconciler.reconcile("ns/foo")

        dispatcher.dispatch.assert_not_awaited()
        assert "ns/foo" not in ledger

    async def test_ignored_error_suppresses_alert(self) -> None:
        pod = _make_pod([_status("app", 1)])
        filters = FilterConfig(ignored_errors_for_pod_prefixes={"foo": ["context canceled"]})
        bundle = _make_bundle(last_log_line="2026-02-18T11:59:59Z error: context canceled")
        reconciler, _, dispatcher, ledger = _make_reconciler(pod, filters=filters, bundle=bundle)

        await reconciler.reconcile("ns/foo")

        dispatcher.dispatch.assert_not_awaited()
        assert "ns/foo" not in ledger


class TestFormatting:
    def test_title(self) -> None:
        assert build_title("c", "p", "n") == "*Pod restarted!*\n*cluster: `c`, pod: `p`, namespace: `n`*"

    def test_footer(self) -> None:
        assert build_footer("c", "p", "n") == "c, p, n"
