"""Application bootstrap for restartinfo.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s client → pod index → mute ledger
              → notifications → diagnostics → reconciler → queue
              → pod watcher → controller

Shutdown stops components in reverse startup order: the watcher stops
producing keys first, in-flight reconciles are drained, then transports
are closed.  Each component's stop error is caught and logged independently.
"""

from __future__ import annotations

import asyncio
import signal
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from restartinfo.config import ConfigError, load_config
from restartinfo.models.config import RestartInfoConfig
from restartinfo.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class RestartInfoApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    ``stop()`` is safe to call on an app that was never started or has
    already stopped.
    """

    def __init__(self) -> None:
        self.config: RestartInfoConfig | None = None

        self._api_client: Any = None
        self._core_v1: Any = None
        self._index: Any = None
        self._ledger: Any = None
        self._notifications: Any = None
        self._assembler: Any = None
        self._reconciler: Any = None
        self._queue: Any = None
        self._watcher: Any = None
        self._controller: Any = None

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        try:
            self.config = load_config()
        except ConfigError as exc:
            raise _ComponentError("config", exc) from exc

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("restartinfo starting", version=_restartinfo_version(), cluster=self.config.cluster_name)

        # --- 3. Kubernetes client ----------------------------------------
        await self._start_k8s_client()

        # --- 4. Pod index and mute ledger --------------------------------
        self._start_state()

        # --- 5. Notification dispatcher ----------------------------------
        self._start_notifications()

        # --- 6. Diagnostics and reconciler --------------------------------
        self._start_reconciler()

        # --- 7. Work queue and pod watcher --------------------------------
        await self._start_watcher()

        # --- 8. Controller -------------------------------------------------
        await self._start_controller()

        self._running = True
        self._log.info(
            "restartinfo started",
            workers=self.config.controller.workers,
            default_channel=self.config.slack.channel,
        )

    # ------------------------------------------------------------------
    # Component startup helpers
    # ------------------------------------------------------------------

    async def _start_k8s_client(self) -> None:
        """Initialise the kubernetes-asyncio client from in-cluster config or kubeconfig."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting k8s client")
        try:
            from kubernetes_asyncio import client as k8s_client
            from kubernetes_asyncio import config as k8s_config

            try:
                # load_incluster_config() is synchronous in kubernetes-asyncio
                k8s_config.load_incluster_config()
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config(config_file=self.config.kube.kubeconfig or None)
                self._log.info("k8s client configured from kubeconfig")

            self._api_client = k8s_client.ApiClient()
            self._core_v1 = k8s_client.CoreV1Api(self._api_client)
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    def _start_state(self) -> None:
        assert self.config is not None
        from restartinfo.cache import PodIndex
        from restartinfo.ledger import MuteLedger

        self._index = PodIndex()
        self._ledger = MuteLedger(mute_window=timedelta(seconds=self.config.slack.mute_seconds))

    def _start_notifications(self) -> None:
        assert self._log is not None
        assert self.config is not None
        try:
            from restartinfo.notifications import build_notification_dispatcher

            self._notifications = build_notification_dispatcher(self.config.slack)
        except Exception as exc:
            raise _ComponentError("notifications", exc) from exc

    def _start_reconciler(self) -> None:
        assert self.config is not None
        from restartinfo.analyst import Reconciler
        from restartinfo.collector import ClusterClient
        from restartinfo.diagnostics import DiagnosticsAssembler

        self._assembler = DiagnosticsAssembler(ClusterClient(self._core_v1))
        self._reconciler = Reconciler(
            index=self._index,
            ledger=self._ledger,
            assembler=self._assembler,
            dispatcher=self._notifications,
            filters=self.config.filters,
            cluster_name=self.config.cluster_name,
        )

    async def _start_watcher(self) -> None:
        assert self._log is not None
        assert self.config is not None
        try:
            from restartinfo.analyst import WorkQueue
            from restartinfo.collector import PodWatcher
            from restartinfo.scout import RestartFilter

            self._queue = WorkQueue()
            restart_filter = RestartFilter(self.config.filters, sink=self._queue.add)
            self._watcher = PodWatcher(self._core_v1, self._index, on_update=restart_filter.on_update)
            await self._watcher.start()
        except Exception as exc:
            raise _ComponentError("watcher", exc) from exc

    async def _start_controller(self) -> None:
        assert self._log is not None
        assert self.config is not None
        from restartinfo.analyst import Controller

        self._controller = Controller(
            self._queue,
            self._reconciler.reconcile,
            workers=self.config.controller.workers,
            max_retries=self.config.controller.max_retries,
            wait_synced=self._index.wait_synced,
        )
        await self._controller.run()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            # Never started
            return

        log = self._log or get_logger("app")
        log.info("restartinfo shutting down")

        self._running = False

        await self._stop_component("watcher", self._watcher)
        await self._stop_component("controller", self._controller)
        await self._stop_component("notifications", self._notifications)
        await self._stop_k8s_client()
        self._watcher = None
        self._controller = None
        self._notifications = None

        log.info("restartinfo stopped")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))

    async def _stop_k8s_client(self) -> None:
        """Close the kubernetes-asyncio ApiClient connection pool."""
        if self._api_client is None:
            return
        log = self._log or get_logger("app")
        try:
            await self._api_client.close()
        except Exception as exc:
            log.debug("k8s client close raised (non-fatal)", error=str(exc))
        self._api_client = None


def _restartinfo_version() -> str:
    from restartinfo import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = RestartInfoApp()
    loop = asyncio.get_running_loop()

    shutdown_task: asyncio.Task[None] | None = None

    def _request_shutdown() -> None:
        nonlocal shutdown_task
        if shutdown_task is not None:
            return
        shutdown_task = asyncio.create_task(app.stop(), name="shutdown")

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        while app._running:
            await asyncio.sleep(1)
        if shutdown_task is not None:
            await shutdown_task
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app._running:
            await app.stop()


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())
