"""Tests for application bootstrap and shutdown."""

from __future__ import annotations

import os
from unittest.mock import AsyncMock

import pytest

from restartinfo.app import RestartInfoApp, _ComponentError, main


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("RESTARTINFO_"):
            monkeypatch.delenv(key, raising=False)


class TestStartup:
    async def test_missing_webhook_is_component_error(self) -> None:
        app = RestartInfoApp()

        with pytest.raises(_ComponentError) as excinfo:
            await app.start()

        assert excinfo.value.component == "config"

    async def test_main_exits_non_zero_on_bad_config(self) -> None:
        with pytest.raises(SystemExit) as excinfo:
            await main()

        assert excinfo.value.code == 1


class TestShutdown:
    async def test_stop_never_started_is_noop(self) -> None:
        await RestartInfoApp().stop()

    async def test_stop_order_and_error_isolation(self) -> None:
        app = RestartInfoApp()
        app._running = True
        order: list[str] = []

        def _component(name: str, fail: bool = False) -> AsyncMock:
            component = AsyncMock()

            async def _stop() -> None:
                order.append(name)
                if fail:
                    raise RuntimeError(f"{name} failed")

            component.stop = _stop
            return component

        app._watcher = _component("watcher")
        app._controller = _component("controller", fail=True)
        app._notifications = _component("notifications")
        app._api_client = AsyncMock()
        api_client = app._api_client

        await app.stop()

        assert order == ["watcher", "controller", "notifications"]
        api_client.close.assert_awaited_once()
        assert app._running is False
