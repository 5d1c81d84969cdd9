"""
Unit tests for LifecycleController.

Tests exactly-once initialization, the readiness latch, host source
attachment and the fatal-signal guard.
"""

import asyncio
import logging

import pytest

from src.core.config.manager import ConfigManager
from src.core.event.bus import EventBus
from src.core.loader import Phase, StagedLoader
from src.host import lifecycle as lifecycle_module
from src.host.lifecycle import LifecycleController
from src.host.sources import HostBindings, HostSignal, TerminationNotice

pytestmark = pytest.mark.unit


class StubbornNotice:
    """Fatal payload whose cancel flag cannot be written."""

    reason = "hang"

    @property
    def cancel(self):
        return False

    @cancel.setter
    def cancel(self, value):
        raise AttributeError("read-only")


@pytest.mark.asyncio
class TestInitialize:
    """Test the initialization latch and bootstrap trigger."""

    async def test_initialize_is_idempotent(self, controller, host):
        assert controller.initialize() is True
        assert controller.initialize() is False

        assert host.ready.handler_count == 1
        assert host.fatal.handler_count == 1
        assert controller.is_initialized
        await controller.wait_until_loaded()

    async def test_bootstrap_modules_load_exactly_once(self, controller, loader, recording_load):
        """Registered before initialize(), loaded once; registering again loads nothing."""
        loader.register_module("a", Phase.BOOTSTRAP)

        controller.initialize()
        await controller.wait_until_loaded()
        loader.register_module("a", Phase.BOOTSTRAP)
        controller.initialize()
        await controller.wait_until_loaded()

        assert recording_load.calls == ["a"]
        assert loader.phase_completed(Phase.BOOTSTRAP)
        assert not loader.phase_completed(Phase.RUNTIME)

    async def test_runtime_modules_wait_for_readiness(self, controller, loader, recording_load, host):
        loader.register_module("late", Phase.RUNTIME)

        controller.initialize()
        await controller.wait_until_loaded()
        assert recording_load.calls == []

        host.ready.fire({"uptime": 1})
        await controller.wait_until_loaded()

        assert recording_load.calls == ["late"]


@pytest.mark.asyncio
class TestReadiness:
    """Test first-delivery-only readiness handling."""

    async def test_ready_emits_synthetic_event_once(self, controller, bus, host, mocker):
        listener = mocker.MagicMock()
        bus.on("host.ready", listener)
        controller.initialize()

        host.ready.fire({"uptime": 1})
        host.ready.fire({"uptime": 2})
        await controller.wait_until_loaded()

        listener.assert_called_once_with({"uptime": 1})
        assert controller.is_ready

    async def test_sources_forwarded_only_after_ready(self, controller, bus, host):
        received = []
        bus.on("player.join", received.append)
        controller.initialize()

        host.sources["player.join"].fire({"player": "early"})
        host.ready.fire(None)
        host.sources["player.join"].fire({"player": "ada"})
        await controller.wait_until_loaded()

        assert received == [{"player": "ada"}]
        assert controller.attached_sources == ["player.join", "player.leave"]

    async def test_unavailable_sources_are_skipped(self, bus, loader, caplog):
        class Broken:
            def subscribe(self, handler):
                raise RuntimeError("host refused")

        host = HostBindings(
            ready=HostSignal("ready"),
            sources={
                "no.subscribe": object(),
                "missing": None,
                "broken": Broken(),
                "ok": HostSignal("ok"),
            },
        )
        controller = LifecycleController(bus, loader, host)
        caplog.set_level(logging.WARNING, logger="src.host.lifecycle")

        controller.initialize()
        host.ready.fire({})
        await controller.wait_until_loaded()

        assert controller.attached_sources == ["ok"]
        assert any(r.getMessage() == "Failed to attach host source" for r in caplog.records)

    async def test_missing_ready_source_allows_manual_ready(self, bus, loader, recording_load, caplog):
        controller = LifecycleController(bus, loader, HostBindings())
        loader.register_module("late", Phase.RUNTIME)
        caplog.set_level(logging.WARNING, logger="src.host.lifecycle")

        controller.initialize()
        controller.handle_ready({"manual": True})
        await controller.wait_until_loaded()

        assert recording_load.calls == ["late"]
        assert any("readiness source unavailable" in r.getMessage() for r in caplog.records)

    async def test_ready_handler_failure_is_logged_not_raised(self, controller, bus, mocker, caplog):
        mocker.patch.object(bus, "emit", side_effect=RuntimeError("bus down"))
        caplog.set_level(logging.ERROR, logger="src.host.lifecycle")
        controller.initialize()

        controller.handle_ready({})
        await controller.wait_until_loaded()

        assert any(r.getMessage() == "Error in host readiness handler" for r in caplog.records)

    async def test_event_names_come_from_config(self, bus, loader, host, mocker):
        ConfigManager.override("core.lifecycle.ready_event", "world.load")
        listener = mocker.MagicMock()
        bus.on("world.load", listener)
        controller = LifecycleController(bus, loader, host)

        controller.initialize()
        host.ready.fire("payload")
        await controller.wait_until_loaded()

        listener.assert_called_once_with("payload")

    async def test_close_detaches_host(self, controller, host):
        controller.initialize()
        host.ready.fire({})
        await controller.wait_until_loaded()

        controller.close()

        assert host.ready.handler_count == 0
        assert host.fatal.handler_count == 0
        assert host.sources["player.join"].handler_count == 0
        assert controller.attached_sources == []


class TestFatalGuard:
    """Test the fatal-signal guard."""

    def test_fatal_signal_is_cancelled_and_shutdown_emitted(self, controller, bus, host, caplog):
        shutdowns = []
        bus.on("host.shutdown", shutdowns.append)
        caplog.set_level(logging.WARNING, logger="src.host.lifecycle")
        controller.initialize()
        notice = TerminationNotice(reason="hang")

        host.fatal.fire(notice)

        assert notice.cancel is True
        assert len(shutdowns) == 1
        payload = shutdowns[0]
        assert payload["original_signal"] is notice
        assert payload["is_watchdog_origin"] is True
        assert isinstance(payload["timestamp"], float)
        assert any("'hang'" in r.getMessage() for r in caplog.records)

    def test_cancel_failure_does_not_stop_shutdown(self, controller, bus, host, caplog):
        shutdowns = []
        bus.on("host.shutdown", shutdowns.append)
        caplog.set_level(logging.ERROR, logger="src.host.lifecycle")
        controller.initialize()

        host.fatal.fire(StubbornNotice())

        assert len(shutdowns) == 1
        assert any(r.getMessage() == "Failed to cancel fatal host signal" for r in caplog.records)

    def test_logging_failure_does_not_stop_shutdown(self, controller, bus, host, mocker):
        shutdowns = []
        bus.on("host.shutdown", shutdowns.append)
        controller.initialize()
        mocker.patch.object(lifecycle_module.logger, "warning", side_effect=RuntimeError("log down"))

        host.fatal.fire(TerminationNotice(reason="oom"))

        assert len(shutdowns) == 1

    def test_notice_without_reason(self, controller, bus, host):
        shutdowns = []
        bus.on("host.shutdown", shutdowns.append)
        controller.initialize()

        host.fatal.fire(object())

        assert len(shutdowns) == 1

    def test_no_fatal_source(self, bus, loader):
        controller = LifecycleController(bus, loader, HostBindings(ready=HostSignal("ready")))

        assert controller.initialize() is True


class TestWithoutRunningLoop:
    """Phase runs complete synchronously when no loop is running."""

    def test_phases_run_to_completion(self, recording_load):
        bus = EventBus()
        loader = StagedLoader(recording_load)
        host = HostBindings.in_process()
        controller = LifecycleController(bus, loader, host)
        loader.register_module("boot", Phase.BOOTSTRAP)
        loader.register_module("late", Phase.RUNTIME)

        controller.initialize()
        assert recording_load.calls == ["boot"]

        host.ready.fire({})
        assert recording_load.calls == ["boot", "late"]

        asyncio.run(controller.wait_until_loaded())

    def test_modules_registered_by_bootstrap_modules_finish_loading(self):
        loaded = []

        async def load(specifier):
            if specifier == "parent":
                loader.register_module("child", Phase.BOOTSTRAP)
            else:
                for _ in range(5):
                    await asyncio.sleep(0)
            loaded.append(specifier)

        loader = StagedLoader(load)
        controller = LifecycleController(EventBus(), loader, HostBindings.in_process())
        loader.register_module("parent", Phase.BOOTSTRAP)

        controller.initialize()

        assert loaded == ["parent", "child"]
        assert loader.is_loaded("child")
        assert loader.load_results["child"].success is True
