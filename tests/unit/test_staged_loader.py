"""
Unit tests for StagedLoader.

Tests registration, phase gates, exactly-once loading, cancellation,
specifier resolution and failure isolation.
"""

import asyncio
import logging

import pytest

from src.core.config.manager import ConfigManager
from src.core.exceptions import InvalidArgumentError, ModuleLoadError
from src.core.loader import (
    Phase,
    StagedLoader,
    import_module_loader,
    resolve_specifier,
)
from tests.conftest import RecordingLoad

pytestmark = pytest.mark.unit


class TestResolveSpecifier:
    """Test specifier validation and resolution."""

    def test_absolute_specifier_is_stripped(self):
        assert resolve_specifier("  plugins.audit ") == "plugins.audit"

    @pytest.mark.parametrize(
        "specifier,anchor,expected",
        [
            (".audit", "plugins", "plugins.audit"),
            ("..audit", "plugins.core", "plugins.audit"),
            (".", "plugins", "plugins"),
        ],
    )
    def test_relative_specifier_resolves_against_anchor(self, specifier, anchor, expected):
        assert resolve_specifier(specifier, anchor) == expected

    def test_relative_specifier_without_anchor(self):
        with pytest.raises(InvalidArgumentError):
            resolve_specifier(".audit")

    def test_relative_specifier_beyond_top_level(self):
        with pytest.raises(InvalidArgumentError):
            resolve_specifier("...audit", "plugins")

    @pytest.mark.parametrize("specifier", ["", "   ", None, 7, ["a"]])
    def test_invalid_specifiers(self, specifier):
        with pytest.raises(InvalidArgumentError):
            resolve_specifier(specifier)


class TestPhase:
    def test_from_value_accepts_members_and_strings(self):
        assert Phase.from_value(Phase.RUNTIME) is Phase.RUNTIME
        assert Phase.from_value(" Bootstrap ") is Phase.BOOTSTRAP

    def test_from_value_rejects_unknown(self):
        with pytest.raises(InvalidArgumentError):
            Phase.from_value("later")


class TestRegistration:
    """Test queueing and cancellation before any phase runs."""

    def test_register_queues_for_runtime_by_default(self, loader):
        loader.register_module("plugins.audit")

        assert loader.pending(Phase.RUNTIME) == ["plugins.audit"]
        assert loader.pending(Phase.BOOTSTRAP) == []

    def test_default_phase_from_config(self, recording_load):
        ConfigManager.override("core.loader.default_phase", "bootstrap")
        loader = StagedLoader(recording_load)

        loader.register_module("plugins.audit")

        assert loader.pending(Phase.BOOTSTRAP) == ["plugins.audit"]

    def test_invalid_default_phase_in_config_falls_back(self, recording_load, caplog):
        ConfigManager.override("core.loader.default_phase", "whenever")
        caplog.set_level(logging.WARNING, logger="src.core.loader")

        loader = StagedLoader(recording_load)
        loader.register_module("plugins.audit")

        assert loader.pending(Phase.RUNTIME) == ["plugins.audit"]
        assert any("default loader phase" in r.getMessage() for r in caplog.records)

    def test_register_validates_arguments(self, loader):
        with pytest.raises(InvalidArgumentError):
            loader.register_module("")
        with pytest.raises(InvalidArgumentError):
            loader.register_module("plugins.audit", "sometime")
        with pytest.raises(InvalidArgumentError):
            loader.register_module(".relative")

    def test_register_uses_anchor(self, recording_load):
        loader = StagedLoader(recording_load, anchor="plugins")

        loader.register_module(".audit")
        loader.register_module(".stats", anchor="extras")

        assert loader.pending() == ["plugins.audit", "extras.stats"]

    def test_cancel_removes_exactly_its_entry(self, loader):
        """Cancelling one of two identical registrations keeps the other."""
        cancel_first = loader.register_module("plugins.audit", Phase.BOOTSTRAP)
        loader.register_module("plugins.audit", Phase.BOOTSTRAP)

        cancel_first()
        cancel_first()

        assert loader.pending(Phase.BOOTSTRAP) == ["plugins.audit"]

    def test_register_many(self, loader):
        cancels = loader.register_many(["a", "b"], Phase.BOOTSTRAP)

        cancels[0]()

        assert loader.pending(Phase.BOOTSTRAP) == ["b"]


@pytest.mark.asyncio
class TestRunPhase:
    """Test batch loading of one phase."""

    async def test_phase_loads_each_module_once(self, loader, recording_load):
        """Registered before the phase, loaded exactly once; re-registering is a no-op load."""
        loader.register_module("a", Phase.BOOTSTRAP)

        report = await loader.run_phase(Phase.BOOTSTRAP)
        loader.register_module("a", Phase.BOOTSTRAP)
        await loader.wait_idle()

        assert recording_load.calls == ["a"]
        assert report.loaded == 1
        assert loader.is_loaded("a")

    async def test_gate_set_even_for_empty_batch(self, loader):
        report = await loader.run_phase("runtime")

        assert loader.phase_completed(Phase.RUNTIME)
        assert not loader.phase_completed(Phase.BOOTSTRAP)
        assert report.results == []

    async def test_duplicates_collapse(self, loader, recording_load):
        loader.register_module("a", Phase.BOOTSTRAP)
        loader.register_module("a", Phase.BOOTSTRAP)
        loader.register_module("b", Phase.BOOTSTRAP)

        report = await loader.run_phase(Phase.BOOTSTRAP)

        assert recording_load.calls == ["a", "b"]
        assert report.loaded == 2
        assert loader.pending() == []

    async def test_only_matching_phase_is_picked_up(self, loader, recording_load):
        loader.register_module("boot", Phase.BOOTSTRAP)
        loader.register_module("late", Phase.RUNTIME)

        await loader.run_phase(Phase.BOOTSTRAP)

        assert recording_load.calls == ["boot"]
        assert loader.pending() == ["late"]

    async def test_failure_does_not_abort_batch(self, caplog):
        """One failing module is recorded; the others still load; one summary is logged."""
        load = RecordingLoad(failing=("broken",))
        loader = StagedLoader(load)
        for name in ("a", "broken", "b"):
            loader.register_module(name, Phase.BOOTSTRAP)
        caplog.set_level(logging.INFO, logger="src.core.loader")

        report = await loader.run_phase(Phase.BOOTSTRAP)

        assert sorted(load.calls) == ["a", "b", "broken"]
        assert report.loaded == 2
        assert report.failed == 1

        failure = loader.load_results["broken"]
        assert failure.success is False
        assert failure.error_type == "ImportError"
        assert isinstance(failure.error, ModuleLoadError)

        summaries = [r for r in caplog.records if "module load(s) failed" in r.getMessage()]
        assert len(summaries) == 1
        assert summaries[0].levelno == logging.ERROR
        assert summaries[0].failed_count == 1

    async def test_failed_module_stays_loaded(self):
        """A failed load is not retried by later registrations."""
        load = RecordingLoad(failing=("broken",))
        loader = StagedLoader(load)
        loader.register_module("broken", Phase.BOOTSTRAP)

        await loader.run_phase(Phase.BOOTSTRAP)
        loader.register_module("broken", Phase.BOOTSTRAP)
        await loader.wait_idle()

        assert load.calls == ["broken"]

    async def test_async_load_capability_is_awaited(self):
        loaded = []

        async def load(specifier):
            await asyncio.sleep(0)
            loaded.append(specifier)

        loader = StagedLoader(load)
        loader.register_module("a", Phase.RUNTIME)

        report = await loader.run_phase(Phase.RUNTIME)

        assert loaded == ["a"]
        assert report.loaded == 1

    async def test_loads_run_concurrently(self):
        gate = asyncio.Event()

        async def load(specifier):
            if specifier == "waits":
                await gate.wait()
            else:
                gate.set()

        loader = StagedLoader(load)
        loader.register_module("waits", Phase.BOOTSTRAP)
        loader.register_module("releases", Phase.BOOTSTRAP)

        report = await asyncio.wait_for(loader.run_phase(Phase.BOOTSTRAP), timeout=1)

        assert report.loaded == 2

    async def test_registration_during_own_phase_loads_immediately(self):
        """The gate opens before the batch is awaited."""
        calls = []

        def load(specifier):
            calls.append(specifier)
            if specifier == "parent":
                loader.register_module("child", Phase.BOOTSTRAP)

        loader = StagedLoader(load)
        loader.register_module("parent", Phase.BOOTSTRAP)

        await loader.run_phase(Phase.BOOTSTRAP)
        await loader.wait_idle()

        assert calls == ["parent", "child"]
        assert loader.pending() == []

    async def test_late_registration_is_loaded_in_background(self, loader, recording_load):
        await loader.run_phase(Phase.RUNTIME)

        cancel = loader.register_module("late", Phase.RUNTIME)
        cancel()
        await loader.wait_idle()

        assert recording_load.calls == ["late"]
        assert loader.pending() == []

    async def test_run_phase_waits_for_modules_registered_during_it(self):
        loaded = []

        async def load(specifier):
            if specifier == "parent":
                loader.register_module("child", Phase.BOOTSTRAP)
            else:
                for _ in range(5):
                    await asyncio.sleep(0)
            loaded.append(specifier)

        loader = StagedLoader(load)
        loader.register_module("parent", Phase.BOOTSTRAP)

        report = await loader.run_phase(Phase.BOOTSTRAP)

        assert loaded == ["parent", "child"]
        assert report.loaded == 1
        assert loader.is_loaded("child")

    async def test_cancel_after_load_is_harmless(self, loader, recording_load):
        cancel = loader.register_module("a", Phase.BOOTSTRAP)
        await loader.run_phase(Phase.BOOTSTRAP)

        cancel()

        assert loader.is_loaded("a")
        assert loader.pending() == []

        loader.register_module("a", Phase.BOOTSTRAP)
        await loader.wait_idle()

        assert recording_load.calls == ["a"]
        assert loader.is_loaded("a")

    async def test_specifier_in_both_phases_loads_once(self, loader, recording_load):
        """Whichever phase runs first loads it; the other is a no-op."""
        loader.register_module("shared", Phase.BOOTSTRAP)
        loader.register_module("shared", Phase.RUNTIME)

        first = await loader.run_phase(Phase.BOOTSTRAP)
        second = await loader.run_phase(Phase.RUNTIME)

        assert recording_load.calls == ["shared"]
        assert first.loaded == 1
        assert second.skipped == 1

    async def test_cancelled_entry_is_not_loaded(self, loader, recording_load):
        cancel = loader.register_module("a", Phase.BOOTSTRAP)
        cancel()

        await loader.run_phase(Phase.BOOTSTRAP)

        assert recording_load.calls == []

    async def test_load_one_returns_none_when_already_loaded(self, loader):
        first = await loader.load_one("a")
        second = await loader.load_one("a")

        assert first.success is True
        assert second is None
        assert loader.loaded_specifiers == frozenset({"a"})

    async def test_default_capability_imports_modules(self):
        loader = StagedLoader()
        loader.register_module("json", Phase.BOOTSTRAP)
        loader.register_module("hostbus_missing_module_xyz", Phase.BOOTSTRAP)

        report = await loader.run_phase(Phase.BOOTSTRAP)

        assert report.loaded == 1
        assert report.failed == 1
        assert loader.load_results["hostbus_missing_module_xyz"].error_type == "ModuleNotFoundError"


class TestWithoutRunningLoop:
    """Test synchronous fallbacks."""

    def test_late_registration_loads_synchronously(self, loader, recording_load):
        asyncio.run(loader.run_phase(Phase.BOOTSTRAP))

        loader.register_module("late", Phase.BOOTSTRAP)

        assert recording_load.calls == ["late"]
        assert loader.is_loaded("late")

    def test_import_module_loader_returns_module(self):
        module = import_module_loader("json")

        assert module.__name__ == "json"
