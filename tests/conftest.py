"""
Pytest Configuration and Fixtures for hostbus Tests
===================================================

Purpose
-------
Centralized test fixtures and configuration for the hostbus test suite.

Responsibilities
----------------
- Test environment variables (set before any `src` import reads them)
- Fresh EventBus / StagedLoader / host fixtures per test
- ConfigManager isolation between tests
- Recording load capability for loader and lifecycle tests

Architecture Notes
------------------
- Unit tests build components directly; nothing is shared between tests
- ConfigManager holds class-level state, so it is reset around every test
"""

from __future__ import annotations

import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("LOG_COLORS", "false")

from typing import Any, Generator, List  # noqa: E402

import pytest  # noqa: E402

from src.core.config.manager import ConfigManager  # noqa: E402
from src.core.event.bus import EventBus  # noqa: E402
from src.core.loader import StagedLoader  # noqa: E402
from src.host.lifecycle import LifecycleController  # noqa: E402
from src.host.sources import HostBindings  # noqa: E402


# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


@pytest.fixture(autouse=True)
def reset_config_manager() -> Generator[None, None, None]:
    """
    Reset ConfigManager class state around every test.

    Scope: function (autouse)
    """
    ConfigManager.reset()
    yield
    ConfigManager.reset()


# ============================================================================
# COMPONENT FIXTURES
# ============================================================================


class RecordingLoad:
    """
    Load capability that records every specifier it is asked to load.

    Specifiers listed in `failing` raise ImportError instead.
    """

    def __init__(self, failing: tuple[str, ...] = ()) -> None:
        self.calls: List[str] = []
        self.failing = set(failing)

    def __call__(self, specifier: str) -> Any:
        self.calls.append(specifier)
        if specifier in self.failing:
            raise ImportError(f"No module named '{specifier}'")
        return specifier


@pytest.fixture
def bus() -> EventBus:
    """
    Fresh EventBus.

    Scope: function
    """
    return EventBus()


@pytest.fixture
def recording_load() -> RecordingLoad:
    return RecordingLoad()


@pytest.fixture
def loader(recording_load: RecordingLoad) -> StagedLoader:
    """
    StagedLoader backed by a recording load capability.

    Scope: function
    """
    return StagedLoader(recording_load)


@pytest.fixture
def host() -> HostBindings:
    """
    In-process host with two domain sources.

    Scope: function
    """
    return HostBindings.in_process("player.join", "player.leave")


@pytest.fixture
def controller(bus: EventBus, loader: StagedLoader, host: HostBindings) -> LifecycleController:
    return LifecycleController(bus, loader, host)


@pytest.fixture
def mock_config_manager(mocker):
    """
    Mock ConfigManager for unit tests.

    Scope: function
    Uses: Unit tests that need to control configuration lookups
    """
    mock_config = mocker.MagicMock()
    mock_config.get = mocker.MagicMock(side_effect=lambda key, default=None: default)
    mock_config.get_int = mocker.MagicMock(return_value=1000)
    return mock_config
