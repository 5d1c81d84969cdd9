"""
Application Context (Kernel) - hostbus Infrastructure Orchestration
===================================================================

Purpose
-------
Owns the process-wide EventBus, StagedLoader and LifecycleController. It is
constructed once at process start and handed to collaborators by reference,
so there is no hidden module-level state.

Responsibilities
----------------
- Initialize ConfigManager (YAML + built-in defaults)
- Create the EventBus, the StagedLoader and the LifecycleController in
  dependency order
- Start the lifecycle exactly once
- Coordinate graceful shutdown in reverse order
- Report a status snapshot of the three components

Non-Responsibilities
--------------------
- Dispatch and load semantics (delegated to EventBus / StagedLoader)
- Producing host signals (delegated to the host)

Architecture Notes
------------------
Initialization Order:
    1. ConfigManager
    2. EventBus
    3. StagedLoader
    4. LifecycleController (requires both)

Shutdown Order (Reverse):
    1. LifecycleController.close() (detach host sources)
    2. Wait for in-flight loads and async listeners
    3. EventBus.off() (drop listeners)
"""

from __future__ import annotations

import time
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Optional

from src.core.config.manager import ConfigManager
from src.core.event.bus import EventBus
from src.core.loader import LoadCapability, StagedLoader
from src.core.logging.logger import get_logger, get_logging_health
from src.host.lifecycle import LifecycleController
from src.host.sources import HostBindings

logger = get_logger(__name__)


class ApplicationContext:
    """
    Kernel holding the single bus, loader and lifecycle of a process.

    Usage:
        context = ApplicationContext(HostBindings.in_process("player.join"))
        context.bus.on("host.ready", on_ready)
        context.loader.register_module("plugins.audit")
        context.initialize()
        ...
        await context.shutdown()
    """

    def __init__(
        self,
        host: Optional[HostBindings] = None,
        *,
        load: Optional[LoadCapability] = None,
        anchor: Optional[str] = None,
        config_dir: Optional[Path] = None,
        max_listeners: Optional[int] = None,
    ) -> None:
        """
        Build all components. Does not start the lifecycle; call initialize().

        Parameters
        ----------
        host : HostBindings, optional
            Host readiness, fatal and domain sources.
        load : callable, optional
            Module-load capability. Defaults to `importlib.import_module`.
        anchor : str, optional
            Package relative module specifiers resolve against.
        config_dir : Path, optional
            Directory of YAML config files. Defaults to `Config.CONFIG_DIR`.
        max_listeners : int, optional
            Per-event leak-warning threshold override.
        """
        start_time = time.perf_counter()

        if not ConfigManager.is_initialized():
            ConfigManager.initialize(config_dir)

        self._bus = EventBus(config_manager=ConfigManager, max_listeners=max_listeners)
        self._loader = StagedLoader(load, anchor=anchor, config_manager=ConfigManager)
        self._lifecycle = LifecycleController(
            self._bus,
            self._loader,
            host,
            config_manager=ConfigManager,
        )
        self._closed = False

        logger.info(
            "ApplicationContext created (%.2fms)",
            (time.perf_counter() - start_time) * 1000,
            extra={"config_files": ConfigManager.loaded_files()},
        )

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def initialize(self) -> bool:
        """Start the lifecycle. Returns False if it was already started."""
        return self._lifecycle.initialize()

    async def wait_until_loaded(self) -> None:
        await self._lifecycle.wait_until_loaded()

    async def shutdown(self) -> None:
        """
        Gracefully shut down in reverse dependency order.

        Safe to call more than once.
        """
        if self._closed:
            logger.debug("ApplicationContext already shut down")
            return
        self._closed = True

        logger.info("ApplicationContext shutdown started")

        self._lifecycle.close()

        try:
            await self._lifecycle.wait_until_loaded()
            await self._bus.wait_idle()
        except Exception as exc:
            logger.error(
                "Error waiting for in-flight work during shutdown",
                extra={
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )

        self._bus.off()
        logger.info("✓ Application context shutdown complete")

    # ========================================================================
    # PROPERTIES
    # ========================================================================

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def loader(self) -> StagedLoader:
        return self._loader

    @property
    def lifecycle(self) -> LifecycleController:
        return self._lifecycle

    def get_status(self) -> Dict[str, Any]:
        """
        Point-in-time status of the context's components.

        Returns:
            Dictionary with lifecycle flags, loader gates, bus metrics and
            log queue health.
        """
        return {
            "initialized": self._lifecycle.is_initialized,
            "ready": self._lifecycle.is_ready,
            "closed": self._closed,
            "attached_sources": self._lifecycle.attached_sources,
            "phases": {
                "bootstrap": self._loader.phase_completed("bootstrap"),
                "runtime": self._loader.phase_completed("runtime"),
            },
            "pending_modules": self._loader.pending(),
            "loaded_modules": sorted(self._loader.loaded_specifiers),
            "events": self._bus.get_metrics_summary(),
            "logging": asdict(get_logging_health()),
        }
