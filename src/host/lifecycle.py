"""
Lifecycle Controller for hostbus.

Purpose
-------
Wires the EventBus and the StagedLoader to a host's lifecycle: runs the
bootstrap phase right away, waits for the host's one-time readiness signal,
then forwards host sources into the bus and runs the runtime phase.

Responsibilities
----------------
- Exactly-once initialization (idempotent `initialize()`)
- Fatal-signal guard: cancel the termination, log it, emit a shutdown event
- Readiness latch: attach host sources, emit the readiness event, trigger
  the runtime phase, all on the first delivery only
- Track the phase loads it spawned so callers can wait for them

Non-Responsibilities
--------------------
- Dispatch semantics (handled by EventBus)
- Load semantics (handled by StagedLoader)
- Producing host signals (handled by the host or `src.host.sources`)

Architecture Notes
------------------
- Phase runs are fire-and-forget from the caller's perspective; they are
  tracked background tasks when a loop is running.
- Every host-facing callback is fault-isolated; nothing raised inside it
  reaches the host.
"""

from __future__ import annotations

import time
from typing import Any, Callable, List, Optional

from src.core.config.manager import ConfigManager
from src.core.event.bus import EventBus
from src.core.event.scheduler import BackgroundTasks
from src.core.loader import Phase, StagedLoader
from src.core.logging.logger import get_logger
from src.host.sources import HostBindings

logger = get_logger(__name__)


class LifecycleController:
    """
    Two-phase startup coordinator.

    Examples
    --------
    >>> host = HostBindings.in_process("player.join")
    >>> controller = LifecycleController(bus, loader, host)
    >>> controller.initialize()
    True
    >>> host.ready.fire({"uptime": 0})
    >>> await controller.wait_until_loaded()
    """

    def __init__(
        self,
        bus: EventBus,
        loader: StagedLoader,
        host: Optional[HostBindings] = None,
        config_manager: Any = None,
    ) -> None:
        """
        Initialize the controller. Nothing is subscribed until `initialize()`.

        Parameters
        ----------
        bus : EventBus
            Bus that receives forwarded host events and the synthetic events.
        loader : StagedLoader
            Loader whose phases this controller triggers.
        host : HostBindings, optional
            Host sources. Defaults to no sources at all.
        config_manager : ConfigManager, optional
            Source of the synthetic event names.
        """
        self.bus = bus
        self.loader = loader
        self.host = host or HostBindings()
        self._config_manager = config_manager or ConfigManager

        self._initialized = False
        self._ready = False
        self._attached: List[str] = []
        self._unsubscribers: List[Callable[[], Any]] = []
        self._guard_faults = 0
        self._background = BackgroundTasks(logger, owner="lifecycle")

        self.ready_event: str = str(
            self._config_manager.get("core.lifecycle.ready_event", "host.ready")
        )
        self.shutdown_event: str = str(
            self._config_manager.get("core.lifecycle.shutdown_event", "host.shutdown")
        )

    # ------------------------------------------------------------------ #
    # Initialization
    # ------------------------------------------------------------------ #

    def initialize(self) -> bool:
        """
        Start the lifecycle. Only the first call has any effect.

        Returns
        -------
        bool:
            True on the first call, False on every later call.
        """
        if self._initialized:
            logger.debug("LifecycleController already initialized")
            return False
        self._initialized = True

        logger.info(
            "Initializing lifecycle",
            extra={
                "ready_event": self.ready_event,
                "shutdown_event": self.shutdown_event,
                "host_sources": list(self.host.sources),
            },
        )

        self._install_fatal_guard()
        self._spawn_phase(Phase.BOOTSTRAP)
        self._subscribe_ready()
        return True

    def _spawn_phase(self, phase: Phase) -> None:
        self._background.spawn(self._run_phase(phase), name=f"phase:{phase.value}")

    async def _run_phase(self, phase: Phase) -> None:
        try:
            await self.loader.run_phase(phase)
        except Exception as exc:
            logger.error(
                "Phase run failed",
                extra={
                    "phase": phase.value,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )

    # ------------------------------------------------------------------ #
    # Readiness
    # ------------------------------------------------------------------ #

    def _subscribe_ready(self) -> None:
        subscribe = getattr(self.host.ready, "subscribe", None)
        if not callable(subscribe):
            logger.warning(
                "Host readiness source unavailable; runtime phase waits for handle_ready()"
            )
            return

        try:
            self._remember(subscribe(self.handle_ready))
        except Exception as exc:
            logger.error(
                "Failed to subscribe to host readiness",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )

    def handle_ready(self, payload: Any = None) -> None:
        """
        React to the host's readiness signal. Repeats are ignored.

        Attaches host sources, emits the readiness event with `payload` and
        triggers the runtime phase. Never raises to the host.
        """
        if self._ready:
            logger.debug("Repeated host readiness ignored")
            return
        self._ready = True

        try:
            self._attach_sources()
            self.bus.emit(self.ready_event, payload)
            self._spawn_phase(Phase.RUNTIME)
        except Exception as exc:
            logger.error(
                "Error in host readiness handler",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )

    def _attach_sources(self) -> None:
        for event_name, source in self.host.sources.items():
            subscribe = getattr(source, "subscribe", None)
            if not callable(subscribe):
                logger.debug(
                    "Host source unavailable, skipped",
                    extra={"event_name": event_name},
                )
                continue

            try:
                self._remember(subscribe(self._forwarder(event_name)))
            except Exception as exc:
                logger.warning(
                    "Failed to attach host source",
                    extra={
                        "event_name": event_name,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                continue

            self._attached.append(event_name)

        logger.info(
            "Host sources attached",
            extra={"attached": list(self._attached), "count": len(self._attached)},
        )

    def _forwarder(self, event_name: str) -> Callable[[Any], None]:
        def forward(payload: Any) -> None:
            self.bus.emit(event_name, payload)

        return forward

    # ------------------------------------------------------------------ #
    # Fatal-signal guard
    # ------------------------------------------------------------------ #

    def _install_fatal_guard(self) -> None:
        try:
            subscribe = getattr(self.host.fatal, "subscribe", None)
            if not callable(subscribe):
                logger.debug("No fatal signal exposed by host; guard not installed")
                return
            self._remember(subscribe(self._on_fatal))
        except Exception as exc:
            logger.warning(
                "Fatal-signal guard setup failed (non-fatal)",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )

    def _on_fatal(self, notice: Any) -> None:
        try:
            notice.cancel = True
        except Exception as exc:
            logger.error(
                "Failed to cancel fatal host signal",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )

        reason = getattr(notice, "reason", None) or "unknown"
        try:
            logger.warning(
                "Cancelled fatal host signal of type '%s'",
                reason,
                extra={"reason": str(reason)},
            )
        except Exception:
            self._guard_faults += 1

        try:
            self.bus.emit(
                self.shutdown_event,
                {
                    "original_signal": notice,
                    "timestamp": time.time(),
                    "is_watchdog_origin": True,
                },
            )
        except Exception as exc:
            logger.error(
                "Error emitting shutdown from fatal signal",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )

    # ------------------------------------------------------------------ #
    # Teardown & introspection
    # ------------------------------------------------------------------ #

    def _remember(self, unsubscribe: Any) -> None:
        if callable(unsubscribe):
            self._unsubscribers.append(unsubscribe)

    def close(self) -> None:
        """Detach from every host source this controller subscribed to."""
        unsubscribers, self._unsubscribers = self._unsubscribers, []
        for unsubscribe in unsubscribers:
            try:
                unsubscribe()
            except Exception as exc:
                logger.warning(
                    "Failed to detach host source",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                )
        self._attached.clear()

    async def wait_until_loaded(self) -> None:
        """Wait for every phase run spawned so far, plus immediate loads."""
        await self._background.wait_idle()
        await self.loader.wait_idle()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def attached_sources(self) -> List[str]:
        return list(self._attached)
