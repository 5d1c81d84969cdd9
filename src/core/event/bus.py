"""
hostbus EventBus: in-process pub/sub with wildcard fan-out.

Purpose
-------
Provides the EventBus class that decouples a host runtime's lifecycle and
domain events from the application code reacting to them.

Responsibilities
----------------
- Register/unregister listeners per event name (plus the `"*"` wildcard)
- One-shot subscriptions that can never deliver twice
- Synchronous fan-out (`emit`) that never suspends
- Awaited fan-out (`emit_async`) returning one settled outcome per listener
- Error isolation (one failing listener never blocks the others)
- Metrics collection and introspection
- LogContext integration for structured logging

Design Decisions
----------------
- **Instance-based**: no module-level singleton; the ApplicationContext owns
  the process-wide bus and hands it out by reference
- **Snapshot delivery**: the delivery set is resolved once per pass, so a
  listener removed mid-pass still receives that pass
- **Wildcard extras get the event name**: a listener reached only through
  `"*"` is called `listener(payload, event_name)`, all others
  `listener(payload)`
- **Config-driven leak threshold**: `core.event.max_listeners` from
  ConfigManager, overridable per instance

Dependencies
------------
- src.core.logging.logger (structured logging)
- src.core.config.manager (ConfigManager for the leak threshold)
- src.core.exceptions (InvalidArgumentError for caller errors)
- src.core.event.registry (ListenerRegistry)
- src.core.event.scheduler (settle_all, BackgroundTasks)
- src.core.event.metrics (EventMetricsRecorder, EventMetrics)
- src.core.event.context (event_log_context)
"""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Awaitable, Dict, List, Optional, Type, Union

from src.core.config.manager import ConfigManager
from src.core.event.context import event_log_context
from src.core.event.errors import handle_listener_error
from src.core.event.metrics import EventMetrics, EventMetricsRecorder
from src.core.event.registry import Delivery, ListenerRegistry
from src.core.event.scheduler import BackgroundTasks, is_awaitable, settle_all
from src.core.event.types import (
    EventPayload,
    Listener,
    SettledResult,
    Unsubscribe,
    describe_listener,
)
from src.core.exceptions import InvalidArgumentError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_LISTENERS = 1000


class EventBus:
    """
    In-process event bus for hostbus.

    Thread Safety
    -------------
    Designed for single-threaded asyncio usage. All methods must be called from
    the same event loop. Registry mutations are atomic between awaits.

    Examples
    --------
    >>> bus = EventBus()
    >>> unsubscribe = bus.on("host.ready", on_ready)
    >>> bus.emit("host.ready", {"uptime": 3})
    >>> results = await bus.emit_async("host.ready", {"uptime": 3})
    >>> unsubscribe()
    """

    def __init__(
        self,
        registry: Optional[ListenerRegistry] = None,
        metrics: Optional[EventMetricsRecorder] = None,
        config_manager: Optional[Union[ConfigManager, Type[ConfigManager]]] = None,
        *,
        max_listeners: Optional[int] = None,
        enable_metrics: bool = True,
    ) -> None:
        """
        Initialize EventBus.

        Parameters
        ----------
        registry:
            Optional ListenerRegistry instance. Creates default if None.
        metrics:
            Optional EventMetricsRecorder. Creates default if None.
        config_manager:
            ConfigManager to read `core.event.max_listeners` from. Defaults to
            the process ConfigManager.
        max_listeners:
            Leak-warning threshold per event. Uses config if None.
        enable_metrics:
            Whether to collect metrics. Default True.
        """
        self._config_manager = config_manager or ConfigManager
        self._registry = registry or ListenerRegistry()
        self._metrics = metrics or EventMetricsRecorder()
        self._metrics_enabled = enable_metrics
        self._background = BackgroundTasks(logger, owner="event_bus")

        self._max_listeners = self._load_max_listeners(max_listeners)

        logger.debug(
            "EventBus initialized",
            extra={
                "metrics_enabled": self._metrics_enabled,
                "max_listeners": self._max_listeners,
            },
        )

    # ------------------------------------------------------------------ #
    # Configuration Loading
    # ------------------------------------------------------------------ #

    def _load_max_listeners(self, override: Optional[int]) -> int:
        """Resolve the leak threshold: override, then config, then default."""
        if override is not None:
            if isinstance(override, bool) or not isinstance(override, int) or override < 1:
                raise InvalidArgumentError(
                    "max_listeners", "must be a positive integer", override
                )
            return override

        try:
            return self._config_manager.get_int(
                "core.event.max_listeners", DEFAULT_MAX_LISTENERS, min_val=1
            )
        except Exception as exc:
            logger.warning(
                "Failed to load max_listeners from config, using default",
                extra={
                    "config_key": "core.event.max_listeners",
                    "default_value": DEFAULT_MAX_LISTENERS,
                    "error": str(exc),
                },
            )
            return DEFAULT_MAX_LISTENERS

    @property
    def max_listeners(self) -> int:
        return self._max_listeners

    # ------------------------------------------------------------------ #
    # Validation
    # ------------------------------------------------------------------ #

    @staticmethod
    def _validate_event(event_name: Any) -> None:
        if not isinstance(event_name, str):
            raise InvalidArgumentError("event", "must be a string", event_name)

    @staticmethod
    def _validate_listener(listener: Any) -> None:
        if not callable(listener):
            raise InvalidArgumentError("listener", "must be callable", listener)

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    def on(self, event_name: str, listener: Listener) -> Unsubscribe:
        """
        Register `listener` for `event_name`.

        Registering the same callable twice for the same event is a no-op.

        Parameters
        ----------
        event_name:
            Event name like "host.ready", or `"*"` for every event.
        listener:
            Callable taking the payload (and the event name when reached
            only through the wildcard). May return an awaitable.

        Returns
        -------
        Unsubscribe:
            Idempotent zero-argument callable removing exactly this pair.

        Raises
        ------
        InvalidArgumentError:
            If `event_name` is not a string or `listener` is not callable.

        Examples
        --------
        >>> unsubscribe = bus.on("player.join", on_player_join)
        >>> unsubscribe()
        >>> unsubscribe()  # harmless
        """
        self._validate_event(event_name)
        self._validate_listener(listener)

        added = self._registry.add(event_name, listener)
        if added:
            logger.debug(
                "EventBus: subscribed listener",
                extra={
                    "event_name": event_name,
                    "listener": describe_listener(listener),
                },
            )
            self._check_leak(event_name)

        return self._make_unsubscribe(event_name, listener)

    def once(self, event_name: str, listener: Listener) -> Unsubscribe:
        """
        Register `listener` to fire at most one time, then unsubscribe itself.

        The latch is set before the listener body runs, so a listener that
        re-emits the same event from inside itself is not delivered twice.

        Examples
        --------
        >>> bus.once("host.ready", announce)
        >>> bus.emit("host.ready", {})
        >>> bus.emit("host.ready", {})  # announce already gone
        """
        self._validate_event(event_name)
        self._validate_listener(listener)

        fired = False

        @functools.wraps(listener)
        def once_wrapper(*args: Any) -> Any:
            nonlocal fired
            if fired:
                return None
            fired = True
            try:
                return listener(*args)
            finally:
                self._registry.remove(event_name, once_wrapper, include_once=False)

        once_wrapper.__once_target__ = listener  # type: ignore[attr-defined]

        return self.on(event_name, once_wrapper)

    def off(
        self,
        event_name: Optional[str] = None,
        listener: Optional[Listener] = None,
    ) -> None:
        """
        Remove listeners.

        - `off()` (or `off(None, ...)`) clears the whole registry.
        - `off(event)` removes every listener of `event`.
        - `off(event, listener)` removes that pair (and any `once` wrapper
          registered for `listener`). Missing pairs are ignored.

        Raises
        ------
        InvalidArgumentError:
            If `event_name` is given and not a string, or `listener` is given
            and not callable.
        """
        if event_name is None:
            total = self._registry.clear_all()
            logger.debug(
                "EventBus: cleared all listeners",
                extra={"previous_listener_count": total},
            )
            return

        self._validate_event(event_name)

        if listener is None:
            removed = self._registry.remove_event(event_name)
            logger.debug(
                "EventBus: removed event listeners",
                extra={"event_name": event_name, "removed_count": removed},
            )
            return

        self._validate_listener(listener)
        if self._registry.remove(event_name, listener):
            logger.debug(
                "EventBus: unsubscribed listener",
                extra={
                    "event_name": event_name,
                    "listener": describe_listener(listener),
                },
            )

    def _make_unsubscribe(self, event_name: str, listener: Listener) -> Unsubscribe:
        def unsubscribe() -> None:
            self._registry.remove(event_name, listener, include_once=False)

        return unsubscribe

    def _check_leak(self, event_name: str) -> None:
        """Warn on the first listener past each multiple of the threshold."""
        count = self._registry.count(event_name)
        if count > self._max_listeners and (count - 1) % self._max_listeners == 0:
            logger.warning(
                "EventBus: possible listener leak detected",
                extra={
                    "event_name": event_name,
                    "listener_count": count,
                    "max_listeners": self._max_listeners,
                },
            )

    # ------------------------------------------------------------------ #
    # Emit API
    # ------------------------------------------------------------------ #

    def _resolve(self, event_name: str) -> List[Delivery]:
        deliveries = self._registry.resolve(event_name)
        if self._metrics_enabled:
            self._metrics.record_emit(event_name, listener_count=len(deliveries))
        return deliveries

    @staticmethod
    def _invoke(delivery: Delivery, event_name: str, payload: EventPayload) -> Any:
        if delivery.wildcard_only:
            return delivery.listener(payload, event_name)
        return delivery.listener(payload)

    def emit(self, event_name: str, payload: EventPayload = None) -> None:
        """
        Deliver `payload` synchronously to every matching listener.

        Listener exceptions are logged and never propagate. If a listener
        returns an awaitable it is scheduled as a background task on the
        running loop; with no running loop it is discarded with a warning.

        Examples
        --------
        >>> bus.emit("player.join", {"player": "ada"})
        """
        self._validate_event(event_name)

        with event_log_context(event_name, payload):
            deliveries = self._resolve(event_name)
            if not deliveries:
                logger.debug(
                    "EventBus: no listeners for event",
                    extra={"event_name": event_name},
                )
                return

            for delivery in deliveries:
                try:
                    result = self._invoke(delivery, event_name, payload)
                except Exception as exc:
                    self._report(event_name, delivery.listener, exc, stage="sync")
                    continue

                if is_awaitable(result):
                    self._schedule(event_name, delivery.listener, result)

    def _schedule(self, event_name: str, listener: Listener, awaitable: Awaitable[Any]) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            close = getattr(awaitable, "close", None)
            if callable(close):
                close()
            logger.warning(
                "EventBus: async listener result dropped, no running event loop",
                extra={
                    "event_name": event_name,
                    "listener": describe_listener(listener),
                },
            )
            return

        self._background.spawn(
            self._settle_background(event_name, listener, awaitable),
            name=f"emit:{event_name}",
        )

    async def _settle_background(
        self, event_name: str, listener: Listener, awaitable: Awaitable[Any]
    ) -> None:
        try:
            await awaitable
        except Exception as exc:
            self._report(event_name, listener, exc, stage="async")

    async def emit_async(
        self, event_name: str, payload: EventPayload = None
    ) -> List[SettledResult]:
        """
        Deliver `payload` to every matching listener and wait for all of them.

        Every listener is invoked; awaitable results are awaited through a
        settle-all join, so one rejection never short-circuits the others.

        Returns
        -------
        list[SettledResult]:
            One outcome per listener, in delivery order. Empty when no
            listener matches.

        Examples
        --------
        >>> results = await bus.emit_async("host.ready", {"uptime": 3})
        >>> [r.status for r in results]
        ['fulfilled', 'rejected']
        """
        self._validate_event(event_name)

        with event_log_context(event_name, payload):
            deliveries = self._resolve(event_name)
            if not deliveries:
                return []

            results = await settle_all(
                self._call_async(delivery, event_name, payload)
                for delivery in deliveries
            )

            for delivery, result in zip(deliveries, results):
                if not result.ok and result.reason is not None:
                    self._report(event_name, delivery.listener, result.reason, stage="async")

            return results

    async def _call_async(
        self, delivery: Delivery, event_name: str, payload: EventPayload
    ) -> Any:
        result = self._invoke(delivery, event_name, payload)
        if is_awaitable(result):
            return await result
        return result

    def _report(
        self, event_name: str, listener: Listener, exc: BaseException, *, stage: str
    ) -> None:
        handle_listener_error(
            logger=logger,
            event_name=event_name,
            listener=listener,
            exc=exc,
            metrics=self._metrics if self._metrics_enabled else None,
            stage=stage,
        )

    async def wait_idle(self) -> None:
        """Wait for awaitables returned to `emit` that are still running."""
        await self._background.wait_idle()

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def listeners(self, event_name: str) -> List[Listener]:
        """Listeners registered for `event_name`, in delivery order (copy)."""
        self._validate_event(event_name)
        return self._registry.listeners(event_name)

    def listener_count(self, event_name: str) -> int:
        self._validate_event(event_name)
        return self._registry.count(event_name)

    def event_names(self) -> List[str]:
        return self._registry.event_names()

    def clear_listeners(self, event_name: Optional[str] = None) -> None:
        self.off(event_name)

    def listeners_snapshot(self) -> Dict[str, List[Listener]]:
        """
        Copy of the whole registry.

        Mutating the returned mapping or its lists does not affect the bus.

        Examples
        --------
        >>> bus.listeners_snapshot()
        {'host.ready': [<function on_ready ...>], '*': [<function audit ...>]}
        """
        return self._registry.snapshot()

    # ------------------------------------------------------------------ #
    # Metrics
    # ------------------------------------------------------------------ #

    def get_metrics(self) -> Optional[EventMetrics]:
        """
        Return an immutable snapshot of current event metrics.

        Returns
        -------
        Optional[EventMetrics]:
            Metrics snapshot if metrics are enabled, None otherwise.
        """
        if not self._metrics_enabled:
            return None
        return self._metrics.snapshot(total_listeners=self._registry.total_count())

    def get_metrics_summary(self) -> dict[str, Any]:
        """
        Get a formatted metrics summary.

        Returns
        -------
        dict[str, Any]:
            See `EventMetrics.get_summary`. Empty when metrics are disabled.
        """
        metrics = self.get_metrics()
        if metrics is None:
            return {}
        return metrics.get_summary()
