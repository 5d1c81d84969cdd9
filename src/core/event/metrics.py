"""
EventMetrics and EventMetricsRecorder for the hostbus EventBus.

Purpose
-------
Provides metrics collection and reporting for the EventBus, giving visibility
into emissions, listener invocations and listener failures.

Responsibilities
----------------
- Record emissions by event name
- Record listener invocations and failures by event name
- Provide immutable snapshots of metrics
- Generate formatted metric summaries

Design Decisions
----------------
- **Immutable snapshots**: EventMetrics is frozen; mutations go through recorder
- **Defaultdict usage**: Simplifies counting without key existence checks
- **Listener total read live**: the recorder does not shadow the registry's
  count, the bus passes it in when taking a snapshot
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class EventMetrics:
    """
    Immutable snapshot of event bus metrics.

    Attributes
    ----------
    events_emitted:
        Mapping of event names to emission counts.
    listener_calls:
        Mapping of event names to listener invocation counts.
    listener_errors:
        Mapping of event names to listener failure counts.
    total_listeners:
        Total number of registered listeners when the snapshot was taken.

    Examples
    --------
    >>> metrics = EventMetrics(
    ...     events_emitted={"host.ready": 1},
    ...     listener_calls={"host.ready": 4},
    ...     listener_errors={"host.ready": 1},
    ...     total_listeners=4,
    ... )
    >>> metrics.get_summary()["error_rate"]
    25.0
    """

    events_emitted: dict[str, int] = field(default_factory=dict)
    listener_calls: dict[str, int] = field(default_factory=dict)
    listener_errors: dict[str, int] = field(default_factory=dict)
    total_listeners: int = 0

    def get_summary(self) -> dict[str, Any]:
        """
        Generate a formatted summary of metrics.

        Returns
        -------
        dict[str, Any]:
            Summary containing:
            - total_events_emitted: Sum of all emissions
            - events_by_type: Dict mapping event names to counts
            - total_listener_calls: Sum of all listener invocations
            - total_errors: Sum of all listener failures
            - errors_by_event: Dict mapping event names to failure counts
            - total_listeners: Listener count
            - error_rate: Percentage of listener calls that failed (0-100)
        """
        total_events = sum(self.events_emitted.values())
        total_calls = sum(self.listener_calls.values())
        total_errors = sum(self.listener_errors.values())

        error_rate = (total_errors / max(1, total_calls)) * 100.0

        return {
            "total_events_emitted": total_events,
            "events_by_type": dict(self.events_emitted),
            "total_listener_calls": total_calls,
            "total_errors": total_errors,
            "errors_by_event": dict(self.listener_errors),
            "total_listeners": self.total_listeners,
            "error_rate": round(error_rate, 2),
        }


class EventMetricsRecorder:
    """
    Mutable metrics recorder for EventBus.

    Thread Safety
    -------------
    Not thread-safe. Designed for single-threaded asyncio usage where all
    mutations occur on the same event loop.

    Examples
    --------
    >>> recorder = EventMetricsRecorder()
    >>> recorder.record_emit("host.ready", listener_count=2)
    >>> recorder.record_error("host.ready")
    >>> recorder.snapshot(total_listeners=2).listener_errors["host.ready"]
    1
    """

    def __init__(self) -> None:
        self._events_emitted: defaultdict[str, int] = defaultdict(int)
        self._listener_calls: defaultdict[str, int] = defaultdict(int)
        self._listener_errors: defaultdict[str, int] = defaultdict(int)

    def record_emit(self, event_name: str, *, listener_count: int = 0) -> None:
        """Record one emission delivered to `listener_count` listeners."""
        self._events_emitted[event_name] += 1
        if listener_count:
            self._listener_calls[event_name] += listener_count

    def record_error(self, event_name: str) -> None:
        self._listener_errors[event_name] += 1

    def reset(self) -> None:
        self._events_emitted.clear()
        self._listener_calls.clear()
        self._listener_errors.clear()

    def snapshot(self, *, total_listeners: int = 0) -> EventMetrics:
        """
        Return an immutable snapshot of current metrics.

        Creates new dict instances to prevent accidental mutation leaks.
        """
        return EventMetrics(
            events_emitted=dict(self._events_emitted),
            listener_calls=dict(self._listener_calls),
            listener_errors=dict(self._listener_errors),
            total_listeners=total_listeners,
        )
