"""
Event System for hostbus.

Purpose
-------
Provides the in-process EventBus and the settle-all primitives it shares with
the staged loader. There is no module-level bus; the ApplicationContext owns
one per process.
"""

from .bus import EventBus
from .context import event_log_context
from .metrics import EventMetrics, EventMetricsRecorder
from .registry import ListenerRegistry
from .scheduler import BackgroundTasks, settle_all
from .types import (
    FULFILLED,
    REJECTED,
    WILDCARD,
    EventPayload,
    Listener,
    SettledResult,
    Unsubscribe,
)

__all__ = [
    "EventBus",
    "ListenerRegistry",
    "EventMetrics",
    "EventMetricsRecorder",
    "BackgroundTasks",
    "settle_all",
    "SettledResult",
    "EventPayload",
    "Listener",
    "Unsubscribe",
    "WILDCARD",
    "FULFILLED",
    "REJECTED",
    "event_log_context",
]
