"""
Host boundary and lifecycle wiring for hostbus.

Exports the in-process host adapters and the LifecycleController that ties
the EventBus and the StagedLoader to host readiness.
"""

from src.host.lifecycle import LifecycleController
from src.host.sources import (
    EventSource,
    HostBindings,
    HostSignal,
    TerminationNotice,
    bridge_loop_exceptions,
)

__all__ = [
    "LifecycleController",
    "EventSource",
    "HostBindings",
    "HostSignal",
    "TerminationNotice",
    "bridge_loop_exceptions",
]
