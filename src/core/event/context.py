"""
Event Log Context Helpers for the hostbus EventBus.

Purpose
-------
Enriches LogContext with event metadata for the duration of one dispatch
pass, so every record logged by the bus and by listeners called in that pass
carries the event name.

Design Decisions
----------------
- **Scoped, not sticky**: the context is restored when the pass ends, so a
  synchronous `emit` does not leak its event name into the caller's later logs
- **Minimal payload exposure**: only mapping keys are logged, never values
- **Best-effort context**: a failure building the context falls back to no
  enrichment rather than breaking dispatch
"""

from __future__ import annotations

from collections.abc import Mapping
from contextlib import AbstractContextManager, nullcontext
from typing import Any

from src.core.logging.logger import LogContext, get_log_context, get_logger

logger = get_logger(__name__)


def event_log_context(event_name: str, payload: Any) -> AbstractContextManager[Any]:
    """
    Build a context manager that layers event fields over the current LogContext.

    Parameters
    ----------
    event_name:
        The name of the event being emitted.
    payload:
        The event payload. Only keys of mapping payloads are recorded.

    Examples
    --------
    >>> with event_log_context("host.ready", {"uptime": 3}):
    ...     logger.info("dispatching")  # record carries event_name / event_keys
    """
    try:
        current = get_log_context()
        extra = {
            key: value
            for key, value in current.items()
            if key not in ("component", "operation", "correlation_id")
        }
        extra["event_name"] = event_name
        if isinstance(payload, Mapping):
            extra["event_keys"] = [str(key) for key in payload.keys()]

        return LogContext(
            component=current.get("component") or "event_bus",
            operation=current.get("operation") or "dispatch",
            correlation_id=current.get("correlation_id"),
            **extra,
        )
    except Exception as exc:
        logger.debug(
            "Failed to build event log context",
            extra={
                "event_name": event_name,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )
        return nullcontext()
