"""
Error Handling Helpers for the hostbus EventBus.

Purpose
-------
Provides centralized error handling utilities for listener execution,
ensuring consistent error logging, metrics recording, and error isolation.

Responsibilities
----------------
- Log listener failures (synchronous raises and asynchronous rejections)
  with full context
- Update metrics when errors occur
- Keep one failing listener from affecting the others

Design Decisions
----------------
- **Centralized error handling**: Single function for all listener errors
- **Full error context**: Logs event name, listener name and stack trace
- **Metrics integration**: Optionally updates error metrics

Dependencies
------------
- src.core.event.types (Listener, describe_listener)
- src.core.event.metrics (EventMetricsRecorder)
- logging.Logger (for structured logging)
"""

from __future__ import annotations

from logging import Logger
from typing import Optional

from src.core.event.metrics import EventMetricsRecorder
from src.core.event.types import Listener, describe_listener


def handle_listener_error(
    *,
    logger: Logger,
    event_name: str,
    listener: Listener,
    exc: BaseException,
    metrics: Optional[EventMetricsRecorder],
    stage: str = "sync",
) -> None:
    """
    Log a listener failure and update metrics.

    Parameters
    ----------
    logger:
        Logger instance to use for error logging.
    event_name:
        Name of the event that was being processed.
    listener:
        The listener that raised or whose awaitable rejected.
    exc:
        The exception that was raised.
    metrics:
        Optional EventMetricsRecorder to update. If None, metrics are skipped.
    stage:
        `"sync"` for a raise during the call, `"async"` for a rejection of
        the returned awaitable.

    Notes
    -----
    This function never raises.

    Examples
    --------
    >>> try:
    ...     listener(payload)
    ... except Exception as exc:
    ...     handle_listener_error(
    ...         logger=logger,
    ...         event_name="host.ready",
    ...         listener=listener,
    ...         exc=exc,
    ...         metrics=metrics_recorder,
    ...     )
    """
    if metrics is not None:
        metrics.record_error(event_name)

    logger.error(
        "EventBus listener error",
        extra={
            "event_name": event_name,
            "listener": describe_listener(listener),
            "stage": stage,
            "error": str(exc),
            "error_type": type(exc).__name__,
        },
        exc_info=(type(exc), exc, exc.__traceback__),
    )
