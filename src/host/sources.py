"""
Host event sources for hostbus.

Purpose
-------
Defines the boundary between a hosting runtime and the event bus: what a
host event source looks like, an in-process implementation of one, and the
bridge from asyncio's unhandled-exception hook to a fatal-termination signal.

Responsibilities
----------------
- `EventSource`: structural protocol for anything with `subscribe(handler)`
- `HostSignal`: in-process subscribable signal with isolated handlers
- `TerminationNotice`: payload of a fatal signal, with a mutable `cancel`
- `HostBindings`: the readiness, fatal and named domain sources of one host
- `bridge_loop_exceptions`: route loop exception reports into a fatal signal

Design Decisions
----------------
- **Duck typing at the boundary**: sources are never required to subclass
  anything; a source without a callable `subscribe` is simply unavailable
- **Handlers isolated**: one failing handler never stops a signal's fan-out
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, runtime_checkable

from src.core.logging.logger import get_logger

logger = get_logger(__name__)

Handler = Callable[[Any], Any]


@runtime_checkable
class EventSource(Protocol):
    """Anything a host exposes that handlers can subscribe to."""

    def subscribe(self, handler: Handler) -> Any: ...


class HostSignal:
    """
    Minimal in-process event source.

    Handlers are called in subscription order with the fired payload. A
    handler raising is logged and does not prevent the remaining handlers.

    Examples
    --------
    >>> ready = HostSignal("ready")
    >>> unsubscribe = ready.subscribe(print)
    >>> ready.fire({"uptime": 0})
    {'uptime': 0}
    1
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: List[Handler] = []

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def fire(self, payload: Any = None) -> int:
        """Deliver `payload` to every handler; returns how many were called."""
        handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(payload)
            except Exception as exc:
                logger.error(
                    "Host signal handler failed",
                    extra={
                        "signal": self.name,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                    exc_info=True,
                )
        return len(handlers)

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    def __repr__(self) -> str:
        return f"HostSignal(name={self.name!r}, handlers={len(self._handlers)})"


@dataclass
class TerminationNotice:
    """
    Delivered by a fatal-termination signal.

    Setting `cancel` to True asks the host not to terminate.
    """

    reason: str = "unknown"
    cancel: bool = False
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class HostBindings:
    """
    The host sources a LifecycleController wires up.

    Attributes
    ----------
    ready:
        One-time readiness source. Optional: hosts without one call
        `LifecycleController.handle_ready()` themselves.
    fatal:
        Optional fatal-termination source delivering `TerminationNotice`-like
        objects.
    sources:
        Event name -> source. Each available source is forwarded to
        `EventBus.emit(name, payload)` once the host is ready.
    """

    ready: Optional[Any] = None
    fatal: Optional[Any] = None
    sources: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def in_process(cls, *event_names: str) -> "HostBindings":
        """
        Build bindings backed entirely by HostSignals.

        Examples
        --------
        >>> host = HostBindings.in_process("player.join", "player.leave")
        >>> host.sources["player.join"].fire({"player": "ada"})
        0
        """
        return cls(
            ready=HostSignal("ready"),
            fatal=HostSignal("fatal"),
            sources={name: HostSignal(name) for name in event_names},
        )


def bridge_loop_exceptions(
    loop: asyncio.AbstractEventLoop,
    fatal: HostSignal,
) -> Callable[[], None]:
    """
    Route `loop`'s unhandled-exception reports into `fatal`.

    Each report is wrapped in a TerminationNotice and fired. If no handler
    cancels the notice, the previously installed handler (or the loop's
    default handler) runs as usual.

    Returns
    -------
    Callable[[], None]:
        Restores the previous exception handler.
    """
    previous = loop.get_exception_handler()

    def handle(loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get("exception")
        reason = type(exc).__name__ if exc is not None else "unhandled_loop_error"
        notice = TerminationNotice(reason=reason, context=dict(context))

        fatal.fire(notice)

        if notice.cancel:
            return
        if previous is not None:
            previous(loop, context)
        else:
            loop.default_exception_handler(context)

    loop.set_exception_handler(handle)

    def restore() -> None:
        loop.set_exception_handler(previous)

    return restore
