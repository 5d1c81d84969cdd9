"""
Core Event Types for the hostbus EventBus.

Purpose
-------
Provides the type definitions shared by the dispatcher: event payloads, the
listener callable, the reserved wildcard name and the per-listener outcome of
a settle-all join.

Design Decisions
----------------
- **Listener as plain callable**: a listener is any callable, stored and
  compared by identity. Registering the same callable twice is a no-op.
- **Payload passed verbatim**: host payloads have host-defined shapes, so
  `EventPayload` is `Any` rather than a dict.
- **SettledResult with slots**: memory-efficient frozen record mirroring the
  "fulfilled / rejected" outcomes of a settle-all join.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

# Reserved event name matched by every emitted event.
WILDCARD = "*"

# Host payloads are passed through untouched.
EventPayload = Any

# Listeners are called `listener(payload)` or, when reached only through the
# wildcard, `listener(payload, event_name)`. They may return an awaitable.
Listener = Union[
    Callable[..., Any],
    Callable[..., Awaitable[Any]],
]

# Zero-argument capability returned by `on` / `once`.
Unsubscribe = Callable[[], None]

FULFILLED = "fulfilled"
REJECTED = "rejected"


@dataclass(slots=True, frozen=True)
class SettledResult:
    """
    Outcome of one listener (or one load) inside a settle-all join.

    Attributes
    ----------
    status:
        `"fulfilled"` or `"rejected"`.
    value:
        Return value of a fulfilled call (None for rejected ones).
    reason:
        Exception of a rejected call (None for fulfilled ones).

    Examples
    --------
    >>> SettledResult.fulfilled(42).ok
    True
    >>> SettledResult.rejected(ValueError("boom")).reason
    ValueError('boom')
    """

    status: str
    value: Any = None
    reason: Optional[BaseException] = None

    @classmethod
    def fulfilled(cls, value: Any) -> SettledResult:
        return cls(status=FULFILLED, value=value)

    @classmethod
    def rejected(cls, reason: BaseException) -> SettledResult:
        return cls(status=REJECTED, reason=reason)

    @property
    def ok(self) -> bool:
        return self.status == FULFILLED


def describe_listener(listener: Listener) -> str:
    """Stable, human-readable name for a listener in log records."""
    target = getattr(listener, "__wrapped__", listener)
    module = getattr(target, "__module__", None) or "unknown"
    qualname = getattr(target, "__qualname__", None) or getattr(
        target, "__name__", type(target).__name__
    )
    return f"{module}.{qualname}"
