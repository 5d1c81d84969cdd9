"""
ListenerRegistry: storage and lookup for EventBus listeners.

Purpose
-------
Holds the mapping from event name to the set of listeners registered for it,
and resolves the delivery set of one emitted event.

Responsibilities
----------------
- Store listeners per event name as an insertion-ordered set
- Remove single listeners, whole events, or everything
- Drop an event's entry as soon as its set becomes empty
- Resolve the de-duplicated delivery set (specific + wildcard) for an event
- Provide introspection (counts, event names, snapshots)

Design Decisions
----------------
- **dict as ordered set**: `dict[Listener, None]` gives identity-keyed
  membership (bound methods compare by their instance and function) and
  insertion-ordered iteration. Re-adding a present listener
  keeps its position; re-adding after removal moves it to the end.
- **No async/await**: the registry is only touched from the event loop thread
  and never suspends, so no locking is required.
- **Snapshot resolution**: `resolve()` copies the listeners it returns, so
  removals made while a dispatch pass is running do not affect that pass.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from src.core.event.types import WILDCARD, Listener


@dataclass(slots=True, frozen=True)
class Delivery:
    """One entry of a resolved delivery set."""

    listener: Listener
    wildcard_only: bool


class ListenerRegistry:
    """
    Registry mapping event names to insertion-ordered listener sets.

    Thread Safety
    -------------
    Not thread-safe. Designed for single-threaded asyncio usage.

    Examples
    --------
    >>> registry = ListenerRegistry()
    >>> registry.add("player.join", on_join)
    True
    >>> registry.add("player.join", on_join)
    False
    >>> registry.count("player.join")
    1
    """

    def __init__(self) -> None:
        self._events: Dict[str, Dict[Listener, None]] = {}

    # ------------------------------------------------------------------ #
    # Modification
    # ------------------------------------------------------------------ #

    def add(self, event_name: str, listener: Listener) -> bool:
        """
        Add `listener` to the set for `event_name`.

        Returns
        -------
        bool:
            True if the listener was added, False if it was already present.
        """
        listeners = self._events.setdefault(event_name, {})
        if listener in listeners:
            return False
        listeners[listener] = None
        return True

    def remove(self, event_name: str, listener: Listener, *, include_once: bool = True) -> bool:
        """
        Remove one listener from one event.

        With `include_once`, once-wrappers registered for `listener` are
        removed too, so that `off(event, original)` cancels a pending
        `once(event, original)`. Without it only `listener` itself goes.

        Returns
        -------
        bool:
            True if anything was removed.
        """
        listeners = self._events.get(event_name)
        if listeners is None:
            return False

        doomed = [
            registered
            for registered in listeners
            if registered == listener
            or (include_once and getattr(registered, "__once_target__", None) == listener)
        ]
        for registered in doomed:
            del listeners[registered]

        if not listeners:
            del self._events[event_name]

        return bool(doomed)

    def remove_event(self, event_name: str) -> int:
        """Remove every listener of `event_name`; returns how many were removed."""
        listeners = self._events.pop(event_name, None)
        return len(listeners) if listeners else 0

    def clear_all(self) -> int:
        """Remove all listeners and return the previous total count."""
        total = self.total_count()
        self._events.clear()
        return total

    # ------------------------------------------------------------------ #
    # Lookup
    # ------------------------------------------------------------------ #

    def resolve(self, event_name: str) -> List[Delivery]:
        """
        Resolve the delivery set for one emitted event.

        Specific listeners come first in insertion order, followed by the
        wildcard listeners not already present. A listener registered under
        both names appears once and is not flagged `wildcard_only`.

        Parameters
        ----------
        event_name:
            The event being emitted.

        Returns
        -------
        list[Delivery]:
            A snapshot; later registry changes do not affect it.
        """
        specific = self._events.get(event_name, {})
        deliveries = [Delivery(listener, False) for listener in specific]

        if event_name != WILDCARD:
            for listener in self._events.get(WILDCARD, {}):
                if listener not in specific:
                    deliveries.append(Delivery(listener, True))

        return deliveries

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def listeners(self, event_name: str) -> List[Listener]:
        return list(self._events.get(event_name, {}))

    def count(self, event_name: str) -> int:
        return len(self._events.get(event_name, {}))

    def total_count(self) -> int:
        return sum(len(listeners) for listeners in self._events.values())

    def event_names(self) -> List[str]:
        return list(self._events)

    def snapshot(self, event_name: Optional[str] = None) -> Dict[str, List[Listener]]:
        """Copy of the registry (or of one event) that callers may mutate freely."""
        if event_name is not None:
            return {event_name: self.listeners(event_name)} if event_name in self._events else {}
        return {name: list(listeners) for name, listeners in self._events.items()}
