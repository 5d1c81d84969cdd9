"""
Unit tests for ListenerRegistry.

Tests ordered-set storage, removal, and delivery-set resolution.
"""

import pytest

from src.core.event.registry import Delivery, ListenerRegistry
from src.core.event.types import WILDCARD

pytestmark = pytest.mark.unit


def make_listener(name):
    def listener(payload, event=None):
        return name

    listener.__qualname__ = name
    return listener


@pytest.fixture
def registry():
    return ListenerRegistry()


class TestStorage:
    """Test add / remove bookkeeping."""

    def test_add_reports_whether_listener_was_new(self, registry):
        a = make_listener("a")

        assert registry.add("x", a) is True
        assert registry.add("x", a) is False
        assert registry.count("x") == 1

    def test_reinsertion_after_removal_moves_to_end(self, registry):
        a, b = make_listener("a"), make_listener("b")
        registry.add("x", a)
        registry.add("x", b)

        registry.remove("x", a)
        registry.add("x", a)

        assert registry.listeners("x") == [b, a]

    def test_remove_deletes_empty_event(self, registry):
        a = make_listener("a")
        registry.add("x", a)

        assert registry.remove("x", a) is True
        assert registry.event_names() == []

    def test_remove_unknown_pair(self, registry):
        assert registry.remove("x", make_listener("a")) is False

    def test_remove_matches_bound_methods_by_equality(self, registry):
        """A bound method fetched again still removes the registered one."""
        class Handler:
            def on_event(self, payload):
                return payload

        handler = Handler()
        registry.add("x", handler.on_event)

        assert registry.remove("x", handler.on_event) is True
        assert registry.total_count() == 0

    def test_remove_with_and_without_once_wrappers(self, registry):
        a = make_listener("a")
        wrapper = make_listener("once_a")
        wrapper.__once_target__ = a
        registry.add("x", a)
        registry.add("x", wrapper)

        assert registry.remove("x", a, include_once=False) is True
        assert registry.listeners("x") == [wrapper]

        registry.add("x", a)
        assert registry.remove("x", a) is True
        assert registry.event_names() == []

    def test_remove_event_and_clear_all_report_counts(self, registry):
        registry.add("x", make_listener("a"))
        registry.add("x", make_listener("b"))
        registry.add("y", make_listener("c"))

        assert registry.remove_event("x") == 2
        assert registry.remove_event("x") == 0
        assert registry.clear_all() == 1
        assert registry.event_names() == []


class TestResolve:
    """Test delivery-set resolution."""

    def test_specific_first_then_wildcard_extras(self, registry):
        a, b, w = make_listener("a"), make_listener("b"), make_listener("w")
        registry.add(WILDCARD, w)
        registry.add("x", a)
        registry.add("x", b)

        assert registry.resolve("x") == [
            Delivery(a, False),
            Delivery(b, False),
            Delivery(w, True),
        ]

    def test_listener_in_both_sets_resolved_once_as_specific(self, registry):
        a = make_listener("a")
        registry.add("x", a)
        registry.add(WILDCARD, a)

        assert registry.resolve("x") == [Delivery(a, False)]

    def test_resolve_returns_snapshot(self, registry):
        a, b = make_listener("a"), make_listener("b")
        registry.add("x", a)

        deliveries = registry.resolve("x")
        registry.add("x", b)
        registry.remove("x", a)

        assert deliveries == [Delivery(a, False)]

    def test_resolve_unknown_event(self, registry):
        assert registry.resolve("nothing") == []

    def test_snapshot_copies(self, registry):
        a = make_listener("a")
        registry.add("x", a)

        snapshot = registry.snapshot()
        snapshot["x"].append(make_listener("b"))

        assert registry.listeners("x") == [a]
        assert registry.snapshot("x") == {"x": [a]}
        assert registry.snapshot("missing") == {}
