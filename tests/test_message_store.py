#!/usr/bin/env python3
"""
Unit tests for the bounded chat log.

Tests:
- Live append and eviction at capacity
- History prepend order
- Listener notification
- Id uniqueness
"""

import unittest
from datetime import datetime

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from panel_chat.protocol_definitions import ChatEvent, EventKind
from panel_chat.chat.message_store import MessageStore


def make_event(name: str) -> ChatEvent:
    return ChatEvent(timestamp=datetime(2024, 1, 1), kind=EventKind.CHAT, body=name, id=name)


class TestMessageStore(unittest.TestCase):
    """Test cases for MessageStore."""

    def setUp(self):
        self.store = MessageStore()
        self.notifications = 0
        self.store.add_listener(self._on_mutated)

    def _on_mutated(self):
        self.notifications += 1

    def bodies(self):
        return [event.body for event in self.store]

    def test_append_live_order(self):
        for name in ("a", "b", "c"):
            self.store.append_live(make_event(name))
        self.assertEqual(self.bodies(), ["a", "b", "c"])
        self.assertEqual(self.notifications, 3)

    def test_live_eviction_drops_oldest(self):
        for i in range(501):
            self.store.append_live(make_event(f"e{i}"))

        self.assertEqual(len(self.store), 500)
        self.assertEqual(self.store.events[0].body, "e1")
        self.assertEqual(self.store.events[-1].body, "e500")

    def test_history_goes_before_existing(self):
        self.store.append_live(make_event("D"))
        self.store.prepend_history([make_event("A"), make_event("B"), make_event("C")])
        self.assertEqual(self.bodies(), ["A", "B", "C", "D"])

    def test_history_overflow_evicts_from_head(self):
        store = MessageStore(capacity=3)
        store.append_live(make_event("X"))
        store.prepend_history([make_event("A"), make_event("B"), make_event("C")])
        self.assertEqual([e.body for e in store], ["B", "C", "X"])

    def test_empty_history_is_noop(self):
        self.store.append_live(make_event("a"))
        self.store.prepend_history([])
        self.assertEqual(self.bodies(), ["a"])
        self.assertEqual(self.notifications, 1)

    def test_duplicate_id_rejected(self):
        self.store.append_live(make_event("a"))
        with self.assertRaises(ValueError):
            self.store.append_live(make_event("a"))
        with self.assertRaises(ValueError):
            self.store.prepend_history([make_event("b"), make_event("b")])
        self.assertEqual(self.bodies(), ["a"])

    def test_evicted_id_can_return(self):
        store = MessageStore(capacity=1)
        store.append_live(make_event("a"))
        store.append_live(make_event("b"))
        store.append_live(make_event("a"))
        self.assertEqual([e.body for e in store], ["a"])

    def test_listeners_in_order(self):
        calls = []
        store = MessageStore()
        store.add_listener(lambda: calls.append("render"))
        store.add_listener(lambda: calls.append("scroll"))
        store.append_live(make_event("a"))
        self.assertEqual(calls, ["render", "scroll"])

    def test_remove_listener(self):
        self.store.remove_listener(self._on_mutated)
        self.store.append_live(make_event("a"))
        self.assertEqual(self.notifications, 0)

    def test_clear(self):
        self.store.clear()
        self.assertEqual(self.notifications, 0)

        self.store.append_live(make_event("a"))
        self.store.clear()
        self.assertEqual(len(self.store), 0)
        self.assertEqual(self.notifications, 2)
        self.store.append_live(make_event("a"))

    def test_snapshot_is_copy(self):
        self.store.append_live(make_event("a"))
        snapshot = self.store.snapshot()
        self.store.append_live(make_event("b"))
        self.assertEqual([e.body for e in snapshot], ["a"])

    def test_invalid_capacity(self):
        with self.assertRaises(ValueError):
            MessageStore(capacity=0)


if __name__ == '__main__':
    unittest.main()
