"""
Chat log module.

This module holds the bounded, ordered log of chat events shown by the
front-ends.
"""

from collections import deque
from typing import Callable, Deque, Iterable, Iterator, List, Set

from panel_chat.constants import MAX_CHAT_HISTORY
from panel_chat.protocol_definitions import ChatEvent


class MessageStore:
    """
    Bounded chat log ordered by insertion.

    Live events go to the tail, history batches go in front of everything
    already held. Whenever the log grows past its capacity the oldest entries
    (at the head) are evicted, whichever path they arrived through.
    """

    def __init__(self, capacity: int = MAX_CHAT_HISTORY):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._events: Deque[ChatEvent] = deque()
        self._ids: Set[str] = set()
        self._listeners: List[Callable[[], None]] = []

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[ChatEvent]:
        return iter(self._events)

    @property
    def events(self) -> Deque[ChatEvent]:
        """The ordered log itself; callers must not mutate it."""
        return self._events

    def snapshot(self) -> List[ChatEvent]:
        """Copy of the ordered log."""
        return list(self._events)

    def add_listener(self, callback: Callable[[], None]):
        """Call ``callback`` after every mutation."""
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[], None]):
        """Stop notifying ``callback``."""
        if callback in self._listeners:
            self._listeners.remove(callback)

    def append_live(self, event: ChatEvent):
        """Add an event at the tail."""
        self._check_new_ids([event])
        self._events.append(event)
        self._ids.add(event.id)
        self._evict()
        self._notify()

    def prepend_history(self, batch: Iterable[ChatEvent]):
        """Insert a batch, in its order, before all currently held events."""
        batch = list(batch)
        if not batch:
            return
        self._check_new_ids(batch)
        self._events.extendleft(reversed(batch))
        self._ids.update(event.id for event in batch)
        self._evict()
        self._notify()

    def clear(self):
        """Drop every event (teardown)."""
        if not self._events:
            return
        self._events.clear()
        self._ids.clear()
        self._notify()

    def _check_new_ids(self, batch: List[ChatEvent]):
        seen = set()
        for event in batch:
            if event.id in self._ids or event.id in seen:
                raise ValueError(f"duplicate chat event id: {event.id}")
            seen.add(event.id)

    def _evict(self):
        while len(self._events) > self.capacity:
            evicted = self._events.popleft()
            self._ids.discard(evicted.id)

    def _notify(self):
        for callback in list(self._listeners):
            callback()
