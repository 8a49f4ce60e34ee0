"""Lifecycle events fired by the application at fixed points."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Iterator, Optional


class EventType(IntEnum):
    AFTER_LOAD_CONFIGURE = 1
    BEFORE_START = 2
    BEFORE_LOAD_ROUTE = 3
    AFTER_LOAD_ROUTE = 4


EventHandle = Callable[[Any], None]


@dataclass
class Event:
    """A handler bound to one event type."""

    event_type: EventType
    handle: EventHandle

    def fire(self, app: Any) -> None:
        self.handle(app)


class EventRepository:
    """Holds at most one event per type, remembering registration order."""

    def __init__(self) -> None:
        self._events: dict[EventType, Event] = {}
        self._guard = threading.Lock()

    def add(self, event: Event) -> None:
        with self._guard:
            self._events[event.event_type] = event

    def get(self, event_type: EventType) -> Optional[Event]:
        with self._guard:
            return self._events.get(event_type)

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[EventType]:
        with self._guard:
            return iter(list(self._events))

    def fire(self, app: Any, event_type: EventType) -> None:
        event = self.get(event_type)
        if event is not None:
            event.fire(app)


events = EventRepository()


def register_event(event: Event) -> None:
    events.add(event)


def add_event(event_type: EventType, handle: EventHandle) -> None:
    register_event(Event(event_type, handle))


def fire(app: Any, event_type: EventType) -> None:
    events.fire(app, event_type)