"""Domain events emitted by the store, the pattern registry and the driver,
plus the in-process bus that carries them."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable

from pydantic import BaseModel

from alarmcal.domain.models import PatternKey


class EventAdded(BaseModel):
    event_id: str


class EventUpdated(BaseModel):
    """Fired after a patch was merged into an existing event."""

    event_id: str
    start_changed: bool = False


class EventRemoved(BaseModel):
    event_id: str


class DayIndexRebuilt(BaseModel):
    timezone: str
    day_count: int


class PatternSaved(BaseModel):
    key: PatternKey


class PatternReset(BaseModel):
    key: PatternKey


class PatternBound(BaseModel):
    """Fired when an event is (re-)bound to a pattern slot."""

    event_id: str
    key: PatternKey


class PatternUnbound(BaseModel):
    event_id: str


class RemindersScheduled(BaseModel):
    """Fired after the platform accepted reminders for an event."""

    event_id: str
    handles: list[str]


class RemindersCanceled(BaseModel):
    event_id: str
    handles: list[str]


class EventBus:
    """Publish/subscribe bus for domain events.

    Handlers are called synchronously in registration order; a handler
    subscribed to ``object`` receives every event.
    """

    def __init__(self) -> None:
        self._subscribers: dict[type, list[Callable[[Any], None]]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Callable[[Any], None]) -> None:
        self._subscribers[event_type].append(handler)

    def publish(self, event: Any) -> None:
        handlers = self._subscribers.get(type(event), []) + self._subscribers.get(object, [])
        for handler in handlers:
            handler(event)
