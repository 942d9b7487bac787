"""Domain event handlers that persist state, wired up by the session."""

from __future__ import annotations

import logging

from alarmcal.domain.events import (
    EventAdded,
    EventBus,
    EventRemoved,
    EventUpdated,
    PatternBound,
    PatternReset,
    PatternSaved,
    PatternUnbound,
    RemindersCanceled,
    RemindersScheduled,
)
from alarmcal.repos.kv import (
    EVENT_STORE_KEY,
    NOTIFICATION_STORE_KEY,
    EventStoreSnapshot,
    KeyValueStore,
    NotificationStoreSnapshot,
    save_snapshot,
)
from alarmcal.repos.memory import EventStore, ReminderHandleRepository
from alarmcal.services.patterns import PatternRegistry

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Saves the event map and the notification state whenever they change."""

    def __init__(
        self,
        bus: EventBus,
        kv: KeyValueStore,
        store: EventStore,
        registry: PatternRegistry,
        handle_repo: ReminderHandleRepository,
    ) -> None:
        self.bus = bus
        self.kv = kv
        self.store = store
        self.registry = registry
        self.handle_repo = handle_repo
        self.suspended = False
        self._register()

    def _register(self) -> None:
        for event_type in (EventAdded, EventUpdated, EventRemoved):
            self.bus.subscribe(event_type, self.on_events_changed)
        for event_type in (
            PatternSaved,
            PatternReset,
            PatternBound,
            PatternUnbound,
            RemindersScheduled,
            RemindersCanceled,
        ):
            self.bus.subscribe(event_type, self.on_notifications_changed)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_events_changed(self, event: object) -> None:
        if self.suspended:
            return
        self.save_events()
        logger.debug(f"Persisted events after {type(event).__name__}")

    def on_notifications_changed(self, event: object) -> None:
        if self.suspended:
            return
        self.save_notifications()

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    def save_events(self) -> None:
        snapshot = EventStoreSnapshot(events={e.id: e for e in self.store.list_all()})
        save_snapshot(self.kv, EVENT_STORE_KEY, snapshot)

    def save_notifications(self) -> None:
        snapshot = NotificationStoreSnapshot(
            **self.registry.snapshot(),
            scheduled=self.handle_repo.snapshot(),
        )
        save_snapshot(self.kv, NOTIFICATION_STORE_KEY, snapshot)

    def flush(self) -> None:
        """Write both blobs once, after a batch of changes made while suspended."""
        self.save_events()
        self.save_notifications()
