"""The calendar session: owns the store, registry, scheduler and driver for
one running app and exposes the operations UI handlers call."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Callable

from alarmcal.config import Settings
from alarmcal.domain.events import EventBus
from alarmcal.domain.handlers import HandlerRegistry
from alarmcal.domain.models import (
    AlarmPattern,
    DayView,
    Event,
    EventInput,
    EventPatch,
    Holiday,
    PatternInput,
    PatternKey,
)
from alarmcal.repos.kv import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    load_event_snapshot,
    load_notification_snapshot,
)
from alarmcal.repos.memory import EventStore, ReminderHandleRepository
from alarmcal.services import timeutil
from alarmcal.services.holidays import HolidayCalendar
from alarmcal.services.patterns import PatternRegistry
from alarmcal.services.platform import InMemoryNotificationPlatform, NotificationPlatform
from alarmcal.services.reminders import ReminderScheduler
from alarmcal.services.sync import SynchronizationDriver

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CalendarSession:
    """Explicitly constructed application state; one per running app (or test).

    ``await load()`` must complete before the session is used: it
    rehydrates persisted state, rebuilds the day index and reschedules
    every event so the outstanding notifications match the store.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        platform: NotificationPlatform | None = None,
        kv: KeyValueStore | None = None,
        now: Callable[[], datetime] = _utcnow,
        timezone_name: Callable[[], str] | None = None,
    ) -> None:
        self.settings = settings or Settings()
        if kv is None:
            if self.settings.storage_path is not None:
                kv = JsonFileKeyValueStore(self.settings.storage_path)
            else:
                kv = InMemoryKeyValueStore()
        self.kv = kv
        self.platform = platform or InMemoryNotificationPlatform()
        self.now = now
        self._timezone_name = timezone_name or (
            lambda: self.settings.timezone or timeutil.current_time_zone()
        )

        self.bus = EventBus()
        self.store = EventStore(bus=self.bus)
        self.registry = PatternRegistry(
            bus=self.bus,
            customization_enabled=lambda: self.settings.customization_enabled,
            fixed_keys=self.settings.fixed_pattern_keys,
        )
        self.handle_repo = ReminderHandleRepository()
        self.holidays = HolidayCalendar(self.settings.holiday_country)
        self.scheduler = ReminderScheduler(self.platform, self.handle_repo, bus=self.bus, now=now)
        self.driver = SynchronizationDriver(
            self.store, self.registry, self.scheduler, self.handle_repo, bus=self.bus
        )
        self.handlers = HandlerRegistry(
            self.bus, self.kv, self.store, self.registry, self.handle_repo
        )
        self.ready = False

    @property
    def timezone(self) -> str:
        return self._timezone_name()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def load(self) -> None:
        events = load_event_snapshot(self.kv)
        notifications = load_notification_snapshot(self.kv)

        # Nothing is written until rehydration and rescheduling are done.
        self.handlers.suspended = True
        try:
            self.store.load(list(events.events.values()), self.timezone)
            self.registry.restore(
                notifications.patterns, notifications.bindings, notifications.last_used_key
            )
            self.handle_repo.restore(notifications.scheduled)
            await self.driver.drop_orphans()
            await self.driver.reschedule_all()
        finally:
            self.handlers.suspended = False
        self.handlers.flush()
        self.ready = True
        logger.info(
            f"Session loaded: {len(events.events)} events, index built for {self.timezone}"
        )

    async def on_foreground(self, tz_name: str | None = None) -> bool:
        """Rebuild the day index if the device zone changed; returns True if it did."""
        name = tz_name or self.timezone
        if name == self.store.last_indexed_tz:
            return False
        self.store.ensure_index(name)
        return True

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def add_event(self, data: EventInput, pattern_key: PatternKey | None = None) -> Event:
        event_id = self.store.add(data)
        await self.driver.reschedule_for_event(event_id, pattern_key)
        return self.store.get(event_id)

    async def update_event(
        self, event_id: str, patch: EventPatch, pattern_key: PatternKey | None = None
    ) -> Event | None:
        updated = self.store.update(event_id, patch)
        if updated is None:
            return None
        await self.driver.reschedule_for_event(event_id, pattern_key)
        return updated

    async def remove_event(self, event_id: str) -> bool:
        return await self.driver.remove_event(event_id)

    def events_for_day(self, day: date | datetime, tz_name: str | None = None) -> list[Event]:
        return self.store.get_events_by_local_day(day, tz_name or self.timezone)

    def events_in_range(self, start: datetime, end: datetime) -> list[Event]:
        return self.store.get_events_in_range(start, end)

    def holidays_for_day(self, day: date) -> list[Holiday]:
        return self.holidays.holidays_on(day)

    def week_view(self, anchor: date, tz_name: str | None = None) -> dict[str, DayView]:
        """Holidays and events per local day for the week containing *anchor*."""
        name = tz_name or self.timezone
        days = timeutil.week_dates(
            self._local_midnight(anchor, name), self.settings.week_starts_on, name
        )
        return self._day_views(days, name)

    def month_view(self, anchor: date, tz_name: str | None = None) -> dict[str, DayView]:
        """Holidays and events per local day for the 6-week grid around *anchor*'s month."""
        name = tz_name or self.timezone
        days = timeutil.month_matrix(
            self._local_midnight(anchor, name), self.settings.week_starts_on, name
        )
        return self._day_views(days, name)

    def _day_views(self, days: list[datetime], tz_name: str) -> dict[str, DayView]:
        views: dict[str, DayView] = {}
        for day in days:
            key = timeutil.day_key(day, tz_name)
            views[key] = DayView(
                holidays=self.holidays.holidays_by_day_key(key),
                events=self.events_for_day(day, tz_name),
            )
        return views

    @staticmethod
    def _local_midnight(day: date, tz_name: str) -> datetime:
        return timeutil.to_utc_instant(datetime(day.year, day.month, day.day), tz_name)

    # ------------------------------------------------------------------
    # Patterns
    # ------------------------------------------------------------------

    async def save_pattern(self, key: PatternKey, data: PatternInput) -> AlarmPattern | None:
        saved = self.registry.save_pattern(key, data)
        if saved is not None and self.settings.eager_pattern_refresh:
            await self.driver.reschedule_bound_events(key)
        return saved

    async def reset_pattern(self, key: PatternKey) -> AlarmPattern:
        self.registry.reset_pattern(key)
        if self.settings.eager_pattern_refresh:
            await self.driver.reschedule_bound_events(key)
        return self.registry.get(key)
