"""In-memory repositories: the canonical event map with its local-day index,
and the outstanding platform notification handles per event."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from alarmcal.domain.events import (
    DayIndexRebuilt,
    EventAdded,
    EventBus,
    EventRemoved,
    EventUpdated,
)
from alarmcal.domain.models import Event, EventInput, EventPatch
from alarmcal.services import timeutil
from alarmcal.services.overlap import find_overlapping

logger = logging.getLogger(__name__)


def local_day_keys(event: Event, zone) -> list[str]:
    """Every local day key whose ``[00:00, 24:00)`` window the event overlaps."""
    keys: list[str] = []
    day = timeutil.start_of_day(event.start_at, zone)
    while day < event.end_at:
        keys.append(timeutil.day_key(day, zone))
        day = timeutil.start_of_day(timeutil.add_days(day, 1, zone), zone)
    return keys


class EventStore:
    """Owns the canonical events and the derived ``YYYY-MM-DD -> [id]`` index.

    The index is rebuilt wholesale after every mutation, against the
    timezone it was last built for. Unknown ids are silent no-ops.
    """

    def __init__(self, bus: EventBus | None = None, tz_name: str | None = None) -> None:
        self._bus = bus
        self._store: dict[str, Event] = {}
        self._index: dict[str, list[str]] = {}
        self._indexed_tz: str | None = tz_name

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, data: EventInput) -> str:
        event = Event(**data.model_dump(exclude_none=True))
        self._store[event.id] = event
        self.rebuild_index(self._indexed_tz)
        self._publish(EventAdded(event_id=event.id))
        return event.id

    def update(self, event_id: str, patch: EventPatch) -> Event | None:
        current = self._store.get(event_id)
        if current is None:
            return None
        merged = {**current.model_dump(), **patch.model_dump(exclude_unset=True), "id": event_id}
        # Re-validate so the interval is normalized against the patched values.
        updated = Event.model_validate(merged)
        self._store[event_id] = updated
        self.rebuild_index(self._indexed_tz)
        self._publish(
            EventUpdated(event_id=event_id, start_changed=updated.start_at != current.start_at)
        )
        return updated

    def remove(self, event_id: str) -> bool:
        if self._store.pop(event_id, None) is None:
            return False
        self.rebuild_index(self._indexed_tz)
        self._publish(EventRemoved(event_id=event_id))
        return True

    def load(self, events: list[Event], tz_name: str | None = None) -> None:
        """Replace the whole map (rehydration) and rebuild the index."""
        self._store = {e.id: e for e in events}
        self.rebuild_index(tz_name or self._indexed_tz)

    # ------------------------------------------------------------------
    # Index
    # ------------------------------------------------------------------

    def rebuild_index(self, tz_name: str | None = None) -> dict[str, list[str]]:
        name = tz_name or timeutil.current_time_zone()
        zone = timeutil.local_zone(name)
        index: dict[str, list[str]] = {}
        for event in self._store.values():
            for key in local_day_keys(event, zone):
                index.setdefault(key, []).append(event.id)
        for ids in index.values():
            ids.sort(key=lambda eid: self._store[eid].start_at)
        self._index = index
        self._indexed_tz = name
        logger.debug(f"Rebuilt day index for {len(self._store)} events in {name}")
        self._publish(DayIndexRebuilt(timezone=name, day_count=len(index)))
        return index

    def ensure_index(self, tz_name: str | None = None) -> None:
        """Rebuild if the index was built for a different zone than *tz_name*."""
        name = tz_name or timeutil.current_time_zone()
        if name != self._indexed_tz:
            logger.info(f"Timezone changed {self._indexed_tz} -> {name}, rebuilding index")
            self.rebuild_index(name)

    @property
    def index(self) -> dict[str, list[str]]:
        return {key: list(ids) for key, ids in self._index.items()}

    @property
    def last_indexed_tz(self) -> str | None:
        return self._indexed_tz

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, event_id: str) -> Event | None:
        return self._store.get(event_id)

    def list_all(self) -> list[Event]:
        return list(self._store.values())

    def get_events_by_local_day(
        self, day: date | datetime, tz_name: str | None = None
    ) -> list[Event]:
        """Events overlapping a local day, ordered by start.

        A ``datetime`` is mapped to its local day in the indexed zone; a
        ``date`` is used as is.
        """
        if tz_name is not None or self._indexed_tz is None:
            self.ensure_index(tz_name)
        key = timeutil.day_key(day, self._indexed_tz)
        return [self._store[eid] for eid in self._index.get(key, [])]

    def get_events_in_range(self, start: datetime, end: datetime) -> list[Event]:
        """Events overlapping ``[start, end)``; naive bounds are read as UTC."""
        start = timeutil.to_utc_instant(start, timezone.utc)
        end = timeutil.to_utc_instant(end, timezone.utc)
        return find_overlapping(start, end, self._store.values())

    def _publish(self, event: object) -> None:
        if self._bus is not None:
            self._bus.publish(event)


class ReminderHandleRepository:
    """Platform notification handles currently outstanding for each event.

    An event with no outstanding handles has no entry.
    """

    def __init__(self) -> None:
        self._handles: dict[str, list[str]] = {}

    def get(self, event_id: str) -> list[str]:
        return list(self._handles.get(event_id, []))

    def replace(self, event_id: str, handles: list[str]) -> None:
        if handles:
            self._handles[event_id] = list(handles)
        else:
            self._handles.pop(event_id, None)

    def pop(self, event_id: str) -> list[str]:
        return self._handles.pop(event_id, [])

    def snapshot(self) -> dict[str, list[str]]:
        return {eid: list(handles) for eid, handles in self._handles.items()}

    def restore(self, handles: dict[str, list[str]]) -> None:
        self._handles = {eid: list(h) for eid, h in handles.items() if h}
