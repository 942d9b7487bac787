"""FastAPI application: the HTTP face of a calendar session."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date, datetime, timezone

from fastapi import FastAPI, HTTPException, Request

from alarmcal.config import Settings, configure_logging, get_settings
from alarmcal.domain.models import (
    AlarmPattern,
    CreateEventRequest,
    DayView,
    Event,
    EventInput,
    EventPatch,
    EventReminders,
    Holiday,
    PatternInput,
    PatternKey,
    UpdateEventRequest,
)
from alarmcal.services import timeutil
from alarmcal.services.platform import InMemoryNotificationPlatform
from alarmcal.session import CalendarSession


def _session(request: Request) -> CalendarSession:
    return request.app.state.session


def _get_event_or_404(session: CalendarSession, event_id: str) -> Event:
    event = session.store.get(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def create_app(
    session: CalendarSession | None = None, settings: Settings | None = None
) -> FastAPI:
    settings = settings or (session.settings if session else get_settings())
    session = session or CalendarSession(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        if not session.ready:
            await session.load()
        yield

    app = FastAPI(title="Alarm Calendar", lifespan=lifespan)
    app.state.session = session

    # ── Events ────────────────────────────────────────────────────────

    @app.get("/events", response_model=list[Event])
    async def list_events(
        request: Request, start: datetime | None = None, end: datetime | None = None
    ) -> list[Event]:
        """Return all events, or those overlapping ``[start, end)`` when both are given."""
        s = _session(request)
        if start is not None and end is not None:
            return s.events_in_range(start, end)
        return s.store.list_all()

    @app.post("/events", response_model=Event)
    async def create_event(request: Request, body: CreateEventRequest) -> Event:
        data = EventInput(**body.model_dump(exclude={"pattern_key"}))
        return await _session(request).add_event(data, body.pattern_key)

    @app.get("/events/{event_id}", response_model=Event)
    async def get_event(request: Request, event_id: str) -> Event:
        return _get_event_or_404(_session(request), event_id)

    @app.patch("/events/{event_id}", response_model=Event)
    async def update_event(request: Request, event_id: str, body: UpdateEventRequest) -> Event:
        patch = EventPatch(**body.model_dump(exclude_unset=True, exclude={"pattern_key"}))
        updated = await _session(request).update_event(event_id, patch, body.pattern_key)
        if updated is None:
            raise HTTPException(status_code=404, detail="Event not found")
        return updated

    @app.delete("/events/{event_id}")
    async def delete_event(request: Request, event_id: str) -> dict:
        if not await _session(request).remove_event(event_id):
            raise HTTPException(status_code=404, detail="Event not found")
        return {"status": "deleted"}

    @app.get("/events/{event_id}/reminders", response_model=EventReminders)
    async def get_reminders(request: Request, event_id: str) -> EventReminders:
        s = _session(request)
        _get_event_or_404(s, event_id)
        return EventReminders(
            event_id=event_id,
            pattern_key=s.registry.binding_for(event_id),
            handles=s.handle_repo.get(event_id),
        )

    @app.post("/events/{event_id}/reschedule", response_model=EventReminders)
    async def reschedule(
        request: Request, event_id: str, pattern_key: PatternKey | None = None
    ) -> EventReminders:
        s = _session(request)
        _get_event_or_404(s, event_id)
        handles = await s.driver.reschedule_for_event(event_id, pattern_key)
        return EventReminders(
            event_id=event_id, pattern_key=s.registry.binding_for(event_id), handles=handles
        )

    @app.get("/days/{day}", response_model=list[Event])
    async def events_for_day(request: Request, day: date, tz: str | None = None) -> list[Event]:
        return _session(request).events_for_day(day, tz)

    @app.get("/days/{day}/holidays", response_model=list[Holiday])
    async def holidays_for_day(request: Request, day: date) -> list[Holiday]:
        return _session(request).holidays_for_day(day)

    @app.get("/weeks/{day}", response_model=dict[str, DayView])
    async def week_view(request: Request, day: date, tz: str | None = None) -> dict:
        return _session(request).week_view(day, tz)

    @app.get("/months/{day}", response_model=dict[str, DayView])
    async def month_view(request: Request, day: date, tz: str | None = None) -> dict:
        return _session(request).month_view(day, tz)

    # ── Patterns ──────────────────────────────────────────────────────

    @app.get("/patterns", response_model=list[AlarmPattern])
    async def list_patterns(request: Request) -> list[AlarmPattern]:
        return _session(request).registry.list_patterns()

    @app.put("/patterns/{key}", response_model=AlarmPattern)
    async def save_pattern(request: Request, key: PatternKey, body: PatternInput) -> AlarmPattern:
        s = _session(request)
        if not s.registry.is_editable(key):
            raise HTTPException(status_code=403, detail=f"Pattern {key} is not editable")
        saved = await s.save_pattern(key, body)
        return saved or s.registry.get(key)

    @app.delete("/patterns/{key}", response_model=AlarmPattern)
    async def reset_pattern(request: Request, key: PatternKey) -> AlarmPattern:
        s = _session(request)
        if not s.registry.is_editable(key):
            raise HTTPException(status_code=403, detail=f"Pattern {key} is not editable")
        return await s.reset_pattern(key)

    # ── Lifecycle ─────────────────────────────────────────────────────

    @app.post("/lifecycle/foreground")
    async def foreground(request: Request, tz: str | None = None) -> dict:
        """Called when the app returns to the foreground; re-checks the timezone."""
        s = _session(request)
        rebuilt = await s.on_foreground(tz)
        return {"timezone": s.store.last_indexed_tz, "rebuilt": rebuilt}

    @app.post("/tick")
    async def tick(request: Request, now: datetime | None = None) -> dict:
        """Deliver due notifications on the in-process platform.

        Pass *now* as a query param to control the simulated clock.
        """
        s = _session(request)
        current_time = datetime.now(timezone.utc)
        if now is not None:
            current_time = timeutil.to_utc_instant(now, timezone.utc)
        if not isinstance(s.platform, InMemoryNotificationPlatform):
            raise HTTPException(status_code=400, detail="Platform delivers on its own")
        fired = s.platform.fire_due(current_time)
        return {"time": current_time.isoformat(), "reminders_fired": fired}

    return app
