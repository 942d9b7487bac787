"""HTTP-level tests for the FastAPI app."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from alarmcal.config import Settings
from alarmcal.main import create_app
from alarmcal.repos.kv import InMemoryKeyValueStore
from alarmcal.session import CalendarSession

_NOW = datetime(2025, 1, 10, 7, 0, tzinfo=timezone.utc)


@pytest.fixture()
def session():
    return CalendarSession(
        settings=Settings(timezone="UTC"),
        kv=InMemoryKeyValueStore(),
        now=lambda: _NOW,
        timezone_name=lambda: "UTC",
    )


@pytest.fixture()
def client(session):
    with TestClient(create_app(session)) as c:
        yield c


def _create(client, **overrides) -> dict:
    body = {
        "title": "Dentist",
        "start_at": "2025-01-11T09:00:00Z",
        "end_at": "2025-01-11T10:00:00Z",
    }
    body.update(overrides)
    resp = client.post("/events", json=body)
    assert resp.status_code == 200
    return resp.json()


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


def test_startup_loads_session(client, session):
    assert session.ready is True


def test_create_event_schedules_default_reminders(client):
    event = _create(client, color_id="sage")
    assert event["color_id"] == "green"

    resp = client.get(f"/events/{event['id']}/reminders")
    assert resp.status_code == 200
    reminders = resp.json()
    assert reminders["pattern_key"] == "default"
    assert len(reminders["handles"]) == 2


def test_create_event_without_end(client):
    event = _create(client, end_at=None)
    assert event["end_at"].startswith("2025-01-11T09:30:00")


def test_get_update_delete(client, session):
    event = _create(client)
    event_id = event["id"]
    assert client.get(f"/events/{event_id}").json()["title"] == "Dentist"

    resp = client.patch(f"/events/{event_id}", json={"title": "Dentist (moved)"})
    assert resp.status_code == 200
    assert resp.json()["title"] == "Dentist (moved)"
    assert resp.json()["start_at"].startswith("2025-01-11T09:00:00")

    resp = client.delete(f"/events/{event_id}")
    assert resp.json() == {"status": "deleted"}
    assert client.get(f"/events/{event_id}").status_code == 404
    assert client.delete(f"/events/{event_id}").status_code == 404
    assert session.platform.pending == {}


def test_patch_rejects_null_for_required_fields(client, session):
    event = _create(client)
    for field in ("title", "start_at"):
        resp = client.patch(f"/events/{event['id']}", json={field: None})
        assert resp.status_code == 422
    assert session.store.get(event["id"]).title == "Dentist"

    # nullable fields may still be cleared
    resp = client.patch(f"/events/{event['id']}", json={"memo": None, "end_at": None})
    assert resp.status_code == 200
    assert resp.json()["end_at"].startswith("2025-01-11T09:30:00")


def test_unknown_event_is_404(client):
    assert client.get("/events/missing").status_code == 404
    assert client.patch("/events/missing", json={"title": "x"}).status_code == 404
    assert client.get("/events/missing/reminders").status_code == 404
    assert client.post("/events/missing/reschedule").status_code == 404


def test_list_events_with_range(client):
    first = _create(client, title="Morning")
    _create(client, title="Tomorrow", start_at="2025-01-12T09:00:00Z", end_at="2025-01-12T10:00:00Z")

    assert len(client.get("/events").json()) == 2
    resp = client.get(
        "/events", params={"start": "2025-01-11T00:00:00Z", "end": "2025-01-12T00:00:00Z"}
    )
    assert [e["id"] for e in resp.json()] == [first["id"]]


def test_events_for_day_respects_timezone(client):
    event = _create(client, start_at="2025-01-11T20:00:00Z", end_at="2025-01-11T21:00:00Z")

    utc_day = client.get("/days/2025-01-11").json()
    assert [e["id"] for e in utc_day] == [event["id"]]

    tokyo_day = client.get("/days/2025-01-12", params={"tz": "Asia/Tokyo"}).json()
    assert [e["id"] for e in tokyo_day] == [event["id"]]
    assert client.get("/days/2025-01-11", params={"tz": "Asia/Tokyo"}).json() == []


def test_week_and_month_views(client):
    event = _create(client)

    # 2025-01-15 is a Wednesday; weeks start on Sunday by default
    week = client.get("/weeks/2025-01-15").json()
    assert list(week) == [f"2025-01-{d:02d}" for d in range(12, 19)]
    assert week["2025-01-12"] == {"holidays": [], "events": []}
    saturday = client.get("/weeks/2025-01-11").json()["2025-01-11"]
    assert saturday["events"][0]["id"] == event["id"]

    month = client.get("/months/2025-01-20").json()
    assert len(month) == 42
    assert next(iter(month)) == "2024-12-29"
    assert [e["id"] for e in month["2025-01-11"]["events"]] == [event["id"]]
    assert month["2025-01-01"]["holidays"] != []


def test_holidays_show_up_in_views(client):
    # Coming of Age Day falls on the second Monday of January
    week = client.get("/weeks/2025-01-15").json()
    assert [h["day"] for h in week["2025-01-13"]["holidays"]] == ["2025-01-13"]
    assert week["2025-01-14"]["holidays"] == []

    holidays = client.get("/days/2025-01-13/holidays").json()
    assert len(holidays) == 1
    assert holidays[0]["name"]
    assert client.get("/days/2025-01-14/holidays").json() == []


def test_holidays_can_be_turned_off():
    session = CalendarSession(
        settings=Settings(timezone="UTC", holiday_country=None),
        kv=InMemoryKeyValueStore(),
        now=lambda: _NOW,
        timezone_name=lambda: "UTC",
    )
    with TestClient(create_app(session)) as client:
        assert client.get("/days/2025-01-01/holidays").json() == []
        assert client.get("/weeks/2025-01-01").json()["2025-01-01"]["holidays"] == []


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------


def test_list_patterns(client):
    patterns = client.get("/patterns").json()
    assert [p["key"] for p in patterns] == ["default", "A", "B", "C", "D", "E", "F"]
    assert patterns[0]["offsets_min"] == [60, 5]


def test_default_pattern_is_not_editable(client):
    resp = client.put("/patterns/default", json={"offsets_min": [1]})
    assert resp.status_code == 403
    assert client.delete("/patterns/default").status_code == 403


def test_unknown_pattern_key_is_rejected(client):
    assert client.put("/patterns/Z", json={"offsets_min": [1]}).status_code == 422


def test_save_pattern_and_reschedule_with_it(client):
    resp = client.put(
        "/patterns/A", json={"name": "Focus", "offsets_min": [15, 15, 9999], "sound_id": "magical"}
    )
    assert resp.status_code == 200
    saved = resp.json()
    assert saved["offsets_min"] == [15, 4320]
    assert saved["registered"] is True

    event = _create(client)
    resp = client.post(f"/events/{event['id']}/reschedule", params={"pattern_key": "A"})
    assert resp.status_code == 200
    reminders = resp.json()
    assert reminders["pattern_key"] == "A"
    # 3 days before is already in the past
    assert len(reminders["handles"]) == 1


def test_create_event_with_pattern_key(client, session):
    client.put("/patterns/B", json={"offsets_min": [10, 20, 30]})
    event = _create(client, pattern_key="B")
    assert len(session.handle_repo.get(event["id"])) == 3
    assert session.registry.binding_for(event["id"]) == "B"


def test_reset_pattern(client):
    client.put("/patterns/C", json={"offsets_min": [10]})
    resp = client.delete("/patterns/C")
    assert resp.status_code == 200
    assert resp.json()["registered"] is False
    assert resp.json()["offsets_min"] == []


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def test_foreground_rebuilds_on_timezone_change(client):
    assert client.post("/lifecycle/foreground", params={"tz": "UTC"}).json() == {
        "timezone": "UTC",
        "rebuilt": False,
    }
    resp = client.post("/lifecycle/foreground", params={"tz": "Asia/Tokyo"}).json()
    assert resp == {"timezone": "Asia/Tokyo", "rebuilt": True}


def test_tick_delivers_due_reminders(client, session):
    _create(client)
    resp = client.post("/tick", params={"now": "2025-01-11T08:00:00Z"})
    assert resp.status_code == 200
    assert len(resp.json()["reminders_fired"]) == 1
    assert session.platform.delivered[0].body == "1時間前"
    assert len(session.platform.pending) == 1
