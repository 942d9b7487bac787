"""Tests for the interval-overlap helper behind range queries."""

from datetime import datetime, timezone

from alarmcal.domain.models import Event
from alarmcal.services.overlap import find_overlapping, overlaps


def _at(day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(2025, 1, day, hour, minute, tzinfo=timezone.utc)


def _make_event(start: datetime, end: datetime, title: str = "Existing") -> Event:
    return Event(title=title, start_at=start, end_at=end)


def test_no_overlap():
    """Events that end before the window opens are not returned."""
    existing = [_make_event(_at(1, 8), _at(1, 9))]
    assert find_overlapping(start=_at(1, 10), end=_at(1, 11), events=existing) == []


def test_partial_overlap():
    """An event running into the window is returned."""
    existing = [_make_event(_at(1, 9), _at(1, 10, 30))]
    found = find_overlapping(start=_at(1, 10), end=_at(1, 11), events=existing)
    assert [e.start_at for e in found] == [_at(1, 9)]


def test_touching_intervals_do_not_overlap():
    event = _make_event(_at(1, 9), _at(1, 10))
    assert not overlaps(event, _at(1, 10), _at(1, 11))
    assert not overlaps(event, _at(1, 8), _at(1, 9))


def test_window_inside_multi_day_event():
    """A one-hour window in the middle of a three-day trip still finds the trip."""
    trip = _make_event(_at(1), _at(4), title="Trip")
    assert overlaps(trip, _at(2, 10), _at(2, 11))
    assert find_overlapping(_at(3, 23), _at(4), [trip]) == [trip]
    assert find_overlapping(_at(4), _at(5), [trip]) == []


def test_event_inside_window():
    lunch = _make_event(_at(1, 12), _at(1, 13), title="Lunch")
    assert overlaps(lunch, _at(1), _at(2))


def test_results_keep_iteration_order():
    late = _make_event(_at(1, 18), _at(1, 19), title="late")
    early = _make_event(_at(1, 8), _at(1, 9), title="early")
    outside = _make_event(_at(2, 8), _at(2, 9), title="outside")
    found = find_overlapping(_at(1), _at(2), [late, outside, early])
    assert [e.title for e in found] == ["late", "early"]
