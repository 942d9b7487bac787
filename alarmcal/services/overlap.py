"""Interval overlap between events and a query window."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from alarmcal.domain.models import Event


def overlaps(event: Event, start: datetime, end: datetime) -> bool:
    """True if ``[event.start_at, event.end_at)`` intersects ``[start, end)``.

    Intervals that only touch at a boundary do not overlap.
    """
    return event.start_at < end and start < event.end_at


def find_overlapping(
    start: datetime,
    end: datetime,
    events: Iterable[Event],
) -> list[Event]:
    """Return the events intersecting ``[start, end)``, in iteration order."""
    return [event for event in events if overlaps(event, start, end)]
