"""Conversions between UTC-stored instants and local calendar days.

Every helper works on the wall-clock fields of an instant in a given zone
(``None`` means the device zone) and returns a new timezone-aware datetime.
Wall times that do not exist in the zone (DST gaps) are moved forward.
"""

from __future__ import annotations

import logging
import os
from datetime import date, datetime, timedelta, timezone, tzinfo

from dateutil import tz
from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

SUNDAY = 0
MONDAY = 1


def current_time_zone() -> str:
    """Return the device's IANA zone name, or ``"UTC"`` if it can't be read."""
    try:
        name = os.environ.get("TZ", "").lstrip(":")
        if name and tz.gettz(name) is not None:
            return name
        target = os.path.realpath("/etc/localtime")
        if "zoneinfo/" in target:
            return target.split("zoneinfo/", 1)[1]
    except (OSError, ValueError) as e:
        logger.debug(f"Could not read device timezone: {e}")
    return "UTC"


def local_zone(name: str | None = None) -> tzinfo:
    """Resolve *name* to a tzinfo, falling back to the device zone, then UTC."""
    for candidate in (name, current_time_zone()):
        if not candidate:
            continue
        try:
            zone = tz.gettz(candidate)
        except ValueError:
            zone = None
        if zone is not None:
            return zone
        logger.warning(f"Unknown timezone {candidate!r}, falling back")
    return tz.UTC


def _zone(zone: tzinfo | str | None) -> tzinfo:
    if isinstance(zone, tzinfo):
        return zone
    return local_zone(zone)


def _localize(wall_clock: datetime, zone: tzinfo) -> datetime:
    return tz.resolve_imaginary(wall_clock.replace(tzinfo=zone))


def from_utc_instant(instant: datetime, zone: tzinfo | str | None = None) -> datetime:
    """Express a stored instant in local wall-clock time."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(_zone(zone))


def to_utc_instant(wall_clock: datetime, zone: tzinfo | str | None = None) -> datetime:
    """Turn a local wall-clock time into a UTC instant.

    Naive datetimes are read as wall-clock time in *zone*; aware ones are
    simply converted.
    """
    if wall_clock.tzinfo is None:
        wall_clock = _localize(wall_clock, _zone(zone))
    return wall_clock.astimezone(timezone.utc)


def start_of_day(instant: datetime, zone: tzinfo | str | None = None) -> datetime:
    z = _zone(zone)
    local = from_utc_instant(instant, z)
    return _localize(datetime(local.year, local.month, local.day), z)


def start_of_week(
    instant: datetime, week_starts_on: int = SUNDAY, zone: tzinfo | str | None = None
) -> datetime:
    """Local midnight of the first day of the week containing *instant*.

    ``week_starts_on`` is 0 for Sunday, 1 for Monday.
    """
    z = _zone(zone)
    day = start_of_day(instant, z)
    weekday = (day.weekday() + 1) % 7  # 0 = Sunday
    return add_days(day, -((weekday - week_starts_on + 7) % 7), z)


def start_of_month(instant: datetime, zone: tzinfo | str | None = None) -> datetime:
    z = _zone(zone)
    local = from_utc_instant(instant, z)
    return _localize(datetime(local.year, local.month, 1), z)


def add_days(instant: datetime, n: int, zone: tzinfo | str | None = None) -> datetime:
    """Shift by *n* calendar days keeping the local time of day."""
    z = _zone(zone)
    local = from_utc_instant(instant, z).replace(tzinfo=None)
    return _localize(local + timedelta(days=n), z)


def add_weeks(instant: datetime, n: int, zone: tzinfo | str | None = None) -> datetime:
    return add_days(instant, n * 7, zone)


def add_months(instant: datetime, n: int, zone: tzinfo | str | None = None) -> datetime:
    """Shift by *n* months; the day is clamped to the end of shorter months."""
    z = _zone(zone)
    local = from_utc_instant(instant, z).replace(tzinfo=None)
    return _localize(local + relativedelta(months=n), z)


def day_key(instant: datetime | date, zone: tzinfo | str | None = None) -> str:
    """Return the ``YYYY-MM-DD`` partition key of the local calendar day."""
    if not isinstance(instant, datetime):
        return instant.isoformat()
    return from_utc_instant(instant, zone).strftime("%Y-%m-%d")


def week_dates(
    instant: datetime, week_starts_on: int = SUNDAY, zone: tzinfo | str | None = None
) -> list[datetime]:
    z = _zone(zone)
    first = start_of_week(instant, week_starts_on, z)
    return [add_days(first, i, z) for i in range(7)]


def month_matrix(
    instant: datetime, week_starts_on: int = SUNDAY, zone: tzinfo | str | None = None
) -> list[datetime]:
    """The 42 local midnights (6 weeks) of a month grid containing *instant*."""
    z = _zone(zone)
    first = start_of_week(start_of_month(instant, z), week_starts_on, z)
    return [add_days(first, i, z) for i in range(42)]


def to_utc_iso(instant: datetime) -> str:
    return from_utc_instant(instant, timezone.utc).isoformat().replace("+00:00", "Z")


def parse_utc_iso(value: str) -> datetime:
    """Parse a stored ISO timestamp; naive values are taken as UTC."""
    return from_utc_instant(datetime.fromisoformat(value.replace("Z", "+00:00")), timezone.utc)
