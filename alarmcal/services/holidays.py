"""Public holidays looked up by local day key."""

from __future__ import annotations

import logging
from datetime import date

import holidays

from alarmcal.domain.models import Holiday

logger = logging.getLogger(__name__)


class HolidayCalendar:
    """Public holidays of one country, loaded one year at a time.

    ``country`` is an ISO 3166 code; an empty or unsupported code turns
    the calendar off and every lookup returns an empty list.
    """

    def __init__(self, country: str | None = "JP") -> None:
        self.country = country or None
        self._years: dict[int, holidays.HolidayBase] = {}
        if self.country is not None:
            try:
                holidays.country_holidays(country)
            except NotImplementedError:
                logger.warning(f"No holiday calendar for {country!r}, holidays disabled")
                self.country = None

    def _for_year(self, year: int) -> holidays.HolidayBase:
        if year not in self._years:
            self._years[year] = holidays.country_holidays(self.country, years=year)
        return self._years[year]

    def holidays_on(self, day: date) -> list[Holiday]:
        if self.country is None:
            return []
        return [Holiday(day=day, name=name) for name in self._for_year(day.year).get_list(day)]

    def holidays_by_day_key(self, key: str) -> list[Holiday]:
        """Holidays for a ``YYYY-MM-DD`` key; an empty list when there are none."""
        return self.holidays_on(date.fromisoformat(key))
