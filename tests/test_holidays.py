"""Tests for the public-holiday lookup behind the week and month views."""

from datetime import date

from alarmcal.services.holidays import HolidayCalendar


def test_new_years_day_is_a_holiday():
    calendar = HolidayCalendar("JP")
    found = calendar.holidays_on(date(2025, 1, 1))
    assert len(found) == 1
    assert found[0].day == date(2025, 1, 1)
    assert found[0].name
    assert calendar.holidays_on(date(2025, 1, 2)) == []


def test_lookup_by_day_key():
    calendar = HolidayCalendar("JP")
    assert [h.day for h in calendar.holidays_by_day_key("2025-01-13")] == [date(2025, 1, 13)]
    assert calendar.holidays_by_day_key("2025-01-14") == []


def test_years_are_loaded_on_demand():
    calendar = HolidayCalendar("JP")
    calendar.holidays_on(date(2024, 12, 31))
    calendar.holidays_on(date(2025, 1, 1))
    assert sorted(calendar._years) == [2024, 2025]


def test_no_country_means_no_holidays():
    calendar = HolidayCalendar(None)
    assert calendar.country is None
    assert calendar.holidays_on(date(2025, 1, 1)) == []


def test_unsupported_country_is_disabled():
    calendar = HolidayCalendar("ZZ")
    assert calendar.country is None
    assert calendar.holidays_by_day_key("2025-01-01") == []


def test_empty_country_means_no_holidays():
    assert HolidayCalendar("").holidays_on(date(2025, 1, 1)) == []
