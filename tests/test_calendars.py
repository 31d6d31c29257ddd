"""
Test suite for group meeting calendars
"""

import pytest
from datetime import date

from lending_core.calendars import Calendar, CalendarFrequency, InMemoryCalendarService
from lending_core.exceptions import ErrorCode, ValidationError


@pytest.fixture
def service():
    return InMemoryCalendarService()


class TestCalendarOccurrences:
    """Test resolving recurrence rules into meeting dates"""

    def test_weekly_on_monday_starts_on_next_monday(self, service):
        # 2014-08-01 is a Friday
        calendar = service.register_calendar(
            "group-1", date(2014, 8, 1), CalendarFrequency.WEEKLY, repeats_on_day=1
        )

        dates = service.resolve_meeting_dates(calendar, date(2014, 8, 1), 3)

        assert dates == [date(2014, 8, 4), date(2014, 8, 11), date(2014, 8, 18)]

    def test_resolve_from_later_date(self, service):
        calendar = service.register_calendar(
            "group-1", date(2014, 8, 1), CalendarFrequency.WEEKLY, repeats_on_day=1
        )

        dates = service.resolve_meeting_dates(calendar, date(2014, 8, 5), 3)

        assert dates == [date(2014, 8, 11), date(2014, 8, 18), date(2014, 8, 25)]

    def test_daily_with_interval(self, service):
        calendar = service.register_calendar(
            "group-1", date(2014, 1, 1), CalendarFrequency.DAILY, interval=3
        )

        dates = service.resolve_meeting_dates(calendar, date(2014, 1, 5), 2)

        assert dates == [date(2014, 1, 7), date(2014, 1, 10)]

    def test_monthly_clamps_to_month_end(self):
        calendar = Calendar("cal-1", "group-1", date(2014, 1, 31), CalendarFrequency.MONTHLY)

        occurrences = calendar.occurrences()
        dates = [next(occurrences) for _ in range(4)]

        assert dates == [date(2014, 1, 31), date(2014, 2, 28), date(2014, 3, 31), date(2014, 4, 30)]

    def test_yearly_on_leap_day(self, service):
        calendar = service.register_calendar("group-1", date(2012, 2, 29), CalendarFrequency.YEARLY)

        dates = service.resolve_meeting_dates(calendar, date(2012, 3, 1), 4)

        assert dates == [date(2013, 2, 28), date(2014, 2, 28), date(2015, 2, 28), date(2016, 2, 29)]

    def test_zero_count(self, service):
        calendar = service.register_calendar("group-1", date(2014, 1, 1), CalendarFrequency.WEEKLY)

        assert service.resolve_meeting_dates(calendar, date(2014, 1, 1), 0) == []

    def test_min_period_days(self):
        calendar = Calendar("cal-1", "group-1", date(2014, 1, 1), CalendarFrequency.WEEKLY, interval=2)

        assert calendar.min_period_days == 14


class TestCalendarRegistration:
    """Test attaching calendars to groups"""

    def test_lookup_by_group(self, service):
        calendar = service.register_calendar("group-1", date(2014, 1, 1), CalendarFrequency.MONTHLY)

        assert service.get_calendar_for_group("group-1") == calendar
        assert service.get_calendar_for_group("group-2") is None

    def test_register_replaces_previous_calendar(self, service):
        service.register_calendar("group-1", date(2014, 1, 1), CalendarFrequency.MONTHLY)
        replacement = service.register_calendar("group-1", date(2014, 1, 6), CalendarFrequency.WEEKLY)

        assert service.get_calendar_for_group("group-1") == replacement

    @pytest.mark.parametrize("frequency,interval,repeats_on_day", [
        (CalendarFrequency.WEEKLY, 0, None),
        (CalendarFrequency.WEEKLY, 1, 8),
        (CalendarFrequency.MONTHLY, 1, 3),
    ])
    def test_invalid_calendar_rejected(self, service, frequency, interval, repeats_on_day):
        with pytest.raises(ValidationError) as exc_info:
            service.register_calendar(
                "group-1", date(2014, 1, 1), frequency,
                interval=interval, repeats_on_day=repeats_on_day
            )

        assert exc_info.value.code == ErrorCode.INVALID_CALENDAR
        assert service.get_calendar_for_group("group-1") is None
