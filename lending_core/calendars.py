"""
Meeting Calendar Module

Groups meet on a recurring calendar; group loans repay on meeting dates.
Calendars are owned by the surrounding group-management system: this core
only resolves them into concrete meeting dates through CalendarService.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional
from enum import Enum
from itertools import islice
import threading
import uuid

from .dates import add_months
from .exceptions import ErrorCode, ValidationError, ValidationIssue
from .logging_config import get_logger, log_action


class CalendarFrequency(Enum):
    """Recurrence unit, numbered as the group-management system numbers them"""
    DAILY = 1
    WEEKLY = 2
    MONTHLY = 3
    YEARLY = 4


# repeats_on_day uses 1=Monday ... 7=Sunday
MIN_PERIOD_DAYS = {
    CalendarFrequency.DAILY: 1,
    CalendarFrequency.WEEKLY: 7,
    CalendarFrequency.MONTHLY: 28,
    CalendarFrequency.YEARLY: 365,
}


@dataclass(frozen=True)
class Calendar:
    """Recurring meeting definition for a group"""
    id: str
    group_id: str
    start_date: date
    frequency: CalendarFrequency
    interval: int = 1
    repeats_on_day: Optional[int] = None

    def validate(self) -> List[ValidationIssue]:
        issues = []
        if self.interval < 1:
            issues.append(ValidationIssue(ErrorCode.INVALID_CALENDAR, "Calendar interval must be at least 1"))
        if self.repeats_on_day is not None:
            if self.frequency != CalendarFrequency.WEEKLY:
                issues.append(ValidationIssue(
                    ErrorCode.INVALID_CALENDAR, "Repeats-on-day applies to weekly calendars only"
                ))
            elif not 1 <= self.repeats_on_day <= 7:
                issues.append(ValidationIssue(
                    ErrorCode.INVALID_CALENDAR, "Repeats-on-day must be between 1 (Monday) and 7 (Sunday)"
                ))
        return issues

    @property
    def min_period_days(self) -> int:
        """Shortest possible gap between two consecutive meetings"""
        return MIN_PERIOD_DAYS[self.frequency] * self.interval

    def _first_meeting(self) -> date:
        if self.frequency == CalendarFrequency.WEEKLY and self.repeats_on_day is not None:
            offset = (self.repeats_on_day - 1 - self.start_date.weekday()) % 7
            return self.start_date + timedelta(days=offset)
        return self.start_date

    def occurrences(self, from_date: Optional[date] = None) -> Iterator[date]:
        """Yield meeting dates in order, starting on or after from_date"""
        first = self._first_meeting()
        if self.frequency in (CalendarFrequency.DAILY, CalendarFrequency.WEEKLY):
            step = self.min_period_days
            index = 0
            if from_date is not None and from_date > first:
                # Jump straight to the first meeting on or after from_date
                index = -(-(from_date - first).days // step)
            while True:
                yield first + timedelta(days=index * step)
                index += 1

        months_per_step = self.interval * (12 if self.frequency == CalendarFrequency.YEARLY else 1)
        index = 0
        while True:
            # Always step from the first meeting so month-end days are kept
            meeting = add_months(first, index * months_per_step)
            if from_date is None or meeting >= from_date:
                yield meeting
            index += 1


class CalendarService(ABC):
    """Read-only access to group meeting calendars"""

    @abstractmethod
    def get_calendar_for_group(self, group_id: str) -> Optional[Calendar]:
        """Return the group's meeting calendar, or None if it has none"""
        pass

    @abstractmethod
    def resolve_meeting_dates(self, calendar: Calendar, from_date: date, count: int) -> List[date]:
        """
        Resolve a calendar into concrete meeting dates.

        Implementations backed by a remote system raise
        CalendarServiceUnavailableError when the lookup fails.
        """
        pass


class InMemoryCalendarService(CalendarService):
    """Calendar adapter holding calendars in process memory"""

    def __init__(self):
        self._calendars: Dict[str, Calendar] = {}
        self._lock = threading.Lock()
        self.logger = get_logger("lending.calendars")

    def register_calendar(self, group_id: str, start_date: date, frequency: CalendarFrequency,
                          interval: int = 1, repeats_on_day: Optional[int] = None) -> Calendar:
        """Attach a meeting calendar to a group, replacing any previous one"""
        calendar = Calendar(
            id=str(uuid.uuid4()),
            group_id=group_id,
            start_date=start_date,
            frequency=frequency,
            interval=interval,
            repeats_on_day=repeats_on_day
        )
        issues = calendar.validate()
        if issues:
            raise ValidationError(issues)

        with self._lock:
            self._calendars[group_id] = calendar

        log_action(
            self.logger, "info", f"Meeting calendar registered for group {group_id}",
            action="register_calendar", resource=f"calendar:{calendar.id}",
            extra={
                "group_id": group_id,
                "start_date": start_date.isoformat(),
                "frequency": frequency.name,
                "interval": interval,
                "registered_at": datetime.now(timezone.utc).isoformat()
            }
        )
        return calendar

    def get_calendar_for_group(self, group_id: str) -> Optional[Calendar]:
        with self._lock:
            return self._calendars.get(group_id)

    def resolve_meeting_dates(self, calendar: Calendar, from_date: date, count: int) -> List[date]:
        if count <= 0:
            return []
        return list(islice(calendar.occurrences(from_date), count))
