"""
Group meeting calendar endpoints (in-memory calendar adapter only)
"""

from fastapi import APIRouter, Depends, status

from .dependencies import LendingSystem, get_lending_system
from .schemas import CreateCalendarRequest
from ..exceptions import NotFoundError


router = APIRouter()


def _calendar_response(calendar) -> dict:
    return {
        "calendar_id": calendar.id,
        "group_id": calendar.group_id,
        "start_date": calendar.start_date.isoformat(),
        "frequency": calendar.frequency.value,
        "interval": calendar.interval,
        "repeats_on_day": calendar.repeats_on_day
    }


@router.post("/{group_id}/calendars", status_code=status.HTTP_201_CREATED)
async def create_group_calendar(
    group_id: str,
    request: CreateCalendarRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Attach a meeting calendar to a group"""
    calendar = system.calendar_service.register_calendar(
        group_id=group_id,
        start_date=request.start_date,
        frequency=request.frequency,
        interval=request.interval,
        repeats_on_day=request.repeats_on_day
    )
    return _calendar_response(calendar)


@router.get("/{group_id}/calendars")
async def get_group_calendar(
    group_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get a group's meeting calendar"""
    calendar = system.calendar_service.get_calendar_for_group(group_id)
    if calendar is None:
        raise NotFoundError("calendar for group", group_id)
    return _calendar_response(calendar)
