import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_api.core import config
from booking_api.dependencies import DATABASE_UNAVAILABLE_DETAIL, ensure_database_ready, get_db
from booking_api.services.availability import Slot, find_available_slots
from booking_api.services.business_hours import (
    DEFAULT_BUSINESS_HOURS,
    SERVICE_DURATIONS,
    get_service_duration_minutes,
    normalize_service_type,
    parse_calendar_date,
)

router = APIRouter(tags=['availability'])

logger = logging.getLogger(__name__)

MAX_AVAILABILITY_RANGE_DAYS = 62


class SlotResponse(BaseModel):
    date: str
    time: str
    datetime: str

    @classmethod
    def from_slot(cls, slot: Slot) -> 'SlotResponse':
        return cls(
            date=slot.date.isoformat(),
            time=slot.start_time.strftime('%H:%M'),
            datetime=slot.iso_timestamp,
        )


class AvailabilityResponse(BaseModel):
    success: bool
    timezone: str
    slots: list[SlotResponse]


class ServiceTypeResponse(BaseModel):
    service_type: str = Field(alias='serviceType')
    duration_minutes: int = Field(alias='durationMinutes')

    class Config:
        populate_by_name = True


@router.get('/availability', response_model=AvailabilityResponse)
def get_availability(
    start_date: str | None = Query(default=None, alias='startDate'),
    end_date: str | None = Query(default=None, alias='endDate'),
    timezone: str | None = Query(default=None),
    service_type: str | None = Query(default=None, alias='serviceType'),
    db: Session = Depends(get_db),
):
    if not start_date or not end_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='startDate and endDate are required.',
        )

    try:
        range_start = parse_calendar_date(start_date)
        range_end = parse_calendar_date(end_date)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='startDate and endDate must be ISO dates.',
        ) from exc

    if range_end - range_start > timedelta(days=MAX_AVAILABILITY_RANGE_DAYS):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Availability can be requested for at most {MAX_AVAILABILITY_RANGE_DAYS} days.',
        )

    try:
        duration_minutes = get_service_duration_minutes(normalize_service_type(service_type))
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid service type.',
        ) from exc

    ensure_database_ready()

    try:
        slots = find_available_slots(
            db,
            range_start,
            range_end,
            business_hours=DEFAULT_BUSINESS_HOURS,
            duration_minutes=duration_minutes,
        )
    except SQLAlchemyError as exc:
        logger.exception('Availability lookup failed for %s to %s', range_start, range_end)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    return AvailabilityResponse(
        success=True,
        timezone=timezone or config.DEFAULT_TIMEZONE,
        slots=[SlotResponse.from_slot(slot) for slot in slots],
    )


@router.get('/service-types', response_model=list[ServiceTypeResponse])
def list_service_types():
    return [
        ServiceTypeResponse(service_type=service_type, duration_minutes=duration_minutes)
        for service_type, duration_minutes in SERVICE_DURATIONS.items()
    ]
