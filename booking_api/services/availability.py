"""Free/busy slot computation against business hours and active appointments.

Candidate slots start on every whole hour a day is open. A candidate is
available when no active appointment (anything not cancelled or completed)
overlaps it, where an appointment occupies ``duration_minutes`` from its
``scheduled_date``.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator

from sqlalchemy import func
from sqlalchemy.orm import Session

from booking_api.models.appointment import DEFAULT_DURATION_MINUTES, INACTIVE_STATUSES, Appointment
from booking_api.services.business_hours import (
    DEFAULT_BUSINESS_HOURS,
    MAX_SERVICE_DURATION_MINUTES,
    BusinessHours,
)

SLOT_INCREMENT_MINUTES = 60

Interval = tuple[datetime, datetime]


@dataclass(frozen=True)
class Slot:
    date: date
    start_time: time
    end_time: time
    iso_timestamp: str

    @classmethod
    def starting_at(cls, start: datetime, duration_minutes: int) -> 'Slot':
        end = start + timedelta(minutes=duration_minutes)
        return cls(
            date=start.date(),
            start_time=start.time(),
            end_time=end.time(),
            iso_timestamp=start.isoformat(),
        )

    @property
    def start(self) -> datetime:
        return datetime.combine(self.date, self.start_time)


def iterate_days(start_date: date, end_date: date) -> Iterator[date]:
    current_day = start_date
    while current_day <= end_date:
        yield current_day
        current_day += timedelta(days=1)


def fits_business_hours(start: datetime, duration_minutes: int, business_hours: BusinessHours) -> bool:
    hours = business_hours.hours_for(start.date())
    if hours is None:
        return False

    day_open = datetime.combine(start.date(), time.min) + timedelta(hours=hours.open_hour)
    day_close = datetime.combine(start.date(), time.min) + timedelta(hours=hours.close_hour)
    return day_open <= start and start + timedelta(minutes=duration_minutes) <= day_close


def generate_candidate_slots(
    start_date: date,
    end_date: date,
    business_hours: BusinessHours = DEFAULT_BUSINESS_HOURS,
    duration_minutes: int = DEFAULT_DURATION_MINUTES,
) -> list[datetime]:
    """Every hourly start in the open hours of each day, dropping starts that would run past closing."""
    candidates: list[datetime] = []

    for current_day in iterate_days(start_date, end_date):
        hours = business_hours.hours_for(current_day)
        if hours is None:
            continue

        for hour in range(hours.open_hour, hours.close_hour):
            candidate = datetime.combine(current_day, time(hour, 0))
            if fits_business_hours(candidate, duration_minutes, business_hours):
                candidates.append(candidate)

    return candidates


def get_longest_active_duration_minutes(db: Session) -> int:
    longest = db.query(func.max(Appointment.duration_minutes)).filter(
        Appointment.status.not_in(INACTIVE_STATUSES),
    ).scalar()
    return max(longest or 0, MAX_SERVICE_DURATION_MINUTES)


def get_active_appointment_intervals(db: Session, range_start: datetime, range_end: datetime) -> list[Interval]:
    # Reach back far enough to catch the longest active appointment still running at range_start.
    lookback = timedelta(minutes=get_longest_active_duration_minutes(db))
    rows = db.query(Appointment.scheduled_date, Appointment.duration_minutes).filter(
        Appointment.status.not_in(INACTIVE_STATUSES),
        Appointment.scheduled_date >= range_start - lookback,
        Appointment.scheduled_date < range_end,
    ).all()

    intervals: list[Interval] = []
    for scheduled_date, duration_minutes in rows:
        appointment_end = scheduled_date + timedelta(minutes=duration_minutes or DEFAULT_DURATION_MINUTES)
        if appointment_end > range_start:
            intervals.append((scheduled_date, appointment_end))

    return intervals


def overlaps(start: datetime, end: datetime, intervals: Iterable[Interval]) -> bool:
    return any(busy_start < end and start < busy_end for busy_start, busy_end in intervals)


def find_available_slots(
    db: Session,
    start_date: date,
    end_date: date,
    business_hours: BusinessHours = DEFAULT_BUSINESS_HOURS,
    duration_minutes: int = DEFAULT_DURATION_MINUTES,
) -> list[Slot]:
    if start_date > end_date:
        return []

    range_start = datetime.combine(start_date, time.min)
    range_end = datetime.combine(end_date + timedelta(days=1), time.min)
    busy_intervals = get_active_appointment_intervals(db, range_start, range_end)

    slots: list[Slot] = []
    for candidate in generate_candidate_slots(start_date, end_date, business_hours, duration_minutes):
        candidate_end = candidate + timedelta(minutes=duration_minutes)
        if not overlaps(candidate, candidate_end, busy_intervals):
            slots.append(Slot.starting_at(candidate, duration_minutes))

    return slots


def is_slot_available(
    db: Session,
    start: datetime,
    duration_minutes: int = DEFAULT_DURATION_MINUTES,
    business_hours: BusinessHours = DEFAULT_BUSINESS_HOURS,
) -> bool:
    if not fits_business_hours(start, duration_minutes, business_hours):
        return False

    end = start + timedelta(minutes=duration_minutes)
    return not overlaps(start, end, get_active_appointment_intervals(db, start, end))
