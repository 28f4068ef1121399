"""Booking submission and appointment status changes."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from threading import Lock

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from booking_api.models.appointment import (
    APPOINTMENT_STATUSES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_SCHEDULED,
    Appointment,
)
from booking_api.services.availability import (
    SLOT_INCREMENT_MINUTES,
    fits_business_hours,
    get_active_appointment_intervals,
    overlaps,
)
from booking_api.services.business_hours import (
    DEFAULT_BUSINESS_HOURS,
    BusinessHours,
    business_now,
    get_service_duration_minutes,
    to_business_time,
)

logger = logging.getLogger(__name__)

ALLOWED_STATUS_TRANSITIONS = {
    STATUS_SCHEDULED: {STATUS_CONFIRMED, STATUS_CANCELLED, STATUS_COMPLETED},
    STATUS_CONFIRMED: {STATUS_CANCELLED, STATUS_COMPLETED},
    STATUS_CANCELLED: set(),
    STATUS_COMPLETED: set(),
}

# Serializes the recheck-then-insert of a slot within this process.
_reservation_lock = Lock()


class BookingError(Exception):
    """Base class for booking failures that map to a client error."""


class InvalidBookingError(BookingError):
    pass


class SlotUnavailableError(BookingError):
    pass


class AppointmentNotFoundError(BookingError):
    pass


class InvalidStatusTransitionError(BookingError):
    pass


@dataclass(frozen=True)
class BookingDetails:
    customer_name: str
    customer_email: str
    customer_phone: str
    scheduled_date: datetime
    service_type: str
    customer_address: str | None = None
    notes: str | None = None


def book_appointment(
    db: Session,
    details: BookingDetails,
    now: datetime | None = None,
    business_hours: BusinessHours = DEFAULT_BUSINESS_HOURS,
) -> Appointment:
    start = to_business_time(details.scheduled_date)
    duration_minutes = get_service_duration_minutes(details.service_type)
    end = start + timedelta(minutes=duration_minutes)
    now = now or business_now()

    if start.minute % SLOT_INCREMENT_MINUTES != 0:
        raise InvalidBookingError('Appointments must start on the hour.')

    if start <= now:
        raise InvalidBookingError('Appointments must be scheduled in the future.')

    if not fits_business_hours(start, duration_minutes, business_hours):
        raise InvalidBookingError('Appointment is outside business hours.')

    with _reservation_lock:
        if overlaps(start, end, get_active_appointment_intervals(db, start, end)):
            raise SlotUnavailableError('This time is already booked.')

        appointment = Appointment(
            customer_name=details.customer_name,
            customer_email=details.customer_email,
            customer_phone=details.customer_phone,
            customer_address=details.customer_address,
            service_type=details.service_type,
            scheduled_date=start,
            duration_minutes=duration_minutes,
            status=STATUS_SCHEDULED,
            notes=details.notes,
        )
        db.add(appointment)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise SlotUnavailableError('This time is already booked.') from exc
        db.refresh(appointment)

    logger.info('Booked appointment %s for %s (%s)', appointment.id, start.isoformat(), details.service_type)
    return appointment


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise AppointmentNotFoundError('Appointment not found.')
    return appointment


def list_appointments(
    db: Session,
    start_date: date | None = None,
    end_date: date | None = None,
    status: str | None = None,
) -> list[Appointment]:
    query = db.query(Appointment)

    if start_date is not None:
        query = query.filter(Appointment.scheduled_date >= datetime.combine(start_date, time.min))
    if end_date is not None:
        query = query.filter(Appointment.scheduled_date < datetime.combine(end_date + timedelta(days=1), time.min))
    if status is not None:
        query = query.filter(Appointment.status == normalize_status(status))

    return query.order_by(Appointment.scheduled_date.asc(), Appointment.id.asc()).all()


def normalize_status(value: str) -> str:
    normalized = value.strip().lower()
    if normalized not in APPOINTMENT_STATUSES:
        raise InvalidBookingError('Invalid appointment status.')
    return normalized


def update_appointment_status(db: Session, appointment_id: int, new_status: str) -> Appointment:
    normalized_status = normalize_status(new_status)
    appointment = get_appointment(db, appointment_id)

    if appointment.status == normalized_status:
        return appointment

    if normalized_status not in ALLOWED_STATUS_TRANSITIONS.get(appointment.status, set()):
        raise InvalidStatusTransitionError(
            f'Cannot change an appointment from {appointment.status} to {normalized_status}.'
        )

    previous_status = appointment.status
    appointment.status = normalized_status
    db.commit()
    db.refresh(appointment)

    logger.info('Appointment %s moved from %s to %s', appointment.id, previous_status, normalized_status)
    return appointment
