import logging
from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_api.core import config
from booking_api.dependencies import (
    DATABASE_UNAVAILABLE_DETAIL,
    ensure_database_ready,
    get_db,
    get_optional_sms_gateway,
    get_sms_gateway,
)
from booking_api.models.appointment import DEFAULT_DURATION_MINUTES, Appointment
from booking_api.notifications.sms import (
    TEMPLATES,
    NotificationError,
    SmsGateway,
    format_appointment_values,
    render_template,
)
from booking_api.services import booking
from booking_api.services.business_hours import DEFAULT_SERVICE_TYPE, normalize_service_type, parse_calendar_date

router = APIRouter(tags=['appointments'])

logger = logging.getLogger(__name__)

MAX_APPOINTMENT_NOTES_LENGTH = 600

BOOKING_ERROR_STATUS_CODES = {
    booking.InvalidBookingError: status.HTTP_400_BAD_REQUEST,
    booking.AppointmentNotFoundError: status.HTTP_404_NOT_FOUND,
    booking.SlotUnavailableError: status.HTTP_409_CONFLICT,
    booking.InvalidStatusTransitionError: status.HTTP_409_CONFLICT,
}


class CreateBookingRequest(BaseModel):
    customer_name: str = Field(alias='customerName')
    customer_email: str = Field(alias='customerEmail')
    customer_phone: str = Field(alias='customerPhone')
    customer_address: str | None = Field(default=None, alias='customerAddress')
    service_type: str = Field(default=DEFAULT_SERVICE_TYPE, alias='serviceType')
    appointment_date: datetime = Field(alias='appointmentDate')
    notes: str | None = None

    class Config:
        populate_by_name = True

    @field_validator('customer_name', 'customer_phone')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('This field is required.')
        return normalized

    @field_validator('customer_email')
    @classmethod
    def validate_customer_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError('Customer email is required.')
        if '@' not in normalized:
            raise ValueError('Customer email is invalid.')
        return normalized

    @field_validator('customer_address')
    @classmethod
    def validate_customer_address(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @field_validator('service_type')
    @classmethod
    def validate_service_type(cls, value: str) -> str:
        return normalize_service_type(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

        return normalized


class AppointmentResponse(BaseModel):
    id: int
    customer_name: str = Field(alias='customerName')
    customer_email: str = Field(alias='customerEmail')
    customer_phone: str = Field(alias='customerPhone')
    customer_address: str | None = Field(default=None, alias='customerAddress')
    service_type: str = Field(alias='serviceType')
    appointment_date: datetime = Field(alias='appointmentDate')
    duration_minutes: int = Field(alias='durationMinutes')
    status: str
    notes: str | None = None

    class Config:
        populate_by_name = True

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> 'AppointmentResponse':
        return cls(
            id=appointment.id,
            customer_name=appointment.customer_name,
            customer_email=appointment.customer_email,
            customer_phone=appointment.customer_phone,
            customer_address=appointment.customer_address,
            service_type=appointment.service_type or DEFAULT_SERVICE_TYPE,
            appointment_date=appointment.scheduled_date,
            duration_minutes=appointment.duration_minutes or DEFAULT_DURATION_MINUTES,
            status=appointment.status,
            notes=appointment.notes,
        )


class BookingConfirmationResponse(BaseModel):
    success: bool
    message: str
    appointment: AppointmentResponse


class UpdateStatusRequest(BaseModel):
    status: str


class NotifyCustomerRequest(BaseModel):
    template: str = 'appointment'

    @field_validator('template')
    @classmethod
    def validate_template(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in TEMPLATES:
            raise ValueError('Unknown SMS template.')
        return normalized


class NotificationResponse(BaseModel):
    success: bool
    sid: str


def to_http_exception(exc: booking.BookingError) -> HTTPException:
    status_code = BOOKING_ERROR_STATUS_CODES.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=status_code, detail=str(exc))


def database_unavailable(db: Session, exc: SQLAlchemyError, action: str) -> HTTPException:
    db.rollback()
    logger.exception('Database error while %s', action)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def send_booking_sms(sms_gateway: SmsGateway, appointment_id: int, phone_number: str, scheduled_date: datetime) -> None:
    message = render_template('appointment', **format_appointment_values(scheduled_date))
    try:
        sms_gateway.send_sms(phone_number, message)
    except NotificationError:
        logger.warning('Booking SMS was not delivered for appointment %s', appointment_id)


@router.post('/book-appointment', response_model=BookingConfirmationResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(
    data: CreateBookingRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    sms_gateway: SmsGateway | None = Depends(get_optional_sms_gateway),
):
    ensure_database_ready()

    details = booking.BookingDetails(
        customer_name=data.customer_name,
        customer_email=data.customer_email,
        customer_phone=data.customer_phone,
        customer_address=data.customer_address,
        service_type=data.service_type,
        scheduled_date=data.appointment_date,
        notes=data.notes,
    )

    try:
        appointment = booking.book_appointment(db, details)
    except booking.BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db, exc, 'booking an appointment') from exc

    if config.SMS_ON_BOOKING and sms_gateway is not None and sms_gateway.is_configured:
        background_tasks.add_task(
            send_booking_sms,
            sms_gateway,
            appointment.id,
            appointment.customer_phone,
            appointment.scheduled_date,
        )

    return BookingConfirmationResponse(
        success=True,
        message='Appointment booked successfully.',
        appointment=AppointmentResponse.from_appointment(appointment),
    )


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_appointments(
    start_date: str | None = Query(default=None, alias='startDate'),
    end_date: str | None = Query(default=None, alias='endDate'),
    appointment_status: str | None = Query(default=None, alias='status'),
    db: Session = Depends(get_db),
):
    try:
        range_start = parse_calendar_date(start_date) if start_date else None
        range_end = parse_calendar_date(end_date) if end_date else None
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='startDate and endDate must be ISO dates.',
        ) from exc

    ensure_database_ready()

    try:
        appointments = booking.list_appointments(db, range_start, range_end, appointment_status)
    except booking.BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db, exc, 'listing appointments') from exc

    return [AppointmentResponse.from_appointment(appointment) for appointment in appointments]


@router.get('/appointments/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(appointment_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        appointment = booking.get_appointment(db, appointment_id)
    except booking.BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db, exc, 'loading an appointment') from exc

    return AppointmentResponse.from_appointment(appointment)


@router.patch('/appointments/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(appointment_id: int, data: UpdateStatusRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        appointment = booking.update_appointment_status(db, appointment_id, data.status)
    except booking.BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db, exc, 'updating an appointment status') from exc

    return AppointmentResponse.from_appointment(appointment)


@router.post('/appointments/{appointment_id}/notify', response_model=NotificationResponse)
def notify_customer(
    appointment_id: int,
    data: NotifyCustomerRequest,
    db: Session = Depends(get_db),
    sms_gateway: SmsGateway = Depends(get_sms_gateway),
):
    ensure_database_ready()

    try:
        appointment = booking.get_appointment(db, appointment_id)
    except booking.BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db, exc, 'loading an appointment') from exc

    message = render_template(data.template, **format_appointment_values(appointment.scheduled_date))

    try:
        sid = sms_gateway.send_sms(appointment.customer_phone, message)
    except NotificationError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc

    return NotificationResponse(success=True, sid=sid)
