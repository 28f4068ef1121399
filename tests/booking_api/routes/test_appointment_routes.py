from datetime import date, datetime, time, timedelta

import pytest
import requests
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from booking_api.routes.appointment_routes import CreateBookingRequest
from booking_api.services import booking


def next_monday_at(hour: int) -> datetime:
    today = date.today()
    monday = today + timedelta(days=7 - today.weekday())
    return datetime.combine(monday, time(hour, 0))


def booking_payload(appointment_date: datetime, **overrides) -> dict:
    payload = {
        'customerName': 'Pat Customer',
        'customerEmail': ' PAT@Example.com ',
        'customerPhone': '+15551234567',
        'customerAddress': '12 Main St',
        'serviceType': 'Showroom Visit',
        'appointmentDate': appointment_date.isoformat(),
        'notes': 'Side entrance',
    }
    payload.update(overrides)
    return payload


def book(client, appointment_date: datetime, **overrides):
    return client.post('/api/book-appointment', json=booking_payload(appointment_date, **overrides))


def test_create_booking_request_normalizes_fields() -> None:
    request = CreateBookingRequest(
        customerName=' Pat Customer ',
        customerEmail=' PAT@EXAMPLE.COM ',
        customerPhone=' +15551234567 ',
        customerAddress='   ',
        serviceType='product inquiry',
        appointmentDate=datetime(2024, 6, 10, 10, 0),
        notes='  ',
    )

    assert request.customer_name == 'Pat Customer'
    assert request.customer_email == 'pat@example.com'
    assert request.customer_phone == '+15551234567'
    assert request.customer_address is None
    assert request.service_type == 'Product Inquiry'
    assert request.notes is None


def test_create_booking_request_defaults_service_type() -> None:
    request = CreateBookingRequest(
        customerName='Pat Customer',
        customerEmail='pat@example.com',
        customerPhone='+15551234567',
        appointmentDate=datetime(2024, 6, 10, 10, 0),
    )

    assert request.service_type == 'Private Consultation'


@pytest.mark.parametrize(
    'overrides',
    [
        {'customerName': '  '},
        {'customerEmail': 'not-an-email'},
        {'serviceType': 'Haircut'},
        {'notes': 'x' * 601},
    ],
)
def test_create_booking_request_rejects_invalid_fields(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        CreateBookingRequest(**booking_payload(datetime(2024, 6, 10, 10, 0), **overrides))


def test_book_appointment_returns_confirmation(client) -> None:
    appointment_date = next_monday_at(10)

    response = book(client, appointment_date)

    assert response.status_code == 201
    body = response.json()
    assert body['success'] is True
    assert body['appointment']['customerEmail'] == 'pat@example.com'
    assert body['appointment']['serviceType'] == 'Showroom Visit'
    assert body['appointment']['status'] == 'scheduled'
    assert body['appointment']['durationMinutes'] == 60
    assert body['appointment']['appointmentDate'] == appointment_date.isoformat()


def test_booked_slot_is_no_longer_available(client) -> None:
    appointment_date = next_monday_at(10)
    day = appointment_date.date().isoformat()

    before = client.get('/api/availability', params={'startDate': day, 'endDate': day}).json()['slots']
    book(client, appointment_date)
    after = client.get('/api/availability', params={'startDate': day, 'endDate': day}).json()['slots']

    assert appointment_date.isoformat() in {slot['datetime'] for slot in before}
    assert appointment_date.isoformat() not in {slot['datetime'] for slot in after}
    assert len(after) == len(before) - 1


def test_double_booking_returns_conflict(client) -> None:
    appointment_date = next_monday_at(11)

    assert book(client, appointment_date).status_code == 201
    response = book(client, appointment_date, customerName='Sam Second')

    assert response.status_code == 409
    assert response.json()['detail'] == 'This time is already booked.'


def test_booking_outside_business_hours_is_rejected(client) -> None:
    response = book(client, next_monday_at(18))

    assert response.status_code == 400
    assert response.json()['detail'] == 'Appointment is outside business hours.'


def test_booking_requires_customer_fields(client) -> None:
    payload = booking_payload(next_monday_at(10))
    del payload['customerName']

    response = client.post('/api/book-appointment', json=payload)

    assert response.status_code == 422


def test_booking_sends_confirmation_sms(client, fake_twilio) -> None:
    appointment_date = next_monday_at(9)

    book(client, appointment_date)

    assert len(fake_twilio.messages.sent) == 1
    assert fake_twilio.messages.sent[0]['to'] == '+15551234567'
    assert fake_twilio.messages.sent[0]['body'].endswith('at 9:00 AM.')


def test_booking_succeeds_when_sms_fails(client, fake_twilio) -> None:
    fake_twilio.messages.fail_with()

    response = book(client, next_monday_at(9))

    assert response.status_code == 201
    assert fake_twilio.messages.sent == []


def test_booking_succeeds_when_sms_transport_fails(client, fake_twilio) -> None:
    fake_twilio.messages.fail_with(requests.exceptions.ConnectionError('connection reset'))

    response = book(client, next_monday_at(9))

    assert response.status_code == 201
    assert response.json()['appointment']['status'] == 'scheduled'



def test_booking_skips_sms_when_disabled(client, fake_twilio, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('booking_api.core.config.SMS_ON_BOOKING', False)

    assert book(client, next_monday_at(9)).status_code == 201
    assert fake_twilio.messages.sent == []


def test_booking_reports_database_failures(client, monkeypatch: pytest.MonkeyPatch) -> None:
    def broken_booking(*args, **kwargs):
        raise SQLAlchemyError('connection refused')

    monkeypatch.setattr(booking, 'book_appointment', broken_booking)

    response = book(client, next_monday_at(10))

    assert response.status_code == 503


def test_list_and_get_appointments(client) -> None:
    first = book(client, next_monday_at(9)).json()['appointment']
    second = book(client, next_monday_at(13)).json()['appointment']

    listed = client.get('/api/appointments').json()
    fetched = client.get(f"/api/appointments/{second['id']}").json()

    assert [appointment['id'] for appointment in listed] == [first['id'], second['id']]
    assert fetched['customerName'] == 'Pat Customer'


def test_list_appointments_rejects_unknown_status(client) -> None:
    response = client.get('/api/appointments', params={'status': 'archived'})

    assert response.status_code == 400


def test_get_missing_appointment_returns_not_found(client) -> None:
    response = client.get('/api/appointments/999')

    assert response.status_code == 404
    assert response.json()['detail'] == 'Appointment not found.'


def test_cancelling_appointment_reopens_slot(client) -> None:
    appointment_date = next_monday_at(14)
    day = appointment_date.date().isoformat()
    appointment = book(client, appointment_date).json()['appointment']

    response = client.patch(f"/api/appointments/{appointment['id']}/status", json={'status': 'cancelled'})
    slots = client.get('/api/availability', params={'startDate': day, 'endDate': day}).json()['slots']

    assert response.status_code == 200
    assert response.json()['status'] == 'cancelled'
    assert appointment_date.isoformat() in {slot['datetime'] for slot in slots}


def test_invalid_status_transition_returns_conflict(client) -> None:
    appointment = book(client, next_monday_at(15)).json()['appointment']
    client.patch(f"/api/appointments/{appointment['id']}/status", json={'status': 'completed'})

    response = client.patch(f"/api/appointments/{appointment['id']}/status", json={'status': 'confirmed'})

    assert response.status_code == 409


def test_notify_customer_sends_reminder(client, fake_twilio) -> None:
    appointment = book(client, next_monday_at(10)).json()['appointment']

    response = client.post(f"/api/appointments/{appointment['id']}/notify", json={'template': 'reminder'})

    assert response.status_code == 200
    assert response.json()['success'] is True
    assert fake_twilio.messages.sent[-1]['body'] == 'Reminder: Your appointment is tomorrow at 10:00 AM.'


def test_notify_customer_reports_gateway_failure(client, fake_twilio) -> None:
    appointment = book(client, next_monday_at(10)).json()['appointment']
    fake_twilio.messages.fail_with()

    response = client.post(f"/api/appointments/{appointment['id']}/notify", json={'template': 'appointment'})

    assert response.status_code == 503


def test_notify_customer_rejects_unknown_template(client) -> None:
    appointment = book(client, next_monday_at(10)).json()['appointment']

    response = client.post(f"/api/appointments/{appointment['id']}/notify", json={'template': 'birthday'})

    assert response.status_code == 422
