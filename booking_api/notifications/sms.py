"""Outbound SMS through Twilio plus the message templates sent to customers."""

import logging
from datetime import datetime
from threading import Lock

from requests.exceptions import RequestException
from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from booking_api.core import config

logger = logging.getLogger(__name__)

TEMPLATES = {
    'appointment': 'Your appointment is scheduled for {date} at {time}.',
    'reminder': 'Reminder: Your appointment is tomorrow at {time}.',
    'confirmation': 'Thank you for scheduling with us!',
}


class NotificationError(Exception):
    pass


class NotificationNotConfiguredError(NotificationError):
    pass


def render_template(template_name: str, **values: str) -> str:
    template = TEMPLATES.get(template_name)
    if template is None:
        raise ValueError(f'Unknown SMS template: {template_name}')

    try:
        return template.format(**values)
    except KeyError as exc:
        raise ValueError(f'Missing value for SMS template {template_name}: {exc.args[0]}') from exc


def format_appointment_values(scheduled_date: datetime) -> dict[str, str]:
    return {
        'date': f"{scheduled_date.strftime('%A, %B')} {scheduled_date.day}, {scheduled_date.year}",
        'time': scheduled_date.strftime('%I:%M %p').lstrip('0'),
    }


def mask_phone(phone_number: str) -> str:
    return phone_number[-4:].rjust(len(phone_number), '*')


class SmsGateway:
    """One per process. The Twilio client is built on first use."""

    def __init__(self, account_sid: str, auth_token: str, from_number: str, client: Client | None = None):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self._client = client
        self._client_lock = Lock()

    @classmethod
    def from_config(cls) -> 'SmsGateway':
        return cls(
            account_sid=config.TWILIO_ACCOUNT_SID,
            auth_token=config.TWILIO_AUTH_TOKEN,
            from_number=config.TWILIO_PHONE_NUMBER,
        )

    @property
    def is_configured(self) -> bool:
        if self._client is not None:
            return bool(self.from_number)
        return all([self.account_sid, self.auth_token, self.from_number])

    def _get_client(self) -> Client:
        if not self.is_configured:
            raise NotificationNotConfiguredError('Twilio not configured')

        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    self._client = Client(self.account_sid, self.auth_token)
        return self._client

    def send_sms(self, to: str, message: str) -> str:
        client = self._get_client()
        try:
            sent = client.messages.create(body=message, to=to, from_=self.from_number)
        except (TwilioException, RequestException) as exc:
            logger.exception('Failed to send SMS to %s', mask_phone(to))
            raise NotificationError('Failed to send SMS.') from exc

        logger.info('SMS sent to %s, Message SID: %s', mask_phone(to), sent.sid)
        return sent.sid

    def send_batch_sms(self, recipients: list[str], message: str) -> list[str]:
        self._get_client()
        return [self.send_sms(recipient, message) for recipient in recipients]
