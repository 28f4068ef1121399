"""Weekly business hours and the service types customers can book."""

from dataclasses import dataclass
from datetime import date, datetime
from types import MappingProxyType
from typing import Mapping
from zoneinfo import ZoneInfo

from booking_api.core import config

DEFAULT_SERVICE_TYPE = 'Private Consultation'
SERVICE_DURATIONS = MappingProxyType({
    'Private Consultation': 60,
    'Showroom Visit': 60,
    'Custom Design Session': 120,
    'Delivery & Installation': 180,
    'Product Inquiry': 60,
})
MAX_SERVICE_DURATION_MINUTES = max(SERVICE_DURATIONS.values())


@dataclass(frozen=True)
class DayHours:
    open_hour: int
    close_hour: int

    def __post_init__(self) -> None:
        if not (0 <= self.open_hour < self.close_hour <= 24):
            raise ValueError(f'Invalid business hours: {self.open_hour}-{self.close_hour}')


class BusinessHours:
    """Immutable weekday -> opening hours table (Monday is 0, closed days map to None)."""

    def __init__(self, hours: Mapping[int, DayHours | None]):
        for weekday in hours:
            if weekday not in range(7):
                raise ValueError(f'Invalid weekday: {weekday}')
        self._hours = MappingProxyType({weekday: hours.get(weekday) for weekday in range(7)})

    def hours_for(self, day: date) -> DayHours | None:
        return self._hours[day.weekday()]

    def is_open_on(self, day: date) -> bool:
        return self.hours_for(day) is not None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BusinessHours):
            return NotImplemented
        return dict(self._hours) == dict(other._hours)

    def __repr__(self) -> str:
        return f'BusinessHours({dict(self._hours)!r})'


_WEEKDAY_HOURS = DayHours(open_hour=8, close_hour=17)

DEFAULT_BUSINESS_HOURS = BusinessHours({
    0: _WEEKDAY_HOURS,
    1: _WEEKDAY_HOURS,
    2: _WEEKDAY_HOURS,
    3: _WEEKDAY_HOURS,
    4: _WEEKDAY_HOURS,
    5: None,
    6: None,
})


def to_business_time(value: datetime) -> datetime:
    """Aware datetimes are shifted to the business timezone; naive ones are already wall-clock."""
    if value.tzinfo is not None:
        value = value.astimezone(ZoneInfo(config.BUSINESS_TIMEZONE)).replace(tzinfo=None)
    return value.replace(second=0, microsecond=0)


def business_now() -> datetime:
    """Current wall-clock time in the business timezone, independent of the server clock."""
    return datetime.now(ZoneInfo(config.BUSINESS_TIMEZONE)).replace(tzinfo=None)


def parse_calendar_date(value: str) -> date:
    """Accept ``YYYY-MM-DD`` or a full ISO timestamp, as sent by the booking widget."""
    normalized = value.strip()
    if len(normalized) == 10:
        return date.fromisoformat(normalized)

    if normalized.endswith('Z'):
        normalized = normalized[:-1] + '+00:00'
    return to_business_time(datetime.fromisoformat(normalized)).date()


def get_service_duration_minutes(service_type: str | None) -> int:
    if not service_type:
        return SERVICE_DURATIONS[DEFAULT_SERVICE_TYPE]
    return SERVICE_DURATIONS[service_type]


def normalize_service_type(value: str | None) -> str:
    """Match a service type case-insensitively; blank means the default."""
    if value is None or not value.strip():
        return DEFAULT_SERVICE_TYPE

    normalized = value.strip().lower()
    for service_type in SERVICE_DURATIONS:
        if service_type.lower() == normalized:
            return service_type

    raise ValueError('Invalid service type.')
