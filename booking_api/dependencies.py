from fastapi import HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError

from booking_api.database import SessionLocal, ensure_appointment_schema
from booking_api.notifications.sms import SmsGateway

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_optional_sms_gateway(request: Request) -> SmsGateway | None:
    return getattr(request.app.state, 'sms_gateway', None)


def get_sms_gateway(request: Request) -> SmsGateway:
    gateway = get_optional_sms_gateway(request)
    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='SMS gateway unavailable.',
        )
    return gateway
