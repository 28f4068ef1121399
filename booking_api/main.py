import logging
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from booking_api.core import config
from booking_api.database import engine, ensure_appointment_schema
from booking_api.models import appointment
from booking_api.notifications.sms import SmsGateway
from booking_api.routes import appointment_routes, availability_routes, sms_routes

app = FastAPI(title='Booking API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.FRONTEND_URLS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_resources() -> None:
    config.validate_runtime_config()
    logging.getLogger('booking_api').setLevel(config.LOG_LEVEL)

    app.state.sms_gateway = SmsGateway.from_config()
    if not app.state.sms_gateway.is_configured:
        logger.warning('Twilio credentials missing; SMS notifications are disabled.')

    try:
        appointment.Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Booking API Running'}


@app.get('/health')
def health():
    return {'status': 'ok', 'timestamp': datetime.now(timezone.utc).isoformat()}


app.include_router(availability_routes.router, prefix='/api')
app.include_router(appointment_routes.router, prefix='/api')
app.include_router(sms_routes.router, prefix='/api/sms')
