import os
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from twilio.base.exceptions import TwilioException

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from booking_api.database import Base  # noqa: E402
from booking_api.dependencies import get_db  # noqa: E402
from booking_api.main import app  # noqa: E402
from booking_api.models.appointment import Appointment  # noqa: E402
from booking_api.notifications.sms import SmsGateway  # noqa: E402


class FakeMessages:
    def __init__(self):
        self.sent: list[dict] = []
        self.error: Exception | None = None

    def create(self, body: str, to: str, from_: str):
        if self.error is not None:
            raise self.error
        self.sent.append({'body': body, 'to': to, 'from_': from_})
        return SimpleNamespace(sid=f'SM{len(self.sent):04d}')

    def fail_with(self, error: Exception | None = None) -> None:
        self.error = error or TwilioException('Twilio is down')


class FakeTwilioClient:
    def __init__(self):
        self.messages = FakeMessages()


@pytest.fixture
def db_engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine, tables=[Appointment.__table__])
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine, tables=[Appointment.__table__])
        engine.dispose()


@pytest.fixture
def appointment_db(db_engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def fake_twilio() -> FakeTwilioClient:
    return FakeTwilioClient()


@pytest.fixture
def sms_gateway(fake_twilio) -> SmsGateway:
    return SmsGateway('AC00000000000000000000000000000000', 'token', '+15550000000', client=fake_twilio)


@pytest.fixture
def client(db_engine, sms_gateway, monkeypatch: pytest.MonkeyPatch):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def override_get_db():
        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    monkeypatch.setattr('booking_api.routes.availability_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('booking_api.routes.appointment_routes.ensure_database_ready', lambda: None)
    app.dependency_overrides[get_db] = override_get_db
    app.state.sms_gateway = sms_gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        del app.state.sms_gateway
