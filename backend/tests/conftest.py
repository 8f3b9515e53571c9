"""
Shared fixtures: an in-memory Mongo database, a controllable clock, a fresh
event bus, and a registered patient plus servers to act on the queue.
"""

from datetime import datetime, timedelta

import pytest
from mongomock_motor import AsyncMongoMockClient

from hospital_queue import clock
from hospital_queue.database import Database
from hospital_queue.models.patient import PatientCreate
from hospital_queue.models.user import Server, ServerRole
from hospital_queue.services.activity_log import ActivityLogService
from hospital_queue.services.events import reset_event_bus
from hospital_queue.services.notification_service import NotificationService
from hospital_queue.services.patient_service import PatientService


class FakeClock:
    def __init__(self, moment: datetime):
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def advance(self, **kwargs) -> datetime:
        self.moment = self.moment + timedelta(**kwargs)
        return self.moment


@pytest.fixture
def fake_clock(monkeypatch):
    fake = FakeClock(datetime(2026, 3, 2, 9, 0, 0))
    monkeypatch.setattr(clock, "now", fake.now)
    return fake


@pytest.fixture
async def db(fake_clock):
    client = AsyncMongoMockClient()
    database = client["hospital_queue_test"]
    await Database.attach(database)
    yield database
    Database.db = None


@pytest.fixture(autouse=True)
def quiet_bus():
    """Events published by a test without ``bus`` go nowhere."""
    return reset_event_bus()


@pytest.fixture
def bus(db):
    return reset_event_bus([
        ("notifications", NotificationService.handle_event),
        ("activity", ActivityLogService.handle_event),
    ])


@pytest.fixture
async def patient(db):
    return await PatientService.register_walk_in(PatientCreate(
        first_name="Abebe",
        last_name="Kebede",
        phone_number="+251911000001",
    ))


@pytest.fixture
async def other_patient(db):
    return await PatientService.register_walk_in(PatientCreate(
        first_name="Sara",
        last_name="Haile",
        phone_number="+251911000002",
    ))


@pytest.fixture
def doctor():
    return Server(id="doctor-1", role=ServerRole.DOCTOR, name="Hana Tesfaye", department="Cardiology")


@pytest.fixture
def other_doctor():
    return Server(id="doctor-2", role=ServerRole.DOCTOR, name="Dawit Alemu", department="Cardiology")


@pytest.fixture
def lab_tech():
    return Server(id="lab-1", role=ServerRole.LAB_TECHNICIAN, name="Meron Girma", department="Laboratory")


@pytest.fixture
def make_patient(db):
    async def make(first_name: str, phone_suffix: int):
        return await PatientService.register_walk_in(PatientCreate(
            first_name=first_name,
            last_name="Test",
            phone_number=f"+2519110{phone_suffix:05d}",
        ))
    return make
