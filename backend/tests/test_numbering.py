import asyncio
from datetime import timedelta

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from hospital_queue.database import Database
from hospital_queue.errors import GenerationFailed
from hospital_queue.models.queue import CheckInRequest
from hospital_queue.services.numbering import SequenceGenerator, TicketNumberGenerator, department_code
from hospital_queue.services.queue_service import QueueService


async def seed_entry(queue_number, sequence, joined_at, department="Cardiology"):
    await Database.get_collection("queue_entries").insert_one({
        "_id": ObjectId(),
        "queue_number": queue_number,
        "sequence": sequence,
        "department": department,
        "service_type": "General Consultation",
        "priority": "Medium",
        "priority_rank": 1,
        "status": "Complete",
        "patient_id": "someone",
        "joined_at": joined_at,
    })


def test_department_code():
    assert department_code("Cardiology") == "CARD"
    assert department_code(" general medicine ") == "GENE"
    assert department_code("ENT") == "ENT"


def test_format_and_parse():
    generator = SequenceGenerator("CARD", 3)
    assert generator.format(7) == "CARD-007"
    assert generator.format(1234) == "CARD-1234"
    assert generator.parse("CARD-042") == 42
    assert generator.parse("CARD-1234") == 1234
    assert generator.parse("EMER-042") is None
    assert generator.parse("CARD-42") is None
    assert generator.parse(None) is None


async def test_issue_skips_numbers_taken_concurrently():
    generator = SequenceGenerator("LAB", 3)
    tried = []

    async def insert(candidate, number):
        tried.append(candidate)
        if number < 3:
            raise DuplicateKeyError("duplicate key")
        return candidate

    assert await generator.issue(1, insert) == "LAB-003"
    assert tried == ["LAB-001", "LAB-002", "LAB-003"]


async def test_issue_gives_up_after_attempts():
    generator = SequenceGenerator("LAB", 3)

    async def insert(candidate, number):
        raise DuplicateKeyError("duplicate key")

    with pytest.raises(GenerationFailed):
        await generator.issue(1, insert, attempts=3)


async def test_first_tickets_of_the_day_per_department(db, make_patient):
    first = await make_patient("Abel", 1)
    second = await make_patient("Bethel", 2)

    one = await QueueService.check_in(CheckInRequest(patient_id=first.id, department="Cardiology"))
    two = await QueueService.check_in(CheckInRequest(patient_id=second.id, department="Cardiology"))
    emergency = await QueueService.check_in(CheckInRequest(patient_id=first.id, department="Emergency"))

    assert one.queue_number == "CARD-001"
    assert two.queue_number == "CARD-002"
    assert emergency.queue_number == "EMER-001"


async def test_numbering_restarts_each_day(db, fake_clock, patient):
    await seed_entry("CARD-010", 10, fake_clock.now() - timedelta(days=1))

    result = await QueueService.check_in(CheckInRequest(patient_id=patient.id, department="Cardiology"))

    assert result.queue_number == "CARD-001"


async def test_restarted_sequence_skips_numbers_issued_earlier(db, fake_clock, patient):
    yesterday = fake_clock.now() - timedelta(days=1)
    for n in (1, 2, 3):
        await seed_entry(f"CARD-{n:03d}", n, yesterday)

    result = await QueueService.check_in(CheckInRequest(patient_id=patient.id, department="Cardiology"))

    assert result.queue_number == "CARD-004"


async def test_next_seed_follows_todays_highest(db, fake_clock):
    await seed_entry("CARD-005", 5, fake_clock.now())
    await seed_entry("CARD-002", 2, fake_clock.now())

    assert await TicketNumberGenerator.next_seed("Cardiology") == 6


async def test_concurrent_check_ins_get_distinct_numbers(db, make_patient):
    patients = [await make_patient(f"Patient{i}", 100 + i) for i in range(6)]

    results = await asyncio.gather(*[
        QueueService.check_in(CheckInRequest(patient_id=p.id, department="Pediatrics"))
        for p in patients
    ])

    numbers = {r.queue_number for r in results}
    assert len(numbers) == len(patients)
    assert all(n.startswith("PEDI-") for n in numbers)


async def test_card_numbers_are_sequential(db, patient, other_patient):
    assert patient.card_number == "CARD-001"
    assert other_patient.card_number == "CARD-002"
    assert patient.medical_record_number == "MRN-CARD-001"


async def test_lookups_stop_at_the_first_free_number(db, fake_clock, patient, monkeypatch):
    yesterday = fake_clock.now() - timedelta(days=1)
    for n in (1, 2, 3):
        await seed_entry(f"CARD-{n:03d}", n, yesterday)
    await seed_entry("CARD-500", 500, fake_clock.now() - timedelta(days=40))

    original = TicketNumberGenerator.is_taken
    looked_up = []

    async def counting(queue_number):
        looked_up.append(queue_number)
        return await original(queue_number)

    monkeypatch.setattr(TicketNumberGenerator, "is_taken", counting)
    result = await QueueService.check_in(CheckInRequest(patient_id=patient.id, department="Cardiology"))

    assert result.queue_number == "CARD-004"
    assert looked_up == ["CARD-001", "CARD-002", "CARD-003", "CARD-004"]


class FailingCollection:
    """Delegates to a real collection except for one method, which fails."""

    def __init__(self, collection, method):
        self.collection = collection
        self.method = method

    def __getattr__(self, name):
        if name == self.method:
            async def fail(*args, **kwargs):
                raise ServerSelectionTimeoutError("mongo unreachable")
            return fail
        return getattr(self.collection, name)


async def assert_nothing_left_behind(db):
    assert await db.queue_entries.count_documents({}) == 0
    assert await db.claims.count_documents({}) == 0


async def test_failed_number_lookup_creates_nothing(db, patient, monkeypatch):
    async def unreachable(queue_number):
        raise ServerSelectionTimeoutError("mongo unreachable")

    monkeypatch.setattr(TicketNumberGenerator, "is_taken", unreachable)

    with pytest.raises(GenerationFailed):
        await QueueService.check_in(CheckInRequest(patient_id=patient.id, department="Cardiology"))

    await assert_nothing_left_behind(db)


async def test_failed_insert_creates_nothing(db, patient, monkeypatch):
    original = Database.get_collection

    def get_collection(name):
        if name == "queue_entries":
            return FailingCollection(original(name), "insert_one")
        return original(name)

    monkeypatch.setattr(Database, "get_collection", get_collection)

    with pytest.raises(GenerationFailed):
        await QueueService.check_in(CheckInRequest(patient_id=patient.id, department="Cardiology"))

    await assert_nothing_left_behind(db)
