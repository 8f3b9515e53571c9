from bson import ObjectId

from hospital_queue.database import Database
from hospital_queue.models.queue import CheckInRequest, Priority, QueueStatus
from hospital_queue.services.queue_service import QueueService
from hospital_queue.services.wait_time import WaitTimeEstimator


async def completed_entry(department, minutes, joined_at, service_type="General Consultation"):
    await Database.get_collection("queue_entries").insert_one({
        "_id": ObjectId(),
        "queue_number": f"X-{ObjectId()}",
        "department": department,
        "service_type": service_type,
        "status": QueueStatus.COMPLETE.value,
        "actual_wait_time": minutes,
        "joined_at": joined_at,
    })


async def test_historical_average_defaults_without_samples(db):
    assert await WaitTimeEstimator.historical_average("Radiology") == 15


async def test_historical_average_of_todays_completions(db, fake_clock):
    await completed_entry("Radiology", 10, fake_clock.now())
    await completed_entry("Radiology", 21, fake_clock.now())

    assert await WaitTimeEstimator.historical_average("Radiology") == 16


async def test_estimates_fall_back_when_the_store_fails(fake_clock, monkeypatch):
    class Broken:
        def __getattr__(self, name):
            raise RuntimeError("store unavailable")

    monkeypatch.setattr(Database, "get_collection", classmethod(lambda cls, name: Broken()))

    assert await WaitTimeEstimator.load_based("Cardiology") == 15
    assert await WaitTimeEstimator.historical_average("Cardiology") == 15
    assert await WaitTimeEstimator.average_service_time("Cardiology", "Specialist") == 15


async def test_load_based_estimate_at_check_in(db, make_patient):
    first = await make_patient("Abel", 1)
    second = await make_patient("Bethel", 2)

    one = await QueueService.check_in(CheckInRequest(patient_id=first.id, department="Cardiology"))
    two = await QueueService.check_in(CheckInRequest(patient_id=second.id, department="Cardiology"))

    assert one.estimated_wait_time == 0
    assert two.estimated_wait_time == 15


async def test_positional_estimate_on_status_check(db, fake_clock, make_patient):
    patients = [await make_patient(f"P{i}", 10 + i) for i in range(3)]
    numbers = []
    for p in patients:
        result = await QueueService.check_in(CheckInRequest(
            patient_id=p.id, department="Orthopedics", priority=Priority.LOW,
        ))
        numbers.append(result.queue_number)
        fake_clock.advance(minutes=1)

    view = await QueueService.get_status(numbers[2])

    assert view.status is QueueStatus.WAITING
    assert view.position == 3
    assert view.estimated_wait_time == 45
    assert view.department_status.waiting_count == 3
