import pytest

from hospital_queue.database import Database
from hospital_queue.errors import ConflictError, DuplicateLabRequest, InvalidTransition, PermissionDenied, ValidationFailed
from hospital_queue.models.lab import LabRequestCreate, LabRequestStatus, LabRequestUpdate
from hospital_queue.models.queue import CheckInRequest, QueueStatus
from hospital_queue.services.dispatch import DispatchEngine
from hospital_queue.services.events import EventType
from hospital_queue.services.lab_request_service import LabRequestService
from hospital_queue.services.queue_service import QueueService
from hospital_queue.services.state_machine import QueueStateMachine


@pytest.fixture
async def in_consultation(db, patient, doctor):
    await QueueService.check_in(CheckInRequest(patient_id=patient.id, department="Cardiology"))
    called = await DispatchEngine.call_next(doctor, "Cardiology")
    return called.entry


async def request_for(doctor, entry, patient):
    return await LabRequestService.create(doctor, LabRequestCreate(
        queue_entry_id=entry.id, card_number=patient.card_number.lower(), notes="CBC",
    ))


async def test_doctor_requests_lab_test(db, in_consultation, patient, doctor):
    request = await request_for(doctor, in_consultation, patient)

    assert request.status is LabRequestStatus.PENDING
    assert request.card_number == patient.card_number
    assert request.queue_number == in_consultation.queue_number
    assert request.doctor_id == doctor.id


async def test_one_request_per_entry(db, in_consultation, patient, doctor):
    await request_for(doctor, in_consultation, patient)

    with pytest.raises(DuplicateLabRequest):
        await request_for(doctor, in_consultation, patient)


async def test_lab_technicians_cannot_request(db, in_consultation, patient, lab_tech):
    with pytest.raises(PermissionDenied):
        await request_for(lab_tech, in_consultation, patient)


async def test_finished_entries_cannot_get_requests(db, in_consultation, patient, doctor):
    await DispatchEngine.complete(doctor)

    with pytest.raises(ConflictError):
        await request_for(doctor, in_consultation, patient)


async def test_rejected_request_rejects_the_entry(db, in_consultation, patient, doctor, lab_tech, bus):
    request = await request_for(doctor, in_consultation, patient)

    updated = await LabRequestService.update(lab_tech, request.id, LabRequestUpdate(
        status=LabRequestStatus.REJECTED, rejection_reason="Fasting required",
    ))
    await bus.drain()

    assert updated.status is LabRequestStatus.REJECTED
    assert updated.rejection_reason == "Fasting required"
    entry = await QueueStateMachine.load(in_consultation.id)
    assert entry["status"] == QueueStatus.REJECTED.value
    assert entry["actual_wait_time"] is not None

    sms = await Database.get_collection("notifications").find_one({"event_type": EventType.QUEUE_REJECTED})
    assert "Fasting required" in sms["message"]

    # the doctor is free again
    assert await DispatchEngine.current_entry(doctor.id) is None


async def test_completed_request_leaves_entry_alone(db, in_consultation, patient, doctor, lab_tech):
    request = await request_for(doctor, in_consultation, patient)

    await LabRequestService.update(lab_tech, request.id, LabRequestUpdate(status=LabRequestStatus.IN_PROGRESS))
    done = await LabRequestService.update(lab_tech, request.id, LabRequestUpdate(
        status=LabRequestStatus.COMPLETE, test_results="normal",
    ))

    assert done.status is LabRequestStatus.COMPLETE
    assert done.test_results == "normal"
    assert done.started_at is not None and done.completed_at is not None
    entry = await QueueStateMachine.load(in_consultation.id)
    assert entry["status"] == QueueStatus.IN_PROGRESS.value


async def test_request_transitions_are_checked(db, in_consultation, patient, doctor, lab_tech):
    request = await request_for(doctor, in_consultation, patient)

    with pytest.raises(InvalidTransition):
        await LabRequestService.update(lab_tech, request.id, LabRequestUpdate(status=LabRequestStatus.COMPLETE))
    with pytest.raises(ValidationFailed):
        await LabRequestService.update(lab_tech, request.id, LabRequestUpdate(status=LabRequestStatus.PENDING))

    assert (await LabRequestService.get(request.id)).status is LabRequestStatus.PENDING


async def test_rejection_refused_when_entry_already_finished(db, in_consultation, patient, doctor, lab_tech):
    request = await request_for(doctor, in_consultation, patient)
    await DispatchEngine.complete(doctor)

    with pytest.raises(InvalidTransition):
        await LabRequestService.update(lab_tech, request.id, LabRequestUpdate(
            status=LabRequestStatus.REJECTED, rejection_reason="late",
        ))

    assert (await LabRequestService.get(request.id)).status is LabRequestStatus.PENDING


async def test_list_filters(db, in_consultation, patient, doctor):
    await request_for(doctor, in_consultation, patient)

    assert len(await LabRequestService.list(LabRequestStatus.PENDING)) == 1
    assert await LabRequestService.list(LabRequestStatus.COMPLETE) == []
    assert len(await LabRequestService.list(department="Cardiology")) == 1
