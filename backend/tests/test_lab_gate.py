import pytest

from hospital_queue.database import Database
from hospital_queue.errors import PermissionDenied, QueueEntryNotFound
from hospital_queue.models.queue import CheckInRequest, DispatchOutcome, Priority, QueueStatus
from hospital_queue.services.dispatch import DispatchEngine
from hospital_queue.services.events import EventType
from hospital_queue.services.lab_gate import LabGate
from hospital_queue.services.queue_service import QueueService


async def gated_check_in(patient, priority=Priority.MEDIUM):
    return await QueueService.check_in(CheckInRequest(
        patient_id=patient.id,
        department="Laboratory",
        service_type="Laboratory",
        priority=priority,
        requires_lab_approval=True,
    ))


async def sms_for(patient_id):
    cursor = Database.get_collection("notifications").find({"patient_id": patient_id}, sort=[("sent_at", 1)])
    return [doc async for doc in cursor]


async def test_gated_entry_is_invisible_to_dispatch(db, patient, lab_tech):
    result = await gated_check_in(patient)

    assert result.status is QueueStatus.PENDING_LAB_APPROVAL
    called = await DispatchEngine.call_next(lab_tech, "Laboratory")
    assert called.outcome is DispatchOutcome.EMPTY


async def test_approve_moves_entry_to_the_main_queue(db, fake_clock, patient, lab_tech, bus):
    result = await gated_check_in(patient)
    fake_clock.advance(minutes=20)

    approved = await LabGate.approve(lab_tech, result.entry.id)
    await bus.drain()

    assert approved.status is QueueStatus.WAITING
    assert approved.joined_at == result.entry.joined_at
    messages = await sms_for(patient.id)
    assert messages[-1]["event_type"] == EventType.QUEUE_APPROVED
    assert "approved" in messages[-1]["message"]

    called = await DispatchEngine.call_next(lab_tech, "Laboratory")
    assert called.entry.id == result.entry.id


async def test_reject_cancels_with_reason(db, patient, lab_tech, bus):
    result = await gated_check_in(patient)

    rejected = await LabGate.reject(lab_tech, result.entry.id, "Sample missing")
    await bus.drain()

    assert rejected.status is QueueStatus.CANCELLED
    assert rejected.notes == "Sample missing"
    messages = await sms_for(patient.id)
    assert messages[-1]["event_type"] == EventType.QUEUE_LAB_REJECTED
    assert "Reason: Sample missing" in messages[-1]["message"]


async def test_reject_without_reason_uses_default(db, patient, lab_tech):
    result = await gated_check_in(patient)

    rejected = await LabGate.reject(lab_tech, result.entry.id, "  ")

    assert rejected.notes == "Rejected by lab technician"


async def test_second_decision_fails_without_notifying_again(db, patient, lab_tech, bus):
    result = await gated_check_in(patient)
    await LabGate.approve(lab_tech, result.entry.id)
    await bus.drain()
    sent = len(await sms_for(patient.id))

    with pytest.raises(QueueEntryNotFound):
        await LabGate.approve(lab_tech, result.entry.id)
    with pytest.raises(QueueEntryNotFound):
        await LabGate.reject(lab_tech, result.entry.id, "too late")

    assert bus.pending == 0
    assert len(await sms_for(patient.id)) == sent


async def test_pending_list_in_service_order(db, fake_clock, patient, other_patient, lab_tech):
    first = await gated_check_in(patient)
    fake_clock.advance(minutes=1)
    urgent = await gated_check_in(other_patient, Priority.URGENT)

    pending = await LabGate.list_pending(lab_tech)

    assert pending.total_pending == 2
    assert [e.id for e in pending.entries] == [urgent.entry.id, first.entry.id]


async def test_only_lab_technicians_review(db, patient, doctor):
    result = await gated_check_in(patient)

    with pytest.raises(PermissionDenied):
        await LabGate.approve(doctor, result.entry.id)
    with pytest.raises(PermissionDenied):
        await LabGate.list_pending(doctor)
