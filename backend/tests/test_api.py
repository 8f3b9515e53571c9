from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient

from hospital_queue.main import app
from hospital_queue.models.user import User, UserRole
from hospital_queue.routers.dependencies import (
    get_current_user,
    require_admin,
    require_any_server,
    require_lab_technician,
    require_staff,
)


@pytest.fixture
def receptionist():
    return User(
        _id="reception-1",
        email="front@hospital.et",
        first_name="Liya",
        role=UserRole.RECEPTIONIST,
        created_at=datetime(2026, 3, 1, 8, 0),
    )


@pytest.fixture
def admin():
    return User(
        _id="admin-1",
        email="admin@hospital.et",
        first_name="Selam",
        role=UserRole.ADMIN,
        created_at=datetime(2026, 3, 1, 8, 0),
    )


@pytest.fixture
async def client(db, doctor, lab_tech, receptionist):
    app.dependency_overrides[require_any_server] = lambda: doctor
    app.dependency_overrides[require_lab_technician] = lambda: lab_tech
    app.dependency_overrides[require_staff] = lambda: receptionist
    app.dependency_overrides[get_current_user] = lambda: receptionist
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["database"] == "connected"


async def test_check_in_call_and_complete_over_http(client, patient):
    response = await client.post("/queue/check-in", json={
        "card_number": patient.card_number,
        "department": "Cardiology",
        "priority": "High",
    })
    assert response.status_code == 201
    ticket = response.json()
    assert ticket["queue_number"] == "CARD-001"
    assert ticket["status"] == "Waiting"
    assert ticket["entry"]["id"]

    status = await client.get("/queue/status/card-001")
    assert status.json()["position"] == 1

    called = await client.post("/doctor/call-next", json={"department": "Cardiology"})
    assert called.status_code == 200
    assert called.json()["outcome"] == "called"

    busy = await client.post("/doctor/call-next", json={"department": "Cardiology"})
    assert busy.status_code == 409
    assert busy.json()["error"] == "conflict"
    assert busy.json()["context"]["current_entry"]["queue_number"] == "CARD-001"

    done = await client.post("/doctor/complete", json={"notes": "follow up in a week"})
    assert done.status_code == 200
    assert done.json()["status"] == "Complete"

    empty = await client.post("/doctor/call-next")
    assert empty.status_code == 200
    assert empty.json()["outcome"] == "empty"


async def test_error_kinds_map_to_status_codes(client, patient):
    unknown = await client.post("/queue/check-in", json={"card_number": "CARD-404", "department": "Cardiology"})
    assert unknown.status_code == 404

    invalid = await client.post("/queue/check-in", json={"card_number": patient.card_number, "department": "Dentistry"})
    assert invalid.status_code == 400
    assert invalid.json()["context"]["field"] == "department"

    await client.post("/queue/check-in", json={"card_number": patient.card_number, "department": "Cardiology"})
    duplicate = await client.post("/queue/check-in", json={"card_number": patient.card_number, "department": "Cardiology"})
    assert duplicate.status_code == 409

    missing = await client.get("/queue/status/CARD-999")
    assert missing.status_code == 404


async def test_lab_gate_over_http(client, patient):
    ticket = (await client.post("/queue/check-in", json={
        "patient_id": patient.id,
        "department": "Laboratory",
        "requires_lab_approval": True,
    })).json()

    pending = await client.get("/lab/pending")
    assert pending.json()["total_pending"] == 1

    approved = await client.post("/lab/approve", json={"queue_entry_id": ticket["entry"]["id"]})
    assert approved.json()["status"] == "Waiting"

    again = await client.post("/lab/reject", json={"queue_entry_id": ticket["entry"]["id"], "reason": "late"})
    assert again.status_code == 404


async def test_walk_in_and_appointment(client):
    walk_in = await client.post("/patients/", json={
        "first_name": "Tigist",
        "last_name": "Bekele",
        "phone_number": "+251922334455",
    })
    assert walk_in.status_code == 201
    assert walk_in.json()["card_number"] == "CARD-001"

    booked = await client.post("/appointments/", json={
        "full_name": "Tigist Bekele",
        "phone_number": "+251922334455",
        "department": "Pediatrics",
        "appointment_date": "2026-03-10",
        "appointment_time": "10:30",
    })
    assert booked.status_code == 201
    assert booked.json()["card_number"] == "CARD-001"

    newcomer = await client.post("/appointments/", json={
        "full_name": "Yonas Tadesse",
        "phone_number": "+251933445566",
        "department": "Pediatrics",
        "appointment_date": "2026-03-10",
        "appointment_time": "11:00",
    })
    assert newcomer.json()["card_number"] == "CARD-003"

    listed = await client.get("/appointments/")
    assert len(listed.json()) == 2


async def test_bad_phone_number_is_rejected(client):
    response = await client.post("/patients/", json={"first_name": "X", "phone_number": "0911223344"})
    assert response.status_code == 422


async def test_public_display(client, make_patient):
    for i in range(7):
        p = await make_patient(f"P{i}", 200 + i)
        await client.post("/queue/check-in", json={"patient_id": p.id, "department": "Emergency"})
    await client.post("/doctor/call-next", json={"department": "Emergency"})

    display = (await client.get("/display")).json()

    assert display["total_departments"] == 8
    names = [d["department"] for d in display["departments"]]
    assert names == sorted(names)
    emergency = next(d for d in display["departments"] if d["department"] == "Emergency")
    assert emergency["currently_serving"]["queue_number"] == "EMER-001"
    assert emergency["currently_serving"]["server_name"] == "Hana Tesfaye"
    assert len(emergency["waiting_patients"]) == 5
    assert emergency["waiting_patients"][0]["queue_number"] == "EMER-002"
    assert emergency["statistics"]["total_waiting"] == 6
    assert emergency["statistics"]["currently_in_progress"] == 1


async def test_only_admin_creates_staff_accounts(client, admin):
    account = {
        "email": "hana@hospital.et",
        "password": "s3cret-pass",
        "first_name": "Hana",
        "role": "doctor",
        "department": "Cardiology",
    }

    refused = await client.post("/auth/register", json=account)
    assert refused.status_code == 403

    app.dependency_overrides[require_admin] = lambda: admin
    created = await client.post("/auth/register", json=account)
    assert created.status_code == 201
    assert created.json()["role"] == "doctor"


async def test_notification_history(client, admin, patient, bus):
    await client.post("/queue/check-in", json={"patient_id": patient.id, "department": "Cardiology"})
    await bus.drain()

    refused = await client.get("/notifications/history")
    assert refused.status_code == 403

    app.dependency_overrides[require_admin] = lambda: admin
    history = (await client.get("/notifications/history", params={"recipient": patient.phone_number})).json()

    assert len(history) == 1
    assert history[0]["event_type"] == "queue.created"
    assert "CARD-001" in history[0]["message"]
