# backend/tests/routes/test_admin_routes.py
"""Front-desk routes under /api/v1/admin."""

import pytest

BASE = "/api/v1/admin"


@pytest.fixture
def patient(client):
    r = client.post(f"{BASE}/register-user", json={"name": " Thandi M ", "phone": "+27821234567"})
    assert r.status_code == 201
    return r.json()["user"]


@pytest.fixture
def treatment(client):
    r = client.post(f"{BASE}/treatments", json={"name": "Facial", "speciality": "Skin"})
    assert r.status_code == 201
    return r.json()


@pytest.fixture
def desk_booking(patient, treatment):
    def _payload(**overrides):
        data = {
            "user_id": patient["id"],
            "treatment_id": treatment["id"],
            "practitioner": "Dr Naidoo",
            "slot_date": "2030-01-15",
            "slot_time": "09:00",
            "duration_minutes": 45,
            "amount": "300.00",
            "payment_type": "full",
            "use_credit": True,
        }
        data.update(overrides)
        return data

    return _payload


def test_register_and_login(client, patient):
    assert patient["name"] == "Thandi M"
    assert patient["credit_balance"] == 0.0

    r = client.post(f"{BASE}/register-user", json={"name": "Other", "phone": "+27821234567"})
    assert r.status_code == 409
    assert r.json()["code"] == "DUPLICATE_PHONE"

    r = client.post(f"{BASE}/login-user", json={"phone": "+27821234567"})
    assert r.status_code == 200
    assert r.json()["user"]["id"] == patient["id"]

    r = client.post(f"{BASE}/login-user", json={"phone": "+27820000000"})
    assert r.status_code == 404
    assert r.json()["message"] == "User not found. Please register first."


def test_desk_booking_with_cash(client, desk_booking):
    r = client.post(f"{BASE}/book-appointment", json=desk_booking(payment_method="cash"))

    assert r.status_code == 201
    appointment = r.json()["appointment"]
    assert appointment["payment_status"] == "full"
    assert appointment["transaction_details"][0]["payment_method"] == "cash"


def test_accept_balance_and_dashboard(client, desk_booking):
    r = client.post(f"{BASE}/book-appointment", json=desk_booking(payment_type="partial"))
    appointment_id = r.json()["appointment"]["id"]

    r = client.post(
        f"{BASE}/appointments/{appointment_id}/accept-balance",
        json={"payment_method": "speed_point"},
    )
    assert r.status_code == 200
    assert r.json()["appointment"]["payment_status"] == "full"

    r = client.get(f"{BASE}/dashboard")
    assert r.status_code == 200
    summary = r.json()
    assert summary["treatments"] == 1
    assert summary["patients"] == 1
    assert summary["appointments"] == 1
    assert summary["total_received"] == 300.0
    assert summary["total_invoiced"] == 300.0
    latest = summary["latest_appointments"][0]
    assert latest["status_label"] == "Paid in Full (via Speed Point)"
    assert latest["can_accept_balance"] is False


def test_cancel_and_credit_user(client, desk_booking, patient):
    r = client.post(f"{BASE}/book-appointment", json=desk_booking(payment_method="cash"))
    appointment_id = r.json()["appointment"]["id"]

    r = client.post(f"{BASE}/appointments/{appointment_id}/credit-user")
    assert r.status_code == 400

    assert client.post(f"{BASE}/appointments/{appointment_id}/cancel").status_code == 200

    r = client.post(f"{BASE}/appointments/{appointment_id}/credit-user")
    assert r.status_code == 200
    assert r.json()["credit_balance"] == 300.0

    r = client.post(f"{BASE}/appointments/{appointment_id}/credit-user")
    assert r.status_code == 409
    assert r.json()["code"] == "CREDIT_ALREADY_PROCESSED"

    r = client.get(f"{BASE}/users/{patient['id']}")
    history = r.json()["credit_history"]
    assert [(h["entry_type"], h["amount"]) for h in history] == [("credit", 300.0)]

    summary = client.get(f"{BASE}/dashboard").json()
    assert summary["total_received"] == 0.0
    assert summary["total_invoiced"] == 300.0


def test_complete_and_delete(client, desk_booking):
    r = client.post(f"{BASE}/book-appointment", json=desk_booking())
    appointment_id = r.json()["appointment"]["id"]

    r = client.post(f"{BASE}/appointments/{appointment_id}/complete")
    assert r.status_code == 200
    assert r.json()["appointment"]["is_completed"] is True

    assert client.post(f"{BASE}/appointments/{appointment_id}/cancel").status_code == 422

    r = client.delete(f"{BASE}/appointments/{appointment_id}")
    assert r.status_code == 200
    assert client.get(f"{BASE}/appointments").json() == []


def test_treatment_catalogue(client, treatment):
    r = client.get(f"{BASE}/treatments")
    assert [t["id"] for t in r.json()] == [treatment["id"]]

    r = client.delete(f"{BASE}/treatments/{treatment['id']}")
    assert r.status_code == 200
    assert r.json()["message"] == "Treatment deleted successfully"

    r = client.delete(f"{BASE}/treatments/{treatment['id']}")
    assert r.status_code == 404


def test_health_and_metrics(client):
    assert client.get("/health").json()["status"] == "healthy"

    r = client.get("/metrics")
    assert r.status_code == 200
    assert "treatbook_" in r.text
