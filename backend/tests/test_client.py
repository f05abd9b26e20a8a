from __future__ import annotations

import datetime as dt

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from liftcare import models
from liftcare.config import settings
from liftcare.services import storage


def _service_request(building_id: int, **overrides):
    payload = {
        "building_id": building_id,
        "type": "maintenance",
        "service_type": "Door adjustment",
        "urgency_level": "high",
        "description": "Landing door on floor 3 closes slowly",
        "preferred_date": "2024-03-20",
        "preferred_time": "09:30",
    }
    payload.update(overrides)
    return payload


def test_service_request_notifies_admins(
    client: TestClient, session: Session, client_headers, admin: models.User, building: models.Building
):
    resp = client.post("/api/client/service-requests", json=_service_request(building.id), headers=client_headers)
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["status"] == "pending"
    assert data["building_name"] == "Torre Norte"
    assert data["building_address"] == "Av. Central 100"

    notes = session.query(models.Notification).filter_by(user_id=admin.id).all()
    assert len(notes) == 1
    assert notes[0].type == "task"
    assert notes[0].related_entity_type == "service_requests"


def test_service_request_for_foreign_building(
    client: TestClient, session: Session, client_headers, admin: models.User
):
    other = models.Building(client_id=admin.id, name="Other", address="Elsewhere", floors=2)
    session.add(other)
    session.commit()
    resp = client.post("/api/client/service-requests", json=_service_request(other.id), headers=client_headers)
    assert resp.status_code == 404
    assert resp.json()["message"] == "Building not found or does not belong to the client"


def test_service_request_filters(client: TestClient, client_headers, building: models.Building):
    client.post("/api/client/service-requests", json=_service_request(building.id), headers=client_headers)
    client.post(
        "/api/client/service-requests",
        json=_service_request(building.id, type="consultation", preferred_date="2024-05-02"),
        headers=client_headers,
    )
    by_type = client.get("/api/client/service-requests?type=consultation", headers=client_headers).json()["data"]
    assert [row["type"] for row in by_type] == ["consultation"]
    march = client.get(
        "/api/client/service-requests?start_date=2024-03-01&end_date=2024-03-31", headers=client_headers
    ).json()["data"]
    assert [row["preferred_date"] for row in march] == ["2024-03-20"]


def test_emergency_call_reaches_active_staff(
    client: TestClient,
    session: Session,
    client_headers,
    admin: models.User,
    technician: models.User,
    building: models.Building,
):
    idle = models.User(email="idle@example.com", password_hash="x", name="Idle", role="technician", status="inactive")
    session.add(idle)
    session.commit()

    elevator = building.elevators[0]
    resp = client.post(
        "/api/client/emergency-calls",
        json={"building_id": building.id, "elevator_id": elevator.id, "description": "Car stuck between floors"},
        headers=client_headers,
    )
    assert resp.status_code == 201
    assert resp.json()["data"]["status"] == "pending"

    recipients = {n.user_id for n in session.query(models.Notification).filter_by(type="error")}
    assert recipients == {admin.id, technician.id}


def test_emergency_call_checks_elevator_building(
    client: TestClient, session: Session, client_headers, building: models.Building
):
    second = models.Building(client_id=building.client_id, name="Annex", address="Side street", floors=3)
    second.elevators.append(models.Elevator(brand="Kone", status="operational"))
    session.add(second)
    session.commit()
    resp = client.post(
        "/api/client/emergency-calls",
        json={"building_id": building.id, "elevator_id": second.elevators[0].id},
        headers=client_headers,
    )
    assert resp.status_code == 404


def test_meeting_defaults_and_validation(client: TestClient, client_headers, admin: models.User):
    resp = client.post(
        "/api/client/meetings",
        json={"title": "Contract renewal", "date": "2024-03-22", "time": "15:00"},
        headers=client_headers,
    )
    assert resp.status_code == 201
    assert resp.json()["data"]["duration"] == 60

    bad_time = client.post(
        "/api/client/meetings",
        json={"title": "Late", "date": "2024-03-22", "time": "25:99"},
        headers=client_headers,
    )
    assert bad_time.status_code == 400

    short = client.post(
        "/api/client/meetings",
        json={"title": "Quick", "date": "2024-03-22", "time": "10:00", "duration": 5},
        headers=client_headers,
    )
    assert short.status_code == 400

    listing = client.get("/api/client/meetings?start_date=2024-03-01", headers=client_headers)
    assert [m["title"] for m in listing.json()["data"]] == ["Contract renewal"]


def test_maintenance_history_lists_approved_reports_only(
    client: TestClient, session: Session, client_headers, technician: models.User, building: models.Building
):
    template_id = session.query(models.ReportTemplate).first().id
    for status, day in (("approved", 4), ("submitted", 5), ("approved", 20)):
        session.add(
            models.Report(
                technician_id=technician.id,
                template_id=template_id,
                building_id=building.id,
                building_name="typed by technician",
                elevator_brand="Otis",
                date=dt.date(2024, 3, day),
                sections=[],
                status=status,
            )
        )
    session.commit()

    history = client.get("/api/client/maintenance-history", headers=client_headers).json()["data"]
    assert [row["date"] for row in history] == ["2024-03-20", "2024-03-04"]
    assert all(row["building_name"] == "Torre Norte" for row in history)
    assert all(row["technician_name"] == "Tomas Tech" for row in history)

    early = client.get("/api/client/maintenance-history?end_date=2024-03-10", headers=client_headers).json()["data"]
    assert len(early) == 1


def test_account_statement_and_pdf(
    client: TestClient, session: Session, client_headers, client_user: models.User
):
    session.add_all(
        [
            models.Invoice(client_id=client_user.id, issue_date=dt.date(2024, 1, 1), due_date=dt.date(2024, 1, 31), amount=300, status="paid"),
            models.Invoice(client_id=client_user.id, issue_date=dt.date(2024, 2, 1), due_date=dt.date(2024, 2, 29), amount=300, status="overdue"),
            models.Invoice(client_id=client_user.id, issue_date=dt.date(2024, 3, 1), due_date=dt.date(2024, 3, 31), amount=250, status="pending"),
        ]
    )
    session.commit()

    statement = client.get("/api/client/account-statement", headers=client_headers)
    assert statement.status_code == 200
    data = statement.json()["data"]
    assert data["client"]["name"] == "Acme Towers"
    assert data["statistics"] == {
        "total_invoices": 3,
        "pending_invoices": 1,
        "overdue_invoices": 1,
        "total_amount": 850.0,
        "pending_amount": 550.0,
        "buildings_count": 1,
        "elevators_count": 1,
    }
    assert [i["issue_date"] for i in data["invoices"]] == ["2024-03-01", "2024-02-01", "2024-01-01"]
    assert data["buildings"][0]["elevators"][0]["brand"] == "Otis"

    generated = client.post("/api/client/account-statement/generate-pdf", headers=client_headers)
    assert generated.status_code == 200
    url = generated.json()["data"]["pdf_url"]
    assert f"/files/account_statements/{client_user.id}_" in url
    stored = settings.storage_dir / storage.path_from_url(url)
    assert stored.read_bytes().startswith(b"%PDF")

    document = session.query(models.Document).filter_by(related_entity_id=client_user.id).one()
    assert document.type == "account_statement"
    assert document.url == url


def test_admin_without_client_profile_has_no_statement(client: TestClient, admin_headers):
    resp = client.get("/api/client/account-statement", headers=admin_headers)
    assert resp.status_code == 404
