from __future__ import annotations

import datetime as dt
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from liftcare import models
from liftcare.config import settings
from liftcare.errors import UnexpectedError
from liftcare.services import documents, reports


def _stored_pdf(report_id: int) -> Path:
    return settings.storage_dir / reports.report_pdf_path(report_id)


def test_templates_are_seeded_and_rotate_monthly(client: TestClient, technician_headers):
    listing = client.get("/api/technician/report-templates", headers=technician_headers)
    assert listing.status_code == 200
    templates = listing.json()["data"]
    assert [t["sheet_number"] for t in templates] == [1, 2, 3]
    assert all(t["sections"] and t["sections"][0]["items"] for t in templates)

    for month, sheet in ((0, 1), (1, 2), (2, 3), (3, 1), (11, 3)):
        resp = client.get(f"/api/technician/report-templates/month/{month}", headers=technician_headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["sheet_number"] == sheet

    assert client.get("/api/technician/report-templates/month/12", headers=technician_headers).status_code == 400


def test_seed_is_idempotent(session: Session):
    assert reports.seed_report_templates(session) == 0
    assert session.query(models.ReportTemplate).count() == 3


def test_draft_report_has_no_pdf(
    client: TestClient, session: Session, technician: models.User, technician_headers, admin, report_payload
):
    resp = client.post("/api/technician/reports", json=report_payload, headers=technician_headers)
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["status"] == "draft"
    assert data["pdf_url"] is None
    assert data["technician_name"] == "Tomas Tech"
    assert data["sheet_number"] == 1
    assert session.get(models.TechnicianProfile, technician.id).reports_count == 1
    assert session.query(models.Notification).filter_by(user_id=admin.id).count() == 0


def test_submitted_report_renders_pdf_and_notifies_admins(
    client: TestClient, session: Session, technician_headers, admin, report_payload
):
    resp = client.post(
        "/api/technician/reports", json={**report_payload, "status": "submitted"}, headers=technician_headers
    )
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["pdf_url"].endswith(f"/files/reports/{data['id']}.pdf")
    assert _stored_pdf(data["id"]).read_bytes().startswith(b"%PDF")

    notes = session.query(models.Notification).filter_by(user_id=admin.id).all()
    assert [n.title for n in notes] == ["New maintenance report"]
    assert notes[0].related_entity_type == "reports"
    assert notes[0].related_entity_id == data["id"]


def test_pdf_failure_does_not_fail_report_creation(
    client: TestClient, session: Session, technician_headers, admin, report_payload, monkeypatch
):
    def broken_render(kind, data):
        raise RuntimeError("renderer down")

    monkeypatch.setattr(documents, "render", broken_render)
    resp = client.post(
        "/api/technician/reports", json={**report_payload, "status": "submitted"}, headers=technician_headers
    )
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["pdf_url"] is None
    assert session.get(models.Report, data["id"]) is not None
    assert session.query(models.Notification).filter_by(user_id=admin.id).count() == 1


def test_unknown_template_is_rejected(client: TestClient, technician_headers, report_payload):
    resp = client.post(
        "/api/technician/reports", json={**report_payload, "template_id": 9999}, headers=technician_headers
    )
    assert resp.status_code == 400


def test_missing_report_fields(client: TestClient, technician_headers, report_payload):
    payload = dict(report_payload)
    payload.pop("building_name")
    resp = client.post("/api/technician/reports", json=payload, headers=technician_headers)
    assert resp.status_code == 400
    assert "building_name" in resp.json()["error"]


def test_technician_sees_only_own_reports(
    client: TestClient, session: Session, technician_headers, admin, admin_headers, report_payload
):
    mine = client.post("/api/technician/reports", json=report_payload, headers=technician_headers).json()["data"]
    theirs = client.post("/api/technician/reports", json=report_payload, headers=admin_headers).json()["data"]

    listing = client.get("/api/technician/reports", headers=technician_headers)
    assert [row["id"] for row in listing.json()["data"]] == [mine["id"]]

    assert client.get(f"/api/technician/reports/{mine['id']}", headers=technician_headers).status_code == 200
    forbidden = client.get(f"/api/technician/reports/{theirs['id']}", headers=technician_headers)
    assert forbidden.status_code == 403
    assert client.get("/api/technician/reports/9999", headers=technician_headers).status_code == 404


def test_approval_notifies_technician_once(
    client: TestClient, session: Session, technician: models.User, technician_headers, admin_headers, report_payload
):
    created = client.post(
        "/api/technician/reports", json={**report_payload, "status": "submitted"}, headers=technician_headers
    ).json()["data"]

    approved = client.put(
        f"/api/admin/reports/{created['id']}", json={"status": "approved"}, headers=admin_headers
    )
    assert approved.status_code == 200
    assert approved.json()["data"]["status"] == "approved"
    assert approved.json()["data"]["pdf_url"].endswith(f"/reports/{created['id']}.pdf")

    client.put(f"/api/admin/reports/{created['id']}", json={"status": "approved"}, headers=admin_headers)
    titles = [n.title for n in session.query(models.Notification).filter_by(user_id=technician.id)]
    assert titles == ["Report approved"]


def test_update_rejects_unknown_status(client: TestClient, technician_headers, admin_headers, report_payload):
    created = client.post("/api/technician/reports", json=report_payload, headers=technician_headers).json()["data"]
    resp = client.put(f"/api/admin/reports/{created['id']}", json={"status": "archived"}, headers=admin_headers)
    assert resp.status_code == 400


def test_admin_regenerates_and_deletes_pdf(client: TestClient, technician_headers, admin_headers, report_payload):
    created = client.post("/api/technician/reports", json=report_payload, headers=technician_headers).json()["data"]

    generated = client.post(f"/api/admin/reports/generate-pdf/{created['id']}", headers=admin_headers)
    assert generated.status_code == 200
    assert generated.json()["data"]["pdf_url"].endswith(f"/reports/{created['id']}.pdf")
    assert _stored_pdf(created["id"]).exists()

    assert client.delete(f"/api/admin/reports/{created['id']}", headers=admin_headers).status_code == 200
    assert not _stored_pdf(created["id"]).exists()
    assert client.get(f"/api/admin/reports/{created['id']}", headers=admin_headers).status_code == 404


def test_admin_report_filters(client: TestClient, technician: models.User, technician_headers, admin_headers, report_payload):
    client.post("/api/technician/reports", json=report_payload, headers=technician_headers)
    client.post(
        "/api/technician/reports",
        json={**report_payload, "date": "2024-04-10", "status": "submitted"},
        headers=technician_headers,
    )
    april = client.get("/api/admin/reports?start_date=2024-04-01&end_date=2024-04-30", headers=admin_headers)
    assert [row["date"] for row in april.json()["data"]] == ["2024-04-10"]
    submitted = client.get(f"/api/admin/reports?status=submitted&technician_id={technician.id}", headers=admin_headers)
    assert len(submitted.json()["data"]) == 1


def test_regenerate_failure_is_reported(session: Session, technician: models.User, monkeypatch):
    report = models.Report(
        technician_id=technician.id,
        template_id=session.query(models.ReportTemplate).first().id,
        building_name="Torre Norte",
        elevator_brand="Otis",
        date=dt.date(2024, 3, 4),
        sections=[],
    )
    session.add(report)
    session.commit()

    def broken_render(kind, data):
        raise RuntimeError("boom")

    monkeypatch.setattr(documents, "render", broken_render)
    with pytest.raises(UnexpectedError):
        reports.regenerate_report_pdf(session, report.id)
