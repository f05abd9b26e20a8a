from __future__ import annotations

import datetime as dt

import pytest

from liftcare.services import documents

PIXEL_PNG = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


def _page_count(content: bytes) -> int:
    return content.count(b"/Type /Page") - content.count(b"/Type /Pages")


def _report_data(**overrides):
    data = {
        "id": 7,
        "date": dt.date(2024, 3, 4),
        "building_name": "Torre Norte",
        "elevator_brand": "Otis",
        "elevator_count": 2,
        "floor_count": 12,
        "technician_name": "Tomas Tech",
        "clock_in_time": "08:00",
        "clock_out_time": "12:30",
        "sections": [
            {
                "title": "Machine room",
                "items": [
                    {"description": "Clean machine room", "value": True},
                    {"description": "Inspect brake", "value": False},
                    {"description": "Motor temperature (C)", "value": 41},
                ],
            }
        ],
        "observations": "Brake pads close to the wear limit",
        "technician_signature": PIXEL_PNG,
        "client_signature": "data:image/png;base64,@@not-base64@@",
    }
    data.update(overrides)
    return data


def test_render_report_produces_pdf():
    content = documents.render("report", _report_data())
    assert content.startswith(b"%PDF")
    assert _page_count(content) == 1


def test_render_report_without_sections_or_signatures():
    content = documents.render(
        "report", _report_data(sections=[], technician_signature=None, client_signature=None, observations=None)
    )
    assert content.startswith(b"%PDF")


def test_long_report_breaks_pages():
    items = [{"description": f"Check item number {index}", "value": index % 2 == 0} for index in range(120)]
    content = documents.render("report", _report_data(sections=[{"title": "Everything", "items": items}]))
    assert _page_count(content) > 1


def test_render_management_report_sections_are_optional():
    data = {
        "start_date": dt.date(2024, 3, 1),
        "end_date": dt.date(2024, 3, 31),
        "generated_by": "Ada Admin",
        "total_reports": 1,
        "active_technicians": 1,
        "active_clients": 1,
        "include_reports": True,
        "include_technicians": False,
        "include_clients": True,
        "reports": [
            {"building_name": "Torre Norte", "date": dt.date(2024, 3, 4), "technician_name": "Tomas", "status": "approved"}
        ],
        "technicians": [{"name": "Tomas", "status": "active", "reports": 1}],
        "clients": [{"name": "Acme", "contract_type": "monthly", "buildings_count": 1, "invoice_status": "paid"}],
    }
    assert documents.render("management_report", data).startswith(b"%PDF")


def test_render_account_statement():
    data = {
        "client": {"name": "Acme Towers", "ruc": "20123456789", "email": "client@example.com", "contract_type": "monthly"},
        "statistics": {"total_invoices": 1, "pending_invoices": 1, "overdue_invoices": 0, "total_amount": 250, "pending_amount": 250},
        "invoices": [
            {"id": 1, "issue_date": dt.date(2024, 3, 1), "due_date": dt.date(2024, 3, 31), "amount": 250, "status": "pending"}
        ],
        "generated_at": dt.datetime(2024, 3, 5, 10, 0, tzinfo=dt.timezone.utc),
    }
    assert documents.render("account_statement", data).startswith(b"%PDF")


def test_render_unknown_kind():
    with pytest.raises(ValueError):
        documents.render("invoice", {})


def test_decode_data_url():
    assert documents._decode_data_url(PIXEL_PNG).startswith(b"\x89PNG")
    assert documents._decode_data_url("data:image/png;base64,%%%") is None
