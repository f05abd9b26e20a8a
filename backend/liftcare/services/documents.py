"""PDF rendering for maintenance reports, management summaries and account statements.

``render`` is a pure function of its input: it draws on an in-memory reportlab
canvas and returns the document bytes. Storage is the caller's concern.
"""

from __future__ import annotations

import base64
import binascii
import datetime as dt
import io
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import cm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from ..config import settings
from ..utils import wrap_text

logger = logging.getLogger(__name__)

REPORT_STATUS_LABELS = {"draft": "Draft", "submitted": "Submitted", "approved": "Approved"}


def _format_date(value: Any) -> str:
    if value is None or value == "":
        return ""
    if isinstance(value, str):
        try:
            value = dt.date.fromisoformat(value[:10])
        except ValueError:
            return value
    if isinstance(value, dt.datetime):
        value = value.date()
    return value.strftime("%d/%m/%Y")


def _format_amount(value: Any) -> str:
    return f"{float(value or 0):,.2f}"


def _decode_data_url(value: str) -> Optional[bytes]:
    _, _, payload = value.partition(",")
    if not payload:
        payload = value
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        return None


class _PageWriter:
    """Top-down writer over a reportlab canvas with automatic page breaks."""

    def __init__(self, title: str) -> None:
        self.buffer = io.BytesIO()
        self.page = canvas.Canvas(self.buffer, pagesize=A4)
        self.width, self.height = A4
        self.left = 2 * cm
        self.y = self.height - 2 * cm
        self.font = ("Helvetica", 11)
        self.page.setTitle(title)
        self.page.setFont(*self.font)

    def set_font(self, name: str, size: int) -> None:
        self.font = (name, size)
        self.page.setFont(name, size)

    def new_page(self) -> None:
        self.page.showPage()
        self.page.setFont(*self.font)
        self.y = self.height - 2 * cm

    def ensure_space(self, required: float) -> None:
        if self.y - required < 2.5 * cm:
            self.new_page()

    def title(self, text: str) -> None:
        self.set_font("Helvetica-Bold", 18)
        self.ensure_space(1.2 * cm)
        self.page.drawCentredString(self.width / 2, self.y, text)
        self.y -= 1.2 * cm
        self.set_font("Helvetica", 11)

    def right(self, text: str) -> None:
        self.ensure_space(0.6 * cm)
        self.page.drawRightString(self.width - self.left, self.y, text)
        self.y -= 0.6 * cm

    def heading(self, text: str) -> None:
        self.y -= 0.3 * cm
        self.set_font("Helvetica-Bold", 14)
        self.ensure_space(0.9 * cm)
        self.page.drawString(self.left, self.y, text)
        self.page.line(self.left, self.y - 0.15 * cm, self.width - self.left, self.y - 0.15 * cm)
        self.y -= 0.8 * cm
        self.set_font("Helvetica", 11)

    def subheading(self, text: str) -> None:
        self.set_font("Helvetica-Bold", 12)
        self.ensure_space(0.7 * cm)
        self.page.drawString(self.left, self.y, text)
        self.y -= 0.7 * cm
        self.set_font("Helvetica", 11)

    def paragraph(self, text: str, indent: float = 0, width: int = 90) -> None:
        for chunk in wrap_text(text, width):
            self.ensure_space(0.6 * cm)
            self.page.drawString(self.left + indent, self.y, chunk)
            self.y -= 0.6 * cm

    def table(self, headers: Sequence[str], offsets: Sequence[float], rows: Sequence[Sequence[str]]) -> None:
        def draw_header() -> None:
            self.set_font("Helvetica-Bold", 10)
            for header, offset in zip(headers, offsets):
                self.page.drawString(self.left + offset, self.y, header)
            self.page.line(self.left, self.y - 0.2 * cm, self.width - self.left, self.y - 0.2 * cm)
            self.y -= 0.7 * cm
            self.set_font("Helvetica", 10)

        self.ensure_space(1.4 * cm)
        draw_header()
        for row in rows:
            if self.y - 0.55 * cm < 2.5 * cm:
                self.new_page()
                draw_header()
            for cell, offset in zip(row, offsets):
                self.page.drawString(self.left + offset, self.y, str(cell)[:40])
            self.y -= 0.55 * cm
        self.y -= 0.3 * cm
        self.set_font("Helvetica", 11)

    def image(self, content: bytes, x: float, max_width: float, max_height: float) -> bool:
        try:
            reader = ImageReader(io.BytesIO(content))
            self.page.drawImage(
                reader, x, self.y - max_height, width=max_width, height=max_height, preserveAspectRatio=True, mask="auto"
            )
        except (OSError, ValueError):
            logger.warning("Skipping unreadable embedded image (%d bytes)", len(content))
            return False
        return True

    def footer(self, text: str, generated_at: dt.datetime) -> None:
        self.page.setFont("Helvetica", 9)
        self.page.drawCentredString(self.width / 2, 1.5 * cm, text)
        self.page.drawCentredString(
            self.width / 2, 1.1 * cm, f"Generated on {generated_at.strftime('%d/%m/%Y %H:%M')}"
        )

    def finish(self) -> bytes:
        self.page.save()
        self.buffer.seek(0)
        return self.buffer.read()


def _generated_at(data: Dict[str, Any]) -> dt.datetime:
    value = data.get("generated_at")
    if isinstance(value, dt.datetime):
        return value
    return dt.datetime.now(dt.timezone.utc)


def _render_signatures(writer: _PageWriter, technician_signature: Optional[str], client_signature: Optional[str]) -> None:
    column_width = (writer.width - 2 * writer.left) / 2
    box_height = 3 * cm
    writer.ensure_space(box_height + 1.2 * cm)
    top = writer.y
    for index, (label, signature) in enumerate(
        (("Technician signature", technician_signature), ("Client signature", client_signature))
    ):
        x = writer.left + index * column_width
        writer.y = top
        content = _decode_data_url(signature) if signature else None
        if content is None:
            writer.page.drawString(x, writer.y, f"{label}: not available")
            continue
        writer.page.drawString(x, writer.y, f"{label}:")
        writer.y -= 0.3 * cm
        if not writer.image(content, x, column_width - 0.5 * cm, box_height):
            writer.y -= 0.5 * cm
            writer.page.drawString(x, writer.y, "(unreadable signature)")
    writer.y = top - box_height - 0.8 * cm


def _render_report(data: Dict[str, Any]) -> bytes:
    writer = _PageWriter(f"Maintenance report {data.get('id', '')}")
    writer.title("MAINTENANCE REPORT")
    writer.right(f"Date: {_format_date(data.get('date'))}")
    writer.right(f"Report #: {data.get('id', '')}")

    writer.heading("Building")
    writer.paragraph(f"Name: {data.get('building_name', '')}")
    writer.paragraph(f"Elevator brand: {data.get('elevator_brand', '')}")
    writer.paragraph(f"Elevators: {data.get('elevator_count', '')}")
    writer.paragraph(f"Floors: {data.get('floor_count', '')}")

    writer.heading("Technician")
    writer.paragraph(f"Technician: {data.get('technician_name') or 'Not specified'}")
    writer.paragraph(f"Clock in: {data.get('clock_in_time') or 'Not recorded'}")
    if data.get("clock_out_time"):
        writer.paragraph(f"Clock out: {data['clock_out_time']}")

    writer.heading("Work performed")
    sections: List[Dict[str, Any]] = data.get("sections") or []
    if not sections:
        writer.paragraph("No sections recorded")
    for section in sections:
        writer.subheading(str(section.get("title", "")))
        for item in section.get("items") or []:
            value = item.get("value")
            description = item.get("description", "")
            if isinstance(value, bool) or value is None:
                mark = "[x]" if value is True else "[ ]"
                writer.paragraph(f"{mark} {description}", indent=0.5 * cm)
            else:
                writer.paragraph(f"{description}: {value}", indent=0.5 * cm)

    writer.heading("Observations")
    writer.paragraph(data.get("observations") or "No observations")

    writer.heading("Signatures")
    _render_signatures(writer, data.get("technician_signature"), data.get("client_signature"))

    writer.footer(f"{settings.app_name} - Elevator maintenance services", _generated_at(data))
    return writer.finish()


def _render_management_report(data: Dict[str, Any]) -> bytes:
    writer = _PageWriter("Management report")
    writer.title("MANAGEMENT REPORT")
    writer.right(f"Period: {_format_date(data.get('start_date'))} - {_format_date(data.get('end_date'))}")
    writer.right(f"Generated by: {data.get('generated_by') or 'Administrator'}")
    writer.right(f"Generated on: {_format_date(_generated_at(data))}")

    writer.heading("Summary")
    writer.paragraph(f"Total reports: {data.get('total_reports', 0)}")
    writer.paragraph(f"Active technicians: {data.get('active_technicians', 0)}")
    writer.paragraph(f"Active clients: {data.get('active_clients', 0)}")

    if data.get("include_reports") and data.get("reports"):
        writer.heading("Maintenance reports")
        writer.table(
            ("Building", "Date", "Technician", "Status"),
            (0, 6 * cm, 9 * cm, 14 * cm),
            [
                (
                    row.get("building_name", ""),
                    _format_date(row.get("date")),
                    row.get("technician_name", ""),
                    REPORT_STATUS_LABELS.get(row.get("status", ""), row.get("status", "")),
                )
                for row in data["reports"]
            ],
        )
    if data.get("include_technicians") and data.get("technicians"):
        writer.heading("Technicians")
        writer.table(
            ("Name", "Status", "Reports"),
            (0, 8 * cm, 12 * cm),
            [(row.get("name", ""), row.get("status", ""), str(row.get("reports", 0))) for row in data["technicians"]],
        )
    if data.get("include_clients") and data.get("clients"):
        writer.heading("Clients")
        writer.table(
            ("Name", "Contract", "Buildings", "Invoices"),
            (0, 7 * cm, 10 * cm, 13 * cm),
            [
                (
                    row.get("name", ""),
                    row.get("contract_type", ""),
                    str(row.get("buildings_count", 0)),
                    row.get("invoice_status", ""),
                )
                for row in data["clients"]
            ],
        )

    writer.footer(f"{settings.app_name} - Management report", _generated_at(data))
    return writer.finish()


def _render_account_statement(data: Dict[str, Any]) -> bytes:
    client = data.get("client") or {}
    statistics = data.get("statistics") or {}
    writer = _PageWriter(f"Account statement {client.get('name', '')}")
    writer.title("ACCOUNT STATEMENT")
    writer.right(f"Date: {_format_date(_generated_at(data))}")

    writer.heading("Client")
    writer.paragraph(f"Name: {client.get('name', '')}")
    writer.paragraph(f"RUC: {client.get('ruc', '')}")
    writer.paragraph(f"Email: {client.get('email', '')}")
    if client.get("address"):
        writer.paragraph(f"Address: {client['address']}")
    writer.paragraph(f"Contract: {client.get('contract_type', '')}")

    writer.heading("Summary")
    writer.paragraph(f"Invoices: {statistics.get('total_invoices', 0)}")
    writer.paragraph(f"Pending invoices: {statistics.get('pending_invoices', 0)}")
    writer.paragraph(f"Overdue invoices: {statistics.get('overdue_invoices', 0)}")
    writer.paragraph(f"Total billed: {_format_amount(statistics.get('total_amount'))}")
    writer.paragraph(f"Outstanding: {_format_amount(statistics.get('pending_amount'))}")

    writer.heading("Invoices")
    invoices = data.get("invoices") or []
    if not invoices:
        writer.paragraph("No invoices issued")
    else:
        writer.table(
            ("#", "Issued", "Due", "Amount", "Status"),
            (0, 2 * cm, 5.5 * cm, 9 * cm, 13 * cm),
            [
                (
                    str(row.get("id", "")),
                    _format_date(row.get("issue_date")),
                    _format_date(row.get("due_date")),
                    _format_amount(row.get("amount")),
                    row.get("status", ""),
                )
                for row in invoices
            ],
        )

    writer.footer(f"{settings.app_name} - Account statement", _generated_at(data))
    return writer.finish()


_RENDERERS: Dict[str, Callable[[Dict[str, Any]], bytes]] = {
    "report": _render_report,
    "management_report": _render_management_report,
    "account_statement": _render_account_statement,
}


def render(kind: str, data: Dict[str, Any]) -> bytes:
    renderer = _RENDERERS.get(kind)
    if renderer is None:
        raise ValueError(f"Unknown document kind: {kind}")
    return renderer(data)
