from __future__ import annotations

import datetime as dt
import hashlib
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from openpyxl import Workbook
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import cm
from reportlab.pdfgen import canvas
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import NotFoundError, ValidationError
from ..models import ExportRecord, User, WorkSession
from ..utils import minutes_to_hours

EXPORT_MEDIA_TYPES = {
    "pdf": "application/pdf",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _session_row(session: WorkSession) -> Tuple[str, str, str, str, float, float]:
    technician = session.technician.name if session.technician else str(session.technician_id)
    clock_in = session.clock_in_event.timestamp.isoformat() if session.clock_in_event else ""
    clock_out = session.clock_out_event.timestamp.isoformat() if session.clock_out_event else ""
    return (
        session.date.isoformat(),
        technician,
        clock_in,
        clock_out,
        minutes_to_hours(session.duration or 0),
        minutes_to_hours(session.break_duration or 0),
    )


def _write_pdf(path: Path, title: str, sessions: Iterable[WorkSession]) -> None:
    pdf = canvas.Canvas(str(path), pagesize=A4)
    width, height = A4
    y = height - 2 * cm
    pdf.setTitle(title)
    pdf.setFont("Helvetica-Bold", 16)
    pdf.drawString(2 * cm, y, title)
    y -= 1 * cm
    pdf.setFont("Helvetica", 10)
    total_hours = 0.0
    for session in sessions:
        day, technician, _, _, hours, break_hours = _session_row(session)
        total_hours += hours
        pdf.drawString(2 * cm, y, f"{day} | {technician} | {hours:.2f}h work | {break_hours:.2f}h break")
        y -= 0.7 * cm
        if y < 2 * cm:
            pdf.showPage()
            y = height - 2 * cm
            pdf.setFont("Helvetica", 10)
    pdf.setFont("Helvetica-Bold", 11)
    pdf.drawString(2 * cm, max(y - 0.3 * cm, 1.5 * cm), f"Total: {total_hours:.2f}h")
    pdf.save()


def _write_xlsx(path: Path, sessions: Iterable[WorkSession]) -> None:
    wb = Workbook()
    ws = wb.active
    ws.title = "Timesheet"
    ws.append(["Date", "Technician", "Clock in", "Clock out", "Work (h)", "Break (h)"])
    for session in sessions:
        ws.append(list(_session_row(session)))
    wb.save(path)


def _checksum_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            digest.update(chunk)
    return digest.hexdigest()


def completed_sessions(
    db: Session, start_date: dt.date, end_date: dt.date, technician_id: Optional[int] = None
) -> List[WorkSession]:
    query = db.query(WorkSession).filter(
        WorkSession.status == "completed",
        WorkSession.date >= start_date,
        WorkSession.date <= end_date,
    )
    if technician_id is not None:
        query = query.filter(WorkSession.technician_id == technician_id)
    return query.order_by(WorkSession.date.asc(), WorkSession.id.asc()).all()


def export_timesheet(
    db: Session,
    user: User,
    export_format: str,
    start_date: dt.date,
    end_date: dt.date,
    technician_id: Optional[int] = None,
) -> ExportRecord:
    if export_format not in EXPORT_MEDIA_TYPES:
        raise ValidationError("Unsupported export format")
    if end_date < start_date:
        raise ValidationError("range_end must not be before range_start")
    if technician_id is not None:
        technician = db.get(User, technician_id)
        if technician is None or technician.role != "technician":
            raise NotFoundError("Technician not found")

    sessions = completed_sessions(db, start_date, end_date, technician_id)
    scope = f"technician{technician_id}" if technician_id is not None else "all"
    filename = f"timesheet_{scope}_{start_date}_{end_date}_{int(_now().timestamp())}.{export_format}"
    path = settings.export_dir / filename
    path.parent.mkdir(parents=True, exist_ok=True)

    if export_format == "pdf":
        _write_pdf(path, f"LiftCare timesheet {start_date} - {end_date}", sessions)
    else:
        _write_xlsx(path, sessions)

    export = ExportRecord(
        technician_id=technician_id,
        format=export_format,
        range_start=start_date,
        range_end=end_date,
        path=str(path),
        checksum=_checksum_file(path),
        created_by=user.id,
    )
    db.add(export)
    db.commit()
    db.refresh(export)
    return export


def resolve_export_path(db: Session, export_id: int) -> Tuple[ExportRecord, Path]:
    export = db.get(ExportRecord, export_id)
    if export is None:
        raise NotFoundError("Export not found")
    path = Path(export.path)
    if not path.exists():
        raise NotFoundError("Export file missing")
    return export, path
