"""Report templates, maintenance reports and their PDF pipeline.

Reports reaching ``submitted`` or ``approved`` get a rendered PDF stored at
``reports/{id}.pdf``. Rendering, upload and notifications run as post-commit
tasks: the report write always succeeds on its own and each side effect may
fail independently.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import AuthorizationError, NotFoundError, UnexpectedError, ValidationError
from ..models import REPORT_STATUSES, Building, Report, ReportItem, ReportSection, ReportTemplate, TechnicianProfile, User
from ..schemas import ReportCreateRequest
from . import documents, storage
from .notifications import notify, notify_role
from .outbox import PostCommitTasks

logger = logging.getLogger(__name__)

REVIEWABLE_STATUSES = ("submitted", "approved")

DEFAULT_TEMPLATES: List[Dict[str, Any]] = [
    {
        "type": "type1",
        "name": "Monthly inspection - sheet 1",
        "sheet_number": 1,
        "sections": [
            (
                "Machine room",
                [
                    ("Clean machine room and check ventilation", "checkbox", True),
                    ("Check motor and gearbox oil level", "checkbox", True),
                    ("Inspect brake operation", "checkbox", True),
                    ("Motor temperature (C)", "number", False),
                ],
            ),
            (
                "Car",
                [
                    ("Test car lighting and emergency light", "checkbox", True),
                    ("Test alarm button and intercom", "checkbox", True),
                    ("Check levelling at every stop", "checkbox", False),
                ],
            ),
        ],
    },
    {
        "type": "type2",
        "name": "Monthly inspection - sheet 2",
        "sheet_number": 2,
        "sections": [
            (
                "Hoistway",
                [
                    ("Inspect guide rails and lubrication", "checkbox", True),
                    ("Check traction ropes for wear", "checkbox", True),
                    ("Inspect counterweight", "checkbox", False),
                ],
            ),
            (
                "Landing doors",
                [
                    ("Check door locks and contacts", "checkbox", True),
                    ("Adjust door closing speed", "checkbox", False),
                    ("Notes on landing doors", "text", False),
                ],
            ),
        ],
    },
    {
        "type": "type3",
        "name": "Monthly inspection - sheet 3",
        "sheet_number": 3,
        "sections": [
            (
                "Pit",
                [
                    ("Clean pit", "checkbox", True),
                    ("Inspect buffers", "checkbox", True),
                    ("Test pit stop switch", "checkbox", True),
                ],
            ),
            (
                "Safety devices",
                [
                    ("Test overspeed governor", "checkbox", True),
                    ("Test safety gear", "checkbox", True),
                    ("Measured governor trip speed (m/s)", "number", False),
                ],
            ),
        ],
    },
]


# Templates


def seed_report_templates(db: Session) -> int:
    """Install the default templates when none exist; return how many were added."""
    if db.query(ReportTemplate.id).first() is not None:
        return 0
    for definition in DEFAULT_TEMPLATES:
        template = ReportTemplate(type=definition["type"], name=definition["name"], sheet_number=definition["sheet_number"])
        for section_order, (title, items) in enumerate(definition["sections"], start=1):
            section = ReportSection(title=title, order=section_order)
            for item_order, (description, item_type, required) in enumerate(items, start=1):
                section.items.append(
                    ReportItem(description=description, type=item_type, required=required, order=item_order)
                )
            template.sections.append(section)
        db.add(template)
    db.commit()
    logger.info("Seeded %d report templates", len(DEFAULT_TEMPLATES))
    return len(DEFAULT_TEMPLATES)


def list_templates(db: Session) -> List[ReportTemplate]:
    return db.query(ReportTemplate).order_by(ReportTemplate.sheet_number.asc(), ReportTemplate.id.asc()).all()


def template_for_month(db: Session, month: int) -> ReportTemplate:
    """Template used in ``month`` (0 = January); the three sheets rotate monthly."""
    if month < 0 or month > 11:
        raise ValidationError("Month must be between 0 and 11")
    sheet_number = month % 3 + 1
    template = (
        db.query(ReportTemplate)
        .filter(ReportTemplate.sheet_number == sheet_number)
        .order_by(ReportTemplate.id.asc())
        .first()
    )
    if template is None:
        raise NotFoundError(f"No template found for sheet {sheet_number}")
    return template


# Reports


def _get_report(db: Session, report_id: int) -> Report:
    report = db.get(Report, report_id)
    if report is None:
        raise NotFoundError("Report not found")
    return report


def report_view(report: Report, **overrides: Any) -> Dict[str, Any]:
    """Report columns plus the technician's name, flattened for responses."""
    view = {column.key: getattr(report, column.key) for column in Report.__table__.columns}
    view["technician_name"] = report.technician.name if report.technician else None
    view.update(overrides)
    return view


def _document_data(report: Report) -> Dict[str, Any]:
    return {
        "id": report.id,
        "date": report.date,
        "building_name": report.building_name,
        "elevator_brand": report.elevator_brand,
        "elevator_count": report.elevator_count,
        "floor_count": report.floor_count,
        "technician_name": report.technician.name if report.technician else None,
        "clock_in_time": report.clock_in_time,
        "clock_out_time": report.clock_out_time,
        "sections": report.sections or [],
        "observations": report.observations,
        "technician_signature": report.technician_signature,
        "client_signature": report.client_signature,
    }


def report_pdf_path(report_id: int) -> str:
    return f"reports/{report_id}.pdf"


def store_report_pdf(db: Session, report_id: int) -> str:
    """Render the report, overwrite its stored PDF and record the URL."""
    report = _get_report(db, report_id)
    content = documents.render("report", _document_data(report))
    url = storage.upload_file(content, report_pdf_path(report.id), "application/pdf")
    report.pdf_url = url
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    logger.info("Stored PDF for report %s", report.id)
    return url


def create_report(db: Session, technician: User, payload: ReportCreateRequest) -> Report:
    template = db.get(ReportTemplate, payload.template_id)
    if template is None:
        raise ValidationError("Unknown report template")
    if payload.building_id is not None and db.get(Building, payload.building_id) is None:
        raise ValidationError("Unknown building")

    report = Report(
        technician_id=technician.id,
        template_id=template.id,
        template_type=template.type,
        sheet_number=template.sheet_number,
        building_id=payload.building_id,
        building_name=payload.building_name,
        elevator_brand=payload.elevator_brand,
        elevator_count=payload.elevator_count,
        floor_count=payload.floor_count,
        clock_in_time=payload.clock_in_time,
        clock_out_time=payload.clock_out_time,
        date=payload.date,
        sections=[section.model_dump() for section in payload.sections],
        observations=payload.observations,
        technician_signature=payload.technician_signature,
        client_signature=payload.client_signature,
        status=payload.status,
    )
    db.add(report)
    profile = db.get(TechnicianProfile, technician.id)
    if profile is not None:
        profile.reports_count = (profile.reports_count or 0) + 1
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to create report for technician %s", technician.id)
        raise UnexpectedError("Failed to create report", error=str(exc)) from exc
    db.refresh(report)

    tasks = PostCommitTasks()
    if report.status in REVIEWABLE_STATUSES:
        tasks.add("report-pdf", store_report_pdf, db, report.id)
        tasks.add(
            "notify-admins",
            notify_role,
            db,
            ("admin",),
            "New maintenance report",
            f"Technician {technician.name} submitted a new report for {report.building_name}",
            "info",
            "reports",
            report.id,
        )
    tasks.run()
    db.refresh(report)
    return report


def update_report(
    db: Session,
    report_id: int,
    status: Optional[str] = None,
    observations: Optional[str] = None,
) -> Dict[str, Any]:
    report = _get_report(db, report_id)
    if status is not None and status not in REPORT_STATUSES:
        raise ValidationError("Invalid report status")
    previous_status = report.status
    if status is not None:
        report.status = status
    if observations is not None:
        report.observations = observations
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise UnexpectedError("Failed to update report", error=str(exc)) from exc
    db.refresh(report)

    tasks = PostCommitTasks()
    if status in REVIEWABLE_STATUSES:
        tasks.add("report-pdf", store_report_pdf, db, report.id)
    if status == "approved" and previous_status != "approved":
        tasks.add(
            "notify-technician",
            notify,
            db,
            report.technician_id,
            "Report approved",
            f"Your report for {report.building_name} has been approved",
            "success",
            "reports",
            report.id,
        )
    tasks.run()
    db.refresh(report)
    return report_view(report)


def regenerate_report_pdf(db: Session, report_id: int) -> str:
    _get_report(db, report_id)
    try:
        return store_report_pdf(db, report_id)
    except Exception as exc:
        logger.exception("Failed to generate PDF for report %s", report_id)
        raise UnexpectedError("Failed to generate PDF", error=str(exc)) from exc


def list_reports(
    db: Session,
    technician_id: Optional[int] = None,
    status: Optional[str] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
) -> List[Dict[str, Any]]:
    query = db.query(Report)
    if technician_id is not None:
        query = query.filter(Report.technician_id == technician_id)
    if status:
        query = query.filter(Report.status == status)
    if start_date:
        query = query.filter(Report.date >= start_date)
    if end_date:
        query = query.filter(Report.date <= end_date)
    reports = query.order_by(Report.date.desc(), Report.id.desc()).all()
    return [report_view(report) for report in reports]


def get_report(db: Session, user: User, report_id: int) -> Dict[str, Any]:
    report = _get_report(db, report_id)
    if user.role != "admin" and report.technician_id != user.id:
        raise AuthorizationError("You do not have permission to view this report")
    return report_view(report)


def delete_report(db: Session, report_id: int) -> None:
    report = _get_report(db, report_id)
    db.delete(report)
    db.commit()
    try:
        storage.delete_file(report_pdf_path(report_id))
    except OSError:
        logger.warning("Could not remove stored PDF of report %s", report_id)
