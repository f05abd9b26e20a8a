from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import NotFoundError, UnexpectedError, ValidationError
from ..models import ClientProfile, ManagementReport, Report, User
from ..schemas import ManagementReportRequest
from . import documents, storage

logger = logging.getLogger(__name__)


def _management_view(report: ManagementReport) -> Dict[str, Any]:
    view = {column.key: getattr(report, column.key) for column in ManagementReport.__table__.columns}
    view["generator_name"] = report.generator.name if report.generator else "Unknown"
    return view


def _collect(db: Session, payload: ManagementReportRequest, generated_by: User) -> Dict[str, Any]:
    reports = (
        db.query(Report)
        .filter(Report.date >= payload.start_date, Report.date <= payload.end_date)
        .order_by(Report.date.asc(), Report.id.asc())
        .all()
    )
    technicians = (
        db.query(User)
        .filter(User.role == "technician", User.status == "active")
        .order_by(User.name.asc())
        .all()
    )
    clients = (
        db.query(ClientProfile)
        .join(User, User.id == ClientProfile.user_id)
        .filter(User.role == "client", User.status == "active")
        .order_by(ClientProfile.name.asc())
        .all()
    )
    return {
        "start_date": payload.start_date,
        "end_date": payload.end_date,
        "generated_by": generated_by.name,
        "include_reports": payload.include_reports,
        "include_technicians": payload.include_technicians,
        "include_clients": payload.include_clients,
        "total_reports": len(reports),
        "active_technicians": len(technicians),
        "active_clients": len(clients),
        "reports": [
            {
                "building_name": report.building_name,
                "date": report.date,
                "technician_name": report.technician.name if report.technician else "",
                "status": report.status,
            }
            for report in reports
        ],
        "technicians": [
            {
                "name": technician.name,
                "status": technician.status,
                "reports": technician.technician_profile.reports_count if technician.technician_profile else 0,
            }
            for technician in technicians
        ],
        "clients": [
            {
                "name": client.name,
                "contract_type": client.contract_type,
                "buildings_count": client.buildings_count,
                "invoice_status": client.invoice_status,
            }
            for client in clients
        ],
    }


def create_management_report(db: Session, user: User, payload: ManagementReportRequest) -> Dict[str, Any]:
    if payload.end_date < payload.start_date:
        raise ValidationError("end_date must not be before start_date")
    data = _collect(db, payload, user)
    try:
        content = documents.render("management_report", data)
        path = f"management_reports/report_{dt.date.today().isoformat()}.pdf"
        url = storage.upload_file(content, path, "application/pdf")
    except Exception as exc:
        logger.exception("Failed to render management report")
        raise UnexpectedError("Failed to generate management report", error=str(exc)) from exc

    report = ManagementReport(
        start_date=payload.start_date,
        end_date=payload.end_date,
        total_reports=data["total_reports"],
        active_technicians=data["active_technicians"],
        active_clients=data["active_clients"],
        generated_by=user.id,
        pdf_url=url,
    )
    db.add(report)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise UnexpectedError("Failed to store management report", error=str(exc)) from exc
    db.refresh(report)
    logger.info("Management report %s generated by %s", report.id, user.id)
    return _management_view(report)


def list_management_reports(
    db: Session, start_date: Optional[dt.date] = None, end_date: Optional[dt.date] = None
) -> List[Dict[str, Any]]:
    query = db.query(ManagementReport)
    if start_date:
        query = query.filter(
            ManagementReport.created_at >= dt.datetime.combine(start_date, dt.time.min, tzinfo=dt.timezone.utc)
        )
    if end_date:
        query = query.filter(
            ManagementReport.created_at <= dt.datetime.combine(end_date, dt.time.max, tzinfo=dt.timezone.utc)
        )
    reports = query.order_by(ManagementReport.created_at.desc(), ManagementReport.id.desc()).all()
    return [_management_view(report) for report in reports]


def _get_management_report(db: Session, report_id: int) -> ManagementReport:
    report = db.get(ManagementReport, report_id)
    if report is None:
        raise NotFoundError("Management report not found")
    return report


def get_management_report(db: Session, report_id: int) -> Dict[str, Any]:
    return _management_view(_get_management_report(db, report_id))


def delete_management_report(db: Session, report_id: int) -> None:
    report = _get_management_report(db, report_id)
    pdf_path = storage.path_from_url(report.pdf_url) if report.pdf_url else None
    db.delete(report)
    db.commit()
    if pdf_path:
        still_used = (
            db.query(ManagementReport.id).filter(ManagementReport.pdf_url == report.pdf_url).first() is not None
        )
        if not still_used:
            storage.delete_file(pdf_path)
