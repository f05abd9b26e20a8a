from __future__ import annotations

import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth import requires
from ..database import get_db
from ..models import User
from ..schemas import (
    ClockEventRequest,
    ClockEventResponse,
    ClockResponse,
    Envelope,
    ReportCreateRequest,
    ReportResponse,
    ReportTemplateResponse,
    TechnicianStatsResponse,
    WorkSessionDetailResponse,
    WorkSessionResponse,
)
from ..services import clock, reports

field_staff = requires("technician", "admin")

router = APIRouter(prefix="/api/technician", tags=["technician"], dependencies=[Depends(field_staff)])

CLOCK_MESSAGES = {
    "clock_in": "Clocked in",
    "break_start": "Break started",
    "break_end": "Break ended",
    "clock_out": "Clocked out",
}


@router.post("/clock", response_model=Envelope[ClockResponse])
def clock_event(
    payload: ClockEventRequest,
    user: User = Depends(field_staff),
    db: Session = Depends(get_db),
) -> Envelope[ClockResponse]:
    event, session = clock.record_clock_event(db, user.id, payload.type, payload.location, payload.notes)
    return Envelope[ClockResponse](
        data=ClockResponse(
            event=ClockEventResponse.model_validate(event),
            session=WorkSessionResponse.model_validate(session),
        ),
        message=CLOCK_MESSAGES[payload.type],
    )


@router.get("/work-sessions", response_model=Envelope[List[WorkSessionDetailResponse]])
def work_sessions(
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    user: User = Depends(field_staff),
    db: Session = Depends(get_db),
) -> Envelope[List[WorkSessionDetailResponse]]:
    sessions = clock.list_work_sessions(db, user.id, start_date, end_date)
    return Envelope[List[WorkSessionDetailResponse]](
        data=[WorkSessionDetailResponse.model_validate(session) for session in sessions]
    )


@router.get("/stats", response_model=Envelope[TechnicianStatsResponse])
def stats(user: User = Depends(field_staff), db: Session = Depends(get_db)) -> Envelope[TechnicianStatsResponse]:
    return Envelope[TechnicianStatsResponse](
        data=TechnicianStatsResponse.model_validate(clock.technician_stats(db, user.id))
    )


@router.get("/report-templates", response_model=Envelope[List[ReportTemplateResponse]])
def report_templates(db: Session = Depends(get_db)) -> Envelope[List[ReportTemplateResponse]]:
    return Envelope[List[ReportTemplateResponse]](
        data=[ReportTemplateResponse.model_validate(template) for template in reports.list_templates(db)]
    )


@router.get("/report-templates/month/{month}", response_model=Envelope[ReportTemplateResponse])
def report_template_for_month(month: int, db: Session = Depends(get_db)) -> Envelope[ReportTemplateResponse]:
    template = reports.template_for_month(db, month)
    return Envelope[ReportTemplateResponse](data=ReportTemplateResponse.model_validate(template))


@router.post("/reports", response_model=Envelope[ReportResponse], status_code=status.HTTP_201_CREATED)
def create_report(
    payload: ReportCreateRequest,
    user: User = Depends(field_staff),
    db: Session = Depends(get_db),
) -> Envelope[ReportResponse]:
    report = reports.create_report(db, user, payload)
    return Envelope[ReportResponse](
        data=ReportResponse.model_validate(reports.report_view(report)), message="Report created"
    )


@router.get("/reports", response_model=Envelope[List[ReportResponse]])
def list_reports(
    status: Optional[str] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    user: User = Depends(field_staff),
    db: Session = Depends(get_db),
) -> Envelope[List[ReportResponse]]:
    rows = reports.list_reports(db, user.id, status, start_date, end_date)
    return Envelope[List[ReportResponse]](data=[ReportResponse.model_validate(row) for row in rows])


@router.get("/reports/{report_id}", response_model=Envelope[ReportResponse])
def get_report(
    report_id: int,
    user: User = Depends(field_staff),
    db: Session = Depends(get_db),
) -> Envelope[ReportResponse]:
    return Envelope[ReportResponse](data=ReportResponse.model_validate(reports.get_report(db, user, report_id)))
