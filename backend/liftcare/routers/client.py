from __future__ import annotations

import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth import requires
from ..database import get_db
from ..models import User
from ..schemas import (
    AccountStatementResponse,
    EmergencyCallCreate,
    EmergencyCallResponse,
    Envelope,
    MeetingCreate,
    MeetingResponse,
    PdfUrlResponse,
    ReportResponse,
    ServiceRequestCreate,
    ServiceRequestResponse,
)
from ..services import clients

client_or_admin = requires("client", "admin")

router = APIRouter(prefix="/api/client", tags=["client"], dependencies=[Depends(client_or_admin)])


@router.post(
    "/service-requests",
    response_model=Envelope[ServiceRequestResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_service_request(
    payload: ServiceRequestCreate,
    user: User = Depends(client_or_admin),
    db: Session = Depends(get_db),
) -> Envelope[ServiceRequestResponse]:
    request = clients.create_service_request(db, user, payload)
    return Envelope[ServiceRequestResponse](
        data=ServiceRequestResponse.model_validate(request), message="Service request created"
    )


@router.get("/service-requests", response_model=Envelope[List[ServiceRequestResponse]])
def list_service_requests(
    status: Optional[str] = None,
    type: Optional[str] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    user: User = Depends(client_or_admin),
    db: Session = Depends(get_db),
) -> Envelope[List[ServiceRequestResponse]]:
    requests = clients.list_service_requests(db, user, status, type, start_date, end_date)
    return Envelope[List[ServiceRequestResponse]](
        data=[ServiceRequestResponse.model_validate(request) for request in requests]
    )


@router.post(
    "/emergency-calls",
    response_model=Envelope[EmergencyCallResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_emergency_call(
    payload: EmergencyCallCreate,
    user: User = Depends(client_or_admin),
    db: Session = Depends(get_db),
) -> Envelope[EmergencyCallResponse]:
    call = clients.create_emergency_call(db, user, payload)
    return Envelope[EmergencyCallResponse](
        data=EmergencyCallResponse.model_validate(call),
        message="Emergency call registered. A technician will contact you shortly.",
    )


@router.post("/meetings", response_model=Envelope[MeetingResponse], status_code=status.HTTP_201_CREATED)
def schedule_meeting(
    payload: MeetingCreate,
    user: User = Depends(client_or_admin),
    db: Session = Depends(get_db),
) -> Envelope[MeetingResponse]:
    meeting = clients.schedule_meeting(db, user, payload)
    return Envelope[MeetingResponse](data=MeetingResponse.model_validate(meeting), message="Meeting scheduled")


@router.get("/meetings", response_model=Envelope[List[MeetingResponse]])
def list_meetings(
    status: Optional[str] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    user: User = Depends(client_or_admin),
    db: Session = Depends(get_db),
) -> Envelope[List[MeetingResponse]]:
    meetings = clients.list_meetings(db, user, status, start_date, end_date)
    return Envelope[List[MeetingResponse]](data=[MeetingResponse.model_validate(meeting) for meeting in meetings])


@router.get("/maintenance-history", response_model=Envelope[List[ReportResponse]])
def maintenance_history(
    building_id: Optional[int] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    user: User = Depends(client_or_admin),
    db: Session = Depends(get_db),
) -> Envelope[List[ReportResponse]]:
    rows = clients.maintenance_history(db, user, building_id, start_date, end_date)
    return Envelope[List[ReportResponse]](data=[ReportResponse.model_validate(row) for row in rows])


@router.get("/account-statement", response_model=Envelope[AccountStatementResponse])
def account_statement(
    user: User = Depends(client_or_admin), db: Session = Depends(get_db)
) -> Envelope[AccountStatementResponse]:
    statement = clients.account_statement(db, user)
    return Envelope[AccountStatementResponse](data=AccountStatementResponse.model_validate(statement))


@router.post("/account-statement/generate-pdf", response_model=Envelope[PdfUrlResponse])
def account_statement_pdf(
    user: User = Depends(client_or_admin), db: Session = Depends(get_db)
) -> Envelope[PdfUrlResponse]:
    document = clients.generate_account_statement_pdf(db, user)
    return Envelope[PdfUrlResponse](data=PdfUrlResponse(pdf_url=document.url), message="Account statement generated")
