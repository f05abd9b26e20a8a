from __future__ import annotations

import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from ..auth import requires
from ..database import get_db
from ..models import User
from ..schemas import (
    BuildingCreateRequest,
    BuildingResponse,
    ClientCreatedResponse,
    ClientCreateRequest,
    ClientDetailResponse,
    ClientResponse,
    ClientUpdateRequest,
    ElevatorCreateRequest,
    ElevatorResponse,
    Envelope,
    ExportRequest,
    ExportResponse,
    InvoiceCreateRequest,
    InvoiceResponse,
    ManagementReportRequest,
    ManagementReportResponse,
    PdfUrlResponse,
    ReportResponse,
    ReportUpdateRequest,
    TechnicianCreatedResponse,
    TechnicianCreateRequest,
    TechnicianResponse,
    TechnicianUpdateRequest,
)
from ..services import accounts, clients, exports, management, reports

admin_only = requires("admin")

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(admin_only)])


# Technicians


@router.post(
    "/technicians",
    response_model=Envelope[TechnicianCreatedResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_technician(
    payload: TechnicianCreateRequest, db: Session = Depends(get_db)
) -> Envelope[TechnicianCreatedResponse]:
    user, password = accounts.create_technician(db, payload)
    return Envelope[TechnicianCreatedResponse](
        data=TechnicianCreatedResponse(
            technician=TechnicianResponse.model_validate(accounts.technician_view(user)),
            password=password,
        ),
        message="Technician created",
    )


@router.get("/technicians", response_model=Envelope[List[TechnicianResponse]])
def list_technicians(
    status: Optional[str] = None,
    specialization: Optional[str] = None,
    db: Session = Depends(get_db),
) -> Envelope[List[TechnicianResponse]]:
    technicians = accounts.list_technicians(db, status, specialization)
    return Envelope[List[TechnicianResponse]](
        data=[TechnicianResponse.model_validate(accounts.technician_view(user)) for user in technicians]
    )


@router.get("/technicians/{technician_id}", response_model=Envelope[TechnicianResponse])
def get_technician(technician_id: int, db: Session = Depends(get_db)) -> Envelope[TechnicianResponse]:
    user = accounts.get_technician(db, technician_id)
    return Envelope[TechnicianResponse](data=TechnicianResponse.model_validate(accounts.technician_view(user)))


@router.put("/technicians/{technician_id}", response_model=Envelope[TechnicianResponse])
def update_technician(
    technician_id: int, payload: TechnicianUpdateRequest, db: Session = Depends(get_db)
) -> Envelope[TechnicianResponse]:
    user = accounts.update_technician(db, technician_id, payload)
    return Envelope[TechnicianResponse](
        data=TechnicianResponse.model_validate(accounts.technician_view(user)), message="Technician updated"
    )


@router.delete("/technicians/{technician_id}", response_model=Envelope[None])
def delete_technician(technician_id: int, db: Session = Depends(get_db)) -> Envelope[None]:
    accounts.delete_technician(db, technician_id)
    return Envelope[None](message="Technician deleted")


# Clients and their assets


def _client_detail(profile) -> ClientDetailResponse:
    return ClientDetailResponse.model_validate({**clients.client_view(profile), "buildings": profile.buildings})


@router.post("/clients", response_model=Envelope[ClientCreatedResponse], status_code=status.HTTP_201_CREATED)
def create_client(payload: ClientCreateRequest, db: Session = Depends(get_db)) -> Envelope[ClientCreatedResponse]:
    profile, password = clients.create_client(db, payload)
    return Envelope[ClientCreatedResponse](
        data=ClientCreatedResponse(client=ClientResponse.model_validate(clients.client_view(profile)), password=password),
        message="Client created",
    )


@router.get("/clients", response_model=Envelope[List[ClientResponse]])
def list_clients(
    status: Optional[str] = None,
    contract_type: Optional[str] = None,
    db: Session = Depends(get_db),
) -> Envelope[List[ClientResponse]]:
    profiles = clients.list_clients(db, status, contract_type)
    return Envelope[List[ClientResponse]](
        data=[ClientResponse.model_validate(clients.client_view(profile)) for profile in profiles]
    )


@router.get("/clients/{client_id}", response_model=Envelope[ClientDetailResponse])
def get_client(client_id: int, db: Session = Depends(get_db)) -> Envelope[ClientDetailResponse]:
    return Envelope[ClientDetailResponse](data=_client_detail(clients.get_client(db, client_id)))


@router.put("/clients/{client_id}", response_model=Envelope[ClientResponse])
def update_client(
    client_id: int, payload: ClientUpdateRequest, db: Session = Depends(get_db)
) -> Envelope[ClientResponse]:
    profile = clients.update_client(db, client_id, payload)
    return Envelope[ClientResponse](
        data=ClientResponse.model_validate(clients.client_view(profile)), message="Client updated"
    )


@router.delete("/clients/{client_id}", response_model=Envelope[None])
def delete_client(client_id: int, db: Session = Depends(get_db)) -> Envelope[None]:
    clients.delete_client(db, client_id)
    return Envelope[None](message="Client deleted")


@router.post(
    "/clients/{client_id}/buildings",
    response_model=Envelope[BuildingResponse],
    status_code=status.HTTP_201_CREATED,
)
def add_building(
    client_id: int, payload: BuildingCreateRequest, db: Session = Depends(get_db)
) -> Envelope[BuildingResponse]:
    building = clients.add_building(db, client_id, payload)
    return Envelope[BuildingResponse](data=BuildingResponse.model_validate(building), message="Building added")


@router.post(
    "/buildings/{building_id}/elevators",
    response_model=Envelope[ElevatorResponse],
    status_code=status.HTTP_201_CREATED,
)
def add_elevator(
    building_id: int, payload: ElevatorCreateRequest, db: Session = Depends(get_db)
) -> Envelope[ElevatorResponse]:
    elevator = clients.add_elevator(db, building_id, payload)
    return Envelope[ElevatorResponse](data=ElevatorResponse.model_validate(elevator), message="Elevator added")


@router.post(
    "/clients/{client_id}/invoices",
    response_model=Envelope[InvoiceResponse],
    status_code=status.HTTP_201_CREATED,
)
def add_invoice(
    client_id: int, payload: InvoiceCreateRequest, db: Session = Depends(get_db)
) -> Envelope[InvoiceResponse]:
    invoice = clients.add_invoice(db, client_id, payload)
    return Envelope[InvoiceResponse](data=InvoiceResponse.model_validate(invoice), message="Invoice added")


# Maintenance reports


@router.get("/reports", response_model=Envelope[List[ReportResponse]])
def list_reports(
    technician_id: Optional[int] = None,
    status: Optional[str] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    db: Session = Depends(get_db),
) -> Envelope[List[ReportResponse]]:
    rows = reports.list_reports(db, technician_id, status, start_date, end_date)
    return Envelope[List[ReportResponse]](data=[ReportResponse.model_validate(row) for row in rows])


@router.get("/reports/{report_id}", response_model=Envelope[ReportResponse])
def get_report(
    report_id: int, user: User = Depends(admin_only), db: Session = Depends(get_db)
) -> Envelope[ReportResponse]:
    return Envelope[ReportResponse](data=ReportResponse.model_validate(reports.get_report(db, user, report_id)))


@router.put("/reports/{report_id}", response_model=Envelope[ReportResponse])
def update_report(
    report_id: int, payload: ReportUpdateRequest, db: Session = Depends(get_db)
) -> Envelope[ReportResponse]:
    row = reports.update_report(db, report_id, payload.status, payload.observations)
    return Envelope[ReportResponse](data=ReportResponse.model_validate(row), message="Report updated")


@router.delete("/reports/{report_id}", response_model=Envelope[None])
def delete_report(report_id: int, db: Session = Depends(get_db)) -> Envelope[None]:
    reports.delete_report(db, report_id)
    return Envelope[None](message="Report deleted")


@router.post("/reports/generate-pdf/{report_id}", response_model=Envelope[PdfUrlResponse])
def generate_report_pdf(report_id: int, db: Session = Depends(get_db)) -> Envelope[PdfUrlResponse]:
    url = reports.regenerate_report_pdf(db, report_id)
    return Envelope[PdfUrlResponse](data=PdfUrlResponse(pdf_url=url), message="PDF generated")


# Management reports


@router.post(
    "/management-reports",
    response_model=Envelope[ManagementReportResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_management_report(
    payload: ManagementReportRequest,
    user: User = Depends(admin_only),
    db: Session = Depends(get_db),
) -> Envelope[ManagementReportResponse]:
    row = management.create_management_report(db, user, payload)
    return Envelope[ManagementReportResponse](
        data=ManagementReportResponse.model_validate(row), message="Management report generated"
    )


@router.get("/management-reports", response_model=Envelope[List[ManagementReportResponse]])
def list_management_reports(
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    db: Session = Depends(get_db),
) -> Envelope[List[ManagementReportResponse]]:
    rows = management.list_management_reports(db, start_date, end_date)
    return Envelope[List[ManagementReportResponse]](
        data=[ManagementReportResponse.model_validate(row) for row in rows]
    )


@router.get("/management-reports/{report_id}", response_model=Envelope[ManagementReportResponse])
def get_management_report(report_id: int, db: Session = Depends(get_db)) -> Envelope[ManagementReportResponse]:
    row = management.get_management_report(db, report_id)
    return Envelope[ManagementReportResponse](data=ManagementReportResponse.model_validate(row))


@router.delete("/management-reports/{report_id}", response_model=Envelope[None])
def delete_management_report(report_id: int, db: Session = Depends(get_db)) -> Envelope[None]:
    management.delete_management_report(db, report_id)
    return Envelope[None](message="Management report deleted")


# Timesheet exports


@router.post("/exports", response_model=Envelope[ExportResponse], status_code=status.HTTP_201_CREATED)
def create_export(
    payload: ExportRequest,
    user: User = Depends(admin_only),
    db: Session = Depends(get_db),
) -> Envelope[ExportResponse]:
    export = exports.export_timesheet(
        db, user, payload.format, payload.range_start, payload.range_end, payload.technician_id
    )
    return Envelope[ExportResponse](data=ExportResponse.model_validate(export), message="Export created")


@router.get("/exports/{export_id}")
def download_export(export_id: int, db: Session = Depends(get_db)) -> FileResponse:
    export, path = exports.resolve_export_path(db, export_id)
    return FileResponse(path, media_type=exports.EXPORT_MEDIA_TYPES[export.format], filename=path.name)
