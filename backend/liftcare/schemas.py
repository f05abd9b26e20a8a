from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Generic, List, Optional, TypeVar

from typing_extensions import Annotated, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, PlainSerializer, field_validator


def _serialize_datetime(value: dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    else:
        value = value.astimezone(dt.timezone.utc)
    return value.isoformat()


UTCDateTime = Annotated[dt.datetime, PlainSerializer(_serialize_datetime, return_type=str, when_used="json")]

DataT = TypeVar("DataT")

UserRole = Literal["admin", "technician", "client"]
UserStatus = Literal["active", "inactive", "pending", "on_leave"]
ClockEventType = Literal["clock_in", "clock_out", "break_start", "break_end"]
ReportStatus = Literal["draft", "submitted", "approved"]
ContractType = Literal["monthly", "annual", "project"]
InvoiceStatus = Literal["paid", "pending", "overdue"]
ElevatorStatus = Literal["operational", "maintenance", "out_of_service"]


class Envelope(BaseModel, Generic[DataT]):
    """Uniform response wrapper used by every endpoint."""

    success: bool = True
    data: Optional[DataT] = None
    message: Optional[str] = None
    error: Optional[str] = None


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Users and auth


class UserResponse(ORMModel):
    id: int
    email: str
    name: str
    role: str
    status: str
    phone: Optional[str] = None
    profile_image: Optional[str] = None
    created_at: UTCDateTime


class AuthResponse(BaseModel):
    user: UserResponse
    token: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: str = Field(min_length=1)
    role: UserRole
    phone: Optional[str] = None


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = None
    profile_image: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6)


# Technicians and clients


class TechnicianResponse(UserResponse):
    specialization: List[str] = Field(default_factory=list)
    reports_count: int = 0
    last_active: Optional[UTCDateTime] = None


class TechnicianCreatedResponse(BaseModel):
    technician: TechnicianResponse
    password: str


class TechnicianCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    specialization: List[str] = Field(default_factory=list)


class TechnicianUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = None
    status: Optional[UserStatus] = None
    specialization: Optional[List[str]] = None


class ElevatorResponse(ORMModel):
    id: int
    building_id: int
    brand: str
    model: Optional[str] = None
    serial_number: Optional[str] = None
    installation_date: Optional[dt.date] = None
    last_maintenance_date: Optional[dt.date] = None
    status: str


class BuildingResponse(ORMModel):
    id: int
    client_id: int
    name: str
    address: str
    floors: int


class BuildingWithElevatorsResponse(BuildingResponse):
    elevators: List[ElevatorResponse] = Field(default_factory=list)


class InvoiceResponse(ORMModel):
    id: int
    client_id: int
    issue_date: dt.date
    due_date: dt.date
    amount: float
    status: str


class ClientResponse(ORMModel):
    id: int
    name: str
    ruc: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    status: str
    contract_type: str
    invoice_status: str
    buildings_count: int
    elevators_count: int
    contact_person: Optional[str] = None
    last_invoice_date: Optional[dt.date] = None
    created_at: UTCDateTime


class ClientDetailResponse(ClientResponse):
    buildings: List[BuildingWithElevatorsResponse] = Field(default_factory=list)


class ClientCreatedResponse(BaseModel):
    client: ClientResponse
    password: str


class ClientCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    ruc: str = Field(min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    address: Optional[str] = None
    contract_type: ContractType = "monthly"
    contact_person: Optional[str] = None


class ClientUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    ruc: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    status: Optional[UserStatus] = None
    contract_type: Optional[ContractType] = None
    invoice_status: Optional[InvoiceStatus] = None
    contact_person: Optional[str] = None


class BuildingCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    address: str = Field(min_length=1)
    floors: int = Field(default=1, ge=1)


class ElevatorCreateRequest(BaseModel):
    brand: str = Field(min_length=1)
    model: Optional[str] = None
    serial_number: Optional[str] = None
    installation_date: Optional[dt.date] = None
    last_maintenance_date: Optional[dt.date] = None
    status: ElevatorStatus = "operational"


class InvoiceCreateRequest(BaseModel):
    issue_date: dt.date
    due_date: dt.date
    amount: float = Field(ge=0)
    status: InvoiceStatus = "pending"


# Clock and work sessions


class ClockEventRequest(BaseModel):
    type: ClockEventType
    location: Optional[str] = None
    notes: Optional[str] = None


class ClockEventResponse(ORMModel):
    id: int
    technician_id: int
    type: str
    timestamp: UTCDateTime
    location: Optional[str] = None
    notes: Optional[str] = None
    created_at: UTCDateTime


class WorkSessionResponse(ORMModel):
    id: int
    technician_id: int
    clock_in_event_id: int
    clock_out_event_id: Optional[int] = None
    break_events: List[int] = Field(default_factory=list)
    duration: Optional[int] = None
    break_duration: Optional[int] = None
    status: str
    date: dt.date
    created_at: UTCDateTime
    updated_at: UTCDateTime


class WorkSessionDetailResponse(WorkSessionResponse):
    clock_in_event: Optional[ClockEventResponse] = None
    clock_out_event: Optional[ClockEventResponse] = None
    break_event_rows: List[ClockEventResponse] = Field(default_factory=list)


class ClockResponse(BaseModel):
    event: ClockEventResponse
    session: WorkSessionResponse


class WeeklyHours(BaseModel):
    week_start: dt.date
    hours: float


class TechnicianStatsResponse(BaseModel):
    total_sessions: int
    total_work_minutes: int
    total_break_minutes: int
    average_session_minutes: int
    approved_reports: int
    pending_reports: int
    weekly_hours: List[WeeklyHours]


# Report templates and reports


class ReportItemResponse(ORMModel):
    id: int
    description: str
    type: str
    required: bool
    order: int


class ReportSectionResponse(ORMModel):
    id: int
    title: str
    order: int
    items: List[ReportItemResponse] = Field(default_factory=list)


class ReportTemplateResponse(ORMModel):
    id: int
    type: str
    name: str
    sheet_number: int
    sections: List[ReportSectionResponse] = Field(default_factory=list)


class ReportItemValue(BaseModel):
    description: str
    value: Any = None


class ReportSectionValue(BaseModel):
    title: str
    items: List[ReportItemValue] = Field(default_factory=list)


class ReportCreateRequest(BaseModel):
    template_id: int
    building_name: str = Field(min_length=1)
    elevator_brand: str = Field(min_length=1)
    date: dt.date
    sections: List[ReportSectionValue]
    building_id: Optional[int] = None
    elevator_count: int = Field(default=1, ge=1)
    floor_count: int = Field(default=1, ge=1)
    clock_in_time: Optional[str] = None
    clock_out_time: Optional[str] = None
    observations: Optional[str] = None
    technician_signature: Optional[str] = None
    client_signature: Optional[str] = None
    status: ReportStatus = "draft"


class ReportUpdateRequest(BaseModel):
    status: Optional[str] = None
    observations: Optional[str] = None


class ReportResponse(ORMModel):
    id: int
    technician_id: int
    technician_name: Optional[str] = None
    template_id: int
    template_type: Optional[str] = None
    sheet_number: Optional[int] = None
    building_id: Optional[int] = None
    building_name: str
    elevator_brand: str
    elevator_count: int
    floor_count: int
    clock_in_time: Optional[str] = None
    clock_out_time: Optional[str] = None
    date: dt.date
    sections: List[Dict[str, Any]] = Field(default_factory=list)
    observations: Optional[str] = None
    technician_signature: Optional[str] = None
    client_signature: Optional[str] = None
    status: str
    pdf_url: Optional[str] = None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class PdfUrlResponse(BaseModel):
    pdf_url: str


# Client facing


class ServiceRequestCreate(BaseModel):
    building_id: int
    type: Literal["maintenance", "installation", "consultation"]
    service_type: str = Field(min_length=1)
    urgency_level: Literal["low", "normal", "high"] = "normal"
    description: str = Field(min_length=1)
    preferred_date: dt.date
    preferred_time: Optional[str] = None
    contact_method: Literal["phone", "email", "whatsapp"] = "phone"
    images: List[str] = Field(default_factory=list)


class ServiceRequestResponse(ORMModel):
    id: int
    client_id: int
    building_id: int
    building_name: Optional[str] = None
    building_address: Optional[str] = None
    type: str
    service_type: str
    urgency_level: str
    description: str
    preferred_date: dt.date
    preferred_time: Optional[str] = None
    contact_method: str
    images: List[str] = Field(default_factory=list)
    status: str
    created_at: UTCDateTime


class EmergencyCallCreate(BaseModel):
    building_id: int
    elevator_id: Optional[int] = None
    description: Optional[str] = None
    location: Optional[str] = None


class EmergencyCallResponse(ORMModel):
    id: int
    client_id: int
    building_id: int
    elevator_id: Optional[int] = None
    description: Optional[str] = None
    location: Optional[str] = None
    status: str
    created_at: UTCDateTime


class MeetingCreate(BaseModel):
    title: str = Field(min_length=1)
    date: dt.date
    time: str = Field(min_length=1)
    description: Optional[str] = None
    duration: int = Field(default=60, ge=15)
    location: Optional[str] = None

    @field_validator("time")
    @classmethod
    def _check_time(cls, value: str) -> str:
        try:
            dt.time.fromisoformat(value)
        except ValueError as exc:
            raise ValueError("time must be HH:MM") from exc
        return value


class MeetingResponse(ORMModel):
    id: int
    client_id: int
    title: str
    description: Optional[str] = None
    date: dt.date
    time: str
    duration: int
    location: Optional[str] = None
    status: str
    created_at: UTCDateTime


class AccountStatistics(BaseModel):
    total_invoices: int
    pending_invoices: int
    overdue_invoices: int
    total_amount: float
    pending_amount: float
    buildings_count: int
    elevators_count: int


class AccountStatementResponse(BaseModel):
    client: ClientResponse
    statistics: AccountStatistics
    invoices: List[InvoiceResponse]
    buildings: List[BuildingWithElevatorsResponse]


# Notifications, documents, management reports and exports


class NotificationResponse(ORMModel):
    id: int
    user_id: int
    title: str
    message: str
    type: str
    read: bool
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None
    created_at: UTCDateTime


class CountResponse(BaseModel):
    count: int


class DocumentResponse(ORMModel):
    id: int
    type: str
    name: str
    url: str
    related_entity_type: str
    related_entity_id: int
    created_by: Optional[int] = None
    created_at: UTCDateTime


class ManagementReportRequest(BaseModel):
    start_date: dt.date
    end_date: dt.date
    include_reports: bool = True
    include_technicians: bool = True
    include_clients: bool = True


class ManagementReportResponse(ORMModel):
    id: int
    start_date: dt.date
    end_date: dt.date
    total_reports: int
    active_technicians: int
    active_clients: int
    generated_by: Optional[int] = None
    generator_name: Optional[str] = None
    pdf_url: Optional[str] = None
    created_at: UTCDateTime


class ExportRequest(BaseModel):
    format: Literal["pdf", "xlsx"]
    range_start: dt.date
    range_end: dt.date
    technician_id: Optional[int] = None


class ExportResponse(ORMModel):
    id: int
    technician_id: Optional[int] = None
    format: str
    range_start: dt.date
    range_end: dt.date
    path: str
    checksum: str
    created_by: Optional[int] = None
    created_at: UTCDateTime
