from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import NotFoundError
from ..models import (
    Building,
    ClientProfile,
    Document,
    Elevator,
    EmergencyCall,
    Invoice,
    Meeting,
    Report,
    ServiceRequest,
    User,
)
from ..schemas import (
    BuildingCreateRequest,
    ClientCreateRequest,
    ClientUpdateRequest,
    ElevatorCreateRequest,
    EmergencyCallCreate,
    InvoiceCreateRequest,
    MeetingCreate,
    ServiceRequestCreate,
)
from ..utils import generate_random_password
from . import documents, mailer, storage
from .accounts import create_user, delete_user
from .notifications import notify, notify_role
from .reports import report_view

logger = logging.getLogger(__name__)


def client_view(profile: ClientProfile) -> Dict[str, Any]:
    return {
        "id": profile.user_id,
        "name": profile.name,
        "ruc": profile.ruc,
        "email": profile.email,
        "phone": profile.phone,
        "address": profile.address,
        "status": profile.status,
        "contract_type": profile.contract_type,
        "invoice_status": profile.invoice_status,
        "buildings_count": profile.buildings_count,
        "elevators_count": profile.elevators_count,
        "contact_person": profile.contact_person,
        "last_invoice_date": profile.last_invoice_date,
        "created_at": profile.created_at,
    }


def _get_client(db: Session, client_id: int) -> ClientProfile:
    profile = db.get(ClientProfile, client_id)
    if profile is None:
        raise NotFoundError("Client not found")
    return profile


def _get_own_building(db: Session, client_id: int, building_id: int) -> Building:
    building = (
        db.query(Building).filter(Building.id == building_id, Building.client_id == client_id).one_or_none()
    )
    if building is None:
        raise NotFoundError("Building not found or does not belong to the client")
    return building


def _refresh_counters(db: Session, profile: ClientProfile) -> None:
    db.flush()
    building_ids = [row.id for row in db.query(Building.id).filter(Building.client_id == profile.user_id)]
    profile.buildings_count = len(building_ids)
    profile.elevators_count = (
        db.query(func.count(Elevator.id)).filter(Elevator.building_id.in_(building_ids)).scalar() if building_ids else 0
    )
    statuses = {row.status for row in db.query(Invoice.status).filter(Invoice.client_id == profile.user_id)}
    if "overdue" in statuses:
        profile.invoice_status = "overdue"
    elif "pending" in statuses:
        profile.invoice_status = "pending"
    elif statuses:
        profile.invoice_status = "paid"
    profile.last_invoice_date = (
        db.query(func.max(Invoice.issue_date)).filter(Invoice.client_id == profile.user_id).scalar()
    )


# Administration


def create_client(db: Session, payload: ClientCreateRequest) -> Tuple[ClientProfile, str]:
    password = generate_random_password()
    profile = ClientProfile(
        name=payload.name,
        ruc=payload.ruc,
        email=payload.email.lower(),
        phone=payload.phone,
        address=payload.address,
        status="active",
        contract_type=payload.contract_type,
        invoice_status="pending",
        buildings_count=0,
        elevators_count=0,
        contact_person=payload.contact_person,
    )
    user = create_user(
        db,
        payload.email,
        password,
        payload.name,
        "client",
        status="active",
        phone=payload.phone,
        client_profile=profile,
    )
    notify(
        db,
        user.id,
        f"Welcome to {settings.app_name}",
        f"Hello {user.name}, your client account has been created. Your temporary password is: {password}",
        "info",
    )
    mailer.send_welcome_email(user.email, user.name, password)
    logger.info("Created client %s", user.id)
    return user.client_profile, password


def list_clients(db: Session, status: Optional[str] = None, contract_type: Optional[str] = None) -> List[ClientProfile]:
    query = db.query(ClientProfile)
    if status:
        query = query.filter(ClientProfile.status == status)
    if contract_type:
        query = query.filter(ClientProfile.contract_type == contract_type)
    return query.order_by(ClientProfile.name.asc(), ClientProfile.user_id.asc()).all()


def get_client(db: Session, client_id: int) -> ClientProfile:
    return _get_client(db, client_id)


def update_client(db: Session, client_id: int, payload: ClientUpdateRequest) -> ClientProfile:
    profile = _get_client(db, client_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        setattr(profile, field, value)
        if field in {"name", "phone", "status"}:
            setattr(profile.user, field, value)
    db.commit()
    db.refresh(profile)
    return profile


def delete_client(db: Session, client_id: int) -> None:
    profile = _get_client(db, client_id)
    delete_user(db, profile.user)
    logger.info("Deleted client %s", client_id)


def add_building(db: Session, client_id: int, payload: BuildingCreateRequest) -> Building:
    profile = _get_client(db, client_id)
    building = Building(client_id=profile.user_id, name=payload.name, address=payload.address, floors=payload.floors)
    db.add(building)
    _refresh_counters(db, profile)
    db.commit()
    db.refresh(building)
    return building


def add_elevator(db: Session, building_id: int, payload: ElevatorCreateRequest) -> Elevator:
    building = db.get(Building, building_id)
    if building is None:
        raise NotFoundError("Building not found")
    elevator = Elevator(building_id=building.id, **payload.model_dump())
    db.add(elevator)
    _refresh_counters(db, building.client)
    db.commit()
    db.refresh(elevator)
    return elevator


def add_invoice(db: Session, client_id: int, payload: InvoiceCreateRequest) -> Invoice:
    profile = _get_client(db, client_id)
    invoice = Invoice(client_id=profile.user_id, **payload.model_dump())
    db.add(invoice)
    _refresh_counters(db, profile)
    db.commit()
    db.refresh(invoice)
    return invoice


# Client facing


def _client_for_user(db: Session, user: User) -> ClientProfile:
    profile = db.get(ClientProfile, user.id)
    if profile is None:
        raise NotFoundError("Client not found")
    return profile


def _with_building(request: ServiceRequest) -> ServiceRequest:
    request.building_name = request.building.name if request.building else None
    request.building_address = request.building.address if request.building else None
    return request


def create_service_request(db: Session, user: User, payload: ServiceRequestCreate) -> ServiceRequest:
    building = _get_own_building(db, user.id, payload.building_id)
    request = ServiceRequest(client_id=user.id, status="pending", **payload.model_dump())
    db.add(request)
    db.commit()
    db.refresh(request)
    notify_role(
        db,
        ("admin",),
        "New service request",
        f"Client {user.name} requested a {payload.service_type} service for {building.name}",
        "task",
        "service_requests",
        request.id,
    )
    return _with_building(request)


def list_service_requests(
    db: Session,
    user: User,
    status: Optional[str] = None,
    request_type: Optional[str] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
) -> List[ServiceRequest]:
    query = db.query(ServiceRequest).filter(ServiceRequest.client_id == user.id)
    if status:
        query = query.filter(ServiceRequest.status == status)
    if request_type:
        query = query.filter(ServiceRequest.type == request_type)
    if start_date:
        query = query.filter(ServiceRequest.preferred_date >= start_date)
    if end_date:
        query = query.filter(ServiceRequest.preferred_date <= end_date)
    requests = query.order_by(ServiceRequest.created_at.desc(), ServiceRequest.id.desc()).all()
    return [_with_building(request) for request in requests]


def create_emergency_call(db: Session, user: User, payload: EmergencyCallCreate) -> EmergencyCall:
    building = _get_own_building(db, user.id, payload.building_id)
    if payload.elevator_id is not None:
        elevator = db.get(Elevator, payload.elevator_id)
        if elevator is None or elevator.building_id != building.id:
            raise NotFoundError("Elevator not found in this building")
    call = EmergencyCall(client_id=user.id, status="pending", **payload.model_dump())
    db.add(call)
    db.commit()
    db.refresh(call)
    logger.warning("Emergency call %s raised by client %s for building %s", call.id, user.id, building.id)
    notify_role(
        db,
        ("admin", "technician"),
        "EMERGENCY!",
        f"Emergency call from client {user.name} for {building.name}",
        "error",
        "emergency_calls",
        call.id,
        active_only=True,
        email=True,
    )
    return call


def schedule_meeting(db: Session, user: User, payload: MeetingCreate) -> Meeting:
    meeting = Meeting(client_id=user.id, status="pending", **payload.model_dump())
    db.add(meeting)
    db.commit()
    db.refresh(meeting)
    notify_role(
        db,
        ("admin",),
        "New meeting request",
        f"Client {user.name} requested a meeting on {meeting.date.isoformat()} at {meeting.time}",
        "info",
        "meetings",
        meeting.id,
    )
    return meeting


def list_meetings(
    db: Session,
    user: User,
    status: Optional[str] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
) -> List[Meeting]:
    query = db.query(Meeting).filter(Meeting.client_id == user.id)
    if status:
        query = query.filter(Meeting.status == status)
    if start_date:
        query = query.filter(Meeting.date >= start_date)
    if end_date:
        query = query.filter(Meeting.date <= end_date)
    return query.order_by(Meeting.date.asc(), Meeting.time.asc()).all()


def maintenance_history(
    db: Session,
    user: User,
    building_id: Optional[int] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
) -> List[Dict[str, Any]]:
    buildings = {building.id: building for building in db.query(Building).filter(Building.client_id == user.id)}
    if not buildings:
        return []
    query = db.query(Report).filter(Report.building_id.in_(list(buildings)), Report.status == "approved")
    if building_id is not None:
        query = query.filter(Report.building_id == building_id)
    if start_date:
        query = query.filter(Report.date >= start_date)
    if end_date:
        query = query.filter(Report.date <= end_date)
    reports = query.order_by(Report.date.desc(), Report.id.desc()).all()
    return [
        report_view(
            report,
            technician_name=report.technician.name if report.technician else "Unknown",
            building_name=buildings[report.building_id].name,
        )
        for report in reports
    ]


def account_statement(db: Session, user: User) -> Dict[str, Any]:
    profile = _client_for_user(db, user)
    invoices = (
        db.query(Invoice)
        .filter(Invoice.client_id == profile.user_id)
        .order_by(Invoice.issue_date.desc(), Invoice.id.desc())
        .all()
    )
    buildings = db.query(Building).filter(Building.client_id == profile.user_id).order_by(Building.id).all()
    elevators_count = sum(len(building.elevators) for building in buildings)
    statistics = {
        "total_invoices": len(invoices),
        "pending_invoices": sum(1 for invoice in invoices if invoice.status == "pending"),
        "overdue_invoices": sum(1 for invoice in invoices if invoice.status == "overdue"),
        "total_amount": sum(invoice.amount for invoice in invoices),
        "pending_amount": sum(invoice.amount for invoice in invoices if invoice.status in ("pending", "overdue")),
        "buildings_count": len(buildings),
        "elevators_count": elevators_count,
    }
    return {
        "client": client_view(profile),
        "statistics": statistics,
        "invoices": invoices,
        "buildings": buildings,
    }


def _statement_document_data(statement: Dict[str, Any], generated_at: dt.datetime) -> Dict[str, Any]:
    return {
        "client": statement["client"],
        "statistics": statement["statistics"],
        "invoices": [
            {
                "id": invoice.id,
                "issue_date": invoice.issue_date,
                "due_date": invoice.due_date,
                "amount": invoice.amount,
                "status": invoice.status,
            }
            for invoice in statement["invoices"]
        ],
        "generated_at": generated_at,
    }


def generate_account_statement_pdf(db: Session, user: User) -> Document:
    statement = account_statement(db, user)
    now = dt.datetime.now(dt.timezone.utc)
    content = documents.render("account_statement", _statement_document_data(statement, now))
    today = now.date().isoformat()
    url = storage.upload_file(content, f"account_statements/{user.id}_{today}.pdf", "application/pdf")
    document = Document(
        type="account_statement",
        name=f"Account statement - {statement['client']['name']} - {today}",
        url=url,
        related_entity_type="clients",
        related_entity_id=user.id,
        created_by=user.id,
    )
    db.add(document)
    db.commit()
    db.refresh(document)
    return document
