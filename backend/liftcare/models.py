from __future__ import annotations

import datetime as dt

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


UTC = dt.timezone.utc

USER_ROLES = ("admin", "technician", "client")
USER_STATUSES = ("active", "inactive", "pending", "on_leave")
CLOCK_EVENT_TYPES = ("clock_in", "clock_out", "break_start", "break_end")
OPEN_SESSION_STATUSES = ("active", "on_break")
REPORT_STATUSES = ("draft", "submitted", "approved")
NOTIFICATION_TYPES = ("info", "warning", "error", "success", "task")


def _as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(200), nullable=False)
    role = Column(String(20), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    phone = Column(String(50), nullable=True)
    profile_image = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    technician_profile = relationship(
        "TechnicianProfile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    client_profile = relationship(
        "ClientProfile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    tokens = relationship("AuthToken", back_populates="user", cascade="all, delete-orphan")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class TechnicianProfile(Base):
    __tablename__ = "technician_profiles"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    specialization = Column(JSON, nullable=False, default=list)
    reports_count = Column(Integer, nullable=False, default=0)
    last_active = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="technician_profile")


class ClientProfile(Base):
    __tablename__ = "client_profiles"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    name = Column(String(200), nullable=False)
    ruc = Column(String(50), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="active")
    contract_type = Column(String(20), nullable=False, default="monthly")
    invoice_status = Column(String(20), nullable=False, default="pending")
    buildings_count = Column(Integer, nullable=False, default=0)
    elevators_count = Column(Integer, nullable=False, default=0)
    contact_person = Column(String(200), nullable=True)
    last_invoice_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="client_profile")
    buildings = relationship(
        "Building", back_populates="client", cascade="all, delete-orphan", order_by="Building.id"
    )
    invoices = relationship(
        "Invoice", back_populates="client", cascade="all, delete-orphan", order_by="Invoice.issue_date.desc()"
    )


class Building(Base):
    __tablename__ = "buildings"

    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("client_profiles.user_id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    address = Column(Text, nullable=False)
    floors = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    client = relationship("ClientProfile", back_populates="buildings")
    elevators = relationship(
        "Elevator", back_populates="building", cascade="all, delete-orphan", order_by="Elevator.id"
    )


class Elevator(Base):
    __tablename__ = "elevators"

    id = Column(Integer, primary_key=True)
    building_id = Column(Integer, ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False, index=True)
    brand = Column(String(100), nullable=False)
    model = Column(String(100), nullable=True)
    serial_number = Column(String(100), nullable=True)
    installation_date = Column(Date, nullable=True)
    last_maintenance_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default="operational")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    building = relationship("Building", back_populates="elevators")


class ClockEvent(Base):
    __tablename__ = "clock_events"

    id = Column(Integer, primary_key=True)
    technician_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    location = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class WorkSession(Base):
    __tablename__ = "work_sessions"
    __table_args__ = (
        Index(
            "uq_work_sessions_open_per_technician",
            "technician_id",
            unique=True,
            sqlite_where=text("status IN ('active', 'on_break')"),
            postgresql_where=text("status IN ('active', 'on_break')"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    technician_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    clock_in_event_id = Column(Integer, ForeignKey("clock_events.id", ondelete="CASCADE"), nullable=False)
    clock_out_event_id = Column(Integer, ForeignKey("clock_events.id", ondelete="SET NULL"), nullable=True)
    break_events = Column(JSON, nullable=False, default=list)
    duration = Column(Integer, nullable=True)  # minutes
    break_duration = Column(Integer, nullable=True)  # minutes
    status = Column(String(20), nullable=False, default="active", index=True)
    date = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    clock_in_event = relationship("ClockEvent", foreign_keys=[clock_in_event_id])
    clock_out_event = relationship("ClockEvent", foreign_keys=[clock_out_event_id])
    technician = relationship("User")

    def append_break_event(self, event_id: int) -> None:
        # JSON columns only track reassignment
        self.break_events = [*(self.break_events or []), event_id]


class ReportTemplate(Base):
    __tablename__ = "report_templates"

    id = Column(Integer, primary_key=True)
    type = Column(String(20), nullable=False)
    name = Column(String(200), nullable=False)
    sheet_number = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    sections = relationship(
        "ReportSection",
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="ReportSection.order",
    )


class ReportSection(Base):
    __tablename__ = "report_sections"

    id = Column(Integer, primary_key=True)
    template_id = Column(Integer, ForeignKey("report_templates.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    order = Column(Integer, nullable=False, default=0)

    template = relationship("ReportTemplate", back_populates="sections")
    items = relationship(
        "ReportItem",
        back_populates="section",
        cascade="all, delete-orphan",
        order_by="ReportItem.order",
    )


class ReportItem(Base):
    __tablename__ = "report_items"

    id = Column(Integer, primary_key=True)
    section_id = Column(Integer, ForeignKey("report_sections.id", ondelete="CASCADE"), nullable=False, index=True)
    description = Column(String(300), nullable=False)
    type = Column(String(20), nullable=False, default="checkbox")
    required = Column(Boolean, nullable=False, default=False)
    order = Column(Integer, nullable=False, default=0)

    section = relationship("ReportSection", back_populates="items")


class Report(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True)
    technician_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    template_id = Column(Integer, ForeignKey("report_templates.id"), nullable=False)
    template_type = Column(String(20), nullable=True)
    sheet_number = Column(Integer, nullable=True)
    building_id = Column(Integer, ForeignKey("buildings.id", ondelete="SET NULL"), nullable=True, index=True)
    building_name = Column(String(200), nullable=False)
    elevator_brand = Column(String(100), nullable=False)
    elevator_count = Column(Integer, nullable=False, default=1)
    floor_count = Column(Integer, nullable=False, default=1)
    clock_in_time = Column(String(40), nullable=True)
    clock_out_time = Column(String(40), nullable=True)
    date = Column(Date, nullable=False, index=True)
    sections = Column(JSON, nullable=False, default=list)
    observations = Column(Text, nullable=True)
    technician_signature = Column(Text, nullable=True)
    client_signature = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="draft", index=True)
    pdf_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    technician = relationship("User")
    template = relationship("ReportTemplate")
    building = relationship("Building")


class ServiceRequest(Base):
    __tablename__ = "service_requests"

    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("client_profiles.user_id", ondelete="CASCADE"), nullable=False, index=True)
    building_id = Column(Integer, ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(20), nullable=False)
    service_type = Column(String(100), nullable=False)
    urgency_level = Column(String(20), nullable=False, default="normal")
    description = Column(Text, nullable=False)
    preferred_date = Column(Date, nullable=False)
    preferred_time = Column(String(10), nullable=True)
    contact_method = Column(String(20), nullable=False, default="phone")
    images = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default="pending", index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    building = relationship("Building")


class EmergencyCall(Base):
    __tablename__ = "emergency_calls"

    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("client_profiles.user_id", ondelete="CASCADE"), nullable=False, index=True)
    building_id = Column(Integer, ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False)
    elevator_id = Column(Integer, ForeignKey("elevators.id", ondelete="SET NULL"), nullable=True)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    building = relationship("Building")


class Meeting(Base):
    __tablename__ = "meetings"

    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("client_profiles.user_id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    date = Column(Date, nullable=False, index=True)
    time = Column(String(10), nullable=False)
    duration = Column(Integer, nullable=False, default=60)  # minutes
    location = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("client_profiles.user_id", ondelete="CASCADE"), nullable=False, index=True)
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    amount = Column(Float, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    client = relationship("ClientProfile", back_populates="invoices")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(20), nullable=False, default="info")
    read = Column(Boolean, nullable=False, default=False, index=True)
    related_entity_type = Column(String(50), nullable=True)
    related_entity_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    user = relationship("User", back_populates="notifications")


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True)
    type = Column(String(30), nullable=False)
    name = Column(String(255), nullable=False)
    url = Column(String(500), nullable=False)
    related_entity_type = Column(String(50), nullable=False)
    related_entity_id = Column(Integer, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class ManagementReport(Base):
    __tablename__ = "management_reports"

    id = Column(Integer, primary_key=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    total_reports = Column(Integer, nullable=False, default=0)
    active_technicians = Column(Integer, nullable=False, default=0)
    active_clients = Column(Integer, nullable=False, default=0)
    generated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    pdf_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    generator = relationship("User")


class AuthToken(Base):
    __tablename__ = "auth_tokens"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(128), nullable=False, unique=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_used_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="tokens")


class ExportRecord(Base):
    __tablename__ = "exports"

    id = Column(Integer, primary_key=True)
    technician_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    format = Column(String(10), nullable=False)
    range_start = Column(Date, nullable=False)
    range_end = Column(Date, nullable=False)
    path = Column(String(255), nullable=False)
    checksum = Column(String(128), nullable=False)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
