"""Clock events and the work sessions they fold into.

Every event is validated against the technician's open session before anything
is written; the event row and the session change are committed together.
A technician holds at most one open (``active`` or ``on_break``) session. The
partial unique index on ``work_sessions`` enforces that across processes and a
fixed set of locks striped by technician id serialises events inside one process.
"""

from __future__ import annotations

import datetime as dt
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from zoneinfo import ZoneInfo

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import ConflictError, InvalidStateError, UnexpectedError, ValidationError
from ..models import (
    CLOCK_EVENT_TYPES,
    OPEN_SESSION_STATUSES,
    ClockEvent,
    Report,
    TechnicianProfile,
    WorkSession,
    _as_utc,
)
from ..utils import minutes_to_hours, round_minutes, week_start

logger = logging.getLogger(__name__)

UTC = dt.timezone.utc

LOCK_STRIPES = 64
_technician_locks: Tuple[threading.Lock, ...] = tuple(threading.Lock() for _ in range(LOCK_STRIPES))


def _now() -> dt.datetime:
    return dt.datetime.now(UTC)


@contextmanager
def _technician_lock(technician_id: int) -> Iterator[None]:
    if not settings.serialize_clock_events:
        yield
        return
    with _technician_locks[technician_id % LOCK_STRIPES]:
        yield


def session_date(timestamp: dt.datetime) -> dt.date:
    return _as_utc(timestamp).astimezone(ZoneInfo(settings.timezone)).date()


def get_open_session(
    db: Session, technician_id: int, statuses: Iterable[str] = OPEN_SESSION_STATUSES
) -> Optional[WorkSession]:
    return (
        db.query(WorkSession)
        .filter(WorkSession.technician_id == technician_id, WorkSession.status.in_(tuple(statuses)))
        .order_by(WorkSession.id.desc())
        .first()
    )


def _fetch_events(db: Session, event_ids: Sequence[int]) -> List[ClockEvent]:
    """Load events keeping the order of ``event_ids``."""
    if not event_ids:
        return []
    rows = {event.id: event for event in db.query(ClockEvent).filter(ClockEvent.id.in_(list(event_ids)))}
    return [rows[event_id] for event_id in event_ids if event_id in rows]


def compute_break_minutes(events: Sequence[ClockEvent]) -> int:
    """Sum the paired break intervals of ``events`` walked in the given order.

    A ``break_start`` pairs with the next ``break_end``. The order is the order
    in which the events were appended to the session, not their timestamps, so
    events synced late and out of order pair up in arrival order.
    """
    total = 0
    start: Optional[ClockEvent] = None
    for event in events:
        if event.type == "break_start":
            start = event
        elif event.type == "break_end" and start is not None:
            total += round_minutes(_as_utc(event.timestamp) - _as_utc(start.timestamp))
            start = None
    return total


def _touch_last_active(db: Session, technician_id: int, timestamp: dt.datetime) -> None:
    profile = db.get(TechnicianProfile, technician_id)
    if profile is not None:
        profile.last_active = timestamp


def _clock_in(db: Session, event: ClockEvent) -> WorkSession:
    if get_open_session(db, event.technician_id) is not None:
        raise ConflictError("A work session is already open for this technician")
    db.add(event)
    db.flush()
    session = WorkSession(
        technician_id=event.technician_id,
        clock_in_event_id=event.id,
        break_events=[],
        status="active",
        date=session_date(event.timestamp),
    )
    db.add(session)
    _touch_last_active(db, event.technician_id, event.timestamp)
    return session


def _break_start(db: Session, event: ClockEvent) -> WorkSession:
    session = get_open_session(db, event.technician_id, ("active",))
    if session is None:
        raise InvalidStateError("No active work session")
    db.add(event)
    db.flush()
    session.append_break_event(event.id)
    session.status = "on_break"
    return session


def _break_end(db: Session, event: ClockEvent) -> WorkSession:
    session = get_open_session(db, event.technician_id, ("on_break",))
    if session is None:
        raise InvalidStateError("No active break")
    db.add(event)
    db.flush()
    session.append_break_event(event.id)
    session.status = "active"
    return session


def _clock_out(db: Session, event: ClockEvent) -> WorkSession:
    session = get_open_session(db, event.technician_id, ("active",))
    if session is None:
        if get_open_session(db, event.technician_id, ("on_break",)) is not None:
            raise InvalidStateError("The current break must be ended before clocking out")
        raise InvalidStateError("No active work session")
    clock_in_event = db.get(ClockEvent, session.clock_in_event_id)
    if clock_in_event is None:
        raise UnexpectedError("Clock-in event of the work session is missing")
    db.add(event)
    db.flush()

    total_minutes = round_minutes(_as_utc(event.timestamp) - _as_utc(clock_in_event.timestamp))
    break_minutes = compute_break_minutes(_fetch_events(db, session.break_events or []))

    session.clock_out_event_id = event.id
    session.break_duration = break_minutes
    # not clamped; clock skew surfaces as a negative duration
    session.duration = total_minutes - break_minutes
    session.status = "completed"
    return session


_HANDLERS = {
    "clock_in": _clock_in,
    "break_start": _break_start,
    "break_end": _break_end,
    "clock_out": _clock_out,
}


def record_clock_event(
    db: Session,
    technician_id: int,
    event_type: str,
    location: Optional[str] = None,
    notes: Optional[str] = None,
    timestamp: Optional[dt.datetime] = None,
) -> Tuple[ClockEvent, WorkSession]:
    if event_type not in CLOCK_EVENT_TYPES:
        raise ValidationError(f"Unknown clock event type: {event_type}")
    event_time = _as_utc(timestamp) if timestamp is not None else _now()

    with _technician_lock(technician_id):
        event = ClockEvent(
            technician_id=technician_id,
            type=event_type,
            timestamp=event_time,
            location=location,
            notes=notes,
        )
        try:
            session = _HANDLERS[event_type](db, event)
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            logger.warning("Rejected concurrent %s for technician %s: %s", event_type, technician_id, exc)
            raise ConflictError("A work session is already open for this technician") from exc
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Failed to record %s for technician %s", event_type, technician_id)
            raise UnexpectedError("Failed to record clock event", error=str(exc)) from exc
        db.refresh(event)
        db.refresh(session)

    logger.info(
        "Technician %s recorded %s; session %s is %s", technician_id, event_type, session.id, session.status
    )
    return event, session


def list_work_sessions(
    db: Session,
    technician_id: int,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
) -> List[WorkSession]:
    query = db.query(WorkSession).filter(WorkSession.technician_id == technician_id)
    if start_date:
        query = query.filter(WorkSession.date >= start_date)
    if end_date:
        query = query.filter(WorkSession.date <= end_date)
    sessions = query.order_by(WorkSession.date.desc(), WorkSession.id.desc()).all()
    for session in sessions:
        session.break_event_rows = _fetch_events(db, session.break_events or [])
    return sessions


def _months_back(day: dt.date, months: int) -> dt.date:
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    for candidate_day in range(day.day, 0, -1):
        try:
            return dt.date(year, month, candidate_day)
        except ValueError:
            continue
    return dt.date(year, month, 1)


def technician_stats(db: Session, technician_id: int, today: Optional[dt.date] = None) -> Dict[str, object]:
    today = today or session_date(_now())
    since = _months_back(today, 1)
    sessions = (
        db.query(WorkSession)
        .filter(WorkSession.technician_id == technician_id, WorkSession.date >= since)
        .all()
    )
    reports = db.query(Report.status).filter(Report.technician_id == technician_id).all()

    total_sessions = len(sessions)
    total_work = sum(session.duration or 0 for session in sessions)
    total_break = sum(session.break_duration or 0 for session in sessions)
    average = round(total_work / total_sessions) if total_sessions else 0
    approved = sum(1 for (status,) in reports if status == "approved")

    current_week = week_start(today)
    weekly_minutes = [0, 0, 0, 0]
    for session in sessions:
        weeks_back = (current_week - week_start(session.date)).days // 7
        if 0 <= weeks_back < len(weekly_minutes):
            weekly_minutes[weeks_back] += session.duration or 0

    return {
        "total_sessions": total_sessions,
        "total_work_minutes": total_work,
        "total_break_minutes": total_break,
        "average_session_minutes": average,
        "approved_reports": approved,
        "pending_reports": len(reports) - approved,
        "weekly_hours": [
            {"week_start": current_week - dt.timedelta(weeks=index), "hours": minutes_to_hours(minutes)}
            for index, minutes in enumerate(weekly_minutes)
        ],
    }
