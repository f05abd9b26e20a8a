from __future__ import annotations

import datetime as dt

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from liftcare import models
from liftcare.errors import ConflictError, InvalidStateError, ValidationError
from liftcare.services import clock

UTC = dt.timezone.utc


def _at(hour: int, minute: int = 0, second: int = 0, day: int = 4) -> dt.datetime:
    return dt.datetime(2024, 3, day, hour, minute, second, tzinfo=UTC)


def _record(session: Session, technician: models.User, event_type: str, when: dt.datetime):
    return clock.record_clock_event(session, technician.id, event_type, timestamp=when)


def test_full_day_folds_into_completed_session(session: Session, technician: models.User):
    _, opened = _record(session, technician, "clock_in", _at(8))
    assert opened.status == "active"
    assert opened.date == dt.date(2024, 3, 4)

    _, on_break = _record(session, technician, "break_start", _at(12))
    assert on_break.id == opened.id
    assert on_break.status == "on_break"

    _record(session, technician, "break_end", _at(12, 30))
    event, closed = _record(session, technician, "clock_out", _at(17))

    assert closed.status == "completed"
    assert closed.clock_out_event_id == event.id
    assert closed.break_duration == 30
    assert closed.duration == 9 * 60 - 30
    assert len(closed.break_events) == 2
    assert clock.get_open_session(session, technician.id) is None


def test_second_clock_in_is_rejected(session: Session, technician: models.User):
    _record(session, technician, "clock_in", _at(8))
    with pytest.raises(ConflictError):
        _record(session, technician, "clock_in", _at(9))
    assert session.query(models.WorkSession).filter_by(technician_id=technician.id).count() == 1
    assert session.query(models.ClockEvent).filter_by(technician_id=technician.id).count() == 1


def test_clock_out_during_break_is_rejected(session: Session, technician: models.User):
    _record(session, technician, "clock_in", _at(8))
    _record(session, technician, "break_start", _at(10))
    with pytest.raises(InvalidStateError) as excinfo:
        _record(session, technician, "clock_out", _at(11))
    assert "break" in excinfo.value.message
    assert clock.get_open_session(session, technician.id).status == "on_break"


def test_events_without_open_session_are_rejected(session: Session, technician: models.User):
    for event_type in ("break_start", "break_end", "clock_out"):
        with pytest.raises(InvalidStateError):
            _record(session, technician, event_type, _at(8))
    assert session.query(models.ClockEvent).count() == 0


def test_break_end_requires_open_break(session: Session, technician: models.User):
    _record(session, technician, "clock_in", _at(8))
    with pytest.raises(InvalidStateError) as excinfo:
        _record(session, technician, "break_end", _at(9))
    assert excinfo.value.message == "No active break"


def test_unknown_event_type(session: Session, technician: models.User):
    with pytest.raises(ValidationError):
        _record(session, technician, "lunch", _at(8))


def test_clock_out_without_breaks(session: Session, technician: models.User):
    _record(session, technician, "clock_in", _at(8))
    _, closed = _record(session, technician, "clock_out", _at(9))
    assert closed.break_duration == 0
    assert closed.duration == 60
    assert closed.break_events == []


def test_clock_skew_yields_negative_duration(session: Session, technician: models.User):
    _record(session, technician, "clock_in", _at(9))
    _, closed = _record(session, technician, "clock_out", _at(8))
    assert closed.status == "completed"
    assert closed.duration == -60


def test_minutes_round_half_up(session: Session, technician: models.User):
    _record(session, technician, "clock_in", _at(8))
    _record(session, technician, "break_start", _at(9))
    _record(session, technician, "break_end", _at(9, 10, 30))
    _, closed = _record(session, technician, "clock_out", _at(10, 0, 29))
    # 120.48 minutes overall, 10.5 minutes of break
    assert closed.break_duration == 11
    assert closed.duration == 120 - 11


def test_multiple_breaks_are_summed(session: Session, technician: models.User):
    _record(session, technician, "clock_in", _at(7))
    _record(session, technician, "break_start", _at(9))
    _record(session, technician, "break_end", _at(9, 15))
    _record(session, technician, "break_start", _at(12))
    _record(session, technician, "break_end", _at(12, 45))
    _, closed = _record(session, technician, "clock_out", _at(16))
    assert closed.break_duration == 60
    assert closed.duration == 9 * 60 - 60


def test_compute_break_minutes_pairs_in_given_order():
    events = [
        models.ClockEvent(type="break_start", timestamp=_at(10)),
        models.ClockEvent(type="break_start", timestamp=_at(11)),
        models.ClockEvent(type="break_end", timestamp=_at(11, 20)),
        models.ClockEvent(type="break_end", timestamp=_at(12)),
    ]
    assert clock.compute_break_minutes(events) == 20
    assert clock.compute_break_minutes([]) == 0


def test_clock_in_updates_last_active(session: Session, technician: models.User):
    _record(session, technician, "clock_in", _at(6, 45))
    profile = session.get(models.TechnicianProfile, technician.id)
    assert profile.last_active is not None
    assert models._as_utc(profile.last_active) == _at(6, 45)


def test_technicians_do_not_share_sessions(session: Session, technician: models.User, admin: models.User):
    _record(session, technician, "clock_in", _at(8))
    _, other = _record(session, admin, "clock_in", _at(8, 5))
    assert other.technician_id == admin.id
    assert clock.get_open_session(session, technician.id).id != other.id


def test_open_session_unique_index():
    engine = create_engine("sqlite://", future=True)
    models.Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, future=True)
    with SessionLocal() as db:
        user = models.User(email="solo@example.com", password_hash="x", name="Solo", role="technician", status="active")
        db.add(user)
        db.flush()
        event_a = models.ClockEvent(technician_id=user.id, type="clock_in", timestamp=_at(8))
        event_b = models.ClockEvent(technician_id=user.id, type="clock_in", timestamp=_at(9))
        db.add_all([event_a, event_b])
        db.flush()
        day = dt.date(2024, 3, 4)
        db.add(models.WorkSession(technician_id=user.id, clock_in_event_id=event_a.id, status="completed", date=day))
        db.add(models.WorkSession(technician_id=user.id, clock_in_event_id=event_a.id, status="active", date=day))
        db.flush()
        db.add(models.WorkSession(technician_id=user.id, clock_in_event_id=event_b.id, status="on_break", date=day))
        with pytest.raises(IntegrityError):
            db.flush()
    engine.dispose()


def test_list_work_sessions_filters_and_expands_breaks(session: Session, technician: models.User):
    _record(session, technician, "clock_in", _at(8, day=4))
    _record(session, technician, "break_start", _at(10, day=4))
    _record(session, technician, "break_end", _at(10, 20, day=4))
    _record(session, technician, "clock_out", _at(16, day=4))
    _record(session, technician, "clock_in", _at(8, day=6))

    sessions = clock.list_work_sessions(session, technician.id, dt.date(2024, 3, 4), dt.date(2024, 3, 4))
    assert len(sessions) == 1
    assert [event.type for event in sessions[0].break_event_rows] == ["break_start", "break_end"]

    every = clock.list_work_sessions(session, technician.id)
    assert [row.date for row in every] == [dt.date(2024, 3, 6), dt.date(2024, 3, 4)]


def test_technician_stats_weekly_buckets(session: Session, technician: models.User):
    # 2024-03-10 is a Sunday
    _record(session, technician, "clock_in", _at(8, day=11))
    _record(session, technician, "clock_out", _at(12, day=11))
    _record(session, technician, "clock_in", _at(8, day=5))
    _record(session, technician, "clock_out", _at(10, day=5))

    stats = clock.technician_stats(session, technician.id, today=dt.date(2024, 3, 12))
    assert stats["total_sessions"] == 2
    assert stats["total_work_minutes"] == 360
    assert stats["average_session_minutes"] == 180
    weeks = stats["weekly_hours"]
    assert weeks[0] == {"week_start": dt.date(2024, 3, 10), "hours": 4.0}
    assert weeks[1] == {"week_start": dt.date(2024, 3, 3), "hours": 2.0}
    assert [week["hours"] for week in weeks[2:]] == [0.0, 0.0]


def test_clock_endpoint_flow(client: TestClient, technician_headers):
    resp = client.post("/api/technician/clock", json={"type": "clock_in", "location": "Torre Norte"}, headers=technician_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["session"]["status"] == "active"
    assert body["data"]["event"]["location"] == "Torre Norte"
    assert body["data"]["event"]["timestamp"].endswith("+00:00")

    again = client.post("/api/technician/clock", json={"type": "clock_in"}, headers=technician_headers)
    assert again.status_code == 409
    assert again.json()["success"] is False

    out = client.post("/api/technician/clock", json={"type": "clock_out"}, headers=technician_headers)
    assert out.status_code == 200
    assert out.json()["data"]["session"]["status"] == "completed"

    sessions = client.get("/api/technician/work-sessions", headers=technician_headers)
    assert sessions.status_code == 200
    assert len(sessions.json()["data"]) == 1
    assert sessions.json()["data"][0]["clock_in_event"]["type"] == "clock_in"


def test_clock_endpoint_rejects_unknown_type(client: TestClient, technician_headers):
    resp = client.post("/api/technician/clock", json={"type": "nap"}, headers=technician_headers)
    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_stats_endpoint(client: TestClient, technician_headers):
    resp = client.get("/api/technician/stats", headers=technician_headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["total_sessions"] == 0
    assert len(data["weekly_hours"]) == 4


def test_clock_endpoint_uses_module_clock(client: TestClient, technician_headers, monkeypatch):
    monkeypatch.setattr(clock, "_now", lambda: _at(23, 30))
    resp = client.post("/api/technician/clock", json={"type": "clock_in"}, headers=technician_headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["event"]["timestamp"] == "2024-03-04T23:30:00+00:00"
    assert data["session"]["date"] == "2024-03-04"


def test_technician_locks_are_bounded(session: Session, technician: models.User, admin: models.User):
    _record(session, technician, "clock_in", _at(8))
    _record(session, admin, "clock_in", _at(8))
    assert len(clock._technician_locks) == clock.LOCK_STRIPES
    assert not any(lock.locked() for lock in clock._technician_locks)
