from __future__ import annotations

import atexit
import datetime as dt
import os
import shutil
import tempfile
from pathlib import Path
from typing import Dict, Generator

_RUNTIME_DIR = Path(tempfile.mkdtemp(prefix="liftcare-tests-"))
atexit.register(shutil.rmtree, _RUNTIME_DIR, ignore_errors=True)
os.environ.setdefault("LC_DATABASE_URL", f"sqlite:///{_RUNTIME_DIR / 'app.db'}")
os.environ.setdefault("LC_STORAGE_DIR", str(_RUNTIME_DIR / "files"))
os.environ.setdefault("LC_EXPORT_DIR", str(_RUNTIME_DIR / "exports"))
os.environ.setdefault("LC_PUBLIC_BASE_URL", "http://testserver")
os.environ.setdefault("LC_TIMEZONE", "UTC")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from liftcare import models
from liftcare.database import enable_sqlite_foreign_keys, get_db
from liftcare.main import app
from liftcare.services.reports import seed_report_templates
from liftcare.token_utils import create_auth_token, hash_password

PASSWORD = "secret123"


@pytest.fixture(scope="session")
def temp_db_path() -> Generator[Path, None, None]:
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "test.db"
        yield path


@pytest.fixture(scope="session")
def engine(temp_db_path: Path):
    url = f"sqlite:///{temp_db_path}"
    engine = create_engine(url, connect_args={"check_same_thread": False}, future=True)
    enable_sqlite_foreign_keys(engine)
    models.Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture(scope="function")
def session(engine) -> Generator[Session, None, None]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionTesting = sessionmaker(bind=connection, autoflush=False, autocommit=False, future=True)
    session = SessionTesting()
    seed_report_templates(session)
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture()
def isolated_session() -> Generator[Session, None, None]:
    """A private in-memory database for paths that roll the session back."""
    engine = create_engine("sqlite://", future=True)
    enable_sqlite_foreign_keys(engine)
    models.Base.metadata.create_all(bind=engine)
    db = sessionmaker(bind=engine, future=True)()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture(scope="function")
def client(session: Session) -> Generator[TestClient, None, None]:
    def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _make_user(session: Session, email: str, name: str, role: str, status: str = "active", **related) -> models.User:
    user = models.User(
        email=email,
        password_hash=hash_password(PASSWORD),
        name=name,
        role=role,
        status=status,
        **related,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture()
def admin(session: Session) -> models.User:
    return _make_user(session, "admin@example.com", "Ada Admin", "admin")


@pytest.fixture()
def technician(session: Session) -> models.User:
    return _make_user(
        session,
        "tech@example.com",
        "Tomas Tech",
        "technician",
        technician_profile=models.TechnicianProfile(specialization=["hydraulic"], reports_count=0),
    )


@pytest.fixture()
def client_user(session: Session) -> models.User:
    user = _make_user(
        session,
        "client@example.com",
        "Acme Towers",
        "client",
        client_profile=models.ClientProfile(
            name="Acme Towers",
            ruc="20123456789",
            email="client@example.com",
            status="active",
            contract_type="monthly",
            invoice_status="pending",
            buildings_count=0,
            elevators_count=0,
        ),
    )
    building = models.Building(client_id=user.id, name="Torre Norte", address="Av. Central 100", floors=12)
    building.elevators.append(models.Elevator(brand="Otis", status="operational"))
    session.add(building)
    session.commit()
    return user


@pytest.fixture()
def building(session: Session, client_user: models.User) -> models.Building:
    return session.query(models.Building).filter(models.Building.client_id == client_user.id).one()


def _auth_headers(session: Session, user: models.User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_auth_token(session, user)}"}


@pytest.fixture()
def admin_headers(session: Session, admin: models.User) -> Dict[str, str]:
    return _auth_headers(session, admin)


@pytest.fixture()
def technician_headers(session: Session, technician: models.User) -> Dict[str, str]:
    return _auth_headers(session, technician)


@pytest.fixture()
def client_headers(session: Session, client_user: models.User) -> Dict[str, str]:
    return _auth_headers(session, client_user)


@pytest.fixture()
def report_payload(session: Session) -> Dict[str, object]:
    template = session.query(models.ReportTemplate).order_by(models.ReportTemplate.sheet_number).first()
    return {
        "template_id": template.id,
        "building_name": "Torre Norte",
        "elevator_brand": "Otis",
        "date": "2024-03-04",
        "sections": [
            {
                "title": "Machine room",
                "items": [
                    {"description": "Clean machine room and check ventilation", "value": True},
                    {"description": "Motor temperature (C)", "value": 41},
                ],
            }
        ],
        "observations": "All good",
    }
