from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import AuthError, AuthorizationError, ConflictError, NotFoundError, UnexpectedError, ValidationError
from ..models import USER_ROLES, TechnicianProfile, User
from ..schemas import (
    ProfileUpdateRequest,
    RegisterRequest,
    TechnicianCreateRequest,
    TechnicianUpdateRequest,
)
from ..token_utils import (
    create_auth_token,
    hash_password,
    revoke_token,
    revoke_user_tokens,
    verify_password,
)
from ..utils import generate_random_password
from . import mailer
from .notifications import notify

logger = logging.getLogger(__name__)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == _normalize_email(email)).one_or_none()


def _commit_new_user(db: Session, user: User) -> User:
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError("Email already registered") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to create user %s", user.email)
        raise UnexpectedError("Failed to create user", error=str(exc)) from exc
    db.refresh(user)
    return user


def create_user(
    db: Session,
    email: str,
    password: str,
    name: str,
    role: str,
    status: str = "pending",
    phone: Optional[str] = None,
    **related: Any,
) -> User:
    """Sign-up primitive shared by registration and admin provisioning.

    ``related`` accepts ``technician_profile`` or ``client_profile`` instances
    that are persisted in the same transaction as the user row.
    """
    if role not in USER_ROLES:
        raise ValidationError("Invalid role")
    if get_user_by_email(db, email) is not None:
        raise ValidationError("Email already registered")
    user = User(
        email=_normalize_email(email),
        password_hash=hash_password(password),
        name=name,
        role=role,
        status=status,
        phone=phone,
    )
    for attribute, value in related.items():
        setattr(user, attribute, value)
    return _commit_new_user(db, user)


def delete_user(db: Session, user: User) -> None:
    revoke_user_tokens(db, user.id)
    db.delete(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("User still has related records") from exc


# Authentication


def register(db: Session, payload: RegisterRequest) -> Tuple[User, str]:
    user = create_user(db, payload.email, payload.password, payload.name, payload.role, phone=payload.phone)
    token = create_auth_token(db, user)
    logger.info("Registered %s account %s (pending)", user.role, user.id)
    return user, token


def login(db: Session, email: str, password: str) -> Tuple[User, str]:
    user = get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        raise AuthError("Invalid credentials")
    if not user.is_active:
        raise AuthorizationError("Your account is not active. Contact the administrator.")
    token = create_auth_token(db, user)
    return user, token


def logout(db: Session, token: str) -> None:
    revoke_token(db, token)


def update_profile(db: Session, user: User, payload: ProfileUpdateRequest) -> User:
    for field, value in payload.model_dump(exclude_unset=True).items():
        if field == "name" and not value:
            continue
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return user


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise AuthError("Current password is incorrect")
    user.password_hash = hash_password(new_password)
    db.commit()


# Technicians


def technician_view(user: User) -> Dict[str, Any]:
    profile = user.technician_profile
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "status": user.status,
        "phone": user.phone,
        "profile_image": user.profile_image,
        "created_at": user.created_at,
        "specialization": list(profile.specialization or []) if profile else [],
        "reports_count": profile.reports_count if profile else 0,
        "last_active": profile.last_active if profile else None,
    }


def create_technician(db: Session, payload: TechnicianCreateRequest) -> Tuple[User, str]:
    password = generate_random_password()
    user = create_user(
        db,
        payload.email,
        password,
        payload.name,
        "technician",
        status="active",
        phone=payload.phone,
        technician_profile=TechnicianProfile(specialization=list(payload.specialization), reports_count=0),
    )
    notify(
        db,
        user.id,
        f"Welcome to {settings.app_name}",
        f"Hello {user.name}, your account has been created. Your temporary password is: {password}",
        "info",
    )
    mailer.send_welcome_email(user.email, user.name, password)
    logger.info("Created technician %s", user.id)
    return user, password


def _get_technician(db: Session, technician_id: int) -> User:
    user = db.get(User, technician_id)
    if user is None or user.role != "technician":
        raise NotFoundError("Technician not found")
    return user


def list_technicians(
    db: Session, status: Optional[str] = None, specialization: Optional[str] = None
) -> List[User]:
    query = db.query(User).filter(User.role == "technician")
    if status:
        query = query.filter(User.status == status)
    technicians = query.order_by(User.name.asc(), User.id.asc()).all()
    if specialization:
        technicians = [
            user
            for user in technicians
            if user.technician_profile and specialization in (user.technician_profile.specialization or [])
        ]
    return technicians


def get_technician(db: Session, technician_id: int) -> User:
    return _get_technician(db, technician_id)


def update_technician(db: Session, technician_id: int, payload: TechnicianUpdateRequest) -> User:
    user = _get_technician(db, technician_id)
    changes = payload.model_dump(exclude_unset=True)
    specialization = changes.pop("specialization", None)
    for field, value in changes.items():
        if value is not None:
            setattr(user, field, value)
    if specialization is not None:
        if user.technician_profile is None:
            user.technician_profile = TechnicianProfile(reports_count=0)
        user.technician_profile.specialization = list(specialization)
    db.commit()
    db.refresh(user)
    return user


def delete_technician(db: Session, technician_id: int) -> None:
    delete_user(db, _get_technician(db, technician_id))
    logger.info("Deleted technician %s", technician_id)
