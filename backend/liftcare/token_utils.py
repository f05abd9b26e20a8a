from __future__ import annotations

import base64
import datetime as dt
import hashlib
import hmac
import os
from typing import Optional

import bcrypt
from sqlalchemy.orm import Session

from .config import settings
from .models import AuthToken, User


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _ensure_aware(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def generate_token_value() -> str:
    raw = os.urandom(32)
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def token_hash(token: str) -> str:
    digest = hmac.new(settings.token_secret.encode(), msg=token.encode(), digestmod=hashlib.sha256)
    return digest.hexdigest()


def create_auth_token(db: Session, user: User, ttl_minutes: Optional[int] = None) -> str:
    """Issue a bearer token for ``user`` and return its plain value.

    Only the HMAC digest is stored, so the plain value cannot be recovered later.
    """
    token_value = generate_token_value()
    ttl = settings.token_ttl_minutes if ttl_minutes is None else ttl_minutes
    expires_at = _now() + dt.timedelta(minutes=ttl) if ttl else None
    token = AuthToken(user_id=user.id, token_hash=token_hash(token_value), expires_at=expires_at)
    db.add(token)
    db.commit()
    return token_value


def resolve_token(db: Session, token_value: str) -> Optional[User]:
    token = db.query(AuthToken).filter(AuthToken.token_hash == token_hash(token_value)).one_or_none()
    if not token:
        return None
    expires_at = _ensure_aware(token.expires_at)
    if expires_at and expires_at < _now():
        db.delete(token)
        db.commit()
        return None
    user = db.get(User, token.user_id)
    if user is None:
        return None
    token.last_used_at = _now()
    db.commit()
    return user


def revoke_token(db: Session, token_value: str) -> bool:
    token = db.query(AuthToken).filter(AuthToken.token_hash == token_hash(token_value)).one_or_none()
    if not token:
        return False
    db.delete(token)
    db.commit()
    return True


def revoke_user_tokens(db: Session, user_id: int) -> int:
    count = db.query(AuthToken).filter(AuthToken.user_id == user_id).delete(synchronize_session=False)
    db.commit()
    return count
