"""Bearer-token authentication and the role/status authorization gate."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .database import get_db
from .errors import AuthError, AuthorizationError
from .models import USER_ROLES, User
from .token_utils import resolve_token

logger = logging.getLogger(__name__)


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization")
    if not header:
        return None
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    token = bearer_token(request)
    if not token:
        raise AuthError("Authentication token missing")
    user = resolve_token(db, token)
    if user is None:
        raise AuthError("Invalid or expired token")
    return user


def requires(*roles: str, active: bool = True) -> Callable[..., User]:
    """Build a dependency admitting users with one of ``roles``.

    With no roles any authenticated user passes the role check. ``active``
    additionally demands ``status == "active"``.
    """
    unknown = set(roles) - set(USER_ROLES)
    if unknown:
        raise ValueError(f"Unknown roles: {sorted(unknown)}")

    def _gate(user: User = Depends(get_current_user)) -> User:
        if roles and user.role not in roles:
            logger.info("User %s with role %s denied; requires %s", user.id, user.role, roles)
            raise AuthorizationError()
        if active and not user.is_active:
            raise AuthorizationError("Your account is not active")
        return user

    return _gate
