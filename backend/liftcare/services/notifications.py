from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import NotFoundError
from ..models import NOTIFICATION_TYPES, Notification, User
from . import mailer

logger = logging.getLogger(__name__)


def notify(
    db: Session,
    user_id: int,
    title: str,
    message: str,
    kind: str = "info",
    related_type: Optional[str] = None,
    related_id: Optional[int] = None,
) -> Optional[Notification]:
    """Insert an in-app notification; failures are logged and yield ``None``."""
    if kind not in NOTIFICATION_TYPES:
        logger.warning("Unknown notification type %r for user %s; using info", kind, user_id)
        kind = "info"
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=kind,
        read=False,
        related_entity_type=related_type,
        related_entity_id=related_id,
    )
    try:
        db.add(notification)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to create notification for user %s", user_id)
        return None
    db.refresh(notification)
    return notification


def notify_role(
    db: Session,
    roles: Iterable[str],
    title: str,
    message: str,
    kind: str = "info",
    related_type: Optional[str] = None,
    related_id: Optional[int] = None,
    active_only: bool = False,
    email: bool = False,
) -> List[Notification]:
    query = db.query(User).filter(User.role.in_(tuple(roles)))
    if active_only:
        query = query.filter(User.status == "active")
    recipients = query.order_by(User.id).all()
    created: List[Notification] = []
    for user in recipients:
        notification = notify(db, user.id, title, message, kind, related_type, related_id)
        if notification is not None:
            created.append(notification)
        if email:
            mailer.send_notification_email(user.email, user.name, title, message)
    return created


def list_notifications(
    db: Session,
    user: User,
    read: Optional[bool] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> List[Notification]:
    query = db.query(Notification).filter(Notification.user_id == user.id)
    if read is not None:
        query = query.filter(Notification.read.is_(read))
    query = query.order_by(Notification.created_at.desc(), Notification.id.desc())
    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)
    return query.all()


def _get_own_notification(db: Session, user: User, notification_id: int) -> Notification:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.user_id != user.id:
        raise NotFoundError("Notification not found")
    return notification


def mark_as_read(db: Session, user: User, notification_id: int) -> Notification:
    notification = _get_own_notification(db, user, notification_id)
    notification.read = True
    db.commit()
    db.refresh(notification)
    return notification


def mark_all_as_read(db: Session, user: User) -> int:
    count = (
        db.query(Notification)
        .filter(Notification.user_id == user.id, Notification.read.is_(False))
        .update({Notification.read: True}, synchronize_session=False)
    )
    db.commit()
    return count


def delete_notification(db: Session, user: User, notification_id: int) -> None:
    notification = _get_own_notification(db, user, notification_id)
    db.delete(notification)
    db.commit()
