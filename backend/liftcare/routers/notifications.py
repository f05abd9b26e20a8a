from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import User
from ..schemas import CountResponse, Envelope, NotificationResponse
from ..services import notifications

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("/", response_model=Envelope[List[NotificationResponse]])
def list_notifications(
    read: Optional[bool] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=200),
    offset: Optional[int] = Query(default=None, ge=0),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Envelope[List[NotificationResponse]]:
    rows = notifications.list_notifications(db, user, read, limit, offset)
    return Envelope[List[NotificationResponse]](data=[NotificationResponse.model_validate(row) for row in rows])


@router.put("/read-all", response_model=Envelope[CountResponse])
def mark_all_as_read(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> Envelope[CountResponse]:
    count = notifications.mark_all_as_read(db, user)
    return Envelope[CountResponse](data=CountResponse(count=count), message="All notifications marked as read")


@router.put("/{notification_id}/read", response_model=Envelope[NotificationResponse])
def mark_as_read(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Envelope[NotificationResponse]:
    row = notifications.mark_as_read(db, user, notification_id)
    return Envelope[NotificationResponse](data=NotificationResponse.model_validate(row))


@router.delete("/{notification_id}", response_model=Envelope[None])
def delete_notification(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Envelope[None]:
    notifications.delete_notification(db, user, notification_id)
    return Envelope[None](message="Notification deleted")
