"""In-app notification routes."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from logiflex_api.auth.api_key import get_current_user
from logiflex_api.db.session import get_db
from logiflex_api.models import User
from logiflex_api.notifications.service import NotificationService

router = APIRouter(prefix="/v1", tags=["notifications"])


class NotificationResponse(BaseModel):
    """Notification response."""

    id: str
    type: str
    title: str
    message: str
    link: Optional[str] = None
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


@router.get("/notifications", response_model=list[NotificationResponse])
async def list_notifications(
    unread_only: bool = False,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the caller's notifications, newest first."""
    return NotificationService(db).list_for_user(user.id, unread_only=unread_only)


@router.patch("/notifications/read-all")
async def mark_all_notifications_read(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Mark every notification of the caller as read."""
    updated = NotificationService(db).mark_all_read(user.id)
    return {"updated": updated}


@router.patch("/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Mark one notification as read."""
    return NotificationService(db).mark_read(notification_id, user.id)


@router.delete("/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete one of the caller's notifications."""
    NotificationService(db).delete(notification_id, user.id)
